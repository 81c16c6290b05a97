import io
import logging

import pytest

from homebudget import logging_setup
from homebudget.logging_setup import configure_logging, get_logger


@pytest.fixture
def pkg_logger(monkeypatch):
    logger = logging.getLogger("homebudget")
    saved = (list(logger.handlers), logger.level, logger.propagate)
    monkeypatch.setattr(logging_setup, "_CONFIGURED", False)
    logger.handlers = []
    yield logger
    logger.handlers, logger.level, logger.propagate = saved


@pytest.mark.parametrize(
    ("level", "expected"),
    [(logging.DEBUG, logging.DEBUG), ("warning", logging.WARNING), ("15", 15), ("bogus", 20)],
)
def test_parse_level(level, expected):
    assert logging_setup._parse_level(level) == expected


def test_level_falls_back_to_environment(monkeypatch):
    monkeypatch.setenv("HOMEBUDGET_LOG_LEVEL", "ERROR")
    assert logging_setup._parse_level(None) == logging.ERROR


def test_get_logger_is_silent_until_configured(pkg_logger):
    get_logger("homebudget.matching")
    assert [type(h) for h in pkg_logger.handlers] == [logging.NullHandler]


def test_configure_logging_attaches_one_stream_handler(pkg_logger):
    get_logger("homebudget.matching")
    stream = io.StringIO()

    configure_logging("DEBUG", fmt="%(name)s %(message)s", stream=stream)
    configure_logging("ERROR", stream=io.StringIO())

    [handler] = pkg_logger.handlers
    assert isinstance(handler, logging.StreamHandler)
    assert pkg_logger.propagate is False
    get_logger("homebudget.matching").debug("reconcile:done matched=%d", 2)
    assert stream.getvalue() == "homebudget.matching reconcile:done matched=2\n"
