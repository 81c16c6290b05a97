"""Pytest configuration: import paths, environment isolation and a temp database.

Every test gets a clean environment (no ``DATABASE_URL``, ``OPENAI_API_KEY``
or ``HOMEBUDGET_*`` leaking in from the developer's shell or ``.env``) and,
when it asks for ``store``, its own file-backed SQLite database.
"""

# ruff: noqa: E402
from __future__ import annotations

import os
import sys
from collections.abc import Iterator
from pathlib import Path

_ROOT = Path(__file__).resolve().parents[1]
# Ensure local packages precede anything installed so the working tree is tested.
sys.path[:0] = [
    p
    for p in (str(_ROOT / "packages"), str(_ROOT / "libs" / "db" / "src"), str(_ROOT))
    if p not in sys.path
]

import pytest
from db.client import dispose_engines
from db.store import SqlStore

from tests.helpers.db import bootstrap_sqlite_db


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in list(os.environ):
        if name.startswith("HOMEBUDGET_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)


@pytest.fixture
def database_url(tmp_path: Path) -> Iterator[str]:
    url = bootstrap_sqlite_db(tmp_path / "homebudget.sqlite")
    yield url
    dispose_engines()


@pytest.fixture
def store(database_url: str) -> SqlStore:
    return SqlStore(database_url)
