"""Bank format detection.

Detection order, first match wins:

1. :data:`~homebudget.ingest.schemas.FILENAME_RULES` (filename prefix or
   exact stem).
2. Filename substring against each static schema's ``patterns``.
3. Header matching: the first static schema whose date, description and
   amount names (and at least three distinct mapped names overall) each occur
   as a case-insensitive substring of some header.
4. A generic schema synthesized from date/description/amount-like headers.

Anything else raises :class:`~homebudget.errors.FormatDetectionError`.
"""

from __future__ import annotations

import csv
from collections.abc import Sequence
from io import StringIO
from pathlib import PurePath

from ..errors import FormatDetectionError
from ..logging_setup import get_logger
from ..models import AmountFormat, BankSchema, FieldMapping
from .schemas import FILENAME_RULES, STATIC_SCHEMAS

_logger = get_logger("homebudget.ingest.detect")

_MIN_HEADER_MATCHES = 3

# Token classes for the generic schema, in preference order.
_GENERIC_DATE = ("date", "run date", "posting date")
_GENERIC_DESCRIPTION = ("description", "action", "name", "memo")
_GENERIC_AMOUNT = ("amount", "value")


def parse_csv_text(text: str) -> tuple[list[str], list[list[str]]]:
    """Split CSV text into ``(headers, rows)``.

    RFC 4180 quoting (embedded commas, quotes and newlines) is handled by the
    stdlib :mod:`csv` module. A leading UTF-8 BOM is dropped, header cells are
    stripped, and fully blank rows are skipped.
    """

    if text.startswith("\ufeff"):
        text = text[1:]
    with StringIO(text, newline="") as f:
        records = list(csv.reader(f))

    if not records or not any(cell.strip() for cell in records[0]):
        raise FormatDetectionError(
            "The file is empty or has no header row; export the CSV again with column headers."
        )
    headers = [cell.strip() for cell in records[0]]
    rows = [r for r in records[1:] if any(cell.strip() for cell in r)]
    return headers, rows


def _split_filename(filename: str) -> tuple[str, str]:
    path = PurePath(filename.replace("\\", "/"))
    return path.name.lower(), path.stem.lower()


def _header_contains(headers: Sequence[str], name: str) -> bool:
    needle = name.lower()
    return any(needle in h.lower() for h in headers)


def _matches_headers(schema: BankSchema, headers: Sequence[str]) -> bool:
    f = schema.fields
    if not all(_header_contains(headers, n) for n in (f.date, f.description, f.amount)):
        return False
    distinct = {n.lower() for n in f.mapped_names()}
    matched = [n for n in distinct if _header_contains(headers, n)]
    return len(matched) >= _MIN_HEADER_MATCHES


def _find_generic(headers: Sequence[str], tokens: Sequence[str]) -> str | None:
    lowered = [h.lower() for h in headers]
    for token in tokens:
        for h, low in zip(headers, lowered, strict=True):
            if low == token:
                return h
    for token in tokens:
        for h, low in zip(headers, lowered, strict=True):
            if token in low:
                return h
    return None


def _synthesize(headers: Sequence[str]) -> BankSchema | None:
    date_h = _find_generic(headers, _GENERIC_DATE)
    desc_h = _find_generic(headers, _GENERIC_DESCRIPTION)
    amount_h = _find_generic(headers, _GENERIC_AMOUNT)
    if date_h is None or desc_h is None or amount_h is None:
        return None
    return BankSchema(
        name="Generic",
        fields=FieldMapping(date=date_h, description=desc_h, amount=amount_h),
        date_format=None,
        amount_format=AmountFormat.SIGNED,
    )


def detect_schema(filename: str, headers: Sequence[str]) -> BankSchema:
    """Return the schema for ``(filename, headers)``; deterministic for equal inputs."""

    basename, stem = _split_filename(filename or "")

    for rule in FILENAME_RULES:
        if rule.matches(basename, stem):
            _logger.debug("detect:filename_rule file=%s schema=%s", basename, rule.schema.name)
            return rule.schema

    for schema in STATIC_SCHEMAS:
        if any(p in basename for p in schema.patterns):
            _logger.debug("detect:filename_pattern file=%s schema=%s", basename, schema.name)
            return schema

    for schema in STATIC_SCHEMAS:
        if _matches_headers(schema, headers):
            _logger.debug("detect:headers file=%s schema=%s", basename, schema.name)
            return schema

    generic = _synthesize(headers)
    if generic is not None:
        _logger.info(
            "detect:generic file=%s date=%s description=%s amount=%s",
            basename,
            generic.fields.date,
            generic.fields.description,
            generic.fields.amount,
        )
        return generic

    raise FormatDetectionError(
        "Unable to detect bank format for "
        f"{filename!r}: the header row needs a date column, a description/name column "
        f"and an amount column (found: {', '.join(headers) or 'no headers'})."
    )


__all__ = ["detect_schema", "parse_csv_text"]
