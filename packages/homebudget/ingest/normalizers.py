"""Row and file normalization to :class:`~homebudget.models.NormalizedTransaction`.

Rows are normalized strictly: a missing date/description/amount, an
unparseable date or an unparseable amount rejects the row. Rejections are
collected by :func:`normalize_file` as :class:`~homebudget.models.RowFailure`
warnings; a file where nothing normalizes is rejected as a whole.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import PurePath

from dateutil import parser as date_parser

from ..errors import NormalizationError, RowNormalizationError
from ..logging_setup import get_logger
from ..models import (
    AmountFormat,
    BankSchema,
    NormalizationResult,
    NormalizedTransaction,
    RowFailure,
)
from .detect import detect_schema, parse_csv_text
from .schemas import account_for_filename

_logger = get_logger("homebudget.ingest.normalizers")

# ---------------------------------------------------------------------------
# Helpers (value lookup, amount/date parsing)
# ---------------------------------------------------------------------------

_DATE_TOKENS: dict[str, tuple[str, ...]] = {
    "MM/DD/YYYY": ("%m/%d/%Y",),
    "M/D/YYYY": ("%m/%d/%Y",),
    "YYYY-MM-DD": ("%Y-%m-%d",),
    "MON D, YYYY": ("%b %d, %Y", "%B %d, %Y"),
}

_CATEGORY_CODE_RE = re.compile(r"^\d+(\s*;\s*\d+)*;?$")

_CREDIT_MARKERS = ("credit", "cr", "deposit")


def _find_index(headers: Sequence[str], name: str | None) -> int | None:
    """Index of the header matching ``name``: exact (case-insensitive) first, then substring."""

    if not name:
        return None
    needle = name.strip().lower()
    lowered = [h.strip().lower() for h in headers]
    for i, h in enumerate(lowered):
        if h == needle:
            return i
    for i, h in enumerate(lowered):
        if needle in h:
            return i
    return None


def _value(values: Sequence[str], headers: Sequence[str], name: str | None) -> str | None:
    idx = _find_index(headers, name)
    if idx is None or idx >= len(values):
        return None
    v = values[idx].strip()
    return v or None


def parse_amount(raw: str | None) -> Decimal:
    """Parse a bank amount string into a signed ``Decimal``.

    Currency symbols, thousands separators, a leading ``+``/``-`` and
    surrounding parentheses (negative) are handled in any order.
    """

    if raw is None:
        raise ValueError("amount is required")
    s = raw.strip()
    if not s:
        raise ValueError("amount is empty")
    negative = False

    # Strip leading sign, currency symbol and parentheses until stable.
    while True:
        changed = False
        if s.startswith("+"):
            s = s[1:].lstrip()
            changed = True
        elif s.startswith("-"):
            negative = True
            s = s[1:].lstrip()
            changed = True
        if s.startswith("$"):
            s = s[1:].lstrip()
            changed = True
        if s.startswith("(") and s.endswith(")") and len(s) >= 2:
            negative = True
            s = s[1:-1].strip()
            changed = True
        if not changed:
            break

    # Trailing minus ("12.00-") appears in some exports.
    if s.endswith("-"):
        negative = True
        s = s[:-1].strip()
    s = s.replace(",", "").replace("$", "").strip()

    try:
        d = Decimal(s)
    except InvalidOperation as exc:
        raise ValueError(f"invalid amount: {raw!r}") from exc
    if not d.is_finite():
        raise ValueError(f"invalid amount: {raw!r}")
    return -abs(d) if negative else d


def parse_date(raw: str | None, date_format: str | None = None) -> date:
    """Parse ``raw`` using the schema token first, then generic parsing.

    Raises ``ValueError`` when neither yields a calendar date.
    """

    if raw is None or not raw.strip():
        raise ValueError("date is required")
    s = raw.strip()
    candidates = [s]
    first = s.split()[0]
    if first != s:
        candidates.append(first)
    for fmt in _DATE_TOKENS.get(date_format or "", ()):
        for c in candidates:
            try:
                return datetime.strptime(c, fmt).date()
            except ValueError:
                continue
    try:
        return date_parser.parse(s).date()
    except (ValueError, OverflowError) as exc:
        raise ValueError(f"invalid date: {raw!r}") from exc


def clean_category_label(raw: str | None) -> str | None:
    """Return a usable category hint, or ``None`` for empty or numeric bank codes."""

    if raw is None:
        return None
    s = " ".join(raw.split())
    if not s or _CATEGORY_CODE_RE.match(s):
        return None
    return s


def _apply_sign(
    schema: BankSchema, values: Sequence[str], headers: Sequence[str]
) -> Decimal | None:
    f = schema.fields
    amount_raw = _value(values, headers, f.amount)

    if schema.amount_format is AmountFormat.SIGNED:
        return parse_amount(amount_raw) if amount_raw is not None else None

    if schema.amount_format is AmountFormat.EXPENSE_ONLY:
        return -abs(parse_amount(amount_raw)) if amount_raw is not None else None

    # DEBIT_CREDIT
    credit_raw = _value(values, headers, f.credit) if f.credit else None
    if amount_raw is not None and parse_amount(amount_raw) != 0:
        debit = abs(parse_amount(amount_raw))
        indicator = (_value(values, headers, f.indicator) or "").lower() if f.indicator else ""
        if indicator.startswith(_CREDIT_MARKERS):
            return debit
        return -debit
    if credit_raw is not None:
        return abs(parse_amount(credit_raw))
    if amount_raw is not None:
        return Decimal("0")
    return None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def normalize_row(
    values: Sequence[str],
    headers: Sequence[str],
    schema: BankSchema,
    *,
    row_number: int | None = None,
    filename: str | None = None,
) -> NormalizedTransaction:
    """Normalize one raw row; raises :class:`RowNormalizationError` on rejection."""

    f = schema.fields
    date_raw = _value(values, headers, f.date)
    description = _value(values, headers, f.description)

    missing = [
        name
        for name, present in (
            ("date", date_raw is not None),
            ("description", description is not None),
        )
        if not present
    ]
    try:
        amount = _apply_sign(schema, values, headers)
    except ValueError as exc:
        raise RowNormalizationError(str(exc), row_number=row_number) from exc
    if amount is None:
        missing.append("amount")
    if missing or date_raw is None or description is None or amount is None:
        raise RowNormalizationError(
            f"missing required field(s): {', '.join(missing)}", row_number=row_number
        )

    try:
        tx_date = parse_date(date_raw, schema.date_format)
    except ValueError as exc:
        raise RowNormalizationError(str(exc), row_number=row_number) from exc

    account = _value(values, headers, f.account) if f.account else None
    if account is None:
        account = account_for_filename(PurePath(filename).name if filename else None)

    category = _value(values, headers, f.category) if f.category else None
    return NormalizedTransaction(
        date=tx_date,
        description=" ".join(description.split()),
        amount=amount,
        merchant=_value(values, headers, f.merchant) if f.merchant else None,
        category=clean_category_label(category),
        account=account,
        row_number=row_number,
    )


def normalize_file(filename: str, text: str) -> NormalizationResult:
    """Detect the schema of ``text`` and normalize every data row.

    Row numbers count the header as row 1. Output preserves input order.
    Raises :class:`~homebudget.errors.FormatDetectionError` when no schema is
    found and :class:`~homebudget.errors.NormalizationError` when no row
    normalizes.
    """

    headers, rows = parse_csv_text(text)
    schema = detect_schema(filename, headers)

    transactions: list[NormalizedTransaction] = []
    failures: list[RowFailure] = []
    for offset, values in enumerate(rows):
        row_number = offset + 2
        try:
            transactions.append(
                normalize_row(values, headers, schema, row_number=row_number, filename=filename)
            )
        except RowNormalizationError as exc:
            failures.append(RowFailure(row_number=row_number, reason=str(exc), raw=tuple(values)))
            _logger.warning(
                "normalize:row_failed file=%s row=%d reason=%s raw=%r mapping=%r",
                filename,
                row_number,
                exc,
                list(values),
                schema.fields,
            )

    if not transactions:
        detail = failures[0].reason if failures else "no data rows"
        raise NormalizationError(
            f"No transactions could be read from {filename!r} using the {schema.name} "
            f"format ({len(failures)} row(s) failed; first error: {detail})."
        )

    _logger.info(
        "normalize:file file=%s schema=%s ok=%d failed=%d",
        filename,
        schema.name,
        len(transactions),
        len(failures),
    )
    return NormalizationResult(
        filename=filename,
        schema=schema,
        transactions=tuple(transactions),
        failures=tuple(failures),
    )


__all__ = [
    "clean_category_label",
    "normalize_file",
    "normalize_row",
    "parse_amount",
    "parse_date",
]
