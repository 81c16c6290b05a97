"""Data models for ``homebudget``.

Immutable value types shared by the normalizer, the categorization cascade
and the reconciliation matcher. Store rows are plain dicts (see
:mod:`db.store`); the types here are what the library computes with.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ---------------------------------------------------------------------------
# Bank schemas
# ---------------------------------------------------------------------------


class AmountFormat(StrEnum):
    """Sign convention of a bank export."""

    SIGNED = "signed"
    """A single amount column that already carries the sign."""
    DEBIT_CREDIT = "debit_credit"
    """Separate debit/credit columns, or an amount plus a debit/credit indicator."""
    EXPENSE_ONLY = "expense_only"
    """A single positive column where every row is an outflow."""


@dataclass(frozen=True, slots=True)
class FieldMapping:
    """Header names for each canonical field.

    Names are matched as case-insensitive substrings of the file's headers.
    For :attr:`AmountFormat.DEBIT_CREDIT`, ``amount`` names the debit column
    and ``credit`` the credit column; ``indicator`` names a column holding a
    ``debit``/``credit`` marker when the export uses one amount column.
    """

    date: str
    description: str
    amount: str
    merchant: str | None = None
    category: str | None = None
    account: str | None = None
    credit: str | None = None
    indicator: str | None = None

    def mapped_names(self) -> tuple[str, ...]:
        names = (
            self.date,
            self.description,
            self.amount,
            self.merchant,
            self.category,
            self.account,
            self.credit,
            self.indicator,
        )
        return tuple(n for n in names if n)


@dataclass(frozen=True, slots=True)
class BankSchema:
    name: str
    fields: FieldMapping
    patterns: tuple[str, ...] = ()
    # One of the tokens understood by the normalizer, or None for automatic.
    date_format: str | None = None
    amount_format: AmountFormat = AmountFormat.SIGNED


# ---------------------------------------------------------------------------
# Normalization output
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class NormalizedTransaction:
    """Canonical transaction. ``amount`` is negative for outflows."""

    date: date
    description: str
    amount: Decimal
    merchant: str | None = None
    category: str | None = None
    account: str | None = None
    row_number: int | None = None


@dataclass(frozen=True, slots=True)
class RowFailure:
    row_number: int
    reason: str
    raw: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class NormalizationResult:
    filename: str
    schema: BankSchema
    transactions: tuple[NormalizedTransaction, ...]
    failures: tuple[RowFailure, ...]

    @property
    def total_rows(self) -> int:
        return len(self.transactions) + len(self.failures)


# ---------------------------------------------------------------------------
# Categorization
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CategorizationInput:
    """Text and amount the cascade looks at, plus the optional bank label."""

    name: str
    amount: Decimal
    description: str | None = None
    merchant: str | None = None
    source_label: str | None = None

    @classmethod
    def from_normalized(cls, tx: NormalizedTransaction) -> CategorizationInput:
        return cls(
            name=tx.description,
            amount=tx.amount,
            merchant=tx.merchant,
            source_label=tx.category,
        )

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> CategorizationInput:
        return cls(
            name=str(row.get("name") or ""),
            amount=Decimal(str(row.get("amount") or 0)),
            description=row.get("description"),
            merchant=row.get("merchant_name"),
        )

    def text(self) -> str:
        """``name description merchant`` joined with single spaces."""

        return " ".join(p for p in (self.name, self.description, self.merchant) if p)


class CategorizationMethod(StrEnum):
    SOURCE_LABEL = "source_label"
    RULE = "rule"
    SIMILARITY = "similarity"
    GENERATIVE = "generative"
    DEFAULT = "default"


@dataclass(frozen=True, slots=True)
class CategorizationResult:
    category_id: int | None
    confidence: float
    method: CategorizationMethod
    # Vector computed by the similarity stage; persisted on the transaction.
    embedding: tuple[float, ...] | None = None
    detail: str | None = None


class CategorizationRule(BaseModel):
    """A user-authored rule from ``hb_categorization_rules``.

    ``conditions`` holds the raw JSON payload: ``keywords`` for keyword
    rules, ``merchants`` for merchant rules, ``min_amount``/``max_amount`` for
    amount-range rules.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int | None = None
    name: str | None = None
    rule_type: Literal["keyword", "merchant", "amount_range"]
    conditions: dict[str, Any] = Field(default_factory=dict, alias="rule_conditions")
    category_id: int
    priority: int = 0
    is_active: bool = True

    @field_validator("conditions", mode="before")
    @classmethod
    def _conditions_mapping(cls, v: Any) -> dict[str, Any]:
        # Malformed payloads are kept as empty conditions and never match.
        if isinstance(v, Mapping):
            return dict(v)
        return {}


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Bill:
    id: int
    description: str
    amount: float
    due_date: date | None = None
    status: str = "active"


@dataclass(frozen=True, slots=True)
class MatchTransaction:
    """The matcher's coerced view of a persisted transaction."""

    id: int
    amount: float
    date: date | None
    name: str
    merchant: str | None = None
    bill_id: int | None = None


@dataclass(frozen=True, slots=True)
class MatchResult:
    transaction: MatchTransaction
    bill: Bill
    confidence: float
    rationale: str
    method: Literal["linked", "auto"] = "auto"


@dataclass(frozen=True, slots=True)
class ReconciliationResult:
    """Partition of a period's transactions and bills.

    Every input transaction and bill appears in exactly one of the three
    collections; matched pairs are one-to-one.
    """

    matched: tuple[MatchResult, ...]
    unmatched_transactions: tuple[MatchTransaction, ...]
    unmatched_bills: tuple[Bill, ...]

    @property
    def summary(self) -> dict[str, int]:
        return {
            "transactions": len(self.matched) + len(self.unmatched_transactions),
            "bills": len(self.matched) + len(self.unmatched_bills),
            "matched": len(self.matched),
            "linked": sum(1 for m in self.matched if m.method == "linked"),
            "unmatched_transactions": len(self.unmatched_transactions),
            "unmatched_bills": len(self.unmatched_bills),
        }


# ---------------------------------------------------------------------------
# Import bookkeeping
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ImportResult:
    import_id: int | None
    filename: str
    bank_detected: str
    total_rows: int
    imported: int
    failed: int
    duplicates: int
    status: str
    warnings: tuple[RowFailure, ...] = field(default=())


__all__ = [
    "AmountFormat",
    "BankSchema",
    "Bill",
    "CategorizationInput",
    "CategorizationMethod",
    "CategorizationResult",
    "CategorizationRule",
    "FieldMapping",
    "ImportResult",
    "MatchResult",
    "MatchTransaction",
    "NormalizationResult",
    "NormalizedTransaction",
    "ReconciliationResult",
    "RowFailure",
]
