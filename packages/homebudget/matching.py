"""Reconciliation matcher: pair a period's transactions with its bills.

Public API:
    - :class:`MatchConfig`
    - :func:`coerce_transaction`, :func:`coerce_bill`
    - :func:`score`
    - :func:`reconcile`

Two policies run in order:

1. Explicit links. A transaction that already carries ``bill_id`` is matched
   to that bill with confidence 1.0 and rationale ``"linked"``; no scoring.
2. Greedy fuzzy matching. Remaining transactions are visited by descending
   absolute amount (stable sort, so input order breaks ties). Each one takes
   the highest scoring unclaimed bill at or above ``min_confidence``; a
   claimed bill leaves the pool. Equal scores keep the earlier bill.

The score is a weighted mean over the factors that have data on both sides:
amount proximity (0.4), date proximity (0.3), merchant text (0.2) and
transaction name text (0.1). Factors without data drop out of the
denominator. The greedy pass is deterministic but not globally optimal.

Store rows are coerced permissively: a non-numeric amount becomes 0 and an
unparsable date becomes ``None``, so one malformed record never aborts a
period.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from .logging_setup import get_logger
from .models import Bill, MatchResult, MatchTransaction, ReconciliationResult
from .patterns import PatternIndex
from .settings import Settings
from .similarity import normalize_text, string_similarity

_logger = get_logger("homebudget.matching")

LINKED_RATIONALE = "linked"


@dataclass(frozen=True, slots=True)
class MatchConfig:
    amount_tolerance: float = 5.0
    date_tolerance_days: int = 3
    min_confidence: float = 0.7
    amount_weight: float = 0.4
    date_weight: float = 0.3
    merchant_weight: float = 0.2
    name_weight: float = 0.1

    @classmethod
    def from_settings(cls, settings: Settings) -> MatchConfig:
        return cls(
            amount_tolerance=settings.amount_tolerance,
            date_tolerance_days=settings.date_tolerance_days,
            min_confidence=settings.min_match_confidence,
        )


# ---- Permissive coercion -----------------------------------------------------


def _coerce_amount(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, int | float | Decimal):
        out = float(value)
    else:
        try:
            out = float(str(value).replace("$", "").replace(",", "").strip())
        except ValueError:
            return 0.0
    return out if math.isfinite(out) else 0.0


def _coerce_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


def coerce_transaction(row: Mapping[str, Any]) -> MatchTransaction:
    return MatchTransaction(
        id=row["id"],
        amount=_coerce_amount(row.get("amount")),
        date=_coerce_date(row.get("date")),
        name=str(row.get("name") or row.get("description") or ""),
        merchant=row.get("merchant_name") or None,
        bill_id=row.get("bill_id"),
    )


def coerce_bill(row: Mapping[str, Any]) -> Bill:
    return Bill(
        id=row["id"],
        description=str(row.get("description") or ""),
        amount=_coerce_amount(row.get("amount_due", row.get("amount"))),
        due_date=_coerce_date(row.get("due_date")),
        status=str(row.get("status") or "active"),
    )


# ---- Scoring -----------------------------------------------------------------


def _linear(gap: float, tolerance: float) -> float:
    """1.0 at zero gap, falling linearly to 0.0 at ``tolerance`` and beyond."""

    if tolerance <= 0:
        return 1.0 if gap == 0 else 0.0
    return max(0.0, 1.0 - gap / tolerance)


def score(
    tx: MatchTransaction,
    bill: Bill,
    config: MatchConfig | None = None,
    patterns: PatternIndex | None = None,
) -> tuple[float, str]:
    """Return ``(confidence, rationale)`` for pairing ``tx`` with ``bill``."""

    config = config or MatchConfig()
    factors: list[tuple[str, float, float]] = []

    tx_amount = abs(tx.amount)
    bill_amount = abs(bill.amount)
    if tx_amount and bill_amount:
        gap = abs(tx_amount - bill_amount)
        factors.append(("amount", config.amount_weight, _linear(gap, config.amount_tolerance)))

    if tx.date is not None and bill.due_date is not None:
        days = abs((tx.date - bill.due_date).days)
        factors.append(("date", config.date_weight, _linear(days, config.date_tolerance_days)))

    learned = patterns.lookup(tx.name, bill.description) if patterns else None
    if normalize_text(bill.description):
        for label, weight, text in (
            ("merchant", config.merchant_weight, tx.merchant),
            ("name", config.name_weight, tx.name),
        ):
            if not normalize_text(text):
                continue
            similarity = string_similarity(text, bill.description)
            if learned is not None:
                similarity = max(similarity, learned)
            factors.append((label, weight, similarity))

    total_weight = sum(w for _, w, _ in factors)
    if total_weight <= 0:
        return 0.0, "no comparable fields"
    confidence = sum(w * v for _, w, v in factors) / total_weight
    rationale = " ".join(f"{label}={value:.2f}" for label, _, value in factors)
    if learned is not None:
        rationale += f" pattern={learned:.2f}"
    return confidence, rationale


# ---- Reconciliation ----------------------------------------------------------


def reconcile(
    transactions: Sequence[MatchTransaction],
    bills: Sequence[Bill],
    config: MatchConfig | None = None,
    patterns: PatternIndex | None = None,
) -> ReconciliationResult:
    """Partition ``transactions`` and ``bills`` into matches and leftovers."""

    config = config or MatchConfig()
    bills_by_id = {b.id: b for b in bills}
    claimed: set[Any] = set()
    matched: list[MatchResult] = []
    matched_tx: set[int] = set()

    for idx, tx in enumerate(transactions):
        if tx.bill_id is None:
            continue
        bill = bills_by_id.get(tx.bill_id)
        if bill is None or bill.id in claimed:
            _logger.warning(
                "reconcile:link_unresolved tx=%s bill=%s claimed=%s",
                tx.id,
                tx.bill_id,
                bill is not None,
            )
            continue
        claimed.add(bill.id)
        matched_tx.add(idx)
        matched.append(
            MatchResult(
                transaction=tx,
                bill=bill,
                confidence=1.0,
                rationale=LINKED_RATIONALE,
                method="linked",
            )
        )

    candidates = sorted(
        (i for i, tx in enumerate(transactions) if tx.bill_id is None),
        key=lambda i: -abs(transactions[i].amount),
    )
    for idx in candidates:
        tx = transactions[idx]
        best: tuple[Bill, float, str] | None = None
        for bill in bills:
            if bill.id in claimed:
                continue
            confidence, rationale = score(tx, bill, config, patterns)
            if confidence < config.min_confidence:
                continue
            if best is None or confidence > best[1]:
                best = (bill, confidence, rationale)
        if best is None:
            continue
        bill, confidence, rationale = best
        claimed.add(bill.id)
        matched_tx.add(idx)
        matched.append(
            MatchResult(transaction=tx, bill=bill, confidence=confidence, rationale=rationale)
        )
        _logger.debug("reconcile:match tx=%s bill=%s confidence=%.3f", tx.id, bill.id, confidence)

    result = ReconciliationResult(
        matched=tuple(matched),
        unmatched_transactions=tuple(
            tx for i, tx in enumerate(transactions) if i not in matched_tx
        ),
        unmatched_bills=tuple(b for b in bills if b.id not in claimed),
    )
    _logger.info("reconcile:done %s", " ".join(f"{k}={v}" for k, v in result.summary.items()))
    return result


__all__ = [
    "LINKED_RATIONALE",
    "MatchConfig",
    "coerce_bill",
    "coerce_transaction",
    "reconcile",
    "score",
]
