"""Store-facing reconciliation: fetch a month, run the matcher, write results back."""

from __future__ import annotations

import calendar
from datetime import date
from typing import Any

from db.store import Store, StoreError

from .error_log import log_error
from .logging_setup import get_logger
from .matching import MatchConfig, coerce_bill, coerce_transaction, reconcile
from .models import Bill, ReconciliationResult
from .patterns import PatternIndex, load_pattern_index, record_pattern

_logger = get_logger("homebudget.reconciliation")

_TRANSACTIONS = "hb_transactions"
_BILLS = "hb_bills"


def month_bounds(year: int, month: int) -> tuple[date, date]:
    if not 1 <= month <= 12:
        raise ValueError(f"month must be in 1..12, got {month}")
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])


def _period_bills(store: Store, rows: list[dict[str, Any]], start: date, end: date) -> list[Bill]:
    bills: dict[Any, Bill] = {}
    for row in store.select(_BILLS, {"status": "active"}):
        bill = coerce_bill(row)
        if bill.due_date is None or start <= bill.due_date <= end:
            bills[bill.id] = bill
    # Bills already linked from this month stay in the snapshot whatever their status.
    for row in rows:
        linked = row.get("bill")
        if linked and linked["id"] not in bills:
            bills[linked["id"]] = coerce_bill(linked)
    return list(bills.values())


def reconcile_period(
    store: Store,
    year: int,
    month: int,
    config: MatchConfig | None = None,
    *,
    patterns: PatternIndex | None = None,
) -> ReconciliationResult:
    """Match one calendar month's transactions against its bills."""

    start, end = month_bounds(year, month)
    rows = store.fetch_transactions_with_links(start=start, end=end)
    transactions = [coerce_transaction(r) for r in rows]
    bills = _period_bills(store, rows, start, end)
    if patterns is None:
        patterns = load_pattern_index(store)
    _logger.info(
        "reconcile:period year=%d month=%d transactions=%d bills=%d patterns=%d",
        year,
        month,
        len(transactions),
        len(bills),
        len(patterns),
    )
    return reconcile(transactions, bills, config, patterns)


def apply_matches(store: Store, result: ReconciliationResult) -> int:
    """Persist fuzzy matches and learn a pattern from each; returns how many were written.

    Linked matches are already persisted and are left untouched.
    """

    applied = 0
    for match in result.matched:
        if match.method != "auto":
            continue
        tx, bill = match.transaction, match.bill
        try:
            store.update(
                _TRANSACTIONS,
                tx.id,
                {
                    "bill_id": bill.id,
                    "match_method": "auto",
                    "match_confidence": match.confidence,
                    "is_reconciled": True,
                },
            )
        except StoreError as exc:
            _logger.error("reconcile:apply_failed tx=%s bill=%s err=%s", tx.id, bill.id, exc)
            log_error(
                store,
                error_type="reconciliation",
                message=str(exc),
                operation="apply_matches",
                component="reconciliation",
                function_name="apply_matches",
                error_data={"transaction_id": tx.id, "bill_id": bill.id},
            )
            continue
        applied += 1
        try:
            record_pattern(store, tx.name, bill.description, match.confidence)
        except StoreError as exc:
            _logger.warning("reconcile:pattern_failed tx=%s bill=%s err=%s", tx.id, bill.id, exc)
    _logger.info("reconcile:applied count=%d", applied)
    return applied


def match_transaction_to_bill(store: Store, transaction_id: int, bill_id: int) -> dict[str, Any]:
    """Record a manual match (later learned by ``build_matching_patterns``)."""

    return store.update(
        _TRANSACTIONS,
        transaction_id,
        {
            "bill_id": bill_id,
            "match_method": "manual",
            "match_confidence": 1.0,
            "is_reconciled": True,
        },
    )


def unmatch_transaction(store: Store, transaction_id: int) -> dict[str, Any]:
    return store.update(
        _TRANSACTIONS,
        transaction_id,
        {"bill_id": None, "match_method": None, "match_confidence": None, "is_reconciled": False},
    )


def mark_bill_paid(store: Store, bill_id: int) -> dict[str, Any]:
    return store.update(_BILLS, bill_id, {"status": "paid"})


__all__ = [
    "apply_matches",
    "mark_bill_paid",
    "match_transaction_to_bill",
    "month_bounds",
    "reconcile_period",
    "unmatch_transaction",
]
