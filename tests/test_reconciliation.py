from datetime import date

import pytest
from db.store import StoreError

from homebudget.reconciliation import (
    apply_matches,
    mark_bill_paid,
    match_transaction_to_bill,
    month_bounds,
    reconcile_period,
    unmatch_transaction,
)
from tests.helpers.db import seed_bill, seed_transaction


class _NoPatternStore:
    """Passes everything through except writes to the pattern table."""

    def __init__(self, inner):
        self._inner = inner

    def __getattr__(self, name):
        return getattr(self._inner, name)

    def insert(self, table, rows):
        if table == "hb_matching_patterns":
            raise StoreError("insert on hb_matching_patterns failed")
        return self._inner.insert(table, rows)


@pytest.fixture
def september(store):
    ids = {
        "water": seed_bill(store, "City Water", "50.00", date(2025, 9, 15)),
        "gym": seed_bill(store, "Gym", "30.00", None),
        "august": seed_bill(store, "Old Loan", "75.00", date(2025, 8, 10)),
        "paid": seed_bill(store, "Insurance", "120.00", date(2025, 9, 1), status="paid"),
    }
    ids["t_water"] = seed_transaction(
        store, "CITY WATER", "-49.99", date(2025, 9, 14), merchant_name="City Water"
    )
    ids["t_gym"] = seed_transaction(store, "GYM CO", "-30.00", date(2025, 9, 3))
    ids["t_lunch"] = seed_transaction(store, "LUNCH", "-12.00", date(2025, 9, 5))
    ids["t_august"] = seed_transaction(store, "CITY WATER", "-50.00", date(2025, 8, 14))
    ids["t_linked"] = seed_transaction(
        store, "INSURANCE CO", "-120.00", date(2025, 9, 2), bill_id=ids["paid"]
    )
    return ids


def test_month_bounds():
    assert month_bounds(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))
    assert month_bounds(2025, 12) == (date(2025, 12, 1), date(2025, 12, 31))
    with pytest.raises(ValueError):
        month_bounds(2025, 13)


def test_reconcile_period_snapshot(store, september):
    result = reconcile_period(store, 2025, 9)

    pairs = {(m.transaction.id, m.bill.id, m.method) for m in result.matched}
    assert pairs == {
        (september["t_water"], september["water"], "auto"),
        (september["t_gym"], september["gym"], "auto"),
        (september["t_linked"], september["paid"], "linked"),
    }
    assert [t.id for t in result.unmatched_transactions] == [september["t_lunch"]]
    # August bills and transactions are outside the snapshot.
    assert result.unmatched_bills == ()
    assert result.summary["transactions"] == 4
    assert result.summary["bills"] == 3


def test_apply_matches_writes_auto_matches_and_learns_patterns(store, september):
    result = reconcile_period(store, 2025, 9)

    assert apply_matches(store, result) == 2

    [water] = store.select("hb_transactions", {"id": september["t_water"]})
    assert water["bill_id"] == september["water"]
    assert water["match_method"] == "auto"
    assert water["is_reconciled"] is True
    assert water["match_confidence"] >= 0.7

    [linked] = store.select("hb_transactions", {"id": september["t_linked"]})
    assert linked["match_method"] is None

    patterns = store.select("hb_matching_patterns", order_by="transaction_pattern")
    assert [(p["transaction_pattern"], p["bill_pattern"]) for p in patterns] == [
        ("city water", "city water"),
        ("gym co", "gym"),
    ]


def test_pattern_failure_still_counts_the_persisted_match(store, september):
    result = reconcile_period(store, 2025, 9)

    assert apply_matches(_NoPatternStore(store), result) == 2

    [water] = store.select("hb_transactions", {"id": september["t_water"]})
    assert water["bill_id"] == september["water"]
    assert store.select("hb_matching_patterns") == []
    assert store.select("hb_error_logs") == []


def test_applied_matches_become_links_on_the_next_run(store, september):
    apply_matches(store, reconcile_period(store, 2025, 9))
    again = reconcile_period(store, 2025, 9)
    assert {m.method for m in again.matched} == {"linked"}
    assert len(again.matched) == 3


def test_manual_match_and_unmatch(store, september):
    row = match_transaction_to_bill(store, september["t_lunch"], september["gym"])
    assert (row["bill_id"], row["match_method"], row["is_reconciled"]) == (
        september["gym"],
        "manual",
        True,
    )

    row = unmatch_transaction(store, september["t_lunch"])
    assert row["bill_id"] is None
    assert row["match_method"] is None
    assert row["is_reconciled"] is False


def test_mark_bill_paid(store, september):
    assert mark_bill_paid(store, september["water"])["status"] == "paid"
    with pytest.raises(StoreError):
        mark_bill_paid(store, 9999)
