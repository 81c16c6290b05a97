from datetime import date
from decimal import Decimal

import pytest
from db.store import IEquals, ILike, NotNull, Range, StoreError

from tests.helpers.db import seed_bill, seed_category, seed_transaction


def test_select_filters(store):
    a = seed_transaction(store, "Coffee Shop", "-4.50", date(2025, 9, 1))
    b = seed_transaction(store, "GROCER", "-30.00", date(2025, 9, 10), merchant_name="Grocer")
    c = seed_transaction(store, "Rent", "-1500.00", date(2025, 10, 1))

    def ids(filters, **kw):
        return [r["id"] for r in store.select("hb_transactions", filters, **kw)]

    assert ids({"date": Range(date(2025, 9, 1), date(2025, 9, 30))}) == [a, b]
    assert ids({"amount": Range(high=Decimal("-100"))}) == [c]
    assert ids({"name": ILike("%shop%")}) == [a]
    assert ids({"name": IEquals("grocer")}) == [b]
    assert ids({"merchant_name": NotNull()}) == [b]
    assert ids({"merchant_name": None}) == [a, c]
    assert ids({"id": [a, c]}) == [a, c]
    assert ids({}, order_by="-date", limit=2) == [c, b]


def test_update_sets_updated_at_and_rejects_missing_rows(store):
    bill = seed_bill(store, "Water", "40.00", date(2025, 9, 10))

    row = store.update("hb_bills", bill, {"description": "City Water"})

    assert row["description"] == "City Water"
    assert row["updated_at"] is not None
    with pytest.raises(StoreError):
        store.update("hb_bills", 12345, {"description": "x"})
    with pytest.raises(StoreError, match="unknown column"):
        store.update("hb_bills", bill, {"bogus": 1})


def test_unknown_table_and_column(store):
    with pytest.raises(StoreError, match="unknown table"):
        store.select("nope")
    with pytest.raises(StoreError, match="unknown column"):
        store.select("hb_transactions", {"bogus": 1})
    with pytest.raises(StoreError):
        store.insert("hb_transactions", [{"bogus": 1}])


def test_fetch_transactions_with_links(store):
    bill = seed_bill(store, "Water", "40.00", date(2025, 9, 10))
    linked = seed_transaction(store, "WATER", "-40.00", date(2025, 9, 9), bill_id=bill)
    seed_transaction(store, "LATE", "-1.00", date(2025, 10, 2))

    rows = store.fetch_transactions_with_links(start=date(2025, 9, 1), end=date(2025, 9, 30))

    [row] = rows
    assert row["id"] == linked
    assert row["bill"]["description"] == "Water"
    assert row["category"] is None


def test_match_transactions_orders_by_similarity(store):
    food = seed_category(store, "Food")
    near = seed_transaction(
        store, "A", "-1.00", date(2025, 9, 1), category_id=food, embedding=[1.0, 0.0, 0.0]
    )
    far = seed_transaction(
        store, "B", "-1.00", date(2025, 9, 1), category_id=food, embedding=[0.9, 0.1, 0.0]
    )
    seed_transaction(store, "C", "-1.00", date(2025, 9, 1), category_id=food, embedding=[0, 1, 0])
    seed_transaction(store, "D", "-1.00", date(2025, 9, 1), embedding=[1.0, 0.0, 0.0])

    hits = store.match_transactions([1.0, 0.0, 0.0], threshold=0.8, limit=5)

    assert [h["id"] for h in hits] == [near, far]
    assert hits[0]["similarity"] == pytest.approx(1.0)
    assert all(h["category_id"] == food for h in hits)


def test_match_transactions_skips_mismatched_and_zero_vectors(store):
    food = seed_category(store, "Food")
    ok = seed_transaction(
        store, "A", "-1.00", date(2025, 9, 1), category_id=food, embedding=[0.6, 0.8]
    )
    seed_transaction(store, "B", "-1.00", date(2025, 9, 1), category_id=food, embedding=[1, 0, 0])
    seed_transaction(store, "C", "-1.00", date(2025, 9, 1), category_id=food, embedding=[0, 0])

    hits = store.match_transactions([0.6, 0.8], threshold=0.5, limit=5)

    assert [h["id"] for h in hits] == [ok]
    assert isinstance(hits[0]["similarity"], float)
    assert store.match_transactions([0.0, 0.0], threshold=0.0, limit=5) == []


def test_match_transactions_limits_and_breaks_ties_by_id(store):
    food = seed_category(store, "Food")
    ids = [
        seed_transaction(
            store, f"T{i}", "-1.00", date(2025, 9, 1), category_id=food, embedding=[1.0, 0.0]
        )
        for i in range(4)
    ]

    hits = store.match_transactions([2.0, 0.0], threshold=0.8, limit=3)

    assert [h["id"] for h in hits] == ids[:3]
