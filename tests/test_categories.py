import pytest
from db.store import PermissionDeniedError, SqlStore

from homebudget.categories import OTHER_CATEGORY, CategoryDirectory, normalize_category_name
from tests.helpers.db import seed_category


class _NoInsertStore:
    """Wraps a real store and denies inserts into the category table."""

    def __init__(self, inner: SqlStore):
        self._inner = inner

    def __getattr__(self, name):
        return getattr(self._inner, name)

    def insert(self, table, rows):
        if table == "hb_transaction_categories":
            raise PermissionDeniedError("insert on hb_transaction_categories denied")
        return self._inner.insert(table, rows)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("  food   &  DRINK ", "Food & Drink"),
        ("groceries", "Groceries"),
        ("", ""),
    ],
)
def test_normalize_category_name(raw, expected):
    assert normalize_category_name(raw) == expected


def test_find_or_create_reuses_and_creates(store):
    existing = seed_category(store, "Groceries")
    directory = CategoryDirectory(store)

    assert directory.find_or_create("GROCERIES") == existing
    created = directory.find_or_create("home improvement")
    [row] = store.select("hb_transaction_categories", {"id": created})
    assert row["name"] == "Home Improvement"
    assert row["created_by"] == "SYSTEM"
    assert directory.find_or_create("   ") is None


def test_denied_creation_falls_back_to_similar_then_other(store):
    dining = seed_category(store, "Dining Out")
    other = seed_category(store, OTHER_CATEGORY)
    directory = CategoryDirectory(_NoInsertStore(store))

    assert directory.find_or_create("dining") == dining
    assert directory.find_or_create("Pets") == other

    logged = store.select("hb_error_logs", {"error_code": "permission_denied"})
    assert len(logged) == 2
    assert logged[0]["error_data"]["categoryName"] == "Dining"


def test_no_create_mode_never_inserts(store):
    seed_category(store, "Travel")
    directory = CategoryDirectory(store, allow_create=False)

    assert directory.find_or_create("Utilities") is not None
    assert directory.other_id() is None
    assert [c["name"] for c in store.select("hb_transaction_categories")] == ["Travel"]


def test_other_id_creates_once(store):
    directory = CategoryDirectory(store)
    first = directory.other_id()
    assert first is not None
    assert directory.other_id() == first
    assert len(store.select("hb_transaction_categories", {"name": OTHER_CATEGORY})) == 1
