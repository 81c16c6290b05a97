import textwrap
from datetime import date
from decimal import Decimal

import pytest

from homebudget.categorization import CategorizationCascade
from homebudget.duplicates import StoreDuplicateGuard
from homebudget.error_log import unresolved_errors
from homebudget.errors import FormatDetectionError
from homebudget.ingest import get_import_history, import_csv
from homebudget.settings import Settings
from tests.helpers.db import seed_transaction

CREDIT_CARD = textwrap.dedent(
    """\
    Date,Name,Amount
    2025-09-01,COFFEE SHOP,-4.50
    not-a-date,BOOKSTORE,-12.00
    2025-09-03,"GROCER, INC",-30.10
    """
)


def _import(store, filename, text, **kw):
    cascade = CategorizationCascade.build(store, Settings())
    return import_csv(store, filename, text, cascade=cascade, delay=0, **kw)


def test_import_inserts_valid_rows_and_records_failures(store):
    result = _import(store, "Credit Card-2025.csv", CREDIT_CARD)

    assert (result.imported, result.failed, result.duplicates) == (2, 1, 0)
    assert result.total_rows == 3
    assert result.bank_detected == "Credit Card"
    assert result.status == "completed_with_errors"
    assert [w.row_number for w in result.warnings] == [3]

    rows = store.select("hb_transactions", order_by="date")
    assert [(r["name"], r["amount"], r["date"]) for r in rows] == [
        ("COFFEE SHOP", Decimal("-4.50"), date(2025, 9, 1)),
        ("GROCER, INC", Decimal("-30.10"), date(2025, 9, 3)),
    ]
    for r in rows:
        assert r["account_id"] == "Credit Card"
        assert r["import_method"] == "csv"
        assert r["csv_filename"] == "Credit Card-2025.csv"
        assert r["bank_source"] == "credit_card"
        assert r["import_id"] == result.import_id
        assert r["category_method"] == "default"

    [record] = store.select("hb_csv_imports")
    assert record["status"] == "completed_with_errors"
    assert (record["total_rows"], record["imported_rows"], record["failed_rows"]) == (3, 2, 1)
    assert record["processing_time_ms"] >= 0

    [logged] = unresolved_errors(store, batch_id=str(result.import_id))
    assert logged["row_number"] == 3
    assert logged["error_code"] == "row_normalization"
    assert logged["error_data"]["raw"] == ["not-a-date", "BOOKSTORE", "-12.00"]
    assert logged["error_data"]["mapping"]["description"] == "Name"


def test_reimport_counts_duplicates(store):
    _import(store, "Credit Card-2025.csv", CREDIT_CARD)
    again = _import(store, "Credit Card-2025 (1).csv", CREDIT_CARD)

    assert (again.imported, again.failed, again.duplicates) == (0, 1, 2)
    assert len(store.select("hb_transactions")) == 2
    history = get_import_history(store)
    assert [h["filename"] for h in history] == [
        "Credit Card-2025 (1).csv",
        "Credit Card-2025.csv",
    ]


def test_rejected_file_is_recorded_and_raised(store):
    with pytest.raises(FormatDetectionError):
        _import(store, "mystery.csv", "Foo,Bar\n1,2\n")

    [record] = store.select("hb_csv_imports")
    assert record["status"] == "failed"
    [logged] = store.select("hb_error_logs")
    assert logged["error_code"] == "FormatDetectionError"
    assert logged["file_name"] == "mystery.csv"
    assert store.select("hb_transactions") == []


def test_source_labels_become_categories(store):
    text = textwrap.dedent(
        """\
        Transaction Date,Post Date,Description,Category,Type,Amount,Memo
        09/01/2025,09/02/2025,WHOLE FOODS,Groceries,Sale,-54.12,
        09/02/2025,09/03/2025,SHELL OIL,Gas,Sale,-40.00,
        """
    )
    result = _import(store, "chase_activity.csv", text)

    assert result.status == "completed"
    assert result.bank_detected == "Chase"
    names = {c["id"]: c["name"] for c in store.select("hb_transaction_categories")}
    rows = store.select("hb_transactions", order_by="date")
    assert [names[r["category_id"]] for r in rows] == ["Groceries", "Gas"]
    assert {r["category_method"] for r in rows} == {"source_label"}
    assert {r["category_confidence"] for r in rows} == {1.0}
    assert {r["account_id"] for r in rows} == {"unknown"}


def test_custom_duplicate_guard_is_consulted(store):
    class _AlwaysDuplicate:
        def __init__(self):
            self.calls = []

        def is_duplicate(self, account, on, amount, name, import_method, source_file=None):
            self.calls.append((account, on, amount, name, import_method))
            return True

    guard = _AlwaysDuplicate()
    result = _import(store, "Credit Card-2025.csv", CREDIT_CARD, guard=guard)

    assert (result.imported, result.duplicates) == (0, 2)
    assert guard.calls[0] == (
        "Credit Card",
        date(2025, 9, 1),
        Decimal("-4.50"),
        "COFFEE SHOP",
        "csv",
    )


def test_store_duplicate_guard_source_file_is_optional(store):
    seed_transaction(
        store,
        "RENT",
        "-1500.00",
        date(2025, 9, 1),
        account_id="Checking",
        import_method="csv",
        csv_filename="a.csv",
    )
    guard = StoreDuplicateGuard(store)
    args = ("Checking", date(2025, 9, 1), Decimal("-1500.00"), "RENT", "csv")

    assert guard.is_duplicate(*args)
    assert guard.is_duplicate(*args, source_file="a.csv")
    assert not guard.is_duplicate(*args, source_file="b.csv")
    assert not guard.is_duplicate(*args[:4], "manual")
