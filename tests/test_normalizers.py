import textwrap
from datetime import date
from decimal import Decimal

import pytest

from homebudget.errors import NormalizationError, RowNormalizationError
from homebudget.ingest import detect_schema, normalize_file, normalize_row
from homebudget.ingest.normalizers import clean_category_label, parse_amount, parse_date
from homebudget.ingest.schemas import CAPITAL_ONE


def _dedent(s: str) -> str:
    return textwrap.dedent(s).lstrip("\n")


def test_credit_card_export_scenario():
    result = normalize_file(
        "Credit Card-2025.csv",
        _dedent(
            """
            Date,Name,Amount
            2025-09-01,COFFEE SHOP,-4.50
            """
        ),
    )
    assert result.schema.name == "Credit Card"
    assert result.failures == ()
    [tx] = result.transactions
    assert tx.date == date(2025, 9, 1)
    assert tx.amount == Decimal("-4.50")
    assert tx.description == "COFFEE SHOP"
    assert tx.account == "Credit Card"
    assert tx.row_number == 2


def test_unparseable_date_excludes_only_that_row():
    result = normalize_file(
        "Credit Card.csv",
        _dedent(
            """
            Date,Name,Amount
            2025-09-01,COFFEE SHOP,-4.50
            not-a-date,BOOKSTORE,-12.00
            2025-09-03,GROCER,-30.10
            """
        ),
    )
    assert [t.description for t in result.transactions] == ["COFFEE SHOP", "GROCER"]
    assert result.total_rows == 3
    [failure] = result.failures
    assert failure.row_number == 3
    assert "not-a-date" in failure.reason
    assert failure.raw == ("not-a-date", "BOOKSTORE", "-12.00")


def test_debit_credit_columns_sign_convention():
    result = normalize_file(
        "marcus.csv",
        _dedent(
            """
            Date,Description,Debit,Credit
            "Sep 3, 2025",Transfer out,50.00,
            "Sep 4, 2025",Interest deposit,,50.00
            """
        ),
    )
    amounts = [t.amount for t in result.transactions]
    assert amounts == [Decimal("-50.00"), Decimal("50.00")]
    assert [t.date for t in result.transactions] == [date(2025, 9, 3), date(2025, 9, 4)]
    assert {t.account for t in result.transactions} == {"Savings"}


def test_expense_only_amount_is_negated():
    result = normalize_file(
        "Apple Card Transactions.csv",
        _dedent(
            """
            Transaction Date,Clearing Date,Description,Merchant,Category,Type,Amount (USD)
            09/01/2025,09/02/2025,BLUE BOTTLE 123,Blue Bottle,Restaurants,Purchase,50
            """
        ),
    )
    [tx] = result.transactions
    assert tx.amount == Decimal("-50")
    assert tx.merchant == "Blue Bottle"
    assert tx.category == "Restaurants"


def test_capital_one_debit_and_credit_columns():
    headers = [
        "Transaction Date",
        "Posted Date",
        "Card No.",
        "Description",
        "Category",
        "Debit",
        "Credit",
    ]
    debit = normalize_row(
        ["2025-09-05", "2025-09-06", "1234", "GAS STATION", "Gas", "40.25", ""],
        headers,
        CAPITAL_ONE,
    )
    credit = normalize_row(
        ["2025-09-07", "2025-09-08", "1234", "PAYMENT", "Payment", "", "100.00"],
        headers,
        CAPITAL_ONE,
    )
    assert debit.amount == Decimal("-40.25")
    assert credit.amount == Decimal("100.00")


def test_missing_required_field_is_reported():
    headers = ["Date", "Name", "Amount"]
    schema = detect_schema("Credit Card.csv", headers)
    with pytest.raises(RowNormalizationError) as excinfo:
        normalize_row(["2025-09-01", "", "-1.00"], headers, schema, row_number=7)
    assert excinfo.value.row_number == 7


def test_file_with_no_valid_rows_is_rejected():
    with pytest.raises(NormalizationError):
        normalize_file("Credit Card.csv", "Date,Name,Amount\nnope,THING,abc\n")


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("-4.50", Decimal("-4.50")),
        ("$1,234.56", Decimal("1234.56")),
        ("($12.00)", Decimal("-12.00")),
        ("$-5", Decimal("-5")),
        ("12.00-", Decimal("-12.00")),
        ("+3", Decimal("3")),
    ],
)
def test_parse_amount(raw, expected):
    assert parse_amount(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "abc", "NaN", "Infinity"])
def test_parse_amount_rejects(raw):
    with pytest.raises(ValueError):
        parse_amount(raw)


def test_parse_date_token_then_fallback():
    assert parse_date("09/01/2025 12:00:00", "MM/DD/YYYY") == date(2025, 9, 1)
    assert parse_date("Sep 1, 2025", "MON D, YYYY") == date(2025, 9, 1)
    assert parse_date("2025-09-01", None) == date(2025, 9, 1)
    with pytest.raises(ValueError):
        parse_date("not-a-date", "YYYY-MM-DD")


def test_clean_category_label():
    assert clean_category_label("  Food   &  Drink ") == "Food & Drink"
    assert clean_category_label("1234;5678") is None
    assert clean_category_label("") is None
    assert clean_category_label(None) is None
