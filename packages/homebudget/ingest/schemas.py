"""Static bank schemas and filename lookup tables.

Adding a new export layout is a configuration change here: append a
:class:`BankSchema` to :data:`STATIC_SCHEMAS` when the headers are
distinctive, or a :class:`FilenameRule` to :data:`FILENAME_RULES` when only
the filename identifies the source. :data:`FILENAME_ACCOUNTS` attributes an
account to files whose exports carry no account column.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from ..models import AmountFormat, BankSchema, FieldMapping

# ---------------------------------------------------------------------------
# Static schemas (filename substring, then header matching)
# ---------------------------------------------------------------------------

CHASE = BankSchema(
    name="Chase",
    patterns=("chase", "jpmorgan"),
    fields=FieldMapping(
        date="Transaction Date",
        description="Description",
        amount="Amount",
        merchant="Description",
        category="Category",
        account="Account Name",
    ),
    date_format="MM/DD/YYYY",
)

WELLS_FARGO = BankSchema(
    name="Wells Fargo",
    patterns=("wells", "fargo"),
    fields=FieldMapping(
        date="Date",
        description="Description",
        amount="Amount",
        merchant="Description",
        category="Category",
    ),
    date_format="MM/DD/YYYY",
)

BANK_OF_AMERICA = BankSchema(
    name="Bank of America",
    patterns=("bank of america", "bofa"),
    fields=FieldMapping(
        date="Date",
        description="Description",
        amount="Amount",
        merchant="Description",
        category="Category",
    ),
    date_format="MM/DD/YYYY",
)

AMERICAN_EXPRESS = BankSchema(
    name="American Express",
    patterns=("amex", "american express"),
    fields=FieldMapping(
        date="Date",
        description="Description",
        amount="Amount",
        merchant="Description",
        category="Category",
    ),
    date_format="MM/DD/YYYY",
)

CAPITAL_ONE = BankSchema(
    name="Capital One",
    patterns=("capital one", "capitalone"),
    fields=FieldMapping(
        date="Transaction Date",
        description="Description",
        amount="Debit",
        credit="Credit",
        category="Category",
    ),
    date_format="YYYY-MM-DD",
    amount_format=AmountFormat.DEBIT_CREDIT,
)

APPLE_CARD = BankSchema(
    name="Apple Card",
    patterns=("apple card", "apple_card"),
    fields=FieldMapping(
        date="Transaction Date",
        description="Description",
        amount="Amount",
        merchant="Merchant",
        category="Category",
    ),
    date_format="MM/DD/YYYY",
    amount_format=AmountFormat.EXPENSE_ONLY,
)

STATIC_SCHEMAS: tuple[BankSchema, ...] = (
    CHASE,
    WELLS_FARGO,
    BANK_OF_AMERICA,
    AMERICAN_EXPRESS,
    CAPITAL_ONE,
    APPLE_CARD,
)


# ---------------------------------------------------------------------------
# Filename-identified sources (checked before everything else)
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FilenameRule:
    """Identify a source by filename alone.

    ``match="prefix"`` compares against the start of the lower-cased file
    name; ``match="stem"`` requires the lower-cased name without extension to
    equal ``pattern``.
    """

    pattern: str
    schema: BankSchema
    match: Literal["prefix", "stem"] = "prefix"

    def matches(self, basename: str, stem: str) -> bool:
        if self.match == "stem":
            return stem == self.pattern
        return basename.startswith(self.pattern)


FILENAME_RULES: tuple[FilenameRule, ...] = (
    FilenameRule(
        "credit card",
        BankSchema(
            name="Credit Card",
            fields=FieldMapping(date="Date", description="Name", amount="Amount"),
            date_format="YYYY-MM-DD",
        ),
    ),
    FilenameRule(
        "exportedtransactions",
        BankSchema(
            name="Exported Transactions",
            fields=FieldMapping(
                date="Posting Date",
                description="Description",
                amount="Amount",
                category="Transaction Category",
            ),
            date_format="M/D/YYYY",
        ),
    ),
    FilenameRule(
        "history_for_account",
        BankSchema(
            name="Brokerage History",
            fields=FieldMapping(date="Run Date", description="Action", amount="Amount ($)"),
            date_format="MM/DD/YYYY",
        ),
    ),
    FilenameRule(
        "marcus",
        BankSchema(
            name="Marcus",
            fields=FieldMapping(
                date="Date", description="Description", amount="Debit", credit="Credit"
            ),
            date_format="MON D, YYYY",
            amount_format=AmountFormat.DEBIT_CREDIT,
        ),
        match="stem",
    ),
)


# Case-insensitive filename substring -> account label. First match wins.
FILENAME_ACCOUNTS: tuple[tuple[str, str], ...] = (
    ("credit card", "Credit Card"),
    ("history_for_account", "Brokerage"),
    ("marcus", "Savings"),
    ("exportedtransactions", "Checking"),
    ("checking", "Checking"),
    ("savings", "Savings"),
)


def account_for_filename(filename: str | None) -> str | None:
    if not filename:
        return None
    lowered = filename.lower()
    for pattern, account in FILENAME_ACCOUNTS:
        if pattern in lowered:
            return account
    return None


__all__ = [
    "AMERICAN_EXPRESS",
    "APPLE_CARD",
    "BANK_OF_AMERICA",
    "CAPITAL_ONE",
    "CHASE",
    "FILENAME_ACCOUNTS",
    "FILENAME_RULES",
    "FilenameRule",
    "STATIC_SCHEMAS",
    "WELLS_FARGO",
    "account_for_filename",
]
