# ruff: noqa: I001
"""Budget core tables and the default "Other" category.

Revision ID: 0001_hb_core
Revises: None
Create Date: 2025-09-20
"""

from __future__ import annotations  # ruff: noqa: I001

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_hb_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    ]


def upgrade() -> None:
    # hb_transaction_categories
    op.create_table(
        "hb_transaction_categories",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_by", sa.String(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    )
    op.create_index(
        "ix_hb_categories_lower_name",
        "hb_transaction_categories",
        [sa.text("lower(name)")],
        unique=False,
    )
    op.bulk_insert(
        sa.table(
            "hb_transaction_categories",
            sa.column("name", sa.String()),
            sa.column("description", sa.Text()),
            sa.column("is_active", sa.Boolean()),
        ),
        [{"name": "Other", "description": "Uncategorized transactions", "is_active": True}],
    )

    # hb_bills
    op.create_table(
        "hb_bills",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("amount_due", sa.Numeric(18, 2), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default=sa.text("'active'")),
        sa.Column("account_id", sa.String(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status in ('active','inactive','paid')", name="ck_hb_bills_status"
        ),
    )

    # hb_csv_imports
    op.create_table(
        "hb_csv_imports",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("filename", sa.String(), nullable=False),
        sa.Column("bank_detected", sa.String(), nullable=True),
        sa.Column("total_rows", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("imported_rows", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("failed_rows", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("duplicate_rows", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "status", sa.String(), nullable=False, server_default=sa.text("'processing'")
        ),
        sa.Column("processing_time_ms", sa.Integer(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    )

    # hb_transactions
    op.create_table(
        "hb_transactions",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column(
            "account_id", sa.String(), nullable=False, server_default=sa.text("'unknown'")
        ),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("merchant_name", sa.Text(), nullable=True),
        sa.Column("category_id", sa.BigInteger(), nullable=True),
        sa.Column("category_method", sa.String(), nullable=True),
        sa.Column("category_confidence", sa.Float(), nullable=True),
        sa.Column("bill_id", sa.BigInteger(), nullable=True),
        sa.Column("match_method", sa.String(), nullable=True),
        sa.Column("match_confidence", sa.Float(), nullable=True),
        sa.Column(
            "is_reconciled", sa.Boolean(), nullable=False, server_default=sa.text("false")
        ),
        sa.Column("bank_source", sa.String(), nullable=True),
        sa.Column(
            "import_method", sa.String(), nullable=False, server_default=sa.text("'manual'")
        ),
        sa.Column("csv_filename", sa.String(), nullable=True),
        sa.Column("import_id", sa.BigInteger(), nullable=True),
        sa.Column("pending", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column(
            "iso_currency_code", sa.String(3), nullable=False, server_default=sa.text("'USD'")
        ),
        sa.Column("embedding", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["category_id"], ["hb_transaction_categories.id"], name="fk_hb_tx_category"
        ),
        sa.ForeignKeyConstraint(["bill_id"], ["hb_bills.id"], name="fk_hb_tx_bill"),
        sa.ForeignKeyConstraint(["import_id"], ["hb_csv_imports.id"], name="fk_hb_tx_import"),
        sa.CheckConstraint("import_method in ('csv','manual')", name="ck_hb_tx_import_method"),
        sa.CheckConstraint(
            "match_method IS NULL OR match_method in ('auto','manual','linked')",
            name="ck_hb_tx_match_method",
        ),
        sa.CheckConstraint(
            (
                "category_confidence IS NULL OR "
                "(category_confidence >= 0 AND category_confidence <= 1)"
            ),
            name="ck_hb_tx_category_confidence",
        ),
    )
    op.create_index("ix_hb_transactions_date", "hb_transactions", ["date"], unique=False)
    op.create_index(
        "ix_hb_transactions_dup_key",
        "hb_transactions",
        ["account_id", "date", "amount", "name"],
        unique=False,
    )
    op.create_index("ix_hb_transactions_bill", "hb_transactions", ["bill_id"], unique=False)

    # hb_categorization_rules
    op.create_table(
        "hb_categorization_rules",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("rule_type", sa.String(), nullable=False),
        sa.Column("rule_conditions", sa.JSON(), nullable=False),
        sa.Column("category_id", sa.BigInteger(), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.ForeignKeyConstraint(
            ["category_id"], ["hb_transaction_categories.id"], name="fk_hb_rules_category"
        ),
        sa.CheckConstraint(
            "rule_type in ('keyword','merchant','amount_range')",
            name="ck_hb_rules_rule_type",
        ),
    )

    # hb_matching_patterns
    op.create_table(
        "hb_matching_patterns",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("transaction_pattern", sa.Text(), nullable=False),
        sa.Column("bill_pattern", sa.Text(), nullable=False),
        sa.Column("confidence_score", sa.Float(), nullable=False),
        sa.Column("match_count", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
    )
    op.create_index(
        "ix_hb_patterns_pair",
        "hb_matching_patterns",
        ["transaction_pattern", "bill_pattern"],
        unique=False,
    )

    # hb_error_logs
    op.create_table(
        "hb_error_logs",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("error_type", sa.String(), nullable=False),
        sa.Column(
            "error_category", sa.String(), nullable=False, server_default=sa.text("'error'")
        ),
        sa.Column("error_code", sa.String(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=False),
        sa.Column("operation", sa.String(), nullable=True),
        sa.Column("component", sa.String(), nullable=True),
        sa.Column("function_name", sa.String(), nullable=True),
        sa.Column("error_data", sa.JSON(), nullable=True),
        sa.Column("file_name", sa.String(), nullable=True),
        sa.Column("row_number", sa.Integer(), nullable=True),
        sa.Column("batch_id", sa.String(), nullable=True),
        sa.Column("severity", sa.String(), nullable=False, server_default=sa.text("'error'")),
        sa.Column("resolved", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    )


def downgrade() -> None:
    op.drop_table("hb_error_logs")
    op.drop_index("ix_hb_patterns_pair", table_name="hb_matching_patterns")
    op.drop_table("hb_matching_patterns")
    op.drop_table("hb_categorization_rules")
    op.drop_index("ix_hb_transactions_bill", table_name="hb_transactions")
    op.drop_index("ix_hb_transactions_dup_key", table_name="hb_transactions")
    op.drop_index("ix_hb_transactions_date", table_name="hb_transactions")
    op.drop_table("hb_transactions")
    op.drop_table("hb_csv_imports")
    op.drop_table("hb_bills")
    op.drop_index("ix_hb_categories_lower_name", table_name="hb_transaction_categories")
    op.drop_table("hb_transaction_categories")
