from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import expression as sa_expr

# SQLite only autoincrements INTEGER PRIMARY KEY columns; keep BIGINT elsewhere.
_PK = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    pass


# ---------------------------
# Reference: hb_transaction_categories
# ---------------------------


class HbCategory(Base):
    __tablename__ = "hb_transaction_categories"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    # Lookups are case-insensitive (lower(name)); uniqueness is not enforced so
    # that bank-provided labels differing only in case resolve to one row.
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.true()
    )
    created_by: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


# ---------------------------
# Bills
# ---------------------------


class HbBill(Base):
    __tablename__ = "hb_bills"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount_due: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, server_default="active")
    account_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("status in ('active','inactive','paid')", name="ck_hb_bills_status"),
    )


# ---------------------------
# Core: hb_transactions
# ---------------------------


class HbTransaction(Base):
    __tablename__ = "hb_transactions"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    account_id: Mapped[str] = mapped_column(String, nullable=False, server_default="unknown")
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    merchant_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    category_id: Mapped[int | None] = mapped_column(
        ForeignKey("hb_transaction_categories.id"), nullable=True
    )
    category_method: Mapped[str | None] = mapped_column(String, nullable=True)
    category_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    bill_id: Mapped[int | None] = mapped_column(ForeignKey("hb_bills.id"), nullable=True)
    match_method: Mapped[str | None] = mapped_column(String, nullable=True)
    match_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    is_reconciled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.false()
    )
    bank_source: Mapped[str | None] = mapped_column(String, nullable=True)
    import_method: Mapped[str] = mapped_column(String, nullable=False, server_default="manual")
    csv_filename: Mapped[str | None] = mapped_column(String, nullable=True)
    import_id: Mapped[int | None] = mapped_column(ForeignKey("hb_csv_imports.id"), nullable=True)
    pending: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.false()
    )
    iso_currency_code: Mapped[str] = mapped_column(String(3), nullable=False, server_default="USD")
    # Embedding vector stored as a JSON array; similarity search is computed
    # by the store over rows that have both an embedding and a category.
    embedding: Mapped[list[float] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "import_method in ('csv','manual')",
            name="ck_hb_tx_import_method",
        ),
        CheckConstraint(
            "match_method IS NULL OR match_method in ('auto','manual','linked')",
            name="ck_hb_tx_match_method",
        ),
        CheckConstraint(
            (
                "category_confidence IS NULL OR "
                "(category_confidence >= 0 AND category_confidence <= 1)"
            ),
            name="ck_hb_tx_category_confidence",
        ),
    )


# ---------------------------
# Rules and learned patterns
# ---------------------------


class HbCategorizationRule(Base):
    __tablename__ = "hb_categorization_rules"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    name: Mapped[str | None] = mapped_column(String, nullable=True)
    rule_type: Mapped[str] = mapped_column(String, nullable=False)
    rule_conditions: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("hb_transaction_categories.id"), nullable=False
    )
    priority: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.true()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "rule_type in ('keyword','merchant','amount_range')",
            name="ck_hb_rules_rule_type",
        ),
    )


class HbMatchingPattern(Base):
    __tablename__ = "hb_matching_patterns"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    transaction_pattern: Mapped[str] = mapped_column(Text, nullable=False)
    bill_pattern: Mapped[str] = mapped_column(Text, nullable=False)
    confidence_score: Mapped[float] = mapped_column(Float, nullable=False)
    match_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("1"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


# ---------------------------
# Import bookkeeping and error log
# ---------------------------


class HbCsvImport(Base):
    __tablename__ = "hb_csv_imports"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    filename: Mapped[str] = mapped_column(String, nullable=False)
    bank_detected: Mapped[str | None] = mapped_column(String, nullable=True)
    total_rows: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    imported_rows: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    failed_rows: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    duplicate_rows: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    status: Mapped[str] = mapped_column(String, nullable=False, server_default="processing")
    processing_time_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class HbErrorLog(Base):
    __tablename__ = "hb_error_logs"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    error_type: Mapped[str] = mapped_column(String, nullable=False)
    error_category: Mapped[str] = mapped_column(String, nullable=False, server_default="error")
    error_code: Mapped[str | None] = mapped_column(String, nullable=True)
    error_message: Mapped[str] = mapped_column(Text, nullable=False)
    operation: Mapped[str | None] = mapped_column(String, nullable=True)
    component: Mapped[str | None] = mapped_column(String, nullable=True)
    function_name: Mapped[str | None] = mapped_column(String, nullable=True)
    error_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    file_name: Mapped[str | None] = mapped_column(String, nullable=True)
    row_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    batch_id: Mapped[str | None] = mapped_column(String, nullable=True)
    severity: Mapped[str] = mapped_column(String, nullable=False, server_default="error")
    resolved: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.false()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


__all__ = [
    "Base",
    "HbBill",
    "HbCategorizationRule",
    "HbCategory",
    "HbCsvImport",
    "HbErrorLog",
    "HbMatchingPattern",
    "HbTransaction",
]
