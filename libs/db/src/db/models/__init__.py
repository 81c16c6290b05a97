"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the budget domain models used by ``homebudget``.
"""

from .budget import (
    Base,
    HbBill,
    HbCategorizationRule,
    HbCategory,
    HbCsvImport,
    HbErrorLog,
    HbMatchingPattern,
    HbTransaction,
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
