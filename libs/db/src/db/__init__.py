"""db: shared database library (SQLAlchemy/Alembic).

Public exports
--------------
- ``Base`` and ``metadata`` for Alembic autogenerate/targeting
- ORM models in ``db.models.budget`` (re-exported for convenience)
- Engine/session helpers in ``db.client``
- The table-keyed store in ``db.store``
"""

from __future__ import annotations

from .models.budget import (
    Base,
    HbBill,
    HbCategorizationRule,
    HbCategory,
    HbCsvImport,
    HbErrorLog,
    HbMatchingPattern,
    HbTransaction,
)

# Re-export SQLAlchemy metadata for Alembic's env.py
metadata = Base.metadata

__all__ = [
    "Base",
    "metadata",
    "HbBill",
    "HbCategorizationRule",
    "HbCategory",
    "HbCsvImport",
    "HbErrorLog",
    "HbMatchingPattern",
    "HbTransaction",
]
