"""Public interface for the ``homebudget`` package.

Symbol re-exports only: the ingest pipeline, the categorization cascade, the
reconciliation matcher and the shared models.
"""

from .categorization import CategorizationCascade
from .categorize import categorize_batch, recategorize_all
from .ingest import detect_schema, import_csv, normalize_file
from .matching import MatchConfig, reconcile, score
from .models import (
    AmountFormat,
    BankSchema,
    Bill,
    CategorizationInput,
    CategorizationMethod,
    CategorizationResult,
    CategorizationRule,
    ImportResult,
    MatchResult,
    MatchTransaction,
    NormalizedTransaction,
    ReconciliationResult,
)
from .reconciliation import apply_matches, reconcile_period
from .settings import Settings

__all__ = [
    # API
    "apply_matches",
    "categorize_batch",
    "detect_schema",
    "import_csv",
    "normalize_file",
    "recategorize_all",
    "reconcile",
    "reconcile_period",
    "score",
    # Types
    "AmountFormat",
    "BankSchema",
    "Bill",
    "CategorizationCascade",
    "CategorizationInput",
    "CategorizationMethod",
    "CategorizationResult",
    "CategorizationRule",
    "ImportResult",
    "MatchConfig",
    "MatchResult",
    "MatchTransaction",
    "NormalizedTransaction",
    "ReconciliationResult",
    "Settings",
]
