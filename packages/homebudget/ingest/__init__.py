"""Bank CSV ingestion: format detection, row normalization and import."""

from .detect import detect_schema, parse_csv_text
from .importer import get_import_history, import_csv
from .normalizers import normalize_file, normalize_row
from .schemas import FILENAME_ACCOUNTS, FILENAME_RULES, STATIC_SCHEMAS

__all__ = [
    "FILENAME_ACCOUNTS",
    "FILENAME_RULES",
    "STATIC_SCHEMAS",
    "detect_schema",
    "get_import_history",
    "import_csv",
    "normalize_file",
    "normalize_row",
    "parse_csv_text",
]
