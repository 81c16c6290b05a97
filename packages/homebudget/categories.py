"""Category lookups and creation over ``hb_transaction_categories``.

Exports
-------
- ``normalize_category_name(...)``: trim, collapse whitespace, title-case.
- ``CategoryDirectory``: case-insensitive lookup, find-or-create with the
  permission-denied fallback chain, and the ``Other`` default.
"""

from __future__ import annotations

import re
import threading
from typing import Any

from db.store import IEquals, ILike, PermissionDeniedError, Store, StoreError

from .error_log import log_error
from .logging_setup import get_logger

_logger = get_logger("homebudget.categories")

_TABLE = "hb_transaction_categories"
OTHER_CATEGORY = "Other"

_WORD_START_RE = re.compile(r"\b\w")


def normalize_category_name(name: str) -> str:
    """Return ``name`` trimmed, single-spaced and title-cased per word.

    ``"  food   &  DRINK "`` becomes ``"Food & Drink"``.
    """

    s = " ".join(name.strip().lower().split())
    return _WORD_START_RE.sub(lambda m: m.group(0).upper(), s)


class CategoryDirectory:
    """Category reads/writes shared by the cascade stages.

    Parameters
    ----------
    store:
        The table-keyed store.
    allow_create:
        When False, labels that do not resolve to an existing category are
        not created, and a missing ``Other`` is not created either.
    """

    def __init__(self, store: Store, *, allow_create: bool = True) -> None:
        self._store = store
        self._allow_create = allow_create
        # Serialize find-or-create so concurrent stage-1 calls don't insert twice.
        self._lock = threading.Lock()

    def active(self) -> list[dict[str, Any]]:
        return self._store.select(_TABLE, {"is_active": True}, order_by="name")

    def get_by_name(self, name: str) -> dict[str, Any] | None:
        rows = self._store.select(_TABLE, {"name": IEquals(name)}, limit=1)
        return rows[0] if rows else None

    def find_or_create(self, label: str) -> int | None:
        """Resolve a source label to a category id, creating the category if needed.

        Fallback order when creation is denied: a category whose name
        contains the label, then ``Other``, then any category.
        """

        normalized = normalize_category_name(label)
        if not normalized:
            return None

        with self._lock:
            existing = self.get_by_name(normalized)
            if existing is not None:
                return existing["id"]
            if not self._allow_create:
                return self.find_similar(normalized)

            try:
                created = self._store.insert(
                    _TABLE,
                    [
                        {
                            "name": normalized,
                            "description": f"Auto-created from CSV import: {label}",
                            "created_by": "SYSTEM",
                        }
                    ],
                )
            except PermissionDeniedError as exc:
                _logger.warning("categories:create_denied name=%s err=%s", normalized, exc)
                log_error(
                    self._store,
                    error_type="category_management",
                    error_category="warning",
                    error_code="permission_denied",
                    message=f"Category creation denied for {normalized!r}: {exc}",
                    operation="category_creation",
                    component="categories",
                    function_name="find_or_create",
                    error_data={"categoryName": normalized, "originalCategoryName": label},
                    severity="warning",
                )
                return self.find_similar(normalized)
            except StoreError as exc:
                _logger.error("categories:create_failed name=%s err=%s", normalized, exc)
                log_error(
                    self._store,
                    error_type="category_management",
                    message=f"Category creation failed for {normalized!r}: {exc}",
                    operation="category_creation",
                    component="categories",
                    function_name="find_or_create",
                    error_data={"categoryName": normalized, "originalCategoryName": label},
                )
                return None

        _logger.info("categories:created name=%s id=%s", normalized, created[0]["id"])
        return created[0]["id"]

    def find_similar(self, name: str) -> int | None:
        rows = self._store.select(_TABLE, {"name": ILike(f"%{name}%")}, limit=1)
        if rows:
            _logger.info("categories:similar name=%s match=%s", name, rows[0]["name"])
            return rows[0]["id"]
        other = self.get_by_name(OTHER_CATEGORY)
        if other is not None:
            return other["id"]
        rows = self._store.select(_TABLE, limit=1)
        return rows[0]["id"] if rows else None

    def other_id(self) -> int | None:
        """Return the ``Other`` category id, creating it when permitted."""

        with self._lock:
            other = self.get_by_name(OTHER_CATEGORY)
            if other is not None:
                return other["id"]
            if not self._allow_create:
                return None
            try:
                created = self._store.insert(
                    _TABLE,
                    [
                        {
                            "name": OTHER_CATEGORY,
                            "description": "Uncategorized transactions",
                            "created_by": "SYSTEM",
                        }
                    ],
                )
            except StoreError as exc:
                _logger.warning("categories:other_unavailable err=%s", exc)
                return None
            return created[0]["id"]


__all__ = ["OTHER_CATEGORY", "CategoryDirectory", "normalize_category_name"]
