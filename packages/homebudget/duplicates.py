"""Exact-match duplicate guard consulted before inserting imported transactions.

A transaction is a duplicate when ``hb_transactions`` already holds a row
with the same account, date, amount, name and import method. The source file
is compared only when the caller passes one, so re-importing the same rows
from a differently named export is still caught.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Protocol

from db.store import Store

from .logging_setup import get_logger

_logger = get_logger("homebudget.duplicates")


class DuplicateGuard(Protocol):
    def is_duplicate(
        self,
        account: str,
        date: date,
        amount: Decimal,
        name: str,
        import_method: str,
        source_file: str | None = None,
    ) -> bool: ...


class StoreDuplicateGuard:
    """:class:`DuplicateGuard` backed by an equality lookup on ``hb_transactions``."""

    def __init__(self, store: Store) -> None:
        self._store = store

    def is_duplicate(
        self,
        account: str,
        date: date,
        amount: Decimal,
        name: str,
        import_method: str,
        source_file: str | None = None,
    ) -> bool:
        filters: dict[str, Any] = {
            "account_id": account,
            "date": date,
            "amount": amount,
            "name": name,
            "import_method": import_method,
        }
        if source_file is not None:
            filters["csv_filename"] = source_file
        found = bool(self._store.select("hb_transactions", filters, limit=1))
        if found:
            _logger.debug(
                "duplicates:hit account=%s date=%s amount=%s name=%r", account, date, amount, name
            )
        return found


__all__ = ["DuplicateGuard", "StoreDuplicateGuard"]
