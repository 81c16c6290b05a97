"""Best-effort writes to ``hb_error_logs``.

Row-level import failures and category-management problems are recorded here
so the caller only has to surface aggregate counts. Writing the log never
raises: a failing error log must not break the operation being logged.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from db.store import Store, StoreError

from .logging_setup import get_logger

_logger = get_logger("homebudget.error_log")

_TABLE = "hb_error_logs"


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, bool | int | float | str):
        return value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, date | datetime):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, list | tuple | set | frozenset):
        return [_jsonable(v) for v in value]
    return repr(value)


def log_error(
    store: Store,
    *,
    error_type: str,
    message: str,
    error_category: str = "error",
    error_code: str | None = None,
    operation: str | None = None,
    component: str | None = None,
    function_name: str | None = None,
    error_data: Mapping[str, Any] | None = None,
    file_name: str | None = None,
    row_number: int | None = None,
    batch_id: str | None = None,
    severity: str = "error",
) -> int | None:
    """Insert one error-log row and return its id (``None`` if the write failed)."""

    row = {
        "error_type": error_type,
        "error_category": error_category,
        "error_code": error_code,
        "error_message": message,
        "operation": operation,
        "component": component,
        "function_name": function_name,
        "error_data": _jsonable(error_data) if error_data is not None else None,
        "file_name": file_name,
        "row_number": row_number,
        "batch_id": batch_id,
        "severity": severity,
    }
    try:
        inserted = store.insert(_TABLE, [row])
    except StoreError as exc:
        _logger.warning(
            "error_log:write_failed type=%s operation=%s err=%s", error_type, operation, exc
        )
        return None
    return inserted[0]["id"] if inserted else None


def unresolved_errors(store: Store, *, batch_id: str | None = None, limit: int = 100) -> list[dict]:
    filters: dict[str, Any] = {"resolved": False}
    if batch_id is not None:
        filters["batch_id"] = batch_id
    return store.select(_TABLE, filters, order_by="-id", limit=limit)


__all__ = ["log_error", "unresolved_errors"]
