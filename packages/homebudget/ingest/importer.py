"""CSV import orchestration: normalize, categorize, de-duplicate, insert.

Every import is recorded in ``hb_csv_imports`` (``processing`` while running,
then ``completed``/``completed_with_errors``, or ``failed`` when the file is
rejected). Row-level problems go to the error log; the caller gets counts and
the row warnings in :class:`~homebudget.models.ImportResult`.
"""

from __future__ import annotations

import dataclasses
import time
from collections.abc import Callable
from typing import Any

from db.store import Store, StoreError

from ..categorization import CategorizationCascade
from ..categorize import categorize_batch
from ..duplicates import DuplicateGuard, StoreDuplicateGuard
from ..error_log import log_error
from ..errors import FormatDetectionError, NormalizationError
from ..logging_setup import get_logger
from ..models import CategorizationInput, ImportResult, NormalizationResult
from .normalizers import normalize_file

_logger = get_logger("homebudget.ingest.importer")

_IMPORTS = "hb_csv_imports"
_TRANSACTIONS = "hb_transactions"
_IMPORT_METHOD = "csv"
_UNKNOWN_ACCOUNT = "unknown"


def _bank_source(schema_name: str) -> str:
    return "_".join(schema_name.lower().split())


def _record_rejected_file(store: Store, filename: str, exc: Exception) -> None:
    log_error(
        store,
        error_type="csv_import",
        error_code=type(exc).__name__,
        message=str(exc),
        operation="csv_import",
        component="importer",
        function_name="import_csv",
        file_name=filename,
    )
    try:
        store.insert(
            _IMPORTS,
            [{"filename": filename, "total_rows": 0, "failed_rows": 0, "status": "failed"}],
        )
    except StoreError as store_exc:
        _logger.warning("import:record_failed file=%s err=%s", filename, store_exc)


def _log_row_failures(store: Store, normalization: NormalizationResult, batch_id: str) -> None:
    mapping = dataclasses.asdict(normalization.schema.fields)
    for failure in normalization.failures:
        log_error(
            store,
            error_type="csv_import",
            error_category="warning",
            error_code="row_normalization",
            message=failure.reason,
            operation="csv_import",
            component="normalizers",
            function_name="normalize_row",
            error_data={"raw": list(failure.raw), "mapping": mapping},
            file_name=normalization.filename,
            row_number=failure.row_number,
            batch_id=batch_id,
            severity="warning",
        )


def import_csv(
    store: Store,
    filename: str,
    text: str,
    *,
    cascade: CategorizationCascade,
    guard: DuplicateGuard | None = None,
    batch_size: int = 5,
    delay: float = 2.0,
    sleep: Callable[[float], None] = time.sleep,
) -> ImportResult:
    """Import one CSV export.

    Raises :class:`~homebudget.errors.FormatDetectionError` or
    :class:`~homebudget.errors.NormalizationError` when the whole file is
    rejected; nothing is inserted in that case.
    """

    started = time.perf_counter()
    try:
        normalization = normalize_file(filename, text)
    except (FormatDetectionError, NormalizationError) as exc:
        _logger.error("import:rejected file=%s err=%s", filename, exc)
        _record_rejected_file(store, filename, exc)
        raise

    schema = normalization.schema
    import_row = store.insert(
        _IMPORTS,
        [
            {
                "filename": filename,
                "bank_detected": schema.name,
                "total_rows": normalization.total_rows,
                "status": "processing",
            }
        ],
    )[0]
    import_id = import_row["id"]
    _log_row_failures(store, normalization, str(import_id))

    guard = guard if guard is not None else StoreDuplicateGuard(store)
    inputs = [CategorizationInput.from_normalized(t) for t in normalization.transactions]
    results = categorize_batch(cascade, inputs, batch_size=batch_size, delay=delay, sleep=sleep)

    imported = 0
    insert_failures = 0
    duplicates = 0
    for tx, result in zip(normalization.transactions, results, strict=True):
        account = tx.account or _UNKNOWN_ACCOUNT
        row: dict[str, Any] = {
            "account_id": account,
            "amount": tx.amount,
            "date": tx.date,
            "name": tx.description,
            "merchant_name": tx.merchant,
            "category_id": result.category_id,
            "category_method": str(result.method),
            "category_confidence": result.confidence,
            "bank_source": _bank_source(schema.name),
            "import_method": _IMPORT_METHOD,
            "csv_filename": filename,
            "import_id": import_id,
            "pending": False,
            "iso_currency_code": "USD",
            "embedding": list(result.embedding) if result.embedding is not None else None,
        }
        try:
            if guard.is_duplicate(account, tx.date, tx.amount, tx.description, _IMPORT_METHOD):
                duplicates += 1
                continue
            store.insert(_TRANSACTIONS, [row])
        except StoreError as exc:
            insert_failures += 1
            _logger.error(
                "import:insert_failed file=%s row=%s err=%s", filename, tx.row_number, exc
            )
            log_error(
                store,
                error_type="csv_import",
                error_code="insert_failed",
                message=str(exc),
                operation="csv_import",
                component="importer",
                function_name="import_csv",
                error_data={"name": tx.description, "amount": tx.amount, "date": tx.date},
                file_name=filename,
                row_number=tx.row_number,
                batch_id=str(import_id),
            )
            continue
        imported += 1

    failed = len(normalization.failures) + insert_failures
    status = "completed" if failed == 0 else "completed_with_errors"
    elapsed_ms = int((time.perf_counter() - started) * 1000)
    store.update(
        _IMPORTS,
        import_id,
        {
            "imported_rows": imported,
            "failed_rows": failed,
            "duplicate_rows": duplicates,
            "status": status,
            "processing_time_ms": elapsed_ms,
        },
    )
    _logger.info(
        "import:done file=%s bank=%s imported=%d failed=%d duplicates=%d elapsed_ms=%d",
        filename,
        schema.name,
        imported,
        failed,
        duplicates,
        elapsed_ms,
    )
    return ImportResult(
        import_id=import_id,
        filename=filename,
        bank_detected=schema.name,
        total_rows=normalization.total_rows,
        imported=imported,
        failed=failed,
        duplicates=duplicates,
        status=status,
        warnings=normalization.failures,
    )


def get_import_history(store: Store, *, limit: int = 50) -> list[dict[str, Any]]:
    """Most recent imports first."""

    return store.select(_IMPORTS, order_by="-id", limit=limit)


__all__ = ["get_import_history", "import_csv"]
