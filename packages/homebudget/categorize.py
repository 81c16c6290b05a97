"""Batch categorization.

Public API:
    - :func:`categorize_batch`
    - :func:`recategorize_all`

Batches are processed in fixed-size chunks with a delay between chunks.
Within a chunk, items run concurrently through the cascade; generative calls
are serialized by the cascade's shared :class:`~homebudget.ratelimit.RateLimiter`,
which runs in latch mode for the whole batch so a single 429 disables the
generative stage for every remaining item. An unexpected failure on one item
degrades that item to the default category.
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from db.store import Store, StoreError

from .categorization import CategorizationCascade, DefaultStage
from .error_log import log_error
from .logging_setup import get_logger
from .models import CategorizationInput, CategorizationMethod, CategorizationResult
from .pmap import p_map

# ---- Tunables (private) ------------------------------------------------------

_BATCH_SIZE_DEFAULT: int = 5
_BATCH_DELAY_SEC: float = 2.0

_logger = get_logger("homebudget.categorize")


# ---- Internal helpers --------------------------------------------------------


def _paginate(n_total: int, page_size: int) -> Iterable[tuple[int, int, int]]:
    """Yield half-open chunk ranges ``(chunk_index, base, end)``."""

    for k in range(math.ceil(n_total / page_size)):
        base = k * page_size
        yield (k, base, min(base + page_size, n_total))


def _default_result(cascade: CategorizationCascade) -> CategorizationResult:
    for stage in cascade.stages:
        if isinstance(stage, DefaultStage):
            try:
                result = stage.attempt(CategorizationInput(name="", amount=Decimal("0")))
            except StoreError as exc:
                _logger.warning("batch:default_unavailable err=%s", exc)
                break
            if result is not None:
                return result
    return CategorizationResult(
        category_id=None, confidence=0.0, method=CategorizationMethod.DEFAULT
    )


# ---- Public API --------------------------------------------------------------


def categorize_batch(
    cascade: CategorizationCascade,
    items: Sequence[CategorizationInput],
    *,
    batch_size: int = _BATCH_SIZE_DEFAULT,
    delay: float = _BATCH_DELAY_SEC,
    sleep: Callable[[float], None] = time.sleep,
) -> list[CategorizationResult]:
    """Categorize ``items`` and return one result per item, in input order."""

    if batch_size < 1:
        raise ValueError("batch_size must be a positive integer")
    if not items:
        return []

    def _degrade(tx: CategorizationInput, exc: Exception) -> CategorizationResult:
        _logger.warning("batch:item_failed name=%r err=%s", tx.name, exc)
        return _default_result(cascade)

    results: list[CategorizationResult] = []
    started = time.perf_counter()
    with cascade.limiter.batch():
        for k, base, end in _paginate(len(items), batch_size):
            if k > 0 and delay > 0:
                sleep(delay)
            chunk = items[base:end]
            results.extend(
                p_map(chunk, cascade.categorize, concurrency=batch_size, fallback=_degrade)
            )
            _logger.debug(
                "batch:chunk index=%d size=%d latched=%s", k, len(chunk), cascade.limiter.latched
            )

    counts: dict[str, int] = {}
    for r in results:
        counts[r.method] = counts.get(r.method, 0) + 1
    _logger.info(
        "batch:done items=%d methods=%s elapsed_s=%.2f",
        len(results),
        counts,
        time.perf_counter() - started,
    )
    return results


@dataclass(frozen=True, slots=True)
class RecategorizeSummary:
    processed: int
    updated: int
    errors: int


def recategorize_all(
    store: Store,
    cascade: CategorizationCascade,
    *,
    only_uncategorized: bool = False,
    batch_size: int = _BATCH_SIZE_DEFAULT,
    delay: float = _BATCH_DELAY_SEC,
    sleep: Callable[[float], None] = time.sleep,
) -> RecategorizeSummary:
    """Re-run the cascade over persisted transactions and write the results back."""

    filters: dict[str, Any] = {"category_id": None} if only_uncategorized else {}
    rows = store.select("hb_transactions", filters)
    inputs = [CategorizationInput.from_row(r) for r in rows]
    results = categorize_batch(cascade, inputs, batch_size=batch_size, delay=delay, sleep=sleep)

    updated = 0
    errors = 0
    for row, result in zip(rows, results, strict=True):
        fields: dict[str, Any] = {
            "category_id": result.category_id,
            "category_confidence": result.confidence,
            "category_method": str(result.method),
        }
        if result.embedding is not None and not row.get("embedding"):
            fields["embedding"] = list(result.embedding)
        try:
            store.update("hb_transactions", row["id"], fields)
        except StoreError as exc:
            errors += 1
            _logger.error("recategorize:update_failed id=%s err=%s", row["id"], exc)
            log_error(
                store,
                error_type="categorization",
                message=f"Failed to update transaction {row['id']}: {exc}",
                operation="recategorize",
                component="categorize",
                function_name="recategorize_all",
                error_data={"transaction_id": row["id"], "category_id": result.category_id},
            )
            continue
        updated += 1

    summary = RecategorizeSummary(processed=len(rows), updated=updated, errors=errors)
    _logger.info(
        "recategorize:done processed=%d updated=%d errors=%d",
        summary.processed,
        summary.updated,
        summary.errors,
    )
    return summary


__all__ = ["RecategorizeSummary", "categorize_batch", "recategorize_all"]
