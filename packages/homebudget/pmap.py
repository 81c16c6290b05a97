"""A small abstraction over ThreadPoolExecutor inspired by `p-map`.

- ``p_map()`` maps an iterable through a function with at most
  ``concurrency`` calls in flight and returns results in input order.
- ``fallback``: when given, a failing call is replaced by
  ``fallback(item, exc)`` instead of failing the whole map. Without it, the
  first error propagates and not-yet-started work is cancelled.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import TypeVar

InT = TypeVar("InT")
OutT = TypeVar("OutT")


def p_map(
    iterable: Iterable[InT],
    mapper: Callable[[InT], OutT],
    *,
    concurrency: int,
    fallback: Callable[[InT, Exception], OutT] | None = None,
) -> list[OutT]:
    """Map ``iterable`` through ``mapper`` with a bounded concurrency limit."""

    if not isinstance(concurrency, int) or concurrency < 1:
        raise ValueError("concurrency must be a positive integer")

    items = list(iterable)
    if not items:
        return []
    if concurrency == 1 or len(items) == 1:
        return [_call(mapper, item, fallback) for item in items]

    results: dict[int, OutT] = {}
    pending = iter(enumerate(items))
    future_to_idx: dict[Future, int] = {}

    def _submit(pool: ThreadPoolExecutor) -> Future | None:
        try:
            idx, item = next(pending)
        except StopIteration:
            return None
        fut = pool.submit(mapper, item)
        future_to_idx[fut] = idx
        return fut

    with ThreadPoolExecutor(max_workers=min(concurrency, len(items))) as pool:
        active: set[Future] = set()
        for _ in range(concurrency):
            fut = _submit(pool)
            if fut is None:
                break
            active.add(fut)

        while active:
            done, active = wait(active, return_when=FIRST_COMPLETED)
            for fut in done:
                idx = future_to_idx.pop(fut)
                try:
                    results[idx] = fut.result()
                except Exception as e:  # noqa: BLE001
                    if fallback is None:
                        pool.shutdown(wait=False, cancel_futures=True)
                        raise
                    results[idx] = fallback(items[idx], e)
                nxt = _submit(pool)
                if nxt is not None:
                    active.add(nxt)

    return [results[i] for i in range(len(items))]


def _call(
    mapper: Callable[[InT], OutT],
    item: InT,
    fallback: Callable[[InT, Exception], OutT] | None,
) -> OutT:
    try:
        return mapper(item)
    except Exception as e:  # noqa: BLE001
        if fallback is None:
            raise
        return fallback(item, e)


__all__ = ["p_map"]
