"""Pacing and cooldown for calls to the generative completion service.

A single :class:`RateLimiter` is shared by every caller of the generative
stage. It holds:

- the time of the last call, so calls are spaced at least ``min_interval``
  seconds apart and run one at a time;
- a cooldown deadline set by :meth:`RateLimiter.trip` after an HTTP 429;
- a latch used by batch mode: inside :meth:`RateLimiter.batch`, a trip
  disables the limiter until the batch ends, regardless of the clock.

Clock and sleep are injectable so tests can drive time explicitly.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from .logging_setup import get_logger

_logger = get_logger("homebudget.ratelimit")


class RateLimiter:
    def __init__(
        self,
        *,
        min_interval: float = 2.0,
        cooldown: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.min_interval = min_interval
        self.cooldown = cooldown
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.RLock()
        self._last_call: float | None = None
        self._cooldown_until: float | None = None
        self._batch_depth = 0
        self._latched = False

    # ---- state ---------------------------------------------------------------

    @property
    def latched(self) -> bool:
        return self._latched

    def in_cooldown(self) -> bool:
        with self._lock:
            return self._cooldown_until is not None and self._clock() < self._cooldown_until

    def available(self) -> bool:
        """True when a call may be attempted now (no latch, no active cooldown)."""

        with self._lock:
            return not self._latched and not self.in_cooldown()

    def trip(self) -> None:
        """Start the cooldown window (and latch, inside a batch)."""

        with self._lock:
            self._cooldown_until = self._clock() + self.cooldown
            if self._batch_depth > 0:
                self._latched = True
            _logger.warning(
                "ratelimit:tripped cooldown_s=%.0f latched=%s", self.cooldown, self._latched
            )

    def reset(self) -> None:
        with self._lock:
            self._last_call = None
            self._cooldown_until = None
            self._latched = False

    # ---- pacing --------------------------------------------------------------

    @contextmanager
    def slot(self) -> Iterator[bool]:
        """Hold the limiter for one call.

        Yields ``False`` (without waiting) when the limiter is unavailable.
        Otherwise waits out the remainder of ``min_interval`` since the last
        call, records the call time and yields ``True``. Other callers block
        until the block exits, so calls never overlap.
        """

        with self._lock:
            if not self.available():
                yield False
                return
            if self._last_call is not None:
                wait = self._last_call + self.min_interval - self._clock()
                if wait > 0:
                    self._sleep(wait)
            self._last_call = self._clock()
            yield True

    @contextmanager
    def batch(self) -> Iterator[RateLimiter]:
        """Latch mode for the duration of a batch; the latch clears on exit."""

        with self._lock:
            self._batch_depth += 1
        try:
            yield self
        finally:
            with self._lock:
                self._batch_depth -= 1
                if self._batch_depth == 0:
                    self._latched = False


__all__ = ["RateLimiter"]
