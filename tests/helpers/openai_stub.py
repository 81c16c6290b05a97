"""Test doubles for the completion service and for time.

``CompletionStub`` implements the ``CompletionService`` protocol with
scripted behavior: ``complete`` returns (or raises) the next scripted reply,
``embed`` looks the text up in a mapping. Every call is recorded in
``calls`` as ``(op, text)`` so tests can assert on call counts.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Mapping, Sequence

ReplyFn = Callable[[str], str]


class CompletionStub:
    def __init__(
        self,
        replies: Iterable[str | Exception | ReplyFn] = (),
        *,
        embeddings: Mapping[str, Sequence[float]] | None = None,
        default_embedding: Sequence[float] = (0.0, 0.0, 1.0),
    ) -> None:
        self._replies = list(replies)
        self._embeddings = dict(embeddings or {})
        self._default_embedding = list(default_embedding)
        self._lock = threading.Lock()
        self.calls: list[tuple[str, str]] = []

    def _next_reply(self, prompt: str) -> str:
        if not self._replies:
            raise AssertionError("complete() called more times than scripted")
        reply = self._replies[0] if len(self._replies) == 1 else self._replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(prompt)
        return reply

    def complete(self, prompt: str) -> str:
        with self._lock:
            self.calls.append(("complete", prompt))
            return self._next_reply(prompt)

    def embed(self, text: str) -> list[float]:
        with self._lock:
            self.calls.append(("embed", text))
        return list(self._embeddings.get(text, self._default_embedding))

    def count(self, op: str) -> int:
        return sum(1 for kind, _ in self.calls if kind == op)


class FakeClock:
    """Manual clock; ``sleep`` advances time instead of blocking."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds: float) -> None:
        self.now += seconds
