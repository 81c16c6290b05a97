"""Exception hierarchy for ``homebudget``.

File-level problems (no schema, nothing normalizable) surface as a single
exception to the caller. Row-level problems are raised as
:class:`RowNormalizationError` inside the normalizer and collected there.
Completion-service errors are raised by the client and always caught by the
categorization stages.
"""

from __future__ import annotations


class HomebudgetError(Exception):
    """Base class for all library errors."""


class FormatDetectionError(HomebudgetError):
    """No bank schema could be identified for a file."""


class NormalizationError(HomebudgetError):
    """A whole file could not be normalized (e.g. every row failed)."""


class RowNormalizationError(HomebudgetError):
    """A single row could not be normalized."""

    def __init__(self, message: str, *, row_number: int | None = None) -> None:
        super().__init__(message)
        self.row_number = row_number


class CompletionServiceError(HomebudgetError):
    """Generic failure calling the completion/embedding service."""


class CompletionAuthError(CompletionServiceError):
    """The service rejected the credential."""


class CompletionRateLimitError(CompletionServiceError):
    """The service answered HTTP 429."""


__all__ = [
    "CompletionAuthError",
    "CompletionRateLimitError",
    "CompletionServiceError",
    "FormatDetectionError",
    "HomebudgetError",
    "NormalizationError",
    "RowNormalizationError",
]
