"""Completion/embedding service seam and its OpenAI SDK implementation.

The cascade depends only on :class:`CompletionService` (``embed`` and
``complete``). :class:`OpenAICompletionService` implements it over the
``openai`` SDK and maps SDK failures onto the library's error types:

- authentication/permission failures -> :class:`CompletionAuthError`
- HTTP 429 -> :class:`CompletionRateLimitError`
- anything else (5xx, timeouts, connection errors, odd payloads) ->
  :class:`CompletionServiceError`

No client is created at import time.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol

import openai
from openai import OpenAI

from .errors import CompletionAuthError, CompletionRateLimitError, CompletionServiceError
from .logging_setup import get_logger
from .settings import Settings

_logger = get_logger("homebudget.openai_client")

_MAX_OUTPUT_TOKENS = 50


class CompletionService(Protocol):
    def embed(self, text: str) -> Sequence[float]: ...

    def complete(self, prompt: str) -> str: ...


def _create_client(*, api_key: str | None, timeout: float) -> OpenAI:
    # Retries are disabled so a 429 reaches the rate limiter immediately.
    return OpenAI(api_key=api_key, timeout=timeout, max_retries=0)


def _translate(exc: Exception, *, op: str) -> CompletionServiceError:
    if isinstance(exc, openai.AuthenticationError | openai.PermissionDeniedError):
        return CompletionAuthError(f"{op}: credential rejected ({exc})")
    sc = getattr(exc, "status_code", None)
    if isinstance(exc, openai.RateLimitError) or sc == 429:
        return CompletionRateLimitError(f"{op}: rate limit exceeded ({exc})")
    if isinstance(exc, openai.APITimeoutError):
        return CompletionServiceError(f"{op}: request timed out")
    return CompletionServiceError(f"{op}: {exc}")


def _extract_output_text(resp: Any) -> str:
    """Return the text of a Responses API result.

    Prefers ``resp.output_text``; falls back to ``resp.output[0].content[0].text``.
    """

    text: str | None = getattr(resp, "output_text", None)
    if not text:
        first = resp.output[0] if getattr(resp, "output", None) else None
        content = getattr(first, "content", None)
        if content:
            txt_obj = getattr(content[0], "text", None)
            if isinstance(txt_obj, str):
                text = txt_obj
            else:
                # Some SDKs expose text as an object with a ``value`` string.
                maybe_val = getattr(txt_obj, "value", None)
                if isinstance(maybe_val, str):
                    text = maybe_val
    if not text or not isinstance(text, str):
        raise CompletionServiceError("complete: unable to locate text output in response")
    return text


class OpenAICompletionService:
    """:class:`CompletionService` over the OpenAI Responses and Embeddings APIs."""

    def __init__(
        self,
        *,
        api_key: str | None,
        completion_model: str = "gpt-4o-mini",
        embedding_model: str = "text-embedding-3-small",
        timeout: float = 30.0,
        client: Any | None = None,
    ) -> None:
        self.completion_model = completion_model
        self.embedding_model = embedding_model
        self._client = client if client is not None else _create_client(
            api_key=api_key, timeout=timeout
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> OpenAICompletionService:
        return cls(
            api_key=settings.openai_api_key,
            completion_model=settings.completion_model,
            embedding_model=settings.embedding_model,
            timeout=settings.request_timeout,
        )

    def embed(self, text: str) -> list[float]:
        try:
            resp = self._client.embeddings.create(model=self.embedding_model, input=text)
        except openai.OpenAIError as exc:
            err = _translate(exc, op="embed")
            _logger.warning("openai:embed_failed kind=%s err=%s", type(err).__name__, exc)
            raise err from exc
        try:
            return [float(x) for x in resp.data[0].embedding]
        except (AttributeError, IndexError, TypeError, ValueError) as exc:
            raise CompletionServiceError("embed: unexpected response shape") from exc

    def complete(self, prompt: str) -> str:
        try:
            resp = self._client.responses.create(
                model=self.completion_model,
                input=prompt,
                max_output_tokens=_MAX_OUTPUT_TOKENS,
                temperature=0.1,
            )
        except openai.OpenAIError as exc:
            err = _translate(exc, op="complete")
            _logger.warning("openai:complete_failed kind=%s err=%s", type(err).__name__, exc)
            raise err from exc
        return _extract_output_text(resp).strip()


__all__ = ["CompletionService", "OpenAICompletionService"]
