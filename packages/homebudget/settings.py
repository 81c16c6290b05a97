"""Runtime configuration for ``homebudget``.

:class:`Settings` is a frozen pydantic model. Library code receives it
explicitly; only :meth:`Settings.from_env` reads the process environment (the
CLI loads a ``.env`` first via ``python-dotenv``).

Environment variables
---------------------
- ``DATABASE_URL``: SQLAlchemy URL for the store.
- ``OPENAI_API_KEY``: credential for the completion/embedding service.
- ``HOMEBUDGET_AI_ENABLED``: ``0``/``false`` disables the generative stage.
- ``HOMEBUDGET_COMPLETION_MODEL`` / ``HOMEBUDGET_EMBEDDING_MODEL``
- ``HOMEBUDGET_REQUEST_TIMEOUT``: seconds per service call.
- ``HOMEBUDGET_AMOUNT_TOLERANCE`` / ``HOMEBUDGET_DATE_TOLERANCE_DAYS``
- ``HOMEBUDGET_BATCH_SIZE`` / ``HOMEBUDGET_BATCH_DELAY``
"""

from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

_FALSEY = {"0", "false", "no", "off", ""}


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    database_url: str | None = None
    openai_api_key: str | None = None
    ai_enabled: bool = True

    completion_model: str = "gpt-4o-mini"
    embedding_model: str = "text-embedding-3-small"
    request_timeout: float = Field(default=30.0, gt=0)

    # Similarity stage
    similarity_threshold: float = Field(default=0.8, ge=0, le=1)
    similarity_neighbors: int = Field(default=5, ge=1)
    similarity_accept: float = Field(default=0.7, ge=0, le=1)

    # Generative stage pacing
    generative_interval: float = Field(default=2.0, ge=0)
    generative_cooldown: float = Field(default=300.0, ge=0)

    # Batch mode
    batch_size: int = Field(default=5, ge=1)
    batch_delay: float = Field(default=2.0, ge=0)

    # Reconciliation
    amount_tolerance: float = Field(default=5.0, gt=0)
    date_tolerance_days: int = Field(default=3, ge=1)
    min_match_confidence: float = Field(default=0.7, ge=0, le=1)

    @field_validator("database_url", "openai_api_key")
    @classmethod
    def _blank_is_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @property
    def generative_available(self) -> bool:
        return self.ai_enabled and bool(self.openai_api_key)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ
        values: dict[str, object] = {
            "database_url": env.get("DATABASE_URL"),
            "openai_api_key": env.get("OPENAI_API_KEY"),
        }
        enabled = env.get("HOMEBUDGET_AI_ENABLED")
        if enabled is not None:
            values["ai_enabled"] = enabled.strip().lower() not in _FALSEY
        # Pydantic coerces the numeric strings.
        for key, env_name in (
            ("completion_model", "HOMEBUDGET_COMPLETION_MODEL"),
            ("embedding_model", "HOMEBUDGET_EMBEDDING_MODEL"),
            ("request_timeout", "HOMEBUDGET_REQUEST_TIMEOUT"),
            ("amount_tolerance", "HOMEBUDGET_AMOUNT_TOLERANCE"),
            ("date_tolerance_days", "HOMEBUDGET_DATE_TOLERANCE_DAYS"),
            ("batch_size", "HOMEBUDGET_BATCH_SIZE"),
            ("batch_delay", "HOMEBUDGET_BATCH_DELAY"),
        ):
            raw = env.get(env_name)
            if raw is not None and raw.strip():
                values[key] = raw.strip()
        return cls.model_validate(values)


__all__ = ["Settings"]
