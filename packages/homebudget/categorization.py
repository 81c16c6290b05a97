"""The five-stage categorization cascade.

Each stage implements ``attempt(tx) -> CategorizationResult | None``;
:func:`first_result` evaluates stages in order and commits to the first
non-``None`` result. Stage order and confidences:

1. :class:`SourceLabelStage`: bank-provided label, confidence 1.0
2. :class:`RuleStage`: user rules by descending priority, confidence 0.9
3. :class:`SimilarityStage`: embedding neighbors, composite score, accepted
   only above the acceptance threshold
4. :class:`GenerativeStage`: completion service, confidence 0.8
5. :class:`DefaultStage`: the ``Other`` category, confidence 0.0

Completion-service and store errors raised inside a stage are caught by
:func:`first_result` and treated as a miss for that stage.
"""

from __future__ import annotations

import dataclasses
import threading
from collections.abc import Sequence
from decimal import Decimal
from typing import Any, Protocol

from db.store import Store, StoreError
from pydantic import ValidationError

from .categories import CategoryDirectory
from .errors import CompletionRateLimitError, CompletionServiceError
from .logging_setup import get_logger
from .models import (
    CategorizationInput,
    CategorizationMethod,
    CategorizationResult,
    CategorizationRule,
)
from .openai_client import CompletionService
from .prompting import build_categorization_prompt, clean_category_response
from .ratelimit import RateLimiter
from .settings import Settings

_logger = get_logger("homebudget.categorization")

SOURCE_LABEL_CONFIDENCE = 1.0
RULE_CONFIDENCE = 0.9
GENERATIVE_CONFIDENCE = 0.8
DEFAULT_CONFIDENCE = 0.0


class CategorizationStage(Protocol):
    method: CategorizationMethod

    def attempt(self, tx: CategorizationInput) -> CategorizationResult | None: ...


def first_result(
    stages: Sequence[CategorizationStage], tx: CategorizationInput
) -> CategorizationResult | None:
    """Return the first non-``None`` stage result; later stages are not run."""

    for stage in stages:
        try:
            result = stage.attempt(tx)
        except (CompletionServiceError, StoreError) as exc:
            _logger.warning(
                "cascade:stage_error stage=%s kind=%s err=%s",
                stage.method,
                type(exc).__name__,
                exc,
            )
            continue
        if result is not None:
            return result
    return None


# ---------------------------------------------------------------------------
# Stage 1: source label
# ---------------------------------------------------------------------------


class SourceLabelStage:
    method = CategorizationMethod.SOURCE_LABEL

    def __init__(self, categories: CategoryDirectory) -> None:
        self._categories = categories

    def attempt(self, tx: CategorizationInput) -> CategorizationResult | None:
        label = (tx.source_label or "").strip()
        if not label:
            return None
        category_id = self._categories.find_or_create(label)
        if category_id is None:
            return None
        return CategorizationResult(
            category_id=category_id,
            confidence=SOURCE_LABEL_CONFIDENCE,
            method=self.method,
            detail=label,
        )


# ---------------------------------------------------------------------------
# Stage 2: rules
# ---------------------------------------------------------------------------


def _as_strings(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, list | tuple):
        return [v for v in value if isinstance(v, str) and v.strip()]
    return []


def _as_decimal(value: Any, default: Decimal | None) -> Decimal | None:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ValueError("boolean is not an amount")
    return Decimal(str(value))


def rule_matches(rule: CategorizationRule, tx: CategorizationInput) -> bool:
    """Return True when ``rule`` applies to ``tx``; malformed conditions never match."""

    conditions = rule.conditions
    if rule.rule_type == "keyword":
        haystack = tx.text().lower()
        return any(k.lower() in haystack for k in _as_strings(conditions.get("keywords")))
    if rule.rule_type == "merchant":
        merchant = (tx.merchant or "").lower()
        name = tx.name.lower()
        return any(
            m.lower() in merchant or m.lower() in name
            for m in _as_strings(conditions.get("merchants"))
        )
    if rule.rule_type == "amount_range":
        try:
            low = _as_decimal(conditions.get("min_amount"), Decimal("0"))
            high = _as_decimal(conditions.get("max_amount"), None)
        except (ArithmeticError, ValueError):
            return False
        amount = abs(tx.amount)
        if low is not None and amount < low:
            return False
        return high is None or amount <= high
    return False


class RuleStage:
    """Evaluate active rules in descending priority; first match wins.

    Rules are read from the store on first use and reused until
    :meth:`refresh` is called, so a batch sees one consistent rule set.
    """

    method = CategorizationMethod.RULE

    def __init__(
        self, store: Store, *, rules: Sequence[CategorizationRule] | None = None
    ) -> None:
        self._store = store
        self._rules: list[CategorizationRule] | None = (
            sorted(rules, key=lambda r: -r.priority) if rules is not None else None
        )
        self._lock = threading.Lock()

    def refresh(self) -> None:
        with self._lock:
            self._rules = None

    def rules(self) -> list[CategorizationRule]:
        with self._lock:
            if self._rules is None:
                rows = self._store.select(
                    "hb_categorization_rules",
                    {"is_active": True},
                    order_by=["-priority", "id"],
                )
                loaded: list[CategorizationRule] = []
                for row in rows:
                    try:
                        loaded.append(CategorizationRule.model_validate(row))
                    except ValidationError as exc:
                        _logger.warning("rules:invalid id=%s err=%s", row.get("id"), exc)
                self._rules = loaded
            return list(self._rules)

    def attempt(self, tx: CategorizationInput) -> CategorizationResult | None:
        for rule in self.rules():
            if rule.is_active and rule_matches(rule, tx):
                return CategorizationResult(
                    category_id=rule.category_id,
                    confidence=RULE_CONFIDENCE,
                    method=self.method,
                    detail=rule.name or f"rule {rule.id}",
                )
        return None


# ---------------------------------------------------------------------------
# Stage 3: embedding similarity
# ---------------------------------------------------------------------------


def composite_scores(neighbors: Sequence[dict[str, Any]]) -> dict[int, float]:
    """Score each neighbor category as ``(count / len(neighbors)) * mean similarity``."""

    if not neighbors:
        return {}
    grouped: dict[int, list[float]] = {}
    for n in neighbors:
        grouped.setdefault(n["category_id"], []).append(float(n["similarity"]))
    total = len(neighbors)
    return {cid: (len(sims) / total) * (sum(sims) / len(sims)) for cid, sims in grouped.items()}


class SimilarityStage:
    """Nearest-neighbor vote over previously categorized transactions.

    The computed embedding is kept until :meth:`take_embedding` collects it,
    so the caller can persist it whichever stage ends up deciding.
    """

    method = CategorizationMethod.SIMILARITY

    def __init__(
        self,
        store: Store,
        service: CompletionService,
        *,
        threshold: float = 0.8,
        neighbors: int = 5,
        accept: float = 0.7,
    ) -> None:
        self._store = store
        self._service = service
        self.threshold = threshold
        self.neighbors = neighbors
        self.accept = accept
        # Keyed by input identity; equal texts in one chunk keep separate entries.
        self._pending: dict[int, tuple[float, ...]] = {}
        self._lock = threading.Lock()

    def take_embedding(self, tx: CategorizationInput) -> tuple[float, ...] | None:
        with self._lock:
            return self._pending.pop(id(tx), None)

    def attempt(self, tx: CategorizationInput) -> CategorizationResult | None:
        text = tx.text()
        if not text:
            return None
        embedding = tuple(self._service.embed(text))
        with self._lock:
            self._pending[id(tx)] = embedding

        found = self._store.match_transactions(
            embedding, threshold=self.threshold, limit=self.neighbors
        )
        scores = composite_scores(found)
        if not scores:
            return None
        # Highest score; ties resolved by first appearance among neighbors.
        best_id = max(scores, key=lambda cid: scores[cid])
        best = scores[best_id]
        if best <= self.accept:
            _logger.debug("similarity:below_threshold score=%.3f", best)
            return None
        return CategorizationResult(
            category_id=best_id,
            confidence=round(best, 4),
            method=self.method,
            embedding=self.take_embedding(tx),
            detail=f"{len(found)} neighbors",
        )


# ---------------------------------------------------------------------------
# Stage 4: generative
# ---------------------------------------------------------------------------


class GenerativeStage:
    """Ask the completion service for a category name from the active list.

    Skipped when disabled, when the shared limiter is in cooldown or latched,
    or when there are no active categories. A rate-limit error trips the
    limiter. The reply must equal an active category name (case-insensitive)
    to count.
    """

    method = CategorizationMethod.GENERATIVE

    def __init__(
        self,
        categories: CategoryDirectory,
        service: CompletionService,
        limiter: RateLimiter,
        *,
        enabled: bool = True,
    ) -> None:
        self._categories = categories
        self._service = service
        self.limiter = limiter
        self.enabled = enabled

    def attempt(self, tx: CategorizationInput) -> CategorizationResult | None:
        if not self.enabled or not self.limiter.available():
            return None
        active = self._categories.active()
        if not active:
            return None
        prompt = build_categorization_prompt(tx, [c["name"] for c in active])

        with self.limiter.slot() as ok:
            if not ok:
                return None
            try:
                reply = self._service.complete(prompt)
            except CompletionRateLimitError as exc:
                self.limiter.trip()
                _logger.warning("generative:rate_limited err=%s", exc)
                return None

        cleaned = clean_category_response(reply)
        wanted = cleaned.lower()
        for c in active:
            if c["name"].strip().lower() == wanted:
                return CategorizationResult(
                    category_id=c["id"],
                    confidence=GENERATIVE_CONFIDENCE,
                    method=self.method,
                    detail=cleaned,
                )
        _logger.info("generative:unknown_category reply=%r", cleaned)
        return None


# ---------------------------------------------------------------------------
# Stage 5: default
# ---------------------------------------------------------------------------


class DefaultStage:
    method = CategorizationMethod.DEFAULT

    def __init__(self, categories: CategoryDirectory) -> None:
        self._categories = categories

    def attempt(self, tx: CategorizationInput) -> CategorizationResult | None:
        return CategorizationResult(
            category_id=self._categories.other_id(),
            confidence=DEFAULT_CONFIDENCE,
            method=self.method,
        )


# ---------------------------------------------------------------------------
# Cascade
# ---------------------------------------------------------------------------


class CategorizationCascade:
    """Ordered stages plus the shared rate limiter."""

    def __init__(
        self,
        stages: Sequence[CategorizationStage],
        *,
        limiter: RateLimiter | None = None,
    ) -> None:
        self.stages = tuple(stages)
        self.limiter = limiter if limiter is not None else RateLimiter()

    @classmethod
    def build(
        cls,
        store: Store,
        settings: Settings,
        *,
        service: CompletionService | None = None,
        limiter: RateLimiter | None = None,
        categories: CategoryDirectory | None = None,
    ) -> CategorizationCascade:
        """Assemble the standard five stages.

        Without a ``service`` the similarity and generative stages are left
        out; the generative stage is also disabled when no credential is
        configured or ``ai_enabled`` is off.
        """

        categories = categories if categories is not None else CategoryDirectory(store)
        limiter = (
            limiter
            if limiter is not None
            else RateLimiter(
                min_interval=settings.generative_interval, cooldown=settings.generative_cooldown
            )
        )
        stages: list[CategorizationStage] = [SourceLabelStage(categories), RuleStage(store)]
        if service is not None:
            stages.append(
                SimilarityStage(
                    store,
                    service,
                    threshold=settings.similarity_threshold,
                    neighbors=settings.similarity_neighbors,
                    accept=settings.similarity_accept,
                )
            )
            stages.append(
                GenerativeStage(
                    categories, service, limiter, enabled=settings.generative_available
                )
            )
        stages.append(DefaultStage(categories))
        return cls(stages, limiter=limiter)

    def _similarity(self) -> SimilarityStage | None:
        for s in self.stages:
            if isinstance(s, SimilarityStage):
                return s
        return None

    def categorize(self, tx: CategorizationInput) -> CategorizationResult:
        result = first_result(self.stages, tx)
        if result is None:
            result = CategorizationResult(
                category_id=None, confidence=DEFAULT_CONFIDENCE, method=CategorizationMethod.DEFAULT
            )
        similarity = self._similarity()
        if similarity is not None:
            pending = similarity.take_embedding(tx)
            if result.embedding is None and pending is not None:
                result = dataclasses.replace(result, embedding=pending)
        _logger.debug(
            "cascade:decided method=%s category=%s confidence=%.2f",
            result.method,
            result.category_id,
            result.confidence,
        )
        return result


__all__ = [
    "CategorizationCascade",
    "CategorizationStage",
    "DefaultStage",
    "GenerativeStage",
    "RuleStage",
    "SimilarityStage",
    "SourceLabelStage",
    "composite_scores",
    "first_result",
    "rule_matches",
]
