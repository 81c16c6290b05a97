"""Learned transaction/bill text pairs (``hb_matching_patterns``).

A pattern records that a transaction text has been matched to a bill text
before. Confidence is on a 0-1 scale; re-recording a pair keeps the higher
confidence and increments ``match_count``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from db.store import NotNull, Store

from .logging_setup import get_logger
from .similarity import normalize_text

_logger = get_logger("homebudget.patterns")

_PATTERNS = "hb_matching_patterns"
MANUAL_MATCH_CONFIDENCE = 0.95


@dataclass(frozen=True, slots=True)
class PatternIndex:
    """In-memory lookup of learned pairs keyed by normalized text."""

    entries: Mapping[tuple[str, str], float] = field(default_factory=dict)

    @classmethod
    def from_rows(cls, rows: Iterable[Mapping[str, Any]]) -> PatternIndex:
        entries: dict[tuple[str, str], float] = {}
        for row in rows:
            key = (
                normalize_text(row.get("transaction_pattern")),
                normalize_text(row.get("bill_pattern")),
            )
            if not key[0] or not key[1]:
                continue
            confidence = float(row.get("confidence_score") or 0.0)
            entries[key] = max(entries.get(key, 0.0), confidence)
        return cls(entries)

    def lookup(self, transaction_text: str | None, bill_text: str | None) -> float | None:
        key = (normalize_text(transaction_text), normalize_text(bill_text))
        return self.entries.get(key)

    def __len__(self) -> int:
        return len(self.entries)


def load_pattern_index(store: Store) -> PatternIndex:
    return PatternIndex.from_rows(store.select(_PATTERNS))


def record_pattern(
    store: Store, transaction_text: str | None, bill_text: str | None, confidence: float
) -> dict[str, Any] | None:
    """Create or strengthen the pattern for a (transaction, bill) text pair.

    Returns the stored row, or ``None`` when either text is blank.
    """

    tx_key = normalize_text(transaction_text)
    bill_key = normalize_text(bill_text)
    if not tx_key or not bill_key:
        return None
    confidence = max(0.0, min(1.0, confidence))

    existing = store.select(
        _PATTERNS, {"transaction_pattern": tx_key, "bill_pattern": bill_key}, limit=1
    )
    if existing:
        row = existing[0]
        return store.update(
            _PATTERNS,
            row["id"],
            {
                "confidence_score": max(float(row["confidence_score"] or 0.0), confidence),
                "match_count": int(row["match_count"] or 0) + 1,
            },
        )
    return store.insert(
        _PATTERNS,
        [
            {
                "transaction_pattern": tx_key,
                "bill_pattern": bill_key,
                "confidence_score": confidence,
                "match_count": 1,
            }
        ],
    )[0]


def build_matching_patterns(store: Store) -> int:
    """Learn a pattern from every manually matched transaction; returns how many."""

    matches = store.select("hb_transactions", {"bill_id": NotNull(), "match_method": "manual"})
    if not matches:
        _logger.info("patterns:build manual_matches=0")
        return 0
    bill_ids = sorted({m["bill_id"] for m in matches})
    bills = {b["id"]: b for b in store.select("hb_bills", {"id": bill_ids})}

    learned = 0
    for match in matches:
        bill = bills.get(match["bill_id"])
        if bill is None:
            continue
        text = match.get("name") or match.get("description")
        if record_pattern(store, text, bill.get("description"), MANUAL_MATCH_CONFIDENCE):
            learned += 1
    _logger.info("patterns:build manual_matches=%d learned=%d", len(matches), learned)
    return learned


__all__ = [
    "MANUAL_MATCH_CONFIDENCE",
    "PatternIndex",
    "build_matching_patterns",
    "load_pattern_index",
    "record_pattern",
]
