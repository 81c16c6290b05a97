"""Table-keyed store over the budget models.

The homebudget library talks to persistence only through the small
:class:`Store` protocol: ``select``/``insert``/``update`` keyed by table name
and a mapping of column filters, plus two purpose-built reads (transactions
joined with their linked bill/category, and nearest-neighbor lookup over
stored embeddings). :class:`SqlStore` implements it with SQLAlchemy sessions.

Filter values
-------------
- plain value: ``column = value``
- ``None``: ``column IS NULL``
- list/tuple/set: ``column IN (...)``
- :class:`Range`: inclusive bounds, either side optional
- :class:`ILike`: case-insensitive ``LIKE`` pattern
- :class:`IEquals`: case-insensitive equality
- :class:`NotNull`: ``column IS NOT NULL``

Rows are returned as plain dicts keyed by column name.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import Any, Protocol, TypeAlias

import numpy as np
from sqlalchemy import func, select
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase

from .client import session_scope
from .models.budget import (
    HbBill,
    HbCategorizationRule,
    HbCategory,
    HbCsvImport,
    HbErrorLog,
    HbMatchingPattern,
    HbTransaction,
)

# ---------------------------
# Errors
# ---------------------------


class StoreError(Exception):
    """Raised when a store operation fails."""


class PermissionDeniedError(StoreError):
    """Raised when the backing database rejects an operation on permissions."""


_PERMISSION_DENIED_PGCODE = "42501"


def _translate(exc: SQLAlchemyError, *, op: str, table: str) -> StoreError:
    orig = getattr(exc, "orig", None)
    pgcode = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if isinstance(exc, DBAPIError) and (
        pgcode == _PERMISSION_DENIED_PGCODE or "permission denied" in str(orig).lower()
    ):
        return PermissionDeniedError(f"{op} on {table} denied: {orig}")
    return StoreError(f"{op} on {table} failed: {orig or exc}")


# ---------------------------
# Filter helpers
# ---------------------------


@dataclass(frozen=True, slots=True)
class Range:
    low: Any = None
    high: Any = None


@dataclass(frozen=True, slots=True)
class ILike:
    pattern: str


@dataclass(frozen=True, slots=True)
class IEquals:
    value: str


@dataclass(frozen=True, slots=True)
class NotNull:
    pass


Row: TypeAlias = dict[str, Any]
Filters: TypeAlias = Mapping[str, Any]


class Store(Protocol):
    def select(
        self,
        table: str,
        filters: Filters | None = None,
        *,
        order_by: str | Sequence[str] | None = None,
        limit: int | None = None,
    ) -> list[Row]: ...

    def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[Row]: ...

    def update(self, table: str, id: int, fields: Mapping[str, Any]) -> Row: ...

    def fetch_transactions_with_links(
        self, *, start: date | None = None, end: date | None = None
    ) -> list[Row]: ...

    def match_transactions(
        self, embedding: Sequence[float], *, threshold: float, limit: int
    ) -> list[Row]: ...


# ---------------------------
# SQLAlchemy implementation
# ---------------------------

_TABLES: dict[str, type[DeclarativeBase]] = {
    m.__tablename__: m
    for m in (
        HbBill,
        HbCategorizationRule,
        HbCategory,
        HbCsvImport,
        HbErrorLog,
        HbMatchingPattern,
        HbTransaction,
    )
}


def _to_row(obj: Any) -> Row:
    return {c.key: getattr(obj, c.key) for c in obj.__table__.columns}


def _cosine_scores(matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
    """Cosine similarity of each row of ``matrix`` against ``query`` (zero-norm rows score 0)."""

    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    return np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)


class SqlStore:
    """:class:`Store` backed by SQLAlchemy sessions (one short transaction per call)."""

    def __init__(self, database_url: str | None = None) -> None:
        self._database_url = database_url

    # ---- helpers -------------------------------------------------------------

    def _model(self, table: str) -> type[Any]:
        try:
            return _TABLES[table]
        except KeyError:
            raise StoreError(f"unknown table: {table}") from None

    def _column(self, model: type[Any], name: str):
        col = model.__table__.columns.get(name)
        if col is None:
            raise StoreError(f"unknown column {name!r} on {model.__tablename__}")
        return getattr(model, col.key)

    def _conditions(self, model: type[Any], filters: Filters | None) -> list[Any]:
        conds: list[Any] = []
        for name, value in (filters or {}).items():
            col = self._column(model, name)
            if value is None:
                conds.append(col.is_(None))
            elif isinstance(value, NotNull):
                conds.append(col.is_not(None))
            elif isinstance(value, Range):
                if value.low is not None:
                    conds.append(col >= value.low)
                if value.high is not None:
                    conds.append(col <= value.high)
            elif isinstance(value, ILike):
                conds.append(col.ilike(value.pattern))
            elif isinstance(value, IEquals):
                conds.append(func.lower(col) == value.value.lower())
            elif isinstance(value, list | tuple | set | frozenset):
                conds.append(col.in_(list(value)))
            else:
                conds.append(col == value)
        return conds

    def _ordering(self, model: type[Any], order_by: str | Sequence[str] | None) -> list[Any]:
        if order_by is None:
            return [model.id]
        keys: Iterable[str] = [order_by] if isinstance(order_by, str) else order_by
        out = []
        for key in keys:
            desc = key.startswith("-")
            col = self._column(model, key.lstrip("-"))
            out.append(col.desc() if desc else col.asc())
        return out

    # ---- Store protocol ------------------------------------------------------

    def select(
        self,
        table: str,
        filters: Filters | None = None,
        *,
        order_by: str | Sequence[str] | None = None,
        limit: int | None = None,
    ) -> list[Row]:
        model = self._model(table)
        stmt = select(model).where(*self._conditions(model, filters))
        stmt = stmt.order_by(*self._ordering(model, order_by))
        if limit is not None:
            stmt = stmt.limit(limit)
        try:
            with session_scope(database_url=self._database_url) as session:
                return [_to_row(obj) for obj in session.execute(stmt).scalars()]
        except SQLAlchemyError as exc:
            raise _translate(exc, op="select", table=table) from exc

    def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[Row]:
        model = self._model(table)
        try:
            with session_scope(database_url=self._database_url) as session:
                objs = [model(**dict(r)) for r in rows]
                session.add_all(objs)
                session.flush()
                for obj in objs:
                    session.refresh(obj)
                return [_to_row(obj) for obj in objs]
        except SQLAlchemyError as exc:
            raise _translate(exc, op="insert", table=table) from exc
        except TypeError as exc:
            # Unknown keyword for the mapped class
            raise StoreError(f"insert on {table} failed: {exc}") from exc

    def update(self, table: str, id: int, fields: Mapping[str, Any]) -> Row:
        model = self._model(table)
        values = dict(fields)
        for name in values:
            self._column(model, name)
        if "updated_at" in model.__table__.columns and "updated_at" not in values:
            values["updated_at"] = datetime.now(UTC)
        try:
            with session_scope(database_url=self._database_url) as session:
                obj = session.get(model, id)
                if obj is None:
                    raise StoreError(f"update on {table} failed: no row with id={id}")
                for name, value in values.items():
                    setattr(obj, name, value)
                session.flush()
                return _to_row(obj)
        except SQLAlchemyError as exc:
            raise _translate(exc, op="update", table=table) from exc

    def fetch_transactions_with_links(
        self, *, start: date | None = None, end: date | None = None
    ) -> list[Row]:
        """Return transactions in ``[start, end]`` with ``bill``/``category`` joined in.

        Each row carries ``bill`` (the linked bill row or ``None``) and
        ``category`` (the linked category row or ``None``).
        """

        stmt = (
            select(HbTransaction, HbBill, HbCategory)
            .outerjoin(HbBill, HbTransaction.bill_id == HbBill.id)
            .outerjoin(HbCategory, HbTransaction.category_id == HbCategory.id)
        )
        if start is not None:
            stmt = stmt.where(HbTransaction.date >= start)
        if end is not None:
            stmt = stmt.where(HbTransaction.date <= end)
        stmt = stmt.order_by(HbTransaction.date, HbTransaction.id)
        try:
            with session_scope(database_url=self._database_url) as session:
                out: list[Row] = []
                for tx, bill, category in session.execute(stmt).all():
                    row = _to_row(tx)
                    row["bill"] = _to_row(bill) if bill is not None else None
                    row["category"] = _to_row(category) if category is not None else None
                    out.append(row)
                return out
        except SQLAlchemyError as exc:
            raise _translate(exc, op="select", table=HbTransaction.__tablename__) from exc

    def match_transactions(
        self, embedding: Sequence[float], *, threshold: float, limit: int
    ) -> list[Row]:
        """Return categorized transactions whose embedding similarity exceeds ``threshold``.

        Results are ``{"id", "category_id", "similarity"}`` dicts ordered by
        descending cosine similarity, at most ``limit`` of them.
        """

        stmt = select(HbTransaction.id, HbTransaction.category_id, HbTransaction.embedding).where(
            HbTransaction.embedding.is_not(None), HbTransaction.category_id.is_not(None)
        )
        try:
            with session_scope(database_url=self._database_url) as session:
                candidates = session.execute(stmt).all()
        except SQLAlchemyError as exc:
            raise _translate(exc, op="select", table=HbTransaction.__tablename__) from exc

        query = np.asarray(embedding, dtype=float)
        rows = [
            (tx_id, category_id, vec)
            for tx_id, category_id, vec in candidates
            if vec and len(vec) == query.shape[0]
        ]
        if not rows or query.size == 0:
            return []

        ids = np.array([r[0] for r in rows])
        sims = _cosine_scores(np.asarray([r[2] for r in rows], dtype=float), query)
        keep = np.flatnonzero(sims > threshold)
        # Descending similarity, ties by ascending id.
        order = keep[np.lexsort((ids[keep], -sims[keep]))][:limit]
        return [
            {"id": int(ids[i]), "category_id": rows[i][1], "similarity": float(sims[i])}
            for i in order
        ]


__all__ = [
    "Filters",
    "IEquals",
    "ILike",
    "NotNull",
    "PermissionDeniedError",
    "Range",
    "Row",
    "SqlStore",
    "Store",
    "StoreError",
]
