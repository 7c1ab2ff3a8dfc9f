"""
RestGate Backend — Model Stores
===============================

What:  The per-model operation capability the dispatcher works against:
       count / find_many / find_unique / create / update / delete.
Why:   The dispatcher should not know about SQLAlchemy. It receives one
       `ModelStore` per `ResourceKey` at startup and calls it through the
       protocol below; tests substitute an in-memory fake.
How:   `SqlAlchemyModelStore` opens a fresh session for every operation, so
       the count and list reads of a collection GET can run concurrently on
       separate pooled connections.

Filter predicates (`where`):
    {"published": true}                      → published = true
    {"author_id": null}                      → author_id IS NULL
    {"title": {"contains": "intro"}}         → title LIKE '%intro%'
    {"created_at": {"gte": "2024-01-01"}}    → created_at >= '2024-01-01'

    Supported operators: equals, not, in, notIn, lt, lte, gt, gte,
    contains, startsWith, endsWith. Unknown fields or operators raise
    MalformedQueryError (→ 400) before any SQL runs.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Type

from sqlalchemy import ColumnElement, DateTime, asc, desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from restgate.database import Base
from restgate.exceptions import MalformedQueryError

logger = logging.getLogger(__name__)

Resource = Dict[str, Any]
Where = Mapping[str, Any]
OrderBy = Mapping[str, str]


class ModelStore(Protocol):
    async def count(self, where: Optional[Where] = None) -> int: ...

    async def find_many(
        self,
        skip: int = 0,
        take: Optional[int] = None,
        order_by: Optional[OrderBy] = None,
        where: Optional[Where] = None,
    ) -> List[Resource]: ...

    async def find_unique(self, id: str) -> Optional[Resource]: ...

    async def create(self, data: Mapping[str, Any]) -> Resource: ...

    async def update(self, id: str, data: Mapping[str, Any]) -> Optional[Resource]: ...

    async def delete(self, id: str) -> bool: ...


def _like_escape(value: Any) -> str:
    return str(value).replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


_OPERATORS: Dict[str, Callable[[Any, Any], ColumnElement]] = {
    "equals": lambda col, v: col.is_(None) if v is None else col == v,
    "not": lambda col, v: col.is_not(None) if v is None else col != v,
    "in": lambda col, v: col.in_(v),
    "notIn": lambda col, v: col.not_in(v),
    "lt": lambda col, v: col < v,
    "lte": lambda col, v: col <= v,
    "gt": lambda col, v: col > v,
    "gte": lambda col, v: col >= v,
    "contains": lambda col, v: col.like(f"%{_like_escape(v)}%", escape="\\"),
    "startsWith": lambda col, v: col.like(f"{_like_escape(v)}%", escape="\\"),
    "endsWith": lambda col, v: col.like(f"%{_like_escape(v)}", escape="\\"),
}

_LIST_OPERATORS = {"in", "notIn"}


class SqlAlchemyModelStore:
    """
    `ModelStore` backed by one SQLAlchemy ORM model.

    Args:
        model:            ORM class (must inherit from `Base` and have an `id` column)
        session_factory:  async_sessionmaker shared by every store
    """

    def __init__(
        self,
        model: Type[Base],
        session_factory: async_sessionmaker[AsyncSession],
    ):
        self.model = model
        self._session_factory = session_factory
        self._columns = {attr.key: attr for attr in model.__mapper__.column_attrs}

    # ── Query building ────────────────────────────────────────────────────

    def _column(self, name: str, parameter: str):
        if name not in self._columns:
            raise MalformedQueryError(
                message=f"Unknown field '{name}' for {self.model.__name__}",
                parameter=parameter,
            )
        return getattr(self.model, name)

    def _coerce(self, name: str, value: Any) -> Any:
        # JSON has no datetime type; ISO strings are parsed for DateTime columns
        column = self._columns[name].columns[0]
        if isinstance(value, str) and isinstance(column.type, DateTime):
            try:
                return datetime.fromisoformat(value)
            except ValueError:
                raise MalformedQueryError(
                    message=f"Invalid datetime '{value}' for '{name}'",
                    parameter="filter",
                )
        return value

    def _where_clauses(self, where: Optional[Where]) -> List[ColumnElement]:
        clauses: List[ColumnElement] = []
        for name, predicate in (where or {}).items():
            column = self._column(name, "filter")
            if not isinstance(predicate, Mapping):
                clauses.append(_OPERATORS["equals"](column, self._coerce(name, predicate)))
                continue
            for op, value in predicate.items():
                builder = _OPERATORS.get(op)
                if builder is None:
                    raise MalformedQueryError(
                        message=f"Unknown filter operator '{op}' on '{name}'",
                        parameter="filter",
                    )
                if op in _LIST_OPERATORS and not isinstance(value, list):
                    raise MalformedQueryError(
                        message=f"Operator '{op}' on '{name}' expects a list",
                        parameter="filter",
                    )
                if op in _LIST_OPERATORS:
                    value = [self._coerce(name, item) for item in value]
                else:
                    value = self._coerce(name, value)
                clauses.append(builder(column, value))
        return clauses

    def _order_clauses(self, order_by: Optional[OrderBy]) -> List[ColumnElement]:
        clauses = []
        for name, direction in (order_by or {}).items():
            column = self._column(name, "sortBy")
            clauses.append(desc(column) if direction == "desc" else asc(column))
        return clauses

    # ── Reads ─────────────────────────────────────────────────────────────

    async def count(self, where: Optional[Where] = None) -> int:
        stmt = select(func.count()).select_from(self.model)
        for clause in self._where_clauses(where):
            stmt = stmt.where(clause)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return int(result.scalar_one())

    async def find_many(
        self,
        skip: int = 0,
        take: Optional[int] = None,
        order_by: Optional[OrderBy] = None,
        where: Optional[Where] = None,
    ) -> List[Resource]:
        stmt = select(self.model)
        for clause in self._where_clauses(where):
            stmt = stmt.where(clause)
        order_clauses = self._order_clauses(order_by)
        if order_clauses:
            stmt = stmt.order_by(*order_clauses)
        if skip:
            stmt = stmt.offset(skip)
        if take is not None:
            stmt = stmt.limit(take)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [row.to_dict() for row in result.scalars().all()]

    async def find_unique(self, id: str) -> Optional[Resource]:
        async with self._session_factory() as session:
            row = await session.get(self.model, id)
            return row.to_dict() if row is not None else None

    # ── Writes ────────────────────────────────────────────────────────────
    # Each write runs in its own transaction; session.begin() commits on
    # success and rolls back if the block raises.

    async def create(self, data: Mapping[str, Any]) -> Resource:
        async with self._session_factory() as session:
            async with session.begin():
                row = self.model(**data)
                session.add(row)
                await session.flush()
                await session.refresh(row)
            logger.info("Created %s %s", self.model.__name__, row.id)
            return row.to_dict()

    async def update(self, id: str, data: Mapping[str, Any]) -> Optional[Resource]:
        async with self._session_factory() as session:
            async with session.begin():
                row = await session.get(self.model, id)
                if row is None:
                    return None
                for key, value in data.items():
                    setattr(row, key, value)
                await session.flush()
                await session.refresh(row)
            logger.info("Updated %s %s (%s)", self.model.__name__, id, ", ".join(data) or "no fields")
            return row.to_dict()

    async def delete(self, id: str) -> bool:
        async with self._session_factory() as session:
            async with session.begin():
                row = await session.get(self.model, id)
                if row is None:
                    return False
                await session.delete(row)
            logger.info("Deleted %s %s", self.model.__name__, id)
            return True


def build_model_stores(
    models: Mapping[Any, Type[Base]],
    session_factory: async_sessionmaker[AsyncSession],
) -> Dict[Any, SqlAlchemyModelStore]:
    """Bind one store per resource key to the shared session factory."""
    return {key: SqlAlchemyModelStore(model, session_factory) for key, model in models.items()}

