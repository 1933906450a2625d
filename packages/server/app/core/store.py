"""
Row store: select / insert / update / delete / upsert over SQLModel tables.

Each call runs in its own short session and commits immediately, so every call
is atomic on its own and no two calls are atomic together. Multi-record flows
that need all-or-nothing behaviour use compensating actions
(``app.services.saga``) rather than a shared transaction.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime, timezone
from typing import Any, Optional, TypeVar

import sqlalchemy as sa
import structlog
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel, select

from app.core.errors import StoreConflict, StoreError

log = structlog.get_logger()

M = TypeVar("M", bound=SQLModel)
T = TypeVar("T")

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class RowStore(ABC):
    """Generic row-level access to the backing store."""

    @abstractmethod
    async def select(
        self,
        model: type[M],
        *,
        in_: Optional[dict[str, Iterable[Any]]] = None,
        limit: Optional[int] = None,
        **equals: Any,
    ) -> list[M]:
        """Rows matching every equality filter and every in-list filter."""

    async def select_one(self, model: type[M], **equals: Any) -> Optional[M]:
        rows = await self.select(model, limit=1, **equals)
        return rows[0] if rows else None

    @abstractmethod
    async def insert(self, row: M) -> M:
        ...

    @abstractmethod
    async def update(self, model: type[M], patch: dict[str, Any], **equals: Any) -> list[M]:
        ...

    @abstractmethod
    async def delete(
        self, model: type[M], *, lt_: Optional[dict[str, Any]] = None, **equals: Any
    ) -> int:
        """Delete rows matching every equality filter and every ``column < value`` filter."""

    @abstractmethod
    async def upsert(
        self, model: type[M], values: dict[str, Any], conflict_keys: tuple[str, ...]
    ) -> M:
        """Insert or overwrite the row identified by ``conflict_keys``. Last write wins."""


def _where(
    model: type[SQLModel],
    equals: dict[str, Any],
    in_: Optional[dict[str, Iterable[Any]]],
    lt_: Optional[dict[str, Any]] = None,
):
    clauses = []
    for column, value in equals.items():
        attr = getattr(model, column)
        clauses.append(attr.is_(None) if value is None else attr == value)
    for column, values in (in_ or {}).items():
        clauses.append(getattr(model, column).in_(list(values)))
    for column, bound in (lt_ or {}).items():
        clauses.append(getattr(model, column) < bound)
    return clauses


class SQLRowStore(RowStore):
    """Row store backed by an async SQLAlchemy engine (Postgres or SQLite)."""

    def __init__(self, session_factory: sessionmaker, *, timeout: float = 10.0):
        self._session_factory = session_factory
        self._timeout = timeout

    async def _run(
        self,
        op: str,
        model: type[SQLModel],
        fn: Callable[[AsyncSession], Awaitable[T]],
    ) -> T:
        table = model.__tablename__
        try:
            async with self._session_factory() as session:
                result = await asyncio.wait_for(fn(session), timeout=self._timeout)
                await session.commit()
                return result
        except IntegrityError as exc:
            log.warning("store.conflict", op=op, table=table, error=str(exc.orig))
            raise StoreConflict(f"{op} on {table} violates a table constraint") from exc
        except (SQLAlchemyError, asyncio.TimeoutError) as exc:
            log.error("store.failed", op=op, table=table, error=repr(exc))
            raise StoreError(f"{op} on {table} failed") from exc

    async def select(self, model, *, in_=None, limit=None, **equals):
        async def _select(session: AsyncSession):
            stmt = select(model).where(*_where(model, equals, in_))
            if limit is not None:
                stmt = stmt.limit(limit)
            result = await session.execute(stmt)
            return list(result.scalars().all())

        return await self._run("select", model, _select)

    async def insert(self, row):
        async def _insert(session: AsyncSession):
            session.add(row)
            await session.flush()
            return row

        return await self._run("insert", type(row), _insert)

    async def update(self, model, patch, **equals):
        async def _update(session: AsyncSession):
            result = await session.execute(select(model).where(*_where(model, equals, None)))
            rows = list(result.scalars().all())
            for row in rows:
                for key, value in patch.items():
                    setattr(row, key, value)
                session.add(row)
            await session.flush()
            return rows

        return await self._run("update", model, _update)

    async def delete(self, model, *, lt_=None, **equals):
        async def _delete(session: AsyncSession):
            result = await session.execute(sa.delete(model).where(*_where(model, equals, None, lt_)))
            return result.rowcount or 0

        return await self._run("delete", model, _delete)

    async def upsert(self, model, values, conflict_keys):
        # Build through the model so Python-side defaults (id, timestamps) apply
        row_values = model(**values).model_dump()
        protected = set(conflict_keys) | {"id", "created_at"}
        overwrite = [k for k in values if k not in protected]

        async def _upsert(session: AsyncSession):
            dialect_insert = _UPSERT_DIALECTS.get(session.bind.dialect.name)
            if dialect_insert is None:
                raise SQLAlchemyError(f"upsert unsupported on {session.bind.dialect.name}")
            stmt = dialect_insert(model).values(**row_values)
            set_ = {k: stmt.excluded[k] for k in overwrite}
            if "updated_at" in row_values:
                set_["updated_at"] = datetime.now(timezone.utc)
            stmt = stmt.on_conflict_do_update(index_elements=list(conflict_keys), set_=set_)
            result = await session.scalars(
                stmt.returning(model), execution_options={"populate_existing": True}
            )
            return result.one()

        return await self._run("upsert", model, _upsert)


# ---------------------------------------------------------------------------
# FastAPI dependency
# ---------------------------------------------------------------------------

_store: Optional[RowStore] = None


def get_store() -> RowStore:
    """Process-wide row store."""
    global _store
    if _store is None:
        from app.core.config import get_settings
        from app.core.database import async_session_factory

        _store = SQLRowStore(
            async_session_factory, timeout=get_settings().database_timeout_seconds
        )
    return _store
