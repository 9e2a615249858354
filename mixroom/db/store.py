"""Data store adapter — the query/update interface the core reads and writes through.

Lookups are keyed by ORM model + a filter mapping, so callers never build
SQL themselves:

    store = DataStore(session)
    release = await store.get(Release, id=release_id)
    member = await store.get(ReleaseMember, release_id=rid, user_id=uid, accepted_at=NOT_NULL)
    await store.update(Release, {"id": rid}, {"title": "New"})
    await store.upsert(PortalTrackSetting, {"share_id": sid, "track_id": tid}, {"visible": True})

Filter values: a scalar compares with ``==``; ``None`` means ``IS NULL``;
``NOT_NULL`` means ``IS NOT NULL``; a list/tuple/set means ``IN``.

Store failures that can succeed on a second attempt (lost connections,
locked databases, a racing insert on upsert) are raised as
``TransientError``. The store may enforce its own row-level security, but
nothing here relies on it.
"""
from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any, TypeVar

from sqlalchemy import ColumnElement, delete as sa_delete, select, update as sa_update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from mixroom.db.database import Base
from mixroom.errors import NotFoundError, TransientError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=Base)


class _NotNull:
    """Filter sentinel for ``IS NOT NULL``."""

    def __repr__(self) -> str:
        return "NOT_NULL"


NOT_NULL = _NotNull()


@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except (OperationalError, InterfaceError) as exc:
        logger.warning("Store %s failed transiently: %s", operation, exc)
        raise TransientError(f"Store unavailable during {operation}") from exc


def _where(model: type[Base], filters: Mapping[str, Any]) -> list[ColumnElement[bool]]:
    clauses: list[ColumnElement[bool]] = []
    for name, value in filters.items():
        column = getattr(model, name)
        if value is None:
            clauses.append(column.is_(None))
        elif value is NOT_NULL:
            clauses.append(column.is_not(None))
        elif isinstance(value, (list, tuple, set, frozenset)):
            clauses.append(column.in_(list(value)))
        else:
            clauses.append(column == value)
    return clauses


class DataStore:
    """Thin persistence adapter over an ``AsyncSession``.

    Writes are flushed, not committed; the request scope (``get_db``) owns
    the transaction.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, model: type[M], **filters: Any) -> M | None:
        """Return the single row matching *filters*, or None."""
        with _translate_errors(f"get {model.__tablename__}"):
            result = await self.session.execute(select(model).where(*_where(model, filters)))
            return result.scalars().first()

    async def list(
        self,
        model: type[M],
        *,
        order_by: str | tuple[str, ...] | None = None,
        **filters: Any,
    ) -> list[M]:
        """Return all rows matching *filters*, optionally ordered by column name(s)."""
        stmt = select(model).where(*_where(model, filters))
        if order_by:
            names = (order_by,) if isinstance(order_by, str) else order_by
            stmt = stmt.order_by(*(getattr(model, n) for n in names))
        with _translate_errors(f"list {model.__tablename__}"):
            result = await self.session.execute(stmt)
            return list(result.scalars().all())

    async def insert(self, row: M) -> M:
        """Add *row* and flush so defaults and the primary key are populated."""
        with _translate_errors(f"insert {row.__tablename__}"):
            self.session.add(row)
            await self.session.flush()
            await self.session.refresh(row)
        return row

    async def update(
        self,
        model: type[M],
        filters: Mapping[str, Any],
        patch: Mapping[str, Any],
    ) -> M:
        """Apply *patch* to the row matching *filters*.

        Raises:
            NotFoundError: No row matches.
        """
        row = await self.get(model, **filters)
        if row is None:
            raise NotFoundError(f"{model.__tablename__} row not found")
        for name, value in patch.items():
            setattr(row, name, value)
        with _translate_errors(f"update {model.__tablename__}"):
            await self.session.flush()
            await self.session.refresh(row)
        return row

    async def upsert(
        self,
        model: type[M],
        conflict_key: Mapping[str, Any],
        values: Mapping[str, Any],
    ) -> M:
        """Update the row identified by *conflict_key*, inserting it if absent.

        Only the columns in *values* are written on update, so a caller that
        upserts ``approval_status`` never clobbers ``visible``.
        """
        row = await self.get(model, **conflict_key)
        if row is None:
            row = model(**{**conflict_key, **values})
            self.session.add(row)
        else:
            for name, value in values.items():
                setattr(row, name, value)
        try:
            with _translate_errors(f"upsert {model.__tablename__}"):
                await self.session.flush()
                await self.session.refresh(row)
        except IntegrityError as exc:
            # Another writer inserted the same key first; a retry lands as an update.
            logger.warning("Upsert on %s raced another insert: %s", model.__tablename__, exc)
            raise TransientError(f"Concurrent write to {model.__tablename__}") from exc
        return row

    async def delete(self, model: type[M], **filters: Any) -> int:
        """Delete rows matching *filters*; return the number removed."""
        with _translate_errors(f"delete {model.__tablename__}"):
            result = await self.session.execute(
                sa_delete(model).where(*_where(model, filters))
            )
            await self.session.flush()
        return int(getattr(result, "rowcount", 0) or 0)

    async def compare_and_set(
        self,
        model: type[M],
        filters: Mapping[str, Any],
        expected: Mapping[str, Any],
        patch: Mapping[str, Any],
    ) -> M | None:
        """Apply *patch* only if the row still holds the *expected* values.

        Returns the refreshed row when the write landed, None when another
        writer changed the row first (or it no longer exists).
        """
        stmt = (
            sa_update(model)
            .where(*_where(model, {**filters, **expected}))
            .values(**patch)
            .execution_options(synchronize_session="evaluate")
        )
        with _translate_errors(f"compare_and_set {model.__tablename__}"):
            result = await self.session.execute(stmt)
            if not int(getattr(result, "rowcount", 0) or 0):
                return None
            row = await self.get(model, **filters)
            if row is not None:
                await self.session.refresh(row)
        return row

    async def refresh(self, row: M) -> M:
        """Reload *row* from the store, discarding in-session values."""
        with _translate_errors(f"refresh {row.__tablename__}"):
            await self.session.refresh(row)
        return row
