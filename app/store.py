"""
Entity store: document-style access to the five blog collections.

Every public method is one self-contained unit of work: it opens its own
session, runs in its own transaction and commits before returning.  There
is deliberately no way to group calls on different documents into a single
transaction; the services above this layer order their calls so that a
failure between two of them leaves at worst a stale back-reference, never
a dangling forward reference.

Single-document atomicity
-------------------------
Array operations (``push_to_array`` / ``pull_from_array``) lock the target
row with ``SELECT ... FOR UPDATE`` (a no-op on SQLite, which serialises
writers anyway), rewrite the JSON array and commit, so concurrent pushes to
the same document never lose each other's entries.  Both operations have
set-membership semantics: pushing a value that is already present, or
pulling one that is absent, changes nothing.

Every write invalidates the cached detail view of each document it touched.
"""
from __future__ import annotations

import logging
from typing import Any, Generic, Iterable, TypeVar

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.cache import cache
from app.middleware import increment_store_ops
from app.models import Category, Comment, Post, Tag, User, utcnow

logger = logging.getLogger(__name__)

DocT = TypeVar("DocT", User, Post, Category, Tag, Comment)


class DuplicateKeyError(Exception):
    """Raised when an insert or update violates a unique index."""

    def __init__(self, collection: str, detail: str) -> None:
        super().__init__(f"Duplicate key in {collection}: {detail}")
        self.collection = collection


# SQLSTATE for unique_violation; SQLite reports no code, only the message.
_UNIQUE_VIOLATION = "23505"


def _is_unique_violation(exc: IntegrityError) -> bool:
    """True for duplicate-key failures, False for NOT NULL, CHECK and the like."""
    code = getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)
    if code is not None:
        return code == _UNIQUE_VIOLATION
    return "unique constraint" in str(exc.orig).lower()


class Collection(Generic[DocT]):
    """Typed CRUD and array operations over one table-backed collection."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], model: type[DocT]) -> None:
        self._session_factory = session_factory
        self.model = model
        self.name: str = model.__tablename__

    def __repr__(self) -> str:
        return f"Collection({self.name!r})"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _where(self, stmt, filters: dict[str, Any]):
        for field, value in filters.items():
            column = getattr(self.model, field)
            if value is None:
                stmt = stmt.where(column.is_(None))
            elif isinstance(value, (list, tuple, set, frozenset)):
                stmt = stmt.where(column.in_(list(value)))
            else:
                stmt = stmt.where(column == value)
        return stmt

    def _locked(self, doc_id: int):
        return select(self.model).where(self.model.id == doc_id).with_for_update()

    async def _invalidate(self, *doc_ids: int) -> None:
        if doc_ids:
            await cache.invalidate_documents(self.name, *doc_ids)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def find_by_id(self, doc_id: int) -> DocT | None:
        increment_store_ops()
        async with self._session_factory() as session:
            return await session.get(self.model, doc_id)

    async def find_many(self, doc_ids: Iterable[int]) -> list[DocT]:
        """Return the documents whose id is in *doc_ids* (missing ids are skipped)."""
        ids = list(dict.fromkeys(doc_ids))
        if not ids:
            return []
        increment_store_ops()
        async with self._session_factory() as session:
            result = await session.execute(select(self.model).where(self.model.id.in_(ids)))
            return list(result.scalars().all())

    async def find_by_filter(
        self,
        order_by: str | None = None,
        descending: bool = False,
        **filters: Any,
    ) -> list[DocT]:
        """
        Return documents whose fields equal *filters*.

        A ``None`` value matches unset fields; a list/tuple/set value matches
        any of its members.  Ties on *order_by* are broken by id so the result
        order is stable.
        """
        increment_store_ops()
        stmt = self._where(select(self.model), filters)
        if order_by is not None:
            column = getattr(self.model, order_by)
            if descending:
                stmt = stmt.order_by(column.desc(), self.model.id.desc())
            else:
                stmt = stmt.order_by(column.asc(), self.model.id.asc())
        else:
            stmt = stmt.order_by(self.model.id.asc())
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def find_by_array_member(self, field: str, value: Any) -> list[DocT]:
        """
        Return documents whose array *field* contains *value*, ordered by id.

        JSON containment has no portable SQL form across the supported
        backends, so the match runs over the loaded rows.
        """
        increment_store_ops()
        async with self._session_factory() as session:
            result = await session.execute(select(self.model).order_by(self.model.id.asc()))
            return [doc for doc in result.scalars().all() if value in (getattr(doc, field) or [])]

    async def count(self) -> int:
        increment_store_ops()
        async with self._session_factory() as session:
            result = await session.execute(select(func.count()).select_from(self.model))
            return result.scalar_one()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert(self, **fields: Any) -> DocT:
        increment_store_ops()
        doc = self.model(**fields)
        try:
            async with self._session_factory() as session, session.begin():
                session.add(doc)
                await session.flush()
        except IntegrityError as exc:
            if _is_unique_violation(exc):
                raise DuplicateKeyError(self.name, str(exc.orig)) from exc
            raise
        logger.debug("%s: inserted id=%s", self.name, doc.id)
        return doc

    async def update_fields(
        self,
        doc_id: int,
        set_fields: dict[str, Any] | None = None,
        unset: Iterable[str] = (),
    ) -> DocT | None:
        """
        Set and/or unset fields on one document atomically.

        Returns the updated document, or None when *doc_id* does not exist.
        """
        increment_store_ops()
        try:
            async with self._session_factory() as session, session.begin():
                doc = (await session.execute(self._locked(doc_id))).scalar_one_or_none()
                if doc is None:
                    return None
                for field, value in (set_fields or {}).items():
                    setattr(doc, field, value)
                for field in unset:
                    setattr(doc, field, None)
                doc.updated_at = utcnow()
        except IntegrityError as exc:
            if _is_unique_violation(exc):
                raise DuplicateKeyError(self.name, str(exc.orig)) from exc
            raise
        await self._invalidate(doc_id)
        return doc

    async def update_by_filter(
        self,
        filters: dict[str, Any],
        set_fields: dict[str, Any] | None = None,
        unset: Iterable[str] = (),
    ) -> list[int]:
        """
        Apply the same field update to every document matching *filters*.

        Each row is rewritten under its own lock but all rows share one
        statement batch; the ids that were updated are returned.
        """
        increment_store_ops()
        unset = tuple(unset)
        try:
            async with self._session_factory() as session, session.begin():
                stmt = self._where(select(self.model), filters).with_for_update()
                docs = list((await session.execute(stmt)).scalars().all())
                now = utcnow()
                for doc in docs:
                    for field, value in (set_fields or {}).items():
                        setattr(doc, field, value)
                    for field in unset:
                        setattr(doc, field, None)
                    doc.updated_at = now
        except IntegrityError as exc:
            if _is_unique_violation(exc):
                raise DuplicateKeyError(self.name, str(exc.orig)) from exc
            raise
        ids = [doc.id for doc in docs]
        await self._invalidate(*ids)
        return ids

    async def push_to_array(
        self,
        doc_id: int,
        field: str,
        value: Any,
        keep_last: int | None = None,
    ) -> bool:
        """
        Append *value* to the array *field* unless it is already present.

        With *keep_last*, the array is trimmed to its newest *keep_last*
        entries in the same update (oldest evicted first).  Returns False when
        the document does not exist.
        """
        increment_store_ops()
        async with self._session_factory() as session, session.begin():
            doc = (await session.execute(self._locked(doc_id))).scalar_one_or_none()
            if doc is None:
                return False
            current = list(getattr(doc, field) or [])
            updated = current if value in current else current + [value]
            if keep_last is not None:
                updated = updated[-keep_last:] if keep_last > 0 else []
            if updated != current:
                setattr(doc, field, updated)
                doc.updated_at = utcnow()
        if updated != current:
            logger.debug("%s[%s].%s: pushed %r", self.name, doc_id, field, value)
            await self._invalidate(doc_id)
        return True

    async def pull_from_array(self, doc_id: int, field: str, value: Any) -> bool:
        """
        Remove every occurrence of *value* from the array *field*.

        Returns False when the document does not exist.
        """
        increment_store_ops()
        async with self._session_factory() as session, session.begin():
            doc = (await session.execute(self._locked(doc_id))).scalar_one_or_none()
            if doc is None:
                return False
            current = list(getattr(doc, field) or [])
            updated = [item for item in current if item != value]
            if updated != current:
                setattr(doc, field, updated)
                doc.updated_at = utcnow()
        if updated != current:
            logger.debug("%s[%s].%s: pulled %r", self.name, doc_id, field, value)
            await self._invalidate(doc_id)
        return True

    async def delete_by_id(self, doc_id: int) -> DocT | None:
        increment_store_ops()
        async with self._session_factory() as session, session.begin():
            doc = await session.get(self.model, doc_id)
            if doc is None:
                return None
            await session.delete(doc)
        logger.debug("%s: deleted id=%s", self.name, doc_id)
        await self._invalidate(doc_id)
        return doc

    async def delete_by_filter(self, **filters: Any) -> int:
        increment_store_ops()
        async with self._session_factory() as session, session.begin():
            ids = list((await session.execute(self._where(select(self.model.id), filters))).scalars().all())
            if ids:
                await session.execute(delete(self.model).where(self.model.id.in_(ids)))
        if ids:
            logger.debug("%s: deleted %d document(s) by filter %r", self.name, len(ids), filters)
            await self._invalidate(*ids)
        return len(ids)


class EntityStore:
    """
    The five collections, bound to one session factory.

    Services receive this object explicitly; no collection is ever looked up
    by name at runtime.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.users: Collection[User] = Collection(session_factory, User)
        self.posts: Collection[Post] = Collection(session_factory, Post)
        self.categories: Collection[Category] = Collection(session_factory, Category)
        self.tags: Collection[Tag] = Collection(session_factory, Tag)
        self.comments: Collection[Comment] = Collection(session_factory, Comment)
