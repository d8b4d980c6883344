"""Concrete DocumentStore implementation backed by SQLAlchemy async sessions.

All collections share the ``documents`` table; each store instance is
bound to one collection and one record type. Documents are kept as JSON
and translated through a RecordCodec, so the stored shape may drift
without breaking readers.
"""

import asyncio
import dataclasses
import logging
import operator
import types
import uuid
from collections.abc import Awaitable, Callable, Iterable, Mapping
from datetime import datetime, timezone
from typing import Any, TypeVar, Union, get_args, get_origin

from sqlalchemy import case, delete, func, or_, select
from sqlalchemy.exc import (
    DisconnectionError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    TimeoutError as PoolTimeoutError,
)
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.application.interfaces import DocumentQuery, DocumentStore, FieldFilter
from app.domain.entities import RECORD_METADATA_FIELDS, Record
from app.domain.exceptions import (
    DecodeError,
    DuplicateEntityError,
    EntityNotFoundError,
    StoreUnavailableError,
)
from app.infrastructure.database.models import DocumentKeyModel, DocumentModel
from app.infrastructure.database.record_codec import RecordCodec

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=Record)
T = TypeVar("T")

# Backend failures a caller may retry.
_UNAVAILABLE_ERRORS = (
    OperationalError,
    InterfaceError,
    DisconnectionError,
    PoolTimeoutError,
    ConnectionError,
    OSError,
    asyncio.TimeoutError,
)

_SQL_OPERATORS = {
    "==": operator.eq,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}

# JSON value types per dialect that compare natively in SQL, by field kind.
_JSON_TYPES = {
    "sqlite": {"text": ("text",), "number": ("integer", "real")},
    "postgresql": {"text": ("string",), "number": ("number",)},
}


class SQLAlchemyDocumentStore(DocumentStore[RecordT]):
    """Implements the DocumentStore port for one collection.

    The store only holds a session factory; every operation runs in its own
    session and transaction, so one instance is safe to share between
    concurrent requests.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        collection: str,
        codec: RecordCodec[RecordT],
        *,
        unique_fields: Iterable[str] = (),
        timeout: float = 10.0,
    ):
        self._session_factory = session_factory
        self._collection = collection
        self._codec = codec
        self._unique_fields = tuple(unique_fields)
        self._timeout = timeout

    @property
    def collection(self) -> str:
        return self._collection

    @property
    def codec(self) -> RecordCodec[RecordT]:
        return self._codec

    # ── Write operations ─────────────────────────────────────────────

    async def create(self, record: RecordT) -> str:
        record_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        stamped = dataclasses.replace(record, id=None, created_at=now, updated_at=now)
        data = self._codec.encode(stamped)

        async def work(session: AsyncSession) -> None:
            session.add(DocumentModel(id=record_id, collection=self._collection, data=data))
            await session.flush()
            for field_name in self._unique_fields:
                await self._claim_key(session, field_name, data, record_id)

        await self._run("create", work)
        logger.info("Created %s document %s", self._collection, record_id)
        return record_id

    async def update(self, record_id: str, changes: Mapping[str, Any]) -> RecordT:
        protected = RECORD_METADATA_FIELDS.intersection(changes)
        if protected:
            raise ValueError(
                f"Fields {sorted(protected)} are managed by the store and cannot be updated"
            )
        encoded = self._codec.encode_fields(changes)
        encoded[self._codec.storage_key("updated_at")] = self._codec.encode_timestamp(
            datetime.now(timezone.utc)
        )

        async def work(session: AsyncSession) -> RecordT:
            model = await self._fetch(session, record_id, for_update=True)
            previous = dict(model.data or {})
            merged = {**previous, **encoded}
            for field_name in self._unique_fields:
                await self._reclaim_key(session, field_name, previous, merged, record_id)
            model.data = merged
            await session.flush()
            return self._codec.decode(merged, record_id=record_id)

        updated = await self._run("update", work)
        logger.debug(
            "Updated %s document %s fields=%s", self._collection, record_id, sorted(changes)
        )
        return updated

    async def delete(self, record_id: str) -> None:
        async def work(session: AsyncSession) -> int:
            await session.execute(
                delete(DocumentKeyModel).where(
                    DocumentKeyModel.collection == self._collection,
                    DocumentKeyModel.document_id == record_id,
                )
            )
            result = await session.execute(
                delete(DocumentModel).where(
                    DocumentModel.collection == self._collection,
                    DocumentModel.id == record_id,
                )
            )
            return result.rowcount

        deleted = await self._run("delete", work)
        if deleted:
            logger.info("Deleted %s document %s", self._collection, record_id)
        else:
            logger.debug("Delete of missing %s document %s ignored", self._collection, record_id)

    # ── Read operations ──────────────────────────────────────────────

    async def get(self, record_id: str) -> RecordT:
        async def work(session: AsyncSession) -> RecordT:
            model = await self._fetch(session, record_id)
            return self._codec.decode(model.data or {}, record_id=model.id)

        return await self._run("get", work)

    async def query(self, query: DocumentQuery) -> list[RecordT]:
        """Filter in SQL where the stored JSON type allows it, then check exactly.

        The SQL clauses only narrow the candidate rows; each candidate is
        checked again on its decoded filter fields. Only the rows returned
        are decoded in full, so a malformed document elsewhere in the
        collection does not fail the query.
        """
        clauses = [
            (clause, self._filter_value(clause.field_name, clause.value))
            for clause in query.filters
        ]

        async def work(session: AsyncSession) -> list[tuple[str, dict]]:
            dialect = session.get_bind().dialect.name
            stmt = (
                select(DocumentModel.id, DocumentModel.data)
                .where(DocumentModel.collection == self._collection)
                .order_by(DocumentModel.pk)
            )
            for clause, expected in clauses:
                condition = self._prefilter(dialect, clause, expected)
                if condition is not None:
                    stmt = stmt.where(condition)
            result = await session.execute(stmt)
            return [(row.id, row.data or {}) for row in result.all()]

        rows = await self._run("query", work)
        matched = [
            (doc_id, data)
            for doc_id, data in rows
            if self._matches(doc_id, data, clauses)
        ]
        logger.debug(
            "Query on %s: %d candidates, %d matched", self._collection, len(rows), len(matched)
        )
        if query.order_by:
            order_by = query.order_by
            matched.sort(
                key=lambda row: _sort_key(self._sort_value(row[0], row[1], order_by)),
                reverse=query.descending,
            )
        if query.limit is not None:
            matched = matched[: query.limit]
        return [self._codec.decode(data, record_id=doc_id) for doc_id, data in matched]

    # ── Helpers ──────────────────────────────────────────────────────

    async def _run(self, operation: str, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        """Run ``work`` in its own transaction under the store deadline."""
        try:
            return await asyncio.wait_for(self._in_transaction(work), timeout=self._timeout)
        except _UNAVAILABLE_ERRORS as exc:
            logger.warning(
                "Document store %s on '%s' failed: %s: %s",
                operation,
                self._collection,
                type(exc).__name__,
                exc,
            )
            raise StoreUnavailableError(operation, self._collection, exc) from exc

    async def _in_transaction(self, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async with self._session_factory() as session:
            async with session.begin():
                return await work(session)

    async def _fetch(
        self, session: AsyncSession, record_id: str, *, for_update: bool = False
    ) -> DocumentModel:
        stmt = select(DocumentModel).where(
            DocumentModel.collection == self._collection,
            DocumentModel.id == record_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        model = result.scalar_one_or_none()
        if model is None:
            raise EntityNotFoundError(self._codec.entity_type, record_id)
        return model

    async def _load_all(self, operation: str) -> list[RecordT]:
        """Materialize every document of the collection, then decode."""

        async def work(session: AsyncSession) -> list[tuple[str, dict]]:
            result = await session.execute(
                select(DocumentModel.id, DocumentModel.data)
                .where(DocumentModel.collection == self._collection)
                .order_by(DocumentModel.pk)
            )
            return [(row.id, row.data) for row in result.all()]

        rows = await self._run(operation, work)
        logger.debug("Loaded %d %s documents", len(rows), self._collection)
        return [self._codec.decode(data or {}, record_id=doc_id) for doc_id, data in rows]

    def _prefilter(self, dialect: str, clause: FieldFilter, expected: Any) -> Any | None:
        """SQL condition narrowing rows for ``clause``, or None to check in Python only.

        Rows whose stored value has a different JSON type than the declared
        field (numbers in a text field, numeric strings in a number field)
        or no value at all are kept for the exact check after decoding.
        """
        sql_op = _SQL_OPERATORS.get(clause.op)
        kind = _field_kind(self._codec.declared_type(clause.field_name))
        native = _JSON_TYPES.get(dialect, {}).get(kind)
        if sql_op is None or native is None or expected is None:
            return None
        if kind == "text" and (clause.op != "==" or not isinstance(expected, str)):
            return None
        if kind == "number" and (
            isinstance(expected, bool) or not isinstance(expected, (int, float))
        ):
            return None

        key = self._codec.storage_key(clause.field_name)
        element = DocumentModel.data[key]
        if dialect == "sqlite":
            json_type = func.json_type(DocumentModel.data, f'$."{key}"')
        else:
            json_type = func.jsonb_typeof(element)
        value = element.as_string() if kind == "text" else element.as_float()
        return or_(
            json_type.is_(None),
            json_type.not_in(native),
            sql_op(case((json_type.in_(native), value), else_=None), expected),
        )

    def _matches(
        self,
        doc_id: str,
        data: Mapping[str, Any],
        clauses: list[tuple[FieldFilter, Any]],
    ) -> bool:
        for clause, expected in clauses:
            try:
                actual = self._field_of(doc_id, data, clause.field_name)
            except DecodeError as exc:
                logger.warning(
                    "Skipping %s document %s in query: %s", self._collection, doc_id, exc
                )
                return False
            if not clause.matches(actual, expected):
                return False
        return True

    def _field_of(self, doc_id: str, data: Mapping[str, Any], field_name: str) -> Any:
        if field_name == "id":
            return doc_id
        return self._codec.decode_field(data, field_name)

    def _sort_value(self, doc_id: str, data: Mapping[str, Any], field_name: str) -> Any:
        # Rows that fail here fail again when decoded for the result.
        try:
            return self._field_of(doc_id, data, field_name)
        except DecodeError:
            return None

    def _filter_value(self, field_name: str, value: Any) -> Any:
        try:
            return self._codec.decode_value(field_name, value)
        except DecodeError as exc:
            raise ValueError(f"Invalid filter value for '{field_name}': {exc.reason}") from exc

    def _key_value(self, field_name: str, data: Mapping[str, Any]) -> str | None:
        value = data.get(self._codec.storage_key(field_name))
        if value is None or value == "":
            return None
        return str(value)

    async def _claim_key(
        self,
        session: AsyncSession,
        field_name: str,
        data: Mapping[str, Any],
        record_id: str,
    ) -> None:
        value = self._key_value(field_name, data)
        if value is None:
            return
        session.add(
            DocumentKeyModel(
                collection=self._collection,
                field=field_name,
                value=value,
                document_id=record_id,
            )
        )
        try:
            await session.flush()
        except IntegrityError as exc:
            raise DuplicateEntityError(self._codec.entity_type, field_name, value) from exc

    async def _reclaim_key(
        self,
        session: AsyncSession,
        field_name: str,
        previous: Mapping[str, Any],
        merged: Mapping[str, Any],
        record_id: str,
    ) -> None:
        if self._key_value(field_name, previous) == self._key_value(field_name, merged):
            return
        await session.execute(
            delete(DocumentKeyModel).where(
                DocumentKeyModel.collection == self._collection,
                DocumentKeyModel.field == field_name,
                DocumentKeyModel.document_id == record_id,
            )
        )
        await self._claim_key(session, field_name, merged, record_id)

    # Kept last: the method name shadows the builtin inside the class body.
    async def list(self) -> list[RecordT]:
        return await self._load_all("list")


def _sort_key(value: Any) -> tuple:
    """Order missing values after present ones."""
    return (1,) if value is None else (0, value)


def _field_kind(declared: Any) -> str | None:
    """"text" or "number" for scalar fields that can be compared in SQL."""
    if get_origin(declared) in (Union, types.UnionType):
        args = [arg for arg in get_args(declared) if arg is not type(None)]
        declared = args[0] if len(args) == 1 else None
    if declared is str:
        return "text"
    if declared in (int, float):
        return "number"
    return None
