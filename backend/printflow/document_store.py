"""Document store adapter.

Collections of JSON documents on top of SQLAlchemy, with equality filters,
ordering, field-level patches (including atomic increments) and live query
subscriptions that re-deliver the full result set after every write.
"""
from __future__ import annotations

import itertools
import json
import logging
import threading
import uuid
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy import Text, func, literal, update
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .config import settings
from .database import Base, build_engine, build_session_factory
from .domain_errors import DocumentNotFound, DomainError, StoreError
from .models import Document

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[list[dict[str, Any]]], None]
Unsubscribe = Callable[[], None]


@dataclass(frozen=True)
class Increment:
    """Patch value that adds ``amount`` to the stored number (missing counts as 0)."""

    amount: int | float = 1


@dataclass(frozen=True)
class QuerySpec:
    collection: str
    where: Mapping[str, Any] = field(default_factory=dict)
    order_by: Optional[str] = None
    descending: bool = False
    limit: Optional[int] = None


@dataclass
class _Listener:
    spec: QuerySpec
    callback: SnapshotCallback


def _as_document(row: Document) -> dict[str, Any]:
    return {"id": row.doc_id, **(row.data or {})}


def _field_equals(name: str, value: Any):
    element = Document.data[name]
    if value is None:
        return element.as_string().is_(None)
    if isinstance(value, bool):
        return element.as_boolean() == value
    if isinstance(value, int):
        return element.as_integer() == value
    if isinstance(value, float):
        return element.as_float() == value
    return element.as_string() == str(value)


def _numeric(name: str, amount: int | float):
    element = Document.data[name]
    stored = element.as_float() if isinstance(amount, float) else element.as_integer()
    return func.coalesce(stored, 0) + amount


def _sqlite_patch(patch: Mapping[str, Any]):
    args: list[Any] = []
    for name, value in patch.items():
        path = f'$."{name}"'
        if isinstance(value, Increment):
            args += [path, _numeric(name, value.amount)]
        else:
            args += [path, func.json(json.dumps(value))]
    return func.json_set(Document.data, *args)


def _postgres_patch(patch: Mapping[str, Any]):
    plain = {k: v for k, v in patch.items() if not isinstance(v, Increment)}
    expr = Document.data
    if plain:
        expr = expr.op("||")(literal(plain, JSONB))
    for name, value in patch.items():
        if isinstance(value, Increment):
            expr = func.jsonb_set(
                expr,
                literal([name], ARRAY(Text)),
                func.to_jsonb(_numeric(name, value.amount)),
                True,
            )
    return expr


def _apply_patch(data: Mapping[str, Any], patch: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(data or {})
    for name, value in patch.items():
        if isinstance(value, Increment):
            merged[name] = (merged.get(name) or 0) + value.amount
        else:
            merged[name] = value
    return merged


class DocumentStore:
    """Collections of JSON documents keyed by generated or explicit ids."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory
        self._listeners: dict[int, _Listener] = {}
        self._listener_ids = itertools.count(1)
        self._lock = threading.Lock()

    @contextmanager
    def _session(self, action: str) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except DomainError:
            session.rollback()
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error(f"❌ Document store failed to {action}: {exc}", exc_info=True)
            raise StoreError(f"Failed to {action}", details={"reason": str(exc)}) from exc
        finally:
            session.close()

    # Reads

    def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        with self._session(f"read {collection}/{doc_id}") as session:
            row = session.query(Document).filter(
                Document.collection == collection,
                Document.doc_id == doc_id,
            ).first()
            return _as_document(row) if row else None

    def query(
        self,
        collection: str,
        *,
        where: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        spec = QuerySpec(
            collection=collection,
            where=dict(where or {}),
            order_by=order_by,
            descending=descending,
            limit=limit,
        )
        return self._run(spec)

    def _run(self, spec: QuerySpec) -> list[dict[str, Any]]:
        with self._session(f"query {spec.collection}") as session:
            q = session.query(Document).filter(Document.collection == spec.collection)
            for name, value in spec.where.items():
                q = q.filter(_field_equals(name, value))
            if spec.order_by:
                key = Document.data[spec.order_by].as_string()
                if spec.descending:
                    q = q.order_by(key.desc(), Document.seq.desc())
                else:
                    q = q.order_by(key.asc(), Document.seq.asc())
            else:
                q = q.order_by(Document.seq.asc())
            if spec.limit is not None:
                q = q.limit(spec.limit)
            return [_as_document(row) for row in q.all()]

    # Writes

    def add(self, collection: str, data: Mapping[str, Any], doc_id: Optional[str] = None) -> str:
        """Insert a new document and return its id."""
        new_id = doc_id or uuid.uuid4().hex
        payload = {k: v for k, v in data.items() if k != "id"}
        with self._session(f"create document in {collection}") as session:
            session.add(Document(collection=collection, doc_id=new_id, data=payload))
        self._notify(collection)
        return new_id

    def set(self, collection: str, doc_id: str, data: Mapping[str, Any], *, merge: bool = False) -> None:
        """Create or replace a document under an explicit id."""
        payload = {k: v for k, v in data.items() if k != "id"}
        with self._session(f"write {collection}/{doc_id}") as session:
            row = session.query(Document).filter(
                Document.collection == collection,
                Document.doc_id == doc_id,
            ).first()
            if row is None:
                session.add(Document(collection=collection, doc_id=doc_id, data=payload))
            elif merge:
                row.data = _apply_patch(row.data, payload)
            else:
                row.data = payload
        self._notify(collection)

    def update(self, collection: str, doc_id: str, patch: Mapping[str, Any]) -> None:
        """Patch top-level fields of an existing document.

        Applied as a single UPDATE statement on SQLite and PostgreSQL so that
        ``Increment`` values never lose concurrent updates.
        """
        patch = {k: v for k, v in patch.items() if k != "id"}
        if not patch:
            if self.get(collection, doc_id) is None:
                raise DocumentNotFound(collection, doc_id)
            return

        with self._session(f"update {collection}/{doc_id}") as session:
            dialect = session.get_bind().dialect.name
            row_filter = (Document.collection == collection, Document.doc_id == doc_id)
            if dialect in ("sqlite", "postgresql"):
                expr = _sqlite_patch(patch) if dialect == "sqlite" else _postgres_patch(patch)
                result = session.execute(
                    update(Document)
                    .where(*row_filter)
                    .values(data=expr, updated_at=func.now())
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    raise DocumentNotFound(collection, doc_id)
            else:
                row = session.query(Document).filter(*row_filter).with_for_update().first()
                if row is None:
                    raise DocumentNotFound(collection, doc_id)
                row.data = _apply_patch(row.data, patch)
        self._notify(collection)

    # Live queries

    def subscribe(
        self,
        collection: str,
        callback: SnapshotCallback,
        *,
        where: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Unsubscribe:
        """Deliver the current result set now and after every write to ``collection``.

        Returns an idempotent unsubscribe handle.
        """
        spec = QuerySpec(
            collection=collection,
            where=dict(where or {}),
            order_by=order_by,
            descending=descending,
        )
        listener_id = next(self._listener_ids)
        with self._lock:
            self._listeners[listener_id] = _Listener(spec=spec, callback=callback)

        def unsubscribe() -> None:
            with self._lock:
                self._listeners.pop(listener_id, None)

        try:
            callback(self._run(spec))
        except Exception:
            unsubscribe()
            raise
        return unsubscribe

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def _notify(self, collection: str) -> None:
        with self._lock:
            listeners = [l for l in self._listeners.values() if l.spec.collection == collection]
        for listener in listeners:
            try:
                listener.callback(self._run(listener.spec))
            except Exception:
                logger.exception(f"Snapshot listener on {collection} failed")


def create_document_store(database_url: str, *, create_schema: bool = False) -> DocumentStore:
    """Open the store; the schema comes from alembic unless ``create_schema`` is set."""
    engine = build_engine(database_url)
    if create_schema:
        Base.metadata.create_all(bind=engine)
    return DocumentStore(build_session_factory(engine))


_store: Optional[DocumentStore] = None
_store_lock = threading.Lock()


def get_document_store() -> DocumentStore:
    """Process-wide store built from DATABASE_URL on first use."""
    global _store
    with _store_lock:
        if _store is None:
            _store = create_document_store(settings.DATABASE_URL, create_schema=settings.DATABASE_AUTO_CREATE)
        return _store


def set_document_store(store: Optional[DocumentStore]) -> None:
    global _store
    with _store_lock:
        _store = store
