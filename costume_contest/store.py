"""Document and object store interfaces plus in-process implementations.

The contest runs against a managed backend (document database with live
subscriptions, object storage). The protocols describe the small surface the
contest code uses; the Memory* classes implement it fully in-process and back
the tests and local runs.
"""
from __future__ import annotations

import logging
import threading
import uuid
from copy import deepcopy
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from .errors import NotFound, StoreError

logger = logging.getLogger(__name__)

Document = Dict[str, Any]
Snapshot = List[Tuple[str, Document]]
SnapshotCallback = Callable[[Snapshot], None]
DocumentCallback = Callable[[Optional[Document]], None]
ErrorCallback = Callable[[Exception], None]
Unsubscribe = Callable[[], None]

DEFAULT_BATCH_LIMIT = 500


class WriteBatch(Protocol):
    def set(self, collection: str, doc_id: str, data: Document) -> None:
        ...

    def update(self, collection: str, doc_id: str, data: Document) -> None:
        ...

    def delete(self, collection: str, doc_id: str) -> None:
        ...

    def __len__(self) -> int:
        ...

    def commit(self) -> None:
        ...


class DocumentStore(Protocol):
    def list(self, collection: str) -> Snapshot:
        ...

    def get(self, collection: str, doc_id: str) -> Document | None:
        ...

    def find(self, collection: str, field: str, value: Any) -> Snapshot:
        ...

    def add(self, collection: str, data: Document) -> str:
        ...

    def set(self, collection: str, doc_id: str, data: Document) -> None:
        ...

    def update(self, collection: str, doc_id: str, data: Document) -> None:
        ...

    def delete(self, collection: str, doc_id: str) -> None:
        ...

    def upsert_where(
        self, collection: str, field: str, value: Any, data: Document
    ) -> Tuple[str, Document]:
        ...

    def batch(self) -> WriteBatch:
        ...

    def subscribe(
        self,
        collection: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> Unsubscribe:
        ...

    def subscribe_doc(
        self,
        collection: str,
        doc_id: str,
        on_snapshot: DocumentCallback,
        on_error: ErrorCallback | None = None,
    ) -> Unsubscribe:
        ...


class ObjectStore(Protocol):
    def put(self, path: str, data: bytes, content_type: str) -> str:
        ...

    def list(self, prefix: str) -> List[str]:
        ...

    def delete(self, path: str) -> None:
        ...


@dataclass
class _BatchOp:
    kind: str  # 'set' | 'update' | 'delete'
    collection: str
    doc_id: str
    data: Document | None = None


@dataclass
class _Subscription:
    collection: str
    doc_id: str | None
    on_snapshot: Callable[[Any], None]
    on_error: ErrorCallback | None


def _new_id() -> str:
    return uuid.uuid4().hex[:20]


class MemoryWriteBatch:
    def __init__(self, store: "MemoryDocumentStore", limit: int) -> None:
        self._store = store
        self._limit = limit
        self._ops: list[_BatchOp] = []
        self._committed = False

    def _append(self, op: _BatchOp) -> None:
        if self._committed:
            raise StoreError("batch already committed")
        if len(self._ops) >= self._limit:
            raise StoreError(f"batch exceeds {self._limit} operations")
        self._ops.append(op)

    def set(self, collection: str, doc_id: str, data: Document) -> None:
        self._append(_BatchOp("set", collection, doc_id, deepcopy(data)))

    def update(self, collection: str, doc_id: str, data: Document) -> None:
        self._append(_BatchOp("update", collection, doc_id, deepcopy(data)))

    def delete(self, collection: str, doc_id: str) -> None:
        self._append(_BatchOp("delete", collection, doc_id))

    def __len__(self) -> int:
        return len(self._ops)

    def commit(self) -> None:
        if self._committed:
            raise StoreError("batch already committed")
        self._store._apply_batch(self._ops)
        self._committed = True


class MemoryDocumentStore:
    """In-process document store with synchronous live subscriptions."""

    def __init__(self, batch_limit: int = DEFAULT_BATCH_LIMIT) -> None:
        self._collections: dict[str, dict[str, Document]] = {}
        self._subscriptions: list[_Subscription] = []
        self._lock = threading.RLock()
        self._batch_limit = batch_limit

    # ------------------------------------------------------------ reads

    def list(self, collection: str) -> Snapshot:
        with self._lock:
            docs = self._collections.get(collection, {})
            return [(doc_id, deepcopy(doc)) for doc_id, doc in docs.items()]

    def get(self, collection: str, doc_id: str) -> Document | None:
        with self._lock:
            doc = self._collections.get(collection, {}).get(doc_id)
            return deepcopy(doc) if doc is not None else None

    def find(self, collection: str, field: str, value: Any) -> Snapshot:
        with self._lock:
            return [
                (doc_id, deepcopy(doc))
                for doc_id, doc in self._collections.get(collection, {}).items()
                if doc.get(field) == value
            ]

    # ----------------------------------------------------------- writes

    def add(self, collection: str, data: Document) -> str:
        doc_id = _new_id()
        with self._lock:
            self._collections.setdefault(collection, {})[doc_id] = deepcopy(data)
        self._notify({collection})
        return doc_id

    def set(self, collection: str, doc_id: str, data: Document) -> None:
        with self._lock:
            self._collections.setdefault(collection, {})[doc_id] = deepcopy(data)
        self._notify({collection})

    def update(self, collection: str, doc_id: str, data: Document) -> None:
        with self._lock:
            docs = self._collections.get(collection, {})
            if doc_id not in docs:
                raise NotFound(f"{collection}/{doc_id} does not exist")
            docs[doc_id].update(deepcopy(data))
        self._notify({collection})

    def delete(self, collection: str, doc_id: str) -> None:
        with self._lock:
            self._collections.get(collection, {}).pop(doc_id, None)
        self._notify({collection})

    def upsert_where(
        self, collection: str, field: str, value: Any, data: Document
    ) -> Tuple[str, Document]:
        """Update the first document whose ``field`` equals ``value``, or insert one.

        Lookup and write happen under one lock, so concurrent callers with the
        same key never produce two documents.
        """
        with self._lock:
            docs = self._collections.setdefault(collection, {})
            for doc_id, doc in docs.items():
                if doc.get(field) == value:
                    doc.update(deepcopy(data))
                    result = (doc_id, deepcopy(doc))
                    break
            else:
                doc_id = _new_id()
                doc = deepcopy(data)
                doc[field] = value
                docs[doc_id] = doc
                result = (doc_id, deepcopy(doc))
        self._notify({collection})
        return result

    def batch(self) -> MemoryWriteBatch:
        return MemoryWriteBatch(self, self._batch_limit)

    def _apply_batch(self, ops: list[_BatchOp]) -> None:
        touched: set[str] = set()
        with self._lock:
            # Validate everything first so a failing batch writes nothing.
            for op in ops:
                if op.kind == "update" and op.doc_id not in self._collections.get(
                    op.collection, {}
                ):
                    raise NotFound(f"{op.collection}/{op.doc_id} does not exist")
            for op in ops:
                docs = self._collections.setdefault(op.collection, {})
                if op.kind == "set":
                    docs[op.doc_id] = deepcopy(op.data or {})
                elif op.kind == "update":
                    docs[op.doc_id].update(deepcopy(op.data or {}))
                elif op.kind == "delete":
                    docs.pop(op.doc_id, None)
                touched.add(op.collection)
        self._notify(touched)

    # ---------------------------------------------------- subscriptions

    def subscribe(
        self,
        collection: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> Unsubscribe:
        sub = _Subscription(collection, None, on_snapshot, on_error)
        return self._register(sub)

    def subscribe_doc(
        self,
        collection: str,
        doc_id: str,
        on_snapshot: DocumentCallback,
        on_error: ErrorCallback | None = None,
    ) -> Unsubscribe:
        sub = _Subscription(collection, doc_id, on_snapshot, on_error)
        return self._register(sub)

    def _register(self, sub: _Subscription) -> Unsubscribe:
        with self._lock:
            self._subscriptions.append(sub)
        self._deliver(sub)

        def unsubscribe() -> None:
            with self._lock:
                if sub in self._subscriptions:
                    self._subscriptions.remove(sub)

        return unsubscribe

    def _deliver(self, sub: _Subscription) -> None:
        try:
            if sub.doc_id is None:
                payload: Any = self.list(sub.collection)
            else:
                payload = self.get(sub.collection, sub.doc_id)
            sub.on_snapshot(payload)
        except Exception as exc:
            if sub.on_error is None:
                raise
            sub.on_error(exc)

    def _notify(self, collections: set[str]) -> None:
        with self._lock:
            subs = [s for s in self._subscriptions if s.collection in collections]
        for sub in subs:
            self._deliver(sub)

    def fail_subscribers(self, collection: str, exc: Exception) -> None:
        """Deliver a transport error to every subscriber of ``collection``."""
        with self._lock:
            subs = [s for s in self._subscriptions if s.collection == collection]
        for sub in subs:
            if sub.on_error is not None:
                sub.on_error(exc)


class MemoryObjectStore:
    """In-process object storage keyed by slash separated paths."""

    def __init__(self, base_url: str = "memory://") -> None:
        self._objects: dict[str, tuple[bytes, str]] = {}
        self._lock = threading.RLock()
        self._base_url = base_url

    def put(self, path: str, data: bytes, content_type: str) -> str:
        with self._lock:
            self._objects[path] = (bytes(data), content_type)
        return f"{self._base_url}{path}"

    def get(self, path: str) -> tuple[bytes, str]:
        with self._lock:
            if path not in self._objects:
                raise NotFound(f"object {path} does not exist")
            return self._objects[path]

    def list(self, prefix: str) -> List[str]:
        normalized = prefix.rstrip("/") + "/"
        with self._lock:
            return sorted(p for p in self._objects if p.startswith(normalized))

    def delete(self, path: str) -> None:
        with self._lock:
            if path not in self._objects:
                raise NotFound(f"object {path} does not exist")
            del self._objects[path]
