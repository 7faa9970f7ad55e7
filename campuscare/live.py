"""
Live query bindings.

A `LiveQuery` keeps a typed view of one store query (or one document) up to date.
Every change in the store delivers the full current result set, mapped to record
objects, to the binding's subscribers. Permission failures arrive as a structured
`PermissionErrorEvent` and are published on the diagnostic channel; they never
look like empty data.

Bindings are resources: close them (or use them in a `with` block) when the view
that owns them goes away. After `close()` no further callbacks are made.
"""
# campuscare/live.py

from __future__ import annotations

import logging
import queue
from typing import Any, Callable, Generic, Iterator, List, Optional, Type, TypeVar

from campuscare.errors import ErrorEmitter, PermissionDeniedError, PermissionErrorEvent
from campuscare.store import DocumentSnapshot, DocumentStore, Query

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CLOSED = object()


class LiveQuery(Generic[T]):
    """A cancellable, continuously refreshed view of a query.

    Attributes:
        records (list | None): The latest mapped result set, or None before the first delivery.
        error (PermissionErrorEvent | None): Set when the subscription failed.
    """

    def __init__(self, store: DocumentStore, uid: Optional[str], record_type: Type[T], query: Optional[Query] = None,
                 doc_path: Optional[str] = None, emitter: Optional[ErrorEmitter] = None, transform=None):
        """
        Args:
            store: The document store to subscribe to.
            uid: The caller's uid; reads are checked against the access rules as this user.
            record_type: A class with a `from_doc(doc_id, data)` constructor.
            query: The query to bind, for collection bindings.
            doc_path: The document path to bind, for single-document bindings.
            emitter: Where permission failures are published.
            transform: Optional function applied to the mapped records before delivery.
        """
        if (query is None) == (doc_path is None):
            raise ValueError("Provide exactly one of query or doc_path")
        self._store = store
        self._uid = uid
        self._record_type = record_type
        self.query = query
        self.doc_path = doc_path
        self._emitter = emitter
        self._transform = transform
        self._subscribers: List[Callable[[Any], None]] = []
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._closed = False
        self.records: Any = None
        self.error: Optional[PermissionErrorEvent] = None
        self.revision = 0

    @property
    def path(self) -> str:
        return self.query.collection_path if self.query is not None else self.doc_path

    @property
    def loading(self) -> bool:
        return self.records is None and self.error is None and not self._closed

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> "LiveQuery[T]":
        if self._unsubscribe is not None or self._closed:
            return self
        if self.query is not None:
            self._unsubscribe = self._store.listen(self.query, self._uid, self._on_snapshot, self._on_error)
        else:
            self._unsubscribe = self._store.listen_document(self.doc_path, self._uid, self._on_snapshot, self._on_error)
        return self

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._unsubscribe is not None:
            self._unsubscribe()
        self._subscribers.clear()
        self._queue.put(_CLOSED)
        logger.debug("Closed live binding on %s", self.path)

    def __enter__(self) -> "LiveQuery[T]":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def subscribe(self, callback: Callable[[Any], None]) -> Callable[[], None]:
        """Calls `callback(records)` on every delivery; returns a function that stops it."""
        self._subscribers.append(callback)
        if self.records is not None:
            callback(self.records)
        return lambda: self._subscribers.remove(callback) if callback in self._subscribers else None

    def snapshots(self, timeout: Optional[float] = None) -> Iterator[Any]:
        """Yields each delivered result set until the binding closes or fails.

        With a `timeout`, iteration also stops when no delivery arrives in time.
        """
        while True:
            try:
                item = self._queue.get(timeout=timeout)
            except queue.Empty:
                return
            if item is _CLOSED or isinstance(item, PermissionErrorEvent):
                return
            yield item

    def _map(self, result):
        if isinstance(result, DocumentSnapshot):
            return self._record_type.from_doc(result.id, result.data)
        records = [self._record_type.from_doc(snap.id, snap.data) for snap in result]
        return self._transform(records) if self._transform else records

    def _on_snapshot(self, result) -> None:
        if self._closed:
            return
        self.records = self._map(result)
        self.error = None
        self.revision += 1
        self._queue.put(self.records)
        for callback in list(self._subscribers):
            callback(self.records)

    def _on_error(self, exc: PermissionDeniedError) -> None:
        if self._closed:
            return
        operation = "list" if self.query is not None else "get"
        self.error = PermissionErrorEvent.from_exception(exc, operation=operation, uid=self._uid)
        if self._emitter is not None:
            self._emitter.report_permission_error(self.error)
        self._queue.put(self.error)


class BindingRegistry:
    """Owns the live bindings of one session so they can be released together."""

    def __init__(self) -> None:
        self._bindings = {}

    def bind(self, key: str, factory: Callable[[], LiveQuery]) -> LiveQuery:
        """Returns the binding stored under `key`, creating and starting it if needed."""
        binding = self._bindings.get(key)
        if binding is None or binding.closed:
            binding = factory().start()
            self._bindings[key] = binding
        return binding

    def release(self, keep=()) -> None:
        """Closes every binding whose key is not in `keep`."""
        for key in [k for k in self._bindings if k not in keep]:
            self._bindings.pop(key).close()

    def close(self) -> None:
        self.release()

    def __len__(self) -> int:
        return len(self._bindings)

    def __contains__(self, key: str) -> bool:
        return key in self._bindings
