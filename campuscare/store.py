"""
This module provides the document store behind CampusCare.

`DocumentStore` keeps schemaless JSON documents grouped by collection path
(for example `appointments` or `userProfile/<uid>/nutritionLogs`). It is
responsible for:
- Loading and saving all documents to an encrypted JSON file.
- Enforcing the access rules in `campuscare.rules` for every client call.
- Running filtered, ordered and limited queries.
- Pushing the full matching result set to snapshot listeners after every write.

Calls whose name starts with `admin_` bypass the access rules; they exist for
seeding data and for the authentication service's private account records.
"""
# campuscare/store.py

from __future__ import annotations

import copy
import json
import logging
import os
import threading
import uuid
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from cryptography.fernet import InvalidToken

from campuscare import rules
from campuscare.errors import DocumentNotFoundError, PermissionDeniedError

logger = logging.getLogger(__name__)


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


# Placeholder replaced by the commit time when a document is written.
SERVER_TIMESTAMP = _ServerTimestamp()

_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "==": lambda a, b: a == b,
    "!=": lambda a, b: a != b,
    "<": lambda a, b: a < b,
    "<=": lambda a, b: a <= b,
    ">": lambda a, b: a > b,
    ">=": lambda a, b: a >= b,
    "in": lambda a, b: a in b,
    "not-in": lambda a, b: a not in b,
    "array-contains": lambda a, b: isinstance(a, list) and b in a,
}


def utc_now() -> str:
    return to_wire(datetime.now(timezone.utc))


def to_wire(value: Any) -> Any:
    """Converts Python values to their stored JSON representation."""
    if isinstance(value, datetime):
        # Naive datetimes are taken as local time.
        return value.astimezone(timezone.utc).isoformat(timespec="microseconds")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: to_wire(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_wire(item) for item in value]
    return value


def _resolve_timestamps(value: Any, now: str) -> Any:
    if value is SERVER_TIMESTAMP:
        return now
    if isinstance(value, dict):
        return {key: _resolve_timestamps(item, now) for key, item in value.items()}
    if isinstance(value, list):
        return [_resolve_timestamps(item, now) for item in value]
    return value


def split_document_path(doc_path: str) -> Tuple[str, str]:
    """Splits 'a/b/c/d' into ('a/b/c', 'd'); raises ValueError for collection paths."""
    parts = [part for part in doc_path.split("/") if part]
    if len(parts) < 2 or len(parts) % 2:
        raise ValueError(f"Not a document path: {doc_path!r}")
    return "/".join(parts[:-1]), parts[-1]


class Query:
    """An immutable description of a filtered view over one collection."""

    def __init__(self, collection_path: str, filters=(), order=None, limit_to: Optional[int] = None):
        self.collection_path = collection_path.strip("/")
        self.filters: Tuple[Tuple[str, str, Any], ...] = tuple(filters)
        self.order: Optional[Tuple[str, bool]] = order
        self.limit_to = limit_to

    def where(self, field: str, op: str, value: Any) -> "Query":
        if op not in _OPERATORS:
            raise ValueError(f"Unsupported filter operator: {op}")
        return Query(self.collection_path, self.filters + ((field, op, to_wire(value)),), self.order, self.limit_to)

    def order_by(self, field: str, descending: bool = False) -> "Query":
        return Query(self.collection_path, self.filters, (field, descending), self.limit_to)

    def limit(self, count: int) -> "Query":
        return Query(self.collection_path, self.filters, self.order, count)

    def matches(self, data: Dict[str, Any]) -> bool:
        for field, op, value in self.filters:
            if field not in data:
                return False
            try:
                if not _OPERATORS[op](data[field], value):
                    return False
            except TypeError:
                return False
        return True

    def apply(self, docs: Dict[str, Dict[str, Any]]) -> List[Tuple[str, Dict[str, Any]]]:
        rows = [(doc_id, data) for doc_id, data in docs.items() if self.matches(data)]
        if self.order:
            field, descending = self.order
            rows = [row for row in rows if row[1].get(field) is not None]
            rows.sort(key=lambda row: row[1][field], reverse=descending)
        if self.limit_to is not None:
            rows = rows[:self.limit_to]
        return rows

    def __repr__(self) -> str:
        return f"Query({self.collection_path!r}, filters={list(self.filters)!r}, order={self.order!r}, limit={self.limit_to!r})"


class DocumentSnapshot:
    """A copy of one stored document at the time it was read."""

    def __init__(self, collection_path: str, doc_id: str, data: Optional[Dict[str, Any]]):
        self.collection_path = collection_path
        self.id = doc_id
        self.data = copy.deepcopy(data) if data is not None else None

    @property
    def path(self) -> str:
        return f"{self.collection_path}/{self.id}"

    @property
    def exists(self) -> bool:
        return self.data is not None


class _Listener:
    def __init__(self, uid, on_next, on_error, query: Optional[Query] = None, doc_path: Optional[str] = None):
        self.uid = uid
        self.on_next = on_next
        self.on_error = on_error
        self.query = query
        self.doc_path = doc_path
        self.active = True
        # Held while the result set is read and handed over, so deliveries follow commit order.
        self.delivery_lock = threading.RLock()

    @property
    def collection_path(self) -> str:
        if self.query is not None:
            return self.query.collection_path
        return split_document_path(self.doc_path)[0]


class DocumentStore:
    """Stores documents in an encrypted JSON file and serves rule-checked reads and writes."""

    def __init__(self, data_file: str, encryptor):
        """Initializes the store and loads any existing data.

        Args:
            data_file: Path of the encrypted JSON file.
            encryptor: An object with `encrypt(bytes)` / `decrypt(bytes)`, usually a Fernet instance.
        """
        self.data_file = data_file
        self._encryptor = encryptor
        self._lock = threading.RLock()
        self._listeners: List[_Listener] = []
        self._data = self._load_data()

    # Persistence

    def _load_data(self) -> Dict[str, Any]:
        """Loads and decrypts the data file, starting fresh if it is missing or unreadable."""
        try:
            with open(self.data_file, "r") as f:
                encrypted_data = f.read()
            if not encrypted_data:
                return {"collections": {}}
            decrypted_data = self._encryptor.decrypt(encrypted_data.encode()).decode()
            data = json.loads(decrypted_data)
            data.setdefault("collections", {})
            return data
        except FileNotFoundError:
            return {"collections": {}}
        except (InvalidToken, json.JSONDecodeError) as e:
            logger.warning("Could not load data file %s (%s). Starting with a new dataset.", self.data_file, e)
            return {"collections": {}}

    def _save_data(self) -> None:
        """Writes the encrypted dataset to a temporary file, then moves it over the data file."""
        encrypted_data = self._encryptor.encrypt(json.dumps(self._data, indent=4).encode())
        temp_file = f"{self.data_file}.tmp"
        try:
            with open(temp_file, "w") as f:
                f.write(encrypted_data.decode())
            os.replace(temp_file, self.data_file)
        except OSError:
            if os.path.exists(temp_file):
                os.remove(temp_file)
            raise

    def _collection(self, collection_path: str) -> Dict[str, Dict[str, Any]]:
        return self._data["collections"].setdefault(collection_path.strip("/"), {})

    def _is_admin(self, uid: Optional[str]) -> bool:
        if uid is None:
            return False
        return uid in self._data["collections"].get(rules.ROLES_ADMIN, {})

    def _authorize(self, operation, collection_path, doc_id, uid, existing=None, incoming=None, filters=()):
        rules.authorize(operation, collection_path, doc_id, uid, self._is_admin(uid),
                        existing=existing, incoming=incoming, filters=filters)

    # Writes

    def _commit(self, collection_path: str, doc_id: str, data: Optional[Dict[str, Any]]) -> DocumentSnapshot:
        """Applies one document change and saves it; `data=None` removes the document.

        The in-memory dataset is restored if the data file cannot be written.
        """
        collection = self._collection(collection_path)
        previous = collection.get(doc_id)
        if data is None:
            collection.pop(doc_id, None)
        else:
            collection[doc_id] = data
        try:
            self._save_data()
        except OSError:
            if previous is None:
                collection.pop(doc_id, None)
            else:
                collection[doc_id] = previous
            raise
        return DocumentSnapshot(collection_path, doc_id, data)

    def _prepare(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return to_wire(_resolve_timestamps(data, utc_now()))

    def add(self, collection_path: str, data: Dict[str, Any], uid: Optional[str]) -> DocumentSnapshot:
        """Creates a document with a generated ID."""
        collection_path = collection_path.strip("/")
        doc_id = uuid.uuid4().hex
        with self._lock:
            payload = self._prepare(data)
            self._authorize("create", collection_path, doc_id, uid, incoming=payload)
            snapshot = self._commit(collection_path, doc_id, payload)
        logger.info("Created %s", snapshot.path)
        self._notify(collection_path)
        return snapshot

    def set(self, doc_path: str, data: Dict[str, Any], uid: Optional[str], merge: bool = False) -> DocumentSnapshot:
        """Writes a document; with `merge=True` only the given fields are replaced."""
        collection_path, doc_id = split_document_path(doc_path)
        with self._lock:
            existing = self._collection(collection_path).get(doc_id)
            payload = self._prepare(data)
            merged = {**existing, **payload} if (merge and existing) else payload
            operation = "update" if existing is not None else "create"
            self._authorize(operation, collection_path, doc_id, uid, existing=existing, incoming=merged)
            snapshot = self._commit(collection_path, doc_id, merged)
        logger.info("Wrote %s (merge=%s)", snapshot.path, merge)
        self._notify(collection_path)
        return snapshot

    def update(self, doc_path: str, fields: Dict[str, Any], uid: Optional[str]) -> DocumentSnapshot:
        """Patches fields of an existing document."""
        collection_path, doc_id = split_document_path(doc_path)
        with self._lock:
            existing = self._collection(collection_path).get(doc_id)
            if existing is None:
                # Reads of a missing document still go through the rules first.
                self._authorize("update", collection_path, doc_id, uid, incoming=fields)
                raise DocumentNotFoundError(doc_path)
            merged = {**existing, **self._prepare(fields)}
            self._authorize("update", collection_path, doc_id, uid, existing=existing, incoming=merged)
            snapshot = self._commit(collection_path, doc_id, merged)
        logger.info("Updated %s fields=%s", snapshot.path, sorted(fields))
        self._notify(collection_path)
        return snapshot

    # Reads

    def get(self, doc_path: str, uid: Optional[str]) -> DocumentSnapshot:
        collection_path, doc_id = split_document_path(doc_path)
        with self._lock:
            existing = self._collection(collection_path).get(doc_id)
            self._authorize("get", collection_path, doc_id, uid, existing=existing)
            return DocumentSnapshot(collection_path, doc_id, existing)

    def query(self, query: Query, uid: Optional[str]) -> List[DocumentSnapshot]:
        with self._lock:
            self._authorize("list", query.collection_path, None, uid, filters=query.filters)
            rows = query.apply(self._collection(query.collection_path))
            return [DocumentSnapshot(query.collection_path, doc_id, data) for doc_id, data in rows]

    # Listeners

    def listen(self, query: Query, uid: Optional[str], on_next: Callable[[List[DocumentSnapshot]], None],
               on_error: Callable[[PermissionDeniedError], None]) -> Callable[[], None]:
        """Registers a snapshot listener for `query`.

        The current result set is delivered immediately, then again after every
        write to the collection. A permission failure is delivered to `on_error`
        and ends the listener.

        Returns:
            A function that removes the listener.
        """
        listener = _Listener(uid, on_next, on_error, query=query)
        return self._register(listener)

    def listen_document(self, doc_path: str, uid: Optional[str], on_next: Callable[[DocumentSnapshot], None],
                        on_error: Callable[[PermissionDeniedError], None]) -> Callable[[], None]:
        """Registers a listener for a single document (which may not exist yet)."""
        split_document_path(doc_path)
        listener = _Listener(uid, on_next, on_error, doc_path=doc_path)
        return self._register(listener)

    def _register(self, listener: _Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)
        self._deliver(listener)

        def unsubscribe() -> None:
            with self._lock:
                listener.active = False
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _evaluate(self, listener: _Listener):
        if listener.query is not None:
            return self.query(listener.query, listener.uid)
        return self.get(listener.doc_path, listener.uid)

    def _deliver(self, listener: _Listener) -> None:
        with listener.delivery_lock:
            if not listener.active:
                return
            try:
                result = self._evaluate(listener)
            except PermissionDeniedError as e:
                with self._lock:
                    listener.active = False
                    if listener in self._listeners:
                        self._listeners.remove(listener)
                listener.on_error(e)
                return
            listener.on_next(result)

    def _notify(self, collection_path: str) -> None:
        with self._lock:
            affected = [l for l in self._listeners if l.active and l.collection_path == collection_path]
        for listener in affected:
            self._deliver(listener)

    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    # Rule-free access

    def admin_set(self, doc_path: str, data: Dict[str, Any], merge: bool = False) -> DocumentSnapshot:
        collection_path, doc_id = split_document_path(doc_path)
        with self._lock:
            existing = self._collection(collection_path).get(doc_id)
            payload = self._prepare(data)
            merged = {**existing, **payload} if (merge and existing) else payload
            snapshot = self._commit(collection_path, doc_id, merged)
        self._notify(collection_path)
        return snapshot

    def admin_get(self, doc_path: str) -> DocumentSnapshot:
        collection_path, doc_id = split_document_path(doc_path)
        with self._lock:
            return DocumentSnapshot(collection_path, doc_id, self._collection(collection_path).get(doc_id))

    def admin_query(self, query: Query) -> List[DocumentSnapshot]:
        with self._lock:
            rows = query.apply(self._collection(query.collection_path))
            return [DocumentSnapshot(query.collection_path, doc_id, data) for doc_id, data in rows]

    def admin_delete(self, doc_path: str) -> bool:
        collection_path, doc_id = split_document_path(doc_path)
        with self._lock:
            removed = doc_id in self._collection(collection_path)
            if removed:
                self._commit(collection_path, doc_id, None)
        if removed:
            self._notify(collection_path)
        return removed

    def grant_admin(self, uid: str) -> None:
        """Adds `uid` to the admin role."""
        self.admin_set(f"{rules.ROLES_ADMIN}/{uid}", {"grantedAt": SERVER_TIMESTAMP})
        logger.info("Granted admin role to %s", uid)

    def close(self) -> None:
        """Drops every listener and flushes the data file."""
        with self._lock:
            for listener in self._listeners:
                listener.active = False
            self._listeners.clear()
            self._save_data()
