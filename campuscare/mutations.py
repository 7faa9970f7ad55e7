"""
The mutation submitter: one place where every write is performed.

Each call performs exactly one create, merge-upsert or field patch and reports
exactly one outcome as a `Result`: success, permission denied, not found or other
failure. Permission denials are also published once on the diagnostic channel
together with the attempted path, operation and payload.

The submitter never touches UI state. A successful write reaches the screen
through the live bindings watching the affected collection.
"""
# campuscare/mutations.py

import logging
from typing import Any, Callable, Dict, Optional

from campuscare.errors import (
    DocumentNotFoundError,
    ErrorEmitter,
    ErrorKind,
    PermissionDeniedError,
    PermissionErrorEvent,
    Result,
)
from campuscare.store import DocumentStore

logger = logging.getLogger(__name__)


class MutationSubmitter:
    """Performs single-document writes on behalf of a signed-in caller."""

    def __init__(self, store: DocumentStore, emitter: ErrorEmitter):
        self._store = store
        self._emitter = emitter

    def _run(self, path: str, operation: str, payload: Dict[str, Any], uid: Optional[str], write: Callable[[], Any],
             denied_message: str) -> Result:
        try:
            snapshot = write()
        except PermissionDeniedError as e:
            event = PermissionErrorEvent.from_exception(e, operation=operation, request_resource_data=payload,
                                                       uid=uid)
            event.path = path
            self._emitter.report_permission_error(event)
            return Result.failure(ErrorKind.PERMISSION_DENIED, denied_message)
        except DocumentNotFoundError as e:
            return Result.failure(ErrorKind.NOT_FOUND, str(e))
        except OSError as e:
            logger.error("Could not persist %s on %s: %s", operation, path, e)
            return Result.failure(ErrorKind.OTHER, f"Could not save your changes: {e}")
        return Result.success(snapshot)

    def create(self, collection_path: str, payload: Dict[str, Any], uid: Optional[str],
               denied_message: str = "You do not have permission to submit this.") -> Result:
        """Adds a new document to `collection_path`."""
        return self._run(collection_path, "create", payload, uid,
                         lambda: self._store.add(collection_path, payload, uid), denied_message)

    def merge(self, doc_path: str, payload: Dict[str, Any], uid: Optional[str],
              denied_message: str = "You do not have permission to change this.") -> Result:
        """Creates `doc_path` or patches the given fields, leaving other fields untouched."""
        return self._run(doc_path, "update", payload, uid,
                         lambda: self._store.set(doc_path, payload, uid, merge=True), denied_message)

    def patch(self, doc_path: str, fields: Dict[str, Any], uid: Optional[str],
              denied_message: str = "You do not have permission to change this.") -> Result:
        """Updates fields of an existing document."""
        return self._run(doc_path, "update", fields, uid,
                         lambda: self._store.update(doc_path, fields, uid), denied_message)
