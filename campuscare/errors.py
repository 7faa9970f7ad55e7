"""
This module defines the error taxonomy shared by every part of CampusCare.

It provides:
- Exceptions raised at the data, authentication, storage and AI boundaries.
- `PermissionErrorEvent`, the structured record of an access-denied operation.
- `ErrorEmitter`, the publish/subscribe channel that relays permission errors to
  the development overlay.
- `Result`, the single return type used by service operations, so callers never
  have to tell apart "raised an exception" from "returned a failure flag".
"""
# campuscare/errors.py

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

PERMISSION_ERROR = "permission-error"


class ErrorKind(str, Enum):
    """Categories of failure a caller can react to."""
    PERMISSION_DENIED = "permission-denied"
    VALIDATION = "validation"
    UPSTREAM = "upstream"
    NOT_FOUND = "not-found"
    OTHER = "other"


class CampusCareError(Exception):
    """Base class for all CampusCare errors."""


class PermissionDeniedError(CampusCareError):
    """Raised by the document store when the access rules reject an operation."""

    def __init__(self, path: str, operation: str, reason: str = "Missing or insufficient permissions."):
        super().__init__(reason)
        self.path = path
        self.operation = operation
        self.reason = reason


class DocumentNotFoundError(CampusCareError):
    """Raised when an update targets a document that does not exist."""

    def __init__(self, path: str):
        super().__init__(f"No document to update: {path}")
        self.path = path


class UpstreamServiceError(CampusCareError):
    """Raised when an external service (AI model, photo upload) fails."""


class AuthError(CampusCareError):
    """Raised by the authentication service.

    Attributes:
        code (str): A short machine-readable code such as 'invalid-credential'.
    """

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code


class PermissionErrorEvent:
    """Describes a permission denial for debugging.

    Attributes:
        path (str): The collection or document path the operation targeted.
        operation (str): One of 'get', 'list', 'create', 'update', 'write'.
        request_resource_data (dict | None): The payload the caller attempted to write.
        message (str): The reason reported by the data layer.
        timestamp (str): When the denial was observed, ISO formatted.
        uid (str | None): The caller whose operation was denied.
    """

    def __init__(self, path: str, operation: str, request_resource_data: Optional[Dict[str, Any]] = None,
                 message: str = "Missing or insufficient permissions.", timestamp: Optional[str] = None,
                 uid: Optional[str] = None):
        self.path = path
        self.uid = uid
        self.operation = operation
        self.request_resource_data = request_resource_data
        self.message = message
        self.timestamp = timestamp or datetime.now(timezone.utc).isoformat()

    @classmethod
    def from_exception(cls, exc: PermissionDeniedError, operation: Optional[str] = None,
                       request_resource_data: Optional[Dict[str, Any]] = None,
                       uid: Optional[str] = None) -> "PermissionErrorEvent":
        return cls(
            path=exc.path,
            operation=operation or exc.operation,
            request_resource_data=request_resource_data,
            message=exc.reason,
            uid=uid,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "operation": self.operation,
            "requestResourceData": self.request_resource_data,
            "message": self.message,
            "timestamp": self.timestamp,
            "uid": self.uid,
        }

    def __repr__(self) -> str:
        return f"PermissionErrorEvent(path={self.path!r}, operation={self.operation!r})"


class ErrorEmitter:
    """A small publish/subscribe channel keyed by event name."""

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Callable[[Any], None]]] = {}

    def on(self, event: str, listener: Callable[[Any], None]) -> Callable[[], None]:
        """Registers a listener and returns a function that removes it."""
        self._listeners.setdefault(event, []).append(listener)
        return lambda: self.off(event, listener)

    def off(self, event: str, listener: Callable[[Any], None]) -> None:
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def emit(self, event: str, payload: Any) -> None:
        # Copy so a listener may unsubscribe while being notified.
        for listener in list(self._listeners.get(event, [])):
            listener(payload)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def report_permission_error(self, event: PermissionErrorEvent) -> None:
        """Logs and publishes a permission denial on the diagnostic channel."""
        logger.warning("Permission denied: %s on %s", event.operation, event.path)
        self.emit(PERMISSION_ERROR, event)


class Result:
    """The outcome of a service operation: either a value or a classified error.

    Attributes:
        value: The successful result, if any.
        error (ErrorKind | None): The failure category, or None on success.
        detail (str | None): A human readable message for failures.
        fields (dict): Per-field validation messages.
    """

    __slots__ = ("value", "error", "detail", "fields")

    def __init__(self, value: Any = None, error: Optional[ErrorKind] = None, detail: Optional[str] = None,
                 fields: Optional[Dict[str, str]] = None):
        self.value = value
        self.error = error
        self.detail = detail
        self.fields = fields or {}

    @classmethod
    def success(cls, value: Any = None) -> "Result":
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, detail: str, fields: Optional[Dict[str, str]] = None) -> "Result":
        return cls(error=kind, detail=detail, fields=fields)

    @property
    def ok(self) -> bool:
        return self.error is None

    def __bool__(self) -> bool:
        return self.ok

    def __repr__(self) -> str:
        if self.ok:
            return f"Result(ok={self.value!r})"
        return f"Result(error={self.error.value!r}, detail={self.detail!r})"
