"""
Access rules for the CampusCare document store.

The rules play the part of server-side security rules: the store evaluates them
before every read or write and raises `PermissionDeniedError` when they fail.
Application code never checks permissions itself; it only reacts to denials.

Ownership is expressed by the `studentId` field (or by the `uid` path segment for
profile documents). Admins are the users whose uid has a document in
`roles_admin`.
"""
# campuscare/rules.py

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional, Tuple

from campuscare.errors import PermissionDeniedError

EMERGENCY_REPORTS = "emergencyReports"
HOSPITAL_FEEDBACKS = "hospitalFeedbacks"
MESS_FOOD_RATINGS = "messFoodRatings"
APPOINTMENTS = "appointments"
USER_PROFILE = "userProfile"
NUTRITION_LOGS = "nutritionLogs"
CAMPUS_INFO = "campusInfo"
ROLES_ADMIN = "roles_admin"

APPOINTMENT_STATUSES = ("scheduled", "completed", "cancelled")

Filter = Tuple[str, str, Any]


def _owns(data: Optional[Dict[str, Any]], uid: str) -> bool:
    return bool(data) and data.get("studentId") == uid


def _filtered_to_owner(filters: Iterable[Filter], uid: str) -> bool:
    return any(field == "studentId" and op == "==" and value == uid for field, op, value in filters)


def _append_only(operation: str, uid: str, is_admin: bool, existing, incoming, admin_list_only: bool = True) -> bool:
    if operation == "create":
        return _owns(incoming, uid)
    if operation == "get":
        return is_admin or _owns(existing, uid)
    if operation == "list":
        return is_admin or not admin_list_only
    return False


def _appointment_rule(operation: str, uid: str, is_admin: bool, existing, incoming, filters) -> bool:
    if operation == "create":
        return _owns(incoming, uid) and incoming.get("status") == "scheduled"
    if operation == "get":
        return is_admin or _owns(existing, uid)
    if operation == "list":
        return is_admin or _filtered_to_owner(filters, uid)
    if operation == "update":
        if incoming.get("status", existing.get("status")) not in APPOINTMENT_STATUSES:
            return False
        if is_admin:
            return True
        # Owners may only cancel their own booking.
        changed = {key for key, value in incoming.items() if existing.get(key) != value}
        return _owns(existing, uid) and changed <= {"status"} and incoming.get("status") == "cancelled"
    return False


def authorize(operation: str, collection_path: str, doc_id: Optional[str], uid: Optional[str], is_admin: bool,
              existing: Optional[Dict[str, Any]] = None, incoming: Optional[Dict[str, Any]] = None,
              filters: Iterable[Filter] = ()) -> None:
    """Raises `PermissionDeniedError` unless `operation` is allowed.

    Args:
        operation: One of 'get', 'list', 'create', 'update'.
        collection_path: The collection holding the document, e.g. 'userProfile/u1/nutritionLogs'.
        doc_id: The document ID for single-document operations.
        uid: The caller's uid, or None for an unauthenticated caller.
        is_admin: Whether the caller holds the admin role.
        existing: The stored document, if any.
        incoming: The document payload being written.
        filters: The query's filters, for 'list'.
    """
    path = f"{collection_path}/{doc_id}" if doc_id else collection_path
    if uid is None:
        raise PermissionDeniedError(path, operation, "Sign-in required.")

    existing = existing or {}
    incoming = incoming or {}
    parts = collection_path.split("/")
    root = parts[0]
    allowed = False

    if len(parts) == 1:
        if root in (EMERGENCY_REPORTS, HOSPITAL_FEEDBACKS):
            allowed = _append_only(operation, uid, is_admin, existing, incoming)
        elif root == MESS_FOOD_RATINGS:
            allowed = _append_only(operation, uid, is_admin, existing, incoming, admin_list_only=False)
            if operation == "get":
                allowed = True
        elif root == APPOINTMENTS:
            allowed = _appointment_rule(operation, uid, is_admin, existing, incoming, list(filters))
        elif root == USER_PROFILE:
            if operation == "list":
                allowed = is_admin
            elif operation == "get":
                allowed = doc_id == uid or is_admin
            else:
                allowed = doc_id == uid
        elif root == CAMPUS_INFO:
            allowed = operation in ("get", "list") or is_admin
        elif root == ROLES_ADMIN:
            allowed = operation == "get" and doc_id == uid
    elif len(parts) == 3 and root == USER_PROFILE and parts[2] == NUTRITION_LOGS:
        allowed = parts[1] == uid

    if not allowed:
        raise PermissionDeniedError(path, operation)
