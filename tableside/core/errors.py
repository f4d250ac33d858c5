"""
Domain error taxonomy

Every business failure raised by the services is a ``DomainError`` subclass
carrying a machine-readable ``ErrorCode``. The API layer renders them as
``{"error": <code>, "message": ..., "meta": ...}`` with the HTTP status of
the subclass, so clients can tell apart, say, a full table from a table
with pending sessions.
"""

from enum import Enum
from typing import Any, Dict, Optional

from fastapi import status


class ErrorCode(str, Enum):
    """Machine-readable error codes"""

    # Table registry
    TABLE_NOT_FOUND = "TABLE_NOT_FOUND"
    DUPLICATE_TABLE_NUMBER = "DUPLICATE_TABLE_NUMBER"
    TABLE_OUT_OF_SERVICE = "TABLE_OUT_OF_SERVICE"
    TABLE_FULL = "TABLE_FULL"
    TABLE_OCCUPIED = "TABLE_OCCUPIED"
    TABLE_OCCUPIED_MAINTENANCE = "TABLE_OCCUPIED_MAINTENANCE"
    TABLE_ALREADY_ARCHIVED = "TABLE_ALREADY_ARCHIVED"
    TABLE_ALREADY_ACTIVE = "TABLE_ALREADY_ACTIVE"
    ACTIVE_SESSIONS_PENDING = "ACTIVE_SESSIONS_PENDING"
    ACTIVE_SESSIONS_EXIST = "ACTIVE_SESSIONS_EXIST"
    CAPACITY_BELOW_OCCUPANCY = "CAPACITY_BELOW_OCCUPANCY"

    # Sessions
    CLIENT_NOT_FOUND = "CLIENT_NOT_FOUND"
    TABLE_CAPACITY_EXCEEDED = "TABLE_CAPACITY_EXCEEDED"
    SESSION_ALREADY_CLOSED = "SESSION_ALREADY_CLOSED"
    SESSION_NOT_ACTIVE = "SESSION_NOT_ACTIVE"
    ZERO_AMOUNT_ERROR = "ZERO_AMOUNT_ERROR"
    INVALID_STATUS_TRANSITION = "INVALID_STATUS_TRANSITION"
    SECURITY_MODULE_REJECTION = "SECURITY_MODULE_REJECTION"
    SECURITY_MODULE_UNAVAILABLE = "SECURITY_MODULE_UNAVAILABLE"

    # Comandas
    NO_ACTIVE_CLIENT = "NO_ACTIVE_CLIENT"
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
    ORDER_CANNOT_BE_CANCELLED = "ORDER_CANNOT_BE_CANCELLED"
    INVALID_ORDER_TRANSITION = "INVALID_ORDER_TRANSITION"
    KDS_NOTIFICATION_FAILED = "KDS_NOTIFICATION_FAILED"

    # Service requests
    SERVICE_REQUEST_NOT_FOUND = "SERVICE_REQUEST_NOT_FOUND"
    INVALID_REQUEST_STATE = "INVALID_REQUEST_STATE"

    # Waiters and ratings
    WAITER_NOT_ASSIGNED = "WAITER_NOT_ASSIGNED"
    WAITER_VALIDATION_FAILED = "WAITER_VALIDATION_FAILED"

    # Access
    FORBIDDEN = "FORBIDDEN"
    SESSION_CLOSED = "SESSION_CLOSED"

    INTERNAL_ERROR = "INTERNAL_ERROR"


class DomainError(Exception):
    """Base class for business errors surfaced to API clients"""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        meta: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.meta = meta

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.code.value, "message": self.message}
        if self.meta:
            body["meta"] = self.meta
        return body


class NotFoundError(DomainError):
    """Entity absent"""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(DomainError):
    """State machine violation, capacity exceeded or duplicate"""

    status_code = status.HTTP_409_CONFLICT


class InvalidRequestError(DomainError):
    """Input rejected by business rules or by the security module"""

    status_code = status.HTTP_400_BAD_REQUEST


class ForbiddenError(DomainError):
    """Caller may not act on this resource"""

    status_code = status.HTTP_403_FORBIDDEN

    def __init__(
        self,
        message: str = "You cannot access resources that do not belong to you",
        code: ErrorCode = ErrorCode.FORBIDDEN,
    ):
        super().__init__(code, message)


class DependencyError(DomainError):
    """External collaborator unreachable or rejected the call"""

    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        meta: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(code, message, meta)
        if status_code is not None:
            self.status_code = status_code
