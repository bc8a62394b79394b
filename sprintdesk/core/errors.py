from __future__ import annotations

from typing import Any, Dict, Optional
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    PERMISSION_DENIED = "permission_denied"
    CONFLICT = "conflict"
    STORE_UNAVAILABLE = "store_unavailable"
    UNAUTHENTICATED = "unauthenticated"


class DenialReason(str, Enum):
    INSUFFICIENT_ROLE = "insufficient_role"
    WRONG_TEAM = "wrong_team"
    NOT_ASSIGNEE = "not_assignee"
    INVALID_TRANSITION = "invalid_transition"


class ConflictReason(str, Enum):
    ALREADY_STARTED = "already_started"
    SPRINT_INCOMPLETE = "sprint_incomplete"


# Custom exceptions
class SprintDeskError(Exception):
    """Base exception for every failure the core reports to its callers."""

    kind: ErrorKind = ErrorKind.INVALID_STATE

    def __init__(self, message: str, reason: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.reason = reason
        self.timestamp = datetime.now(timezone.utc)


class NotFoundError(SprintDeskError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, entity: str, identifier: Any) -> None:
        super().__init__(f"{entity} {identifier} not found")
        self.entity = entity
        self.identifier = identifier


class InvalidStateError(SprintDeskError):
    kind = ErrorKind.INVALID_STATE


class PermissionDeniedError(SprintDeskError):
    kind = ErrorKind.PERMISSION_DENIED

    def __init__(self, reason: DenialReason, message: Optional[str] = None) -> None:
        super().__init__(message or f"Permission denied: {reason.value}", reason.value)
        self.denial = reason


class ConflictError(SprintDeskError):
    kind = ErrorKind.CONFLICT

    def __init__(self, reason: ConflictReason, message: str) -> None:
        super().__init__(message, reason.value)


class StoreUnavailableError(SprintDeskError):
    kind = ErrorKind.STORE_UNAVAILABLE


class AuthenticationError(SprintDeskError):
    kind = ErrorKind.UNAUTHENTICATED


class StoreIOError(Exception):
    """Raised by store adapters for a single failed I/O attempt (retryable)."""


# Result envelope returned across the core boundary
class ErrorInfo(BaseModel):
    kind: ErrorKind
    message: str
    reason: Optional[str] = None


class OperationResult(BaseModel):
    success: bool
    data: Any = None
    error: Optional[ErrorInfo] = None

    @classmethod
    def ok(cls, data: Any = None) -> "OperationResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: SprintDeskError) -> "OperationResult":
        return cls(
            success=False,
            error=ErrorInfo(kind=error.kind, message=error.message, reason=error.reason),
        )

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


__all__ = [
    "ErrorKind",
    "DenialReason",
    "ConflictReason",
    "SprintDeskError",
    "NotFoundError",
    "InvalidStateError",
    "PermissionDeniedError",
    "ConflictError",
    "StoreUnavailableError",
    "AuthenticationError",
    "StoreIOError",
    "ErrorInfo",
    "OperationResult",
]
