# app/core/errors.py
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    NOT_FOUND = "NotFound"
    INVALID_TRANSITION = "InvalidTransition"
    LOCKED = "Locked"
    PRECONDITION_FAILED = "PreconditionFailed"
    IDEMPOTENCY_KEY_CONFLICT = "IdempotencyKeyConflict"
    UNAVAILABLE = "Unavailable"


class LifecycleError(Exception):
    """
    Base of the lifecycle engine error taxonomy.

    Callers branch on the subclass (or `kind`), never on a message string.
    Any LifecycleError raised inside a transaction rolls that transaction back.
    """

    kind: ErrorKind
    http_status: int = 500
    retryable: bool = False

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.kind.value, "detail": self.message}
        if self.details:
            body["context"] = self.details
        return body


class NotFound(LifecycleError):
    kind = ErrorKind.NOT_FOUND
    http_status = 404


class InvalidTransition(LifecycleError):
    kind = ErrorKind.INVALID_TRANSITION
    http_status = 409


class Locked(LifecycleError):
    kind = ErrorKind.LOCKED
    http_status = 409


class PreconditionFailed(LifecycleError):
    kind = ErrorKind.PRECONDITION_FAILED
    http_status = 409


class IdempotencyKeyConflict(LifecycleError):
    kind = ErrorKind.IDEMPOTENCY_KEY_CONFLICT
    http_status = 400


class Unavailable(LifecycleError):
    """Transaction could not commit. Safe to retry with the same idempotency key."""

    kind = ErrorKind.UNAVAILABLE
    http_status = 503
    retryable = True
