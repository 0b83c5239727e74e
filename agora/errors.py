"""
agora.errors — Typed Domain Errors
===================================

Every failure a service can report to its caller.  Services raise these;
the API layer turns them into HTTP responses in one place
(:func:`agora.api.main.handle_agora_error`).

Taxonomy:

* :class:`NotFoundError`   — target entity missing.
* :class:`ValidationError` — out-of-range value or malformed selection.
* :class:`ForbiddenError`  — self-vote, closed topic, missing permission.
* :class:`ConflictError`   — concurrent mutation caught by a uniqueness
  constraint; the caller may retry.
"""

from __future__ import annotations

from typing import Any


class AgoraError(Exception):
    """Base class for all domain errors."""

    code = "error"
    status_code = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


class NotFoundError(AgoraError):
    """Raised when the target entity does not exist."""

    code = "not_found"
    status_code = 404

    def __init__(self, entity_type: str, entity_id: Any = None) -> None:
        details: dict[str, Any] = {"entity_type": entity_type}
        message = f"{entity_type} not found"
        if entity_id is not None:
            details["entity_id"] = str(entity_id)
            message = f"{entity_type} '{entity_id}' not found"
        super().__init__(message, details)
        self.entity_type = entity_type
        self.entity_id = entity_id


class ValidationError(AgoraError):
    """Raised when an input value is outside its allowed range."""

    code = "validation_error"
    status_code = 400

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message, {"field": field} if field else None)
        self.field = field


class ForbiddenError(AgoraError):
    """Raised when the actor may not perform the action."""

    code = "forbidden"
    status_code = 403


class ConflictError(AgoraError):
    """Raised when a concurrent mutation won the race.  Retryable."""

    code = "conflict"
    status_code = 409


__all__ = [
    "AgoraError",
    "ConflictError",
    "ForbiddenError",
    "NotFoundError",
    "ValidationError",
]
