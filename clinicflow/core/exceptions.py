"""
Domain error taxonomy.

Services raise these; the HTTP layer maps each one to a status code in
``clinicflow.main``. Only ``TransientError`` is safe to retry.
"""

from typing import Any, Dict, Optional


class ClinicFlowError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"detail": self.message, "error": type(self).__name__}
        if self.details:
            payload["context"] = self.details
        return payload


class ValidationError(ClinicFlowError):
    """Missing or malformed input. Caller's fault, never retried."""

    status_code = 400


class NotFoundError(ClinicFlowError):
    """A referenced record does not exist."""

    status_code = 404

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(
            f"{entity} not found", details={"entity": entity, "id": str(entity_id)}
        )
        self.entity = entity
        self.entity_id = entity_id


class InvalidTransitionError(ClinicFlowError):
    """The requested state transition is not permitted."""

    status_code = 409

    def __init__(self, entity: str, current: str, target: str):
        super().__init__(
            f"Cannot change {entity} status from '{current}' to '{target}'",
            details={"entity": entity, "current": current, "target": target},
        )
        self.current = current
        self.target = target


class ConflictError(ClinicFlowError):
    """The record changed since it was read (optimistic concurrency)."""

    status_code = 409


class TransientError(ClinicFlowError):
    """Store unavailable or too slow. Safe to retry with backoff."""

    status_code = 503
    retryable = True


class CommitOutcomeUnknownError(ClinicFlowError):
    """
    The store failed while committing, so the write may or may not have
    landed. Never retried automatically: the caller must re-read first.
    """

    status_code = 503
