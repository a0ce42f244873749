"""
evalportal/core/exceptions.py

Typed errors raised by the assignment workflow services.

Each class carries the HTTP status the API layer answers with, so the
services never import FastAPI.
"""
from typing import Any, Dict, Optional


class AssignmentError(Exception):
    """Base exception for the assignment / evaluation workflow."""
    status_code: int = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        payload = {"error": type(self).__name__, "detail": self.message}
        payload.update(self.details)
        return payload


class ValidationError(AssignmentError):
    """Missing or out-of-range input. Nothing was changed."""
    status_code = 400


class AuthorizationError(AssignmentError):
    """Caller is not allowed to perform this transition (e.g. not the owner)."""
    status_code = 403


class NotFoundError(AssignmentError):
    """Assignment, submission or evaluator does not exist (or lock lost)."""
    status_code = 404


class ConflictError(AssignmentError):
    """
    Raised when the stored row moved under the caller:

    - version mismatch on a guarded write
    - soft lock held by another evaluation session
    """
    status_code = 409


class BusinessRuleError(AssignmentError):
    """
    Raised when a workflow rule forbids the transition.

    Examples:
    - evaluator at capacity or unavailable
    - reallocation ceiling reached
    - assignment already evaluated
    """
    status_code = 422


class RateLimitError(AssignmentError):
    """Cooldown has not elapsed; carries the remaining seconds."""
    status_code = 429

    def __init__(self, message: str, remaining_seconds: int):
        self.remaining_seconds = remaining_seconds
        super().__init__(message, {"remaining_seconds": remaining_seconds})
