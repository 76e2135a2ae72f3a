"""Typed errors raised by the workflow services.

Services never build HTTP responses themselves; the exception handlers in
``main.py`` translate these into status codes.
"""
from typing import Any, Dict, List, Optional


class WorkflowError(Exception):
    code = "workflow_error"
    status_code = 400

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        body = {"code": self.code, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class NotFoundError(WorkflowError):
    code = "not_found"
    status_code = 404


class ConflictError(WorkflowError):
    code = "conflict"
    status_code = 409


class InvalidTransitionError(ConflictError):
    code = "invalid_transition"


class ValidationError(WorkflowError):
    """Malformed input; ``details`` is a list of ``{field, message}`` dicts."""

    code = "validation_error"
    status_code = 422

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, details=[{"field": field, "message": message}])


class AuthorizationError(WorkflowError):
    code = "authorization_error"
    status_code = 403


class LoginBlockedError(AuthorizationError):
    code = "login_blocked"

    def __init__(self, message: str, reason: str):
        super().__init__(message, details={"reason": reason})
        self.reason = reason


class DependencyError(WorkflowError):
    code = "dependency_error"
    status_code = 503


class SequenceUnavailableError(DependencyError):
    """Document number could not be allocated; safe to retry the request."""

    code = "sequence_unavailable"


def pydantic_details(error, prefix: Optional[str] = None) -> List[Dict[str, str]]:
    """Field-level ``details`` for a ``ValidationError`` built from a pydantic failure."""
    return [
        {"field": ".".join([*([prefix] if prefix else []), *[str(p) for p in err["loc"]]]), "message": err["msg"]}
        for err in error.errors()
    ]
