"""Error taxonomy shared by the managers, the API and the client.

Every data-access failure is one of:
- ConstraintViolation: invalid shape or value, names the failing field
- AuthorizationDenied: rejected by the policy set, never says why
- NotFoundError: missing or policy-hidden row, same message either way
- TransientError: network or database availability failure, caller may retry
- StepError: a multi-step operation failed, names the step
"""

from typing import Any, Dict, Optional


class MarketplaceError(Exception):
    """Base exception for marketplace data-access errors."""
    kind = "error"
    status_code = 500
    message = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for an API response body."""
        return {"error": self.kind, "detail": str(self)}


class ConstraintViolation(MarketplaceError):
    """Raised when a row fails a type, range, uniqueness or required-field rule."""
    kind = "constraint_violation"
    status_code = 400
    message = "Invalid value"

    def __init__(
        self,
        message: Optional[str] = None,
        field: Optional[str] = None,
        value: Any = None,
        constraint: Optional[str] = None
    ):
        self.field = field
        self.value = value
        self.constraint = constraint
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body.update({
            "field": self.field,
            "value": None if self.value is None else str(self.value),
            "constraint": self.constraint
        })
        return body


class AuthorizationDenied(MarketplaceError):
    """Raised when the policy set rejects an operation."""
    kind = "authorization_denied"
    status_code = 403
    message = "You do not have permission to perform this action"


class NotFoundError(MarketplaceError):
    """Raised when a row does not exist or is hidden from the caller."""
    kind = "not_found"
    status_code = 404
    message = "The requested resource was not found"


class TransientError(MarketplaceError):
    """Raised when the backend is unreachable; safe for the caller to retry."""
    kind = "transient"
    status_code = 503
    message = "The service is temporarily unavailable"


class StepError(MarketplaceError):
    """Raised when one step of a multi-step operation fails.

    The transaction enclosing the steps has been rolled back; `step` names the
    step that failed and `cause` carries the underlying error.
    """
    kind = "step_failed"

    def __init__(self, step: str, cause: MarketplaceError):
        self.step = step
        self.cause = cause
        self.status_code = cause.status_code
        super().__init__(f"Step '{step}' failed: {cause}")

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["step"] = self.step
        body["cause"] = self.cause.to_dict()
        return body


ERROR_KINDS = {
    cls.kind: cls
    for cls in (ConstraintViolation, AuthorizationDenied, NotFoundError, TransientError)
}

__all__ = [
    'MarketplaceError',
    'ConstraintViolation',
    'AuthorizationDenied',
    'NotFoundError',
    'TransientError',
    'StepError',
    'ERROR_KINDS'
]
