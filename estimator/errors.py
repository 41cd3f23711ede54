"""Estimator error handling.

Structured exceptions shared by the lifecycle, template and dispatch code.
Each error carries a machine readable code, a message and a details dict, and
knows the HTTP status the API answers with.
"""

from typing import Any, Dict, Iterable, Optional


class ErrorCode:
    """Error code constants."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    NO_VALID_ITEMS = "NO_VALID_ITEMS"
    CLIENT_REQUIRED = "CLIENT_REQUIRED"
    NO_EMAIL = "NO_EMAIL"
    CANNOT_REMOVE = "CANNOT_REMOVE"
    INVALID_TRANSITION = "INVALID_TRANSITION"

    NOT_FOUND = "NOT_FOUND"
    CONSTRAINT_VIOLATION = "CONSTRAINT_VIOLATION"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    TRANSIENT = "TRANSIENT"
    PARTIAL_WRITE = "PARTIAL_WRITE"
    REMOTE_CALL_FAILED = "REMOTE_CALL_FAILED"


class EstimatorError(Exception):
    """Base exception for estimator errors.

    Attributes:
        code: Error code from ErrorCode constants
        message: Human-readable error message
        details: Additional error context
    """

    status_code = 500

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class ValidationError(EstimatorError):
    """Rejected input. Raised before any write is attempted."""

    status_code = 400

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        code: str = ErrorCode.VALIDATION_ERROR,
        details: Optional[Dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            details={**(details or {}), "field": field} if field else details
        )
        self.field = field


class InvalidTransitionError(ValidationError):
    """Status change the estimate state machine does not allow."""

    status_code = 409

    def __init__(self, current: str, target: str):
        super().__init__(
            f"Cannot move estimate from {current} to {target}",
            field="status",
            code=ErrorCode.INVALID_TRANSITION,
            details={"current": current, "target": target},
        )
        self.current = current
        self.target = target


class NotFoundError(EstimatorError):
    status_code = 404

    def __init__(self, resource: str, resource_id: Any = None):
        super().__init__(
            code=ErrorCode.NOT_FOUND,
            message=f"{resource} not found",
            details={"resource": resource, "id": resource_id},
        )
        self.resource = resource
        self.resource_id = resource_id


class ConstraintError(EstimatorError):
    """Uniqueness or foreign-key violation reported by the store."""

    status_code = 409

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(ErrorCode.CONSTRAINT_VIOLATION, message, details)


class PermissionDeniedError(EstimatorError):
    status_code = 403

    def __init__(self, message: str = "Not authorized", details: Optional[Dict] = None):
        super().__init__(ErrorCode.PERMISSION_DENIED, message, details)


class TransientError(EstimatorError):
    """Network failure or timeout; the caller may retry."""

    status_code = 503

    def __init__(self, message: str, timed_out: bool = False, details: Optional[Dict] = None):
        super().__init__(
            ErrorCode.TRANSIENT,
            message,
            {**(details or {}), "timed_out": timed_out},
        )
        self.timed_out = timed_out


class RemoteCallError(EstimatorError):
    """Permanent failure answered by a remote function."""

    status_code = 502

    def __init__(self, function: str, message: str, status: Optional[int] = None):
        super().__init__(
            ErrorCode.REMOTE_CALL_FAILED,
            message,
            {"function": function, "status": status},
        )
        self.function = function


class PartialWriteError(EstimatorError):
    """A multi-step write stopped at ``step``.

    ``completed`` lists the steps that had succeeded before the failure and
    ``rolled_back`` tells the caller whether those steps were undone, so a
    retry can target the unfinished part.
    """

    status_code = 500

    def __init__(
        self,
        operation: str,
        step: str,
        completed: Iterable[str] = (),
        rolled_back: bool = True,
        cause: Optional[BaseException] = None,
    ):
        completed = list(completed)
        super().__init__(
            ErrorCode.PARTIAL_WRITE,
            f"{operation} failed at step '{step}'",
            {
                "operation": operation,
                "step": step,
                "completed": completed,
                "rolled_back": rolled_back,
                "cause": type(cause).__name__ if cause else None,
                "retryable": isinstance(cause, TransientError),
            },
        )
        self.operation = operation
        self.step = step
        self.completed = completed
        self.rolled_back = rolled_back
        self.cause = cause

    @property
    def retryable(self) -> bool:
        return isinstance(self.cause, TransientError)


_MESSAGES = {
    ErrorCode.NOT_FOUND: "Item not found. It may have been deleted.",
    ErrorCode.PERMISSION_DENIED: "You don't have permission to perform this action.",
    ErrorCode.PARTIAL_WRITE: "The change was only partly saved. Please try again.",
    ErrorCode.REMOTE_CALL_FAILED: "The request could not be completed. Please try again.",
}


def user_message(error: BaseException, fallback: str = "Something went wrong. Please try again.") -> str:
    """Translate an error into the text shown to the user."""
    if isinstance(error, ValidationError):
        return error.message
    if isinstance(error, ConstraintError):
        if error.details.get("kind") == "foreign_key":
            return "Cannot delete - this item is being used elsewhere."
        return "This item already exists."
    if isinstance(error, TransientError):
        if error.timed_out:
            return "Request timed out. Please try again."
        return "Unable to connect. Please check your internet connection."
    if isinstance(error, EstimatorError):
        return _MESSAGES.get(error.code, fallback)
    return fallback
