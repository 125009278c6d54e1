"""Domain error taxonomy and classification utilities."""

from enum import Enum
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError


ModelT = TypeVar("ModelT", bound=BaseModel)


class ErrorCategory(Enum):
    """Categories of errors raised by rotation and gamification operations."""

    VALIDATION = "validation"
    STATE_CONFLICT = "state_conflict"
    NOT_ELIGIBLE = "not_eligible"
    NOT_FOUND = "not_found"
    DEPENDENCY_UNAVAILABLE = "dependency_unavailable"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCode:
    """Error codes for specific error conditions."""

    ERR_VALIDATION = "ERR_VALIDATION"
    ERR_STATE_CONFLICT = "ERR_STATE_CONFLICT"
    ERR_NOT_ELIGIBLE = "ERR_NOT_ELIGIBLE"
    ERR_NOT_FOUND = "ERR_NOT_FOUND"
    ERR_DEPENDENCY_UNAVAILABLE = "ERR_DEPENDENCY_UNAVAILABLE"
    ERR_UNKNOWN = "ERR_UNKNOWN"


class DomainError(Exception):
    """Base class for typed errors returned by service operations."""

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __str__(self) -> str:
        # KeyError subclasses would otherwise render with quotes
        return str(self.args[0]) if self.args else self.__class__.__name__


class InvalidInputError(DomainError, ValueError):
    """Malformed input, rejected before any mutation."""

    category = ErrorCategory.VALIDATION


class ConflictError(DomainError):
    """The record is not in the state the operation expects.

    Raised for duplicate pending assignments, cancellations that were already
    taken, rewards that were already claimed and out-of-order transitions.
    """

    category = ErrorCategory.STATE_CONFLICT


class NotEligibleError(DomainError):
    """The acting member may not perform the operation on this record."""

    category = ErrorCategory.NOT_ELIGIBLE


class NotFoundError(DomainError, KeyError):
    """Unknown home, member, task, assignment, challenge or template id."""

    category = ErrorCategory.NOT_FOUND


class DependencyUnavailableError(DomainError):
    """The backing store failed or could not be reached."""

    category = ErrorCategory.DEPENDENCY_UNAVAILABLE


class ErrorResponse(BaseModel):
    """Structured error response with user-friendly messaging."""

    code: str
    message: str
    suggestion: str
    severity: ErrorSeverity


_RESPONSES: dict[ErrorCategory, tuple[str, str, ErrorSeverity]] = {
    ErrorCategory.VALIDATION: (
        ErrorCode.ERR_VALIDATION,
        "Please check the values you entered and try again.",
        ErrorSeverity.LOW,
    ),
    ErrorCategory.STATE_CONFLICT: (
        ErrorCode.ERR_STATE_CONFLICT,
        "Someone beat you to it. Refresh and try again.",
        ErrorSeverity.LOW,
    ),
    ErrorCategory.NOT_ELIGIBLE: (
        ErrorCode.ERR_NOT_ELIGIBLE,
        "Ask a member of this home to take care of it.",
        ErrorSeverity.MEDIUM,
    ),
    ErrorCategory.NOT_FOUND: (
        ErrorCode.ERR_NOT_FOUND,
        "It may have been removed. Refresh to see current data.",
        ErrorSeverity.LOW,
    ),
    ErrorCategory.DEPENDENCY_UNAVAILABLE: (
        ErrorCode.ERR_DEPENDENCY_UNAVAILABLE,
        "Please try again in a moment.",
        ErrorSeverity.HIGH,
    ),
}


def classify_error(exception: Exception) -> ErrorCategory:
    """Return the taxonomy category for an exception.

    Domain errors carry their own category; anything else is unknown.
    """
    if isinstance(exception, DomainError):
        return exception.category
    return ErrorCategory.UNKNOWN


def classify_error_with_response(exception: Exception) -> ErrorResponse:
    """Classify an error and return a structured response with recovery suggestions.

    Args:
        exception: The exception raised by a service operation

    Returns:
        ErrorResponse with code, message, suggestion, and severity
    """
    category = classify_error(exception)
    entry = _RESPONSES.get(category)
    if entry is None:
        return ErrorResponse(
            code=ErrorCode.ERR_UNKNOWN,
            message="An unexpected error occurred.",
            suggestion="Please try again later. If the problem persists, contact support.",
            severity=ErrorSeverity.MEDIUM,
        )

    code, suggestion, severity = entry
    return ErrorResponse(code=code, message=str(exception), suggestion=suggestion, severity=severity)


def validate_input(model: type[ModelT], **data: Any) -> ModelT:
    """Build a pydantic model from caller input, raising InvalidInputError on failure."""
    try:
        return model(**data)
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(loc) for loc in error['loc']) or 'input'}: {error['msg']}" for error in e.errors()
        )
        msg = f"Invalid {model.__name__}: {details}"
        raise InvalidInputError(msg) from e
