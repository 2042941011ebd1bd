"""Error kinds and classification for engine operations."""

from enum import Enum, StrEnum

from pydantic import BaseModel


class ErrorKind(StrEnum):
    """Failure kinds an engine operation can report."""

    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    GATE_NOT_SATISFIED = "gate_not_satisfied"
    PERMISSION_DENIED = "permission_denied"
    INVALID_INPUT = "invalid_input"
    STALE_JOB = "stale_job"
    DELIVERY_FAILURE = "delivery_failure"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCode:
    """Error codes for specific error conditions."""

    ERR_NOT_FOUND = "ERR_NOT_FOUND"
    ERR_CONFLICT = "ERR_CONFLICT"
    ERR_GATE_NOT_SATISFIED = "ERR_GATE_NOT_SATISFIED"
    ERR_PERMISSION_DENIED = "ERR_PERMISSION_DENIED"
    ERR_INVALID_INPUT = "ERR_INVALID_INPUT"
    ERR_STALE_JOB = "ERR_STALE_JOB"
    ERR_DELIVERY_FAILURE = "ERR_DELIVERY_FAILURE"
    ERR_UNKNOWN = "ERR_UNKNOWN"


class ConflictError(ValueError):
    """The requested transition is not valid from the current state."""


class GateNotSatisfiedError(ValueError):
    """Completion requires an approved proof from the accountability partner."""


class StaleJobError(Exception):
    """A job firing was superseded by a reschedule or cancellation."""


class DeliveryFailureError(Exception):
    """The notification sink kept failing after all retry attempts."""


class ErrorResponse(BaseModel):
    """Structured error response with user-friendly messaging."""

    code: str
    kind: ErrorKind
    message: str
    suggestion: str
    severity: ErrorSeverity


def classify_error(exception: Exception) -> ErrorKind:
    """Map an exception raised by the engine to its error kind.

    Order matters: the typed engine errors subclass ValueError, so they are
    checked before the generic invalid-input case.
    """
    if isinstance(exception, StaleJobError):
        return ErrorKind.STALE_JOB
    if isinstance(exception, DeliveryFailureError):
        return ErrorKind.DELIVERY_FAILURE
    if isinstance(exception, GateNotSatisfiedError):
        return ErrorKind.GATE_NOT_SATISFIED
    if isinstance(exception, ConflictError):
        return ErrorKind.CONFLICT
    if isinstance(exception, PermissionError):
        return ErrorKind.PERMISSION_DENIED
    if isinstance(exception, KeyError):
        return ErrorKind.NOT_FOUND
    if isinstance(exception, ValueError):
        return ErrorKind.INVALID_INPUT
    return ErrorKind.UNKNOWN


def _exception_message(exception: Exception) -> str:
    # KeyError wraps its message in quotes
    if isinstance(exception, KeyError) and exception.args:
        return str(exception.args[0])
    return str(exception)


def classify_error_with_response(exception: Exception) -> ErrorResponse:  # noqa: PLR0911
    """Classify an error and return a structured response with recovery suggestions.

    Args:
        exception: The exception raised during execution

    Returns:
        ErrorResponse with code, kind, message, suggestion, and severity
    """
    kind = classify_error(exception)
    detail = _exception_message(exception)

    if kind == ErrorKind.NOT_FOUND:
        return ErrorResponse(
            code=ErrorCode.ERR_NOT_FOUND,
            kind=kind,
            message=detail or "I couldn't find that.",
            suggestion="Check the task, proof, or request id and try again.",
            severity=ErrorSeverity.LOW,
        )

    if kind == ErrorKind.CONFLICT:
        return ErrorResponse(
            code=ErrorCode.ERR_CONFLICT,
            kind=kind,
            message=detail or "This action conflicts with the current state.",
            suggestion="Refresh the task to see its current state.",
            severity=ErrorSeverity.LOW,
        )

    if kind == ErrorKind.GATE_NOT_SATISFIED:
        return ErrorResponse(
            code=ErrorCode.ERR_GATE_NOT_SATISFIED,
            kind=kind,
            message=detail or "Your accountability partner has to approve your proof first.",
            suggestion="Submit proof of completion and wait for your partner to approve it.",
            severity=ErrorSeverity.LOW,
        )

    if kind == ErrorKind.PERMISSION_DENIED:
        return ErrorResponse(
            code=ErrorCode.ERR_PERMISSION_DENIED,
            kind=kind,
            message=detail or "You don't have permission for this action.",
            suggestion="Only the task owner or its accountability partner can do this.",
            severity=ErrorSeverity.MEDIUM,
        )

    if kind == ErrorKind.INVALID_INPUT:
        return ErrorResponse(
            code=ErrorCode.ERR_INVALID_INPUT,
            kind=kind,
            message=detail or "The request was invalid.",
            suggestion="Check the values you sent and try again.",
            severity=ErrorSeverity.LOW,
        )

    if kind == ErrorKind.STALE_JOB:
        return ErrorResponse(
            code=ErrorCode.ERR_STALE_JOB,
            kind=kind,
            message="A scheduled notification was superseded.",
            suggestion="No action needed.",
            severity=ErrorSeverity.LOW,
        )

    if kind == ErrorKind.DELIVERY_FAILURE:
        return ErrorResponse(
            code=ErrorCode.ERR_DELIVERY_FAILURE,
            kind=kind,
            message="A notification could not be delivered.",
            suggestion="Operators have been notified.",
            severity=ErrorSeverity.HIGH,
        )

    return ErrorResponse(
        code=ErrorCode.ERR_UNKNOWN,
        kind=kind,
        message="An unexpected error occurred.",
        suggestion="Please try again later. If the problem persists, contact support.",
        severity=ErrorSeverity.MEDIUM,
    )
