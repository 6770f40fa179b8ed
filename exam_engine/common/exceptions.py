"""
Common Exception Classes

Business-rule failures of the assessment engine derive from ``AssessmentError``
and carry a stable ``ErrorKind``. Infrastructure failures (``DatabaseError``)
are kept apart so the API layer can report them as generic internal errors.
"""

import datetime
import enum
from typing import Any, Dict, Optional


class ErrorKind(str, enum.Enum):
    """Stable, client-facing error kinds."""
    NOT_FOUND = "not_found"
    NOT_PUBLISHED = "not_published"
    ROLE_NOT_ALLOWED = "role_not_allowed"
    NOT_YET_OPEN = "not_yet_open"
    WINDOW_CLOSED = "window_closed"
    ATTEMPTS_EXHAUSTED = "attempts_exhausted"
    NO_ACTIVE_ATTEMPT = "no_active_attempt"
    ALREADY_SUBMITTED = "already_submitted"
    TIME_EXPIRED = "time_expired"
    VALIDATION_ERROR = "validation_error"
    CONFLICT = "conflict"
    FORBIDDEN = "forbidden"


class BaseError(Exception):
    """Base class for all custom exceptions."""

    def __init__(self, message: str, original_exception: Optional[Exception] = None):
        """
        Initialize the exception.

        Args:
            message: Error message
            original_exception: Original exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.original_exception = original_exception


class DatabaseError(BaseError):
    """Exception raised for database-related errors."""

    def __init__(self, message: str, original_exception: Optional[Exception] = None):
        super().__init__(f"Database error: {message}", original_exception)


class AssessmentError(BaseError):
    """
    An expected business outcome that the caller must be told about.

    Attributes:
        kind: Stable error kind
        status_code: HTTP status the API layer responds with
        details: Extra machine-readable context (never answer-key data)
    """

    kind: ErrorKind = ErrorKind.VALIDATION_ERROR
    status_code: int = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.kind.value,
            "message": self.message,
            "details": self.details
        }


def _format_time(value: Optional[datetime.datetime]) -> str:
    return value.strftime("%Y-%m-%d %H:%M UTC") if value else "unknown"


class NotFoundError(AssessmentError):
    """Raised when a definition, question or attempt does not exist."""

    kind = ErrorKind.NOT_FOUND
    status_code = 404

    def __init__(self, resource_type: str, resource_id: Any):
        super().__init__(
            f"{resource_type} with ID {resource_id} not found",
            {"resource_type": resource_type, "resource_id": str(resource_id)}
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class NotPublishedError(AssessmentError):
    kind = ErrorKind.NOT_PUBLISHED
    status_code = 403

    def __init__(self, definition_id: str):
        super().__init__(
            "This assessment has not been published yet",
            {"definition_id": definition_id}
        )


class RoleNotAllowedError(AssessmentError):
    kind = ErrorKind.ROLE_NOT_ALLOWED
    status_code = 403

    def __init__(self, role: str):
        super().__init__(
            f"Participants with role '{role}' are not allowed to take this assessment",
            {"role": role}
        )


class NotYetOpenError(AssessmentError):
    kind = ErrorKind.NOT_YET_OPEN
    status_code = 403

    def __init__(self, opens_at: datetime.datetime):
        super().__init__(
            f"This assessment is not available yet; it opens at {_format_time(opens_at)}",
            {"opens_at": opens_at.isoformat()}
        )


class WindowClosedError(AssessmentError):
    kind = ErrorKind.WINDOW_CLOSED
    status_code = 403

    def __init__(self, closes_at: datetime.datetime):
        super().__init__(
            f"The deadline for this assessment has passed; it closed at {_format_time(closes_at)}",
            {"closes_at": closes_at.isoformat()}
        )


class AttemptsExhaustedError(AssessmentError):
    kind = ErrorKind.ATTEMPTS_EXHAUSTED

    def __init__(self, attempts_allowed: int):
        plural = "attempt" if attempts_allowed == 1 else "attempts"
        super().__init__(
            f"You have already used all {attempts_allowed} allowed {plural}",
            {"attempts_allowed": attempts_allowed, "attempts_remaining": 0}
        )


class NoActiveAttemptError(AssessmentError):
    kind = ErrorKind.NO_ACTIVE_ATTEMPT

    def __init__(self, definition_id: str):
        super().__init__(
            "No attempt in progress was found for this assessment; start one first",
            {"definition_id": definition_id}
        )


class AlreadySubmittedError(AssessmentError):
    kind = ErrorKind.ALREADY_SUBMITTED
    status_code = 409

    def __init__(self, attempt_id: str):
        super().__init__(
            "This attempt has already been submitted",
            {"attempt_id": attempt_id}
        )


class TimeExpiredError(AssessmentError):
    kind = ErrorKind.TIME_EXPIRED

    def __init__(self, time_limit_minutes: int, grace_minutes: int, attempts_remaining: int):
        super().__init__(
            f"Time is up: the {time_limit_minutes} minute limit (plus {grace_minutes} minute "
            f"tolerance) was exceeded and the attempt was recorded with a score of 0. "
            f"Attempts remaining: {attempts_remaining}",
            {
                "time_limit_minutes": time_limit_minutes,
                "grace_minutes": grace_minutes,
                "score_percent": 0,
                "attempts_remaining": attempts_remaining
            }
        )


class ValidationError(AssessmentError):
    """Malformed input, e.g. an empty question set at creation."""

    kind = ErrorKind.VALIDATION_ERROR

    def __init__(self, message: str, errors: Optional[Dict[str, Any]] = None):
        super().__init__(message, {"errors": errors} if errors else None)
        self.errors = errors or {}


class ConflictError(AssessmentError):
    """A concurrent start/submit race or an integrity rule was hit."""

    kind = ErrorKind.CONFLICT
    status_code = 409


class AuthorizationError(AssessmentError):
    """Raised when a non-administrator calls an administrator-only operation."""

    kind = ErrorKind.FORBIDDEN
    status_code = 403

    def __init__(self, action: str):
        super().__init__(
            f"Administrator privileges are required to {action}",
            {"action": action}
        )
        self.action = action
