"""Error taxonomy for exam delivery.

Every error carries a stable ``error_code`` and the HTTP status it maps to,
so routes can raise domain errors and ``main.py`` renders them in the
shared ``ErrorResponse`` envelope.
"""

from typing import Any


class ExamError(Exception):
    """Base class for recoverable exam-delivery failures."""

    error_code = "exam_error"
    status_code = 400

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details


class AuthenticationError(ExamError):
    """No authenticated student identity is available."""

    error_code = "authentication_required"
    status_code = 401


class NotFoundError(ExamError):
    """Exam, attempt or question does not exist (or is not visible)."""

    error_code = "not_found"
    status_code = 404


class ValidationError(ExamError):
    """Operation is not allowed in the attempt's current state."""

    error_code = "invalid_state"
    status_code = 409


class StoreError(ExamError):
    """An underlying read or write against the store failed."""

    error_code = "store_unavailable"
    status_code = 503
