"""Exception hierarchy raised by the quiz engine and its services."""

from __future__ import annotations


class ScholarQuizError(Exception):
    """Base class for all quiz engine errors."""


class QuizApiError(ScholarQuizError):
    """Raised when the question source API is unreachable or rejects a request."""

    def __init__(self, message: str, status: int | None = None, payload: object | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.payload = payload

    @property
    def is_transport_failure(self) -> bool:
        return self.status is None


class QuizConfigError(ScholarQuizError):
    """Raised when a quiz configuration cannot be used to start a session."""


class QuizStartError(ScholarQuizError):
    """Raised when neither the server nor the cache produced any questions."""


class SubmissionError(ScholarQuizError):
    """Raised when the remote submission fails; the session stays in progress."""


class SessionBusyError(ScholarQuizError):
    """Raised when a call arrives while a fetch or submission is outstanding."""


class InvalidSessionStateError(ScholarQuizError):
    """Raised when an operation does not apply to the session's current status."""


class CacheSyncError(ScholarQuizError):
    """Raised when a bulk sync cannot even determine which subjects to fetch."""
