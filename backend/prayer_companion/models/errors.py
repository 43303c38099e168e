"""Error models and exceptions.

``AppError`` is the error envelope returned by the HTTP API. The exception
classes classify how a prayer fetch ended so callers can tell a user abort
from an exhausted retry budget from a malformed response.
"""

from enum import Enum

from pydantic import BaseModel, Field


class ErrorCode(str, Enum):
    """Machine-readable error codes returned to clients."""

    INVALID_INPUT = "INVALID_INPUT"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    API_ERROR = "API_ERROR"
    TRANSIENT_FAILURE = "TRANSIENT_FAILURE"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    CANCELLED = "CANCELLED"
    RATE_LIMITED = "RATE_LIMITED"
    ALREADY_PRAYED = "ALREADY_PRAYED"
    NOT_FOUND = "NOT_FOUND"


class RecoveryOption(BaseModel):
    """An action the client can offer the user after an error."""

    label: str
    action: str


class AppError(BaseModel):
    """Error payload shared by every API response."""

    code: ErrorCode
    message: str = Field(..., description="Technical message for logs and debugging")
    user_message: str = Field(..., description="Message safe to show to the user")
    recovery_options: list[RecoveryOption] = Field(default_factory=list)


class PrayerFetchError(Exception):
    """Base class for terminal prayer fetch outcomes."""

    code: ErrorCode = ErrorCode.API_ERROR
    user_message: str = "Unable to retrieve authentic prayers at this time."


class TransientFailure(PrayerFetchError):
    """Transport or provider failure. Retried until attempts run out."""

    code = ErrorCode.TRANSIENT_FAILURE

    def __init__(self, message: str, attempts: int = 1) -> None:
        super().__init__(message)
        self.attempts = attempts


class InvalidResponse(PrayerFetchError):
    """The provider answered, but not with a usable prayer set. Never retried."""

    code = ErrorCode.INVALID_RESPONSE


class FetchCancelled(PrayerFetchError):
    """The caller cancelled the fetch, usually because a newer one replaced it."""

    code = ErrorCode.CANCELLED
    user_message = "The request was cancelled."
