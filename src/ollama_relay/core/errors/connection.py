"""Inference connection error classes.

Defines the closed failure taxonomy (``ErrorCategory``) and the single
tagged exception type raised for every classified request failure.
"""

from enum import Enum
from typing import Any, Optional


class ErrorCategory(str, Enum):
    """Classification of request failures for retry and messaging decisions."""

    TIMEOUT = "timeout"
    NETWORK = "network"
    CORS = "cors"
    AUTH = "auth"
    MODEL = "model"
    SERVER = "server"
    CONNECTION = "connection"
    UNKNOWN = "unknown"

    @property
    def retryable(self) -> bool:
        """Whether failures in this category are worth retrying locally."""
        return self not in _NON_RETRYABLE

    @property
    def base_delay(self) -> float:
        """Base backoff delay in seconds before the first retry."""
        return _BASE_DELAYS[self]

    @property
    def connection_class(self) -> bool:
        """Whether the failure means the service is unreachable or unresponsive."""
        return self in _CONNECTION_CLASS


_NON_RETRYABLE = frozenset({ErrorCategory.MODEL, ErrorCategory.CORS, ErrorCategory.AUTH})

_CONNECTION_CLASS = frozenset(
    {ErrorCategory.CONNECTION, ErrorCategory.NETWORK, ErrorCategory.TIMEOUT}
)

# Server errors wait longest so a cold-starting model has time to load
_BASE_DELAYS: dict[ErrorCategory, float] = {
    ErrorCategory.TIMEOUT: 2.0,
    ErrorCategory.NETWORK: 1.5,
    ErrorCategory.SERVER: 3.0,
    ErrorCategory.CONNECTION: 1.0,
    ErrorCategory.UNKNOWN: 1.0,
    ErrorCategory.CORS: 1.0,
    ErrorCategory.AUTH: 1.0,
    ErrorCategory.MODEL: 1.0,
}


class InferenceError(Exception):
    """A classified failure talking to the inference service.

    Attributes:
        category: Taxonomy entry driving retry and fallback decisions
        message: Human-readable, user-facing description
        cause: The underlying exception if available
        status: HTTP status code when the failure came from a response
        local: Whether the target was a local (loopback/private) host
    """

    def __init__(
        self,
        category: ErrorCategory,
        message: str,
        *,
        cause: Optional[BaseException] = None,
        status: Optional[int] = None,
        local: Optional[bool] = None,
    ):
        self.category = category
        self.message = message
        self.cause = cause
        self.status = status
        self.local = local
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return self.category.retryable

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the UI collaborator."""
        return {
            "category": self.category.value,
            "message": self.message,
            "retryable": self.retryable,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.category.value!r}, {self.message!r})"


class RetriesExhaustedError(InferenceError):
    """Raised when every retry attempt failed with a retryable category.

    Keeps the category of the last failure so fallback decisions still
    see the original classification.
    """

    def __init__(
        self,
        last_error: InferenceError,
        attempts: int,
        message: Optional[str] = None,
    ):
        self.last_error = last_error
        self.attempts = attempts
        super().__init__(
            last_error.category,
            message
            or f"Retries exhausted: tried {attempts} times. {last_error.message}",
            cause=last_error,
            status=last_error.status,
            local=last_error.local,
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["attempts"] = self.attempts
        return data


class ClientClosedError(RuntimeError):
    """Raised when an operation is attempted on a closed client."""


class RequestCancelledError(Exception):
    """Raised when an in-flight request is cancelled explicitly.

    Unlike a deadline expiry this is final: the retry loop re-raises it
    without another attempt.

    Attributes:
        request_id: The cancelled request
    """

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Request {request_id} was cancelled")
