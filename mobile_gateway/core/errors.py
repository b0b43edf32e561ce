"""Application-level exception types.

Each error carries the HTTP status the envelope should be answered with, so
handlers never need a lookup table of their own.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability."""

    upstream_status: int
    upstream_url: str
    timeout_seconds: float
    retry_after: int
    limit: int
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message (goes into the envelope).
        details: Optional structured details for logs.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    http_status: ClassVar[int] = 400

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when client input is missing or malformed."""

    http_status = 400


class AuthenticationAppError(AppError):
    """Raised when the caller has no valid session."""

    http_status = 401


class NotFoundAppError(AppError):
    """Raised when a resource does not exist."""

    http_status = 404


class RateLimitAppError(AppError):
    """Raised when a caller exceeded its request budget."""

    http_status = 429


class UpstreamAppError(AppError):
    """Raised when the internal API cannot be reached."""

    http_status = 500


class InvalidUpstreamResponseError(UpstreamAppError):
    """Raised when the internal API answered with an unreadable body."""

    http_status = 502


class UpstreamTimeoutAppError(UpstreamAppError):
    """Raised when the internal API did not answer before the deadline."""

    http_status = 504
