"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.

Errors fall in two groups that clients must be able to tell apart:
- transient ("try again later"): rate limiting, identity authority or
  storage being unavailable
- terminal ("will never succeed unchanged"): bad credentials, rejected
  tickets, invalid input, missing structures
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    code: str
    message: str
    hint: str
    field: str
    max_value: int
    actual_value: int
    retry_after: float
    category: str
    structure_id: int
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    retryable = False

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class AuthenticationAppError(AppError):
    """Raised when the caller's identity cannot be established."""


class InvalidCredentialError(AuthenticationAppError):
    """Ticket is missing, empty or malformed; the authority was not contacted."""

    def __init__(self, message: str = "Missing or malformed session ticket", details: ErrorDetails | None = None) -> None:
        super().__init__(code="invalid_credential", message=message, details=details)


class AuthRejectedError(AuthenticationAppError):
    """The external identity authority reported the ticket as invalid."""

    def __init__(self, message: str = "Session ticket was rejected", details: ErrorDetails | None = None) -> None:
        super().__init__(code="auth_rejected", message=message, details=details)


class AuthUnavailableError(AppError):
    """The external identity authority could not be reached in time."""

    retryable = True

    def __init__(self, message: str = "Identity authority unavailable", details: ErrorDetails | None = None) -> None:
        super().__init__(code="auth_unavailable", message=message, details=details)


class RateLimitedError(AppError):
    """Caller exceeded the minimum interval for an operation category."""

    retryable = True

    def __init__(self, *, category: str, retry_after: float) -> None:
        super().__init__(
            code="rate_limited",
            message="Rate limit exceeded. Try again later.",
            details={"category": category, "retry_after": retry_after},
        )
        self.category = category
        self.retry_after = retry_after


class InvalidInputError(ValidationAppError):
    """Request payload violates store constraints."""

    def __init__(self, message: str, details: ErrorDetails | None = None) -> None:
        super().__init__(code="invalid_input", message=message, details=details)


class NotFoundError(AppError):
    """Referenced structure does not exist (or was evicted)."""

    def __init__(self, message: str = "Structure not found", details: ErrorDetails | None = None) -> None:
        super().__init__(code="not_found", message=message, details=details)


class StorageUnavailableError(AppError):
    """The persistence backend failed (I/O error, locked database...)."""

    retryable = True

    def __init__(self, message: str = "Storage unavailable", details: ErrorDetails | None = None) -> None:
        super().__init__(code="storage_unavailable", message=message, details=details)
