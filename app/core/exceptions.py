"""
Base exception classes for domain error handling.

Every domain error in the project derives from BaseApplicationError so that
views, tasks and management commands can report failures in one shape:
a human-readable message, a machine-readable error code and optional details.

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Invalid input or business rule violation
    ├── NotFoundError - Referenced record does not exist
    ├── ConflictError - Duplicate or state conflict
    └── ExternalServiceError - Processor or accounting API failure

Usage:
    from core.exceptions import ConflictError, ValidationError

    raise ValidationError("Amount must be positive", details={"amount_cents": 0})

    try:
        ...
    except BaseApplicationError as e:
        return Response(e.to_dict(), status=400)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (ids, amounts, states)
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Example:
            {
                "error": "Payment not found",
                "error_code": "PAYMENT_NOT_FOUND",
                "details": {"payment_id": "..."}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input validation or a business rule fails.

    Example:
        raise ValidationError(
            "Refund exceeds payment amount",
            error_code="REFUND_EXCEEDS_PAYMENT",
            details={"requested_cents": 9000, "available_cents": 7500},
        )
    """

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """Raised when a requested record does not exist."""

    default_error_code: str = "NOT_FOUND"


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with current state.

    Use for:
    - Duplicate external identifiers
    - Operations that require a specific lifecycle state
    - Attempts to mutate append-only records
    """

    default_error_code: str = "CONFLICT"


class ExternalServiceError(BaseApplicationError):
    """
    Raised when a third-party service call fails.

    Subclasses set `is_retryable` so callers can decide between
    scheduling another attempt and giving up.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
    is_retryable: bool = False
