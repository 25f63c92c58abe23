"""
Base service layer patterns for business logic encapsulation.

This module provides foundational patterns for the service layer:
- ServiceResult: Standard result wrapper for consistent success/failure handling
- BaseService: Base class with a per-service logger

Pattern Comparison:
    - ServiceResult: Use for expected failures (unknown payment, bad payload)
    - Exceptions: Use for rule violations and unexpected failures

Usage:
    from core.services import BaseService, ServiceResult

    class PayoutService(BaseService):
        @classmethod
        def mark_paid(cls, payout_id) -> ServiceResult[Payout]:
            payout = Payout.objects.filter(id=payout_id).first()
            if payout is None:
                return ServiceResult.failure("Payout not found", "PAYOUT_NOT_FOUND")

            with transaction.atomic():
                payout.mark_paid()
                payout.save()

            cls.get_logger().info("Payout marked paid", extra={"payout_id": str(payout.id)})
            return ServiceResult.success(payout)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from core.exceptions import BaseApplicationError

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Standard result wrapper for service operations.

    Attributes:
        success: Whether the operation succeeded
        data: Result data if successful (None if failed)
        error: Error message if failed (None if successful)
        error_code: Machine-readable error code for client handling
        errors: Field-level errors for validation failures

    Usage:
        result = handler(webhook_event)
        if result:
            webhook_event.mark_succeeded()
        else:
            webhook_event.mark_failed(result.error)
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        """Create a successful result."""
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
    ) -> ServiceResult[T]:
        """
        Create a failed result.

        Args:
            error: Human-readable error message
            error_code: Machine-readable error code for client handling
            errors: Field-level errors (for validation failures)
        """
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            errors=errors,
        )

    @classmethod
    def from_exception(cls, exc: Exception, error_code: str | None = None) -> ServiceResult[T]:
        """
        Create a failed result from an exception.

        Application errors keep their own error code; anything else
        falls back to the exception class name.
        """
        if isinstance(exc, BaseApplicationError):
            return cls(
                success=False,
                error=exc.message,
                error_code=error_code or exc.error_code,
            )
        return cls(
            success=False,
            error=str(exc),
            error_code=error_code or exc.__class__.__name__.upper(),
        )

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Base class for service layer classes.

    Provides a logger named after the concrete service.

    Services are stateless; use @classmethod or @staticmethod.
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger named after the service class."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

