"""
Finance exceptions outside the ledger itself.

Exception Hierarchy:
    PaymentError (base for finance domain)
    ├── PaymentNotFoundError - Payment, refund or payout lookup failures
    └── InvalidStateTransitionError - Lifecycle transition not allowed (ConflictError)

    NotInFailedState (ConflictError) - Re-drive requested for an item that is not failed

    StripeError (ExternalServiceError) - Processor API failures
    ├── StripeInvalidRequestError - Bad request, auth or signature (permanent)
    ├── StripeRateLimitError - Rate limited (transient, retry)
    ├── StripeAPIUnavailableError - Connection or 5xx (transient, retry)
    └── StripeTimeoutError - Request timed out (transient, retry)

    AccountingSyncError (ExternalServiceError) - Accounting API failures
    ├── AccountingValidationError - Document rejected (permanent)
    ├── AccountingAuthenticationError - Token rejected (permanent until fixed)
    ├── AccountingRateLimitError - Rate limited (transient, retry)
    └── AccountingServiceUnavailableError - Timeout, connection or 5xx (transient)

Usage:
    from finance.exceptions import StripeError

    try:
        movements = StripeAdapter.list_payout_balance_transactions("po_123")
    except StripeError as e:
        if e.is_retryable:
            ...
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
)

if TYPE_CHECKING:
    from typing import Any


class PaymentError(BaseApplicationError):
    """Base exception for finance domain errors."""

    default_error_code: str = "PAYMENT_ERROR"


class PaymentNotFoundError(PaymentError, NotFoundError):
    """
    Raised when a payment, refund, payout or related record is missing.

    Example:
        raise PaymentNotFoundError(
            f"Payout {external_payout_id} not found",
            details={"external_payout_id": external_payout_id},
        )
    """

    default_error_code: str = "PAYMENT_NOT_FOUND"


class InvalidStateTransitionError(PaymentError, ConflictError):
    """
    Raised when a lifecycle transition is not allowed from the current state.

    Example:
        raise InvalidStateTransitionError(
            "Cannot mark a canceled payout as paid",
            details={"current_state": "canceled", "target_state": "paid"},
        )
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"


class NotInFailedState(ConflictError):
    """
    Raised when an operator re-drives an item that is not in a failed state.

    Re-driving a succeeded webhook or a synced job would process it twice,
    so it is refused.
    """

    default_error_code: str = "NOT_IN_FAILED_STATE"

    def __init__(self, kind: str, item_id: Any, status: str):
        self.kind = kind
        self.item_id = item_id
        self.status = status
        super().__init__(
            f"{kind} {item_id} is {status}, only failed items can be re-driven",
            details={"kind": kind, "id": str(item_id), "status": status},
        )


# =============================================================================
# Stripe-Specific Exceptions
# =============================================================================


class StripeError(ExternalServiceError):
    """
    Base exception for all Stripe-related errors.

    Attributes:
        stripe_code: Stripe's error code, when Stripe provides one
        is_retryable: Whether the same call may succeed later
    """

    default_error_code: str = "STRIPE_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        stripe_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.stripe_code = stripe_code
        details = dict(details or {})
        if stripe_code:
            details["stripe_code"] = stripe_code
        super().__init__(message, error_code=error_code, details=details)


class StripeInvalidRequestError(StripeError):
    """
    Invalid request to Stripe: bad parameters, unknown object, bad credentials
    or a webhook signature that does not verify. Never retried.
    """

    default_error_code: str = "INVALID_STRIPE_REQUEST"
    is_retryable: bool = False


class StripeRateLimitError(StripeError):
    """Rate limited by the Stripe API."""

    default_error_code: str = "STRIPE_RATE_LIMITED"
    is_retryable: bool = True


class StripeAPIUnavailableError(StripeError):
    """Stripe could not be reached or returned a server error."""

    default_error_code: str = "STRIPE_UNAVAILABLE"
    is_retryable: bool = True


class StripeTimeoutError(StripeError):
    """A Stripe call exceeded STRIPE_API_TIMEOUT_SECONDS."""

    default_error_code: str = "STRIPE_TIMEOUT"
    is_retryable: bool = True


# =============================================================================
# Accounting System Exceptions
# =============================================================================


class AccountingSyncError(ExternalServiceError):
    """
    Base exception for accounting API failures.

    Attributes:
        status_code: HTTP status returned by the accounting API, if any
        is_retryable: Whether another attempt may succeed
    """

    default_error_code: str = "ACCOUNTING_SYNC_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.status_code = status_code
        details = dict(details or {})
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, details=details)


class AccountingValidationError(AccountingSyncError):
    """The accounting system rejected the document; retrying will not help."""

    default_error_code: str = "ACCOUNTING_VALIDATION_ERROR"
    is_retryable: bool = False


class AccountingAuthenticationError(AccountingSyncError):
    """The access token was rejected."""

    default_error_code: str = "ACCOUNTING_AUTHENTICATION_ERROR"
    is_retryable: bool = False


class AccountingRateLimitError(AccountingSyncError):
    default_error_code: str = "ACCOUNTING_RATE_LIMITED"
    is_retryable: bool = True


class AccountingServiceUnavailableError(AccountingSyncError):
    """Timeout, connection failure or server error."""

    default_error_code: str = "ACCOUNTING_UNAVAILABLE"
    is_retryable: bool = True
