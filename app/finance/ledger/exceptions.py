"""
Ledger-specific exceptions for financial operations.

Exception Hierarchy:
    LedgerError (base, BaseApplicationError)
    ├── AccountNotFound (NotFoundError) - Account missing from the chart
    ├── UnbalancedTransactionError (ValidationError) - Entries do not net to zero
    ├── InvalidAmountError (ValidationError) - Non-positive money amounts
    ├── UnknownEntityTypeError (ValidationError) - No revenue routing for entity type
    ├── RefundExceedsPayment (ValidationError) - Cumulative refunds over payment amount
    ├── DuplicateExternalPayment (ConflictError) - External payment id already posted
    └── ImmutableEntryError (ConflictError) - Attempt to update or delete posted records

Usage:
    from finance.ledger.exceptions import DuplicateExternalPayment

    try:
        ledger.process_payment(...)
    except DuplicateExternalPayment as e:
        logger.info("Already recorded", extra={"payment_id": e.existing_payment_id})
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    from typing import Any


class LedgerError(BaseApplicationError):
    """
    Base exception for all ledger operations.

    Example:
        try:
            ledger.process_refund(...)
        except LedgerError as e:
            return Response(e.to_dict(), status=400)
    """

    default_error_code: str = "LEDGER_ERROR"


class AccountNotFound(LedgerError, NotFoundError):
    """Raised when an account name is not part of the chart."""

    default_error_code: str = "ACCOUNT_NOT_FOUND"


class UnbalancedTransactionError(LedgerError, ValidationError):
    """
    Raised when a transaction's entries do not sum to zero.

    This is a programming error in whoever built the entries; the ledger
    never adjusts entries to force a balance.
    """

    default_error_code: str = "UNBALANCED_TRANSACTION"


class InvalidAmountError(LedgerError, ValidationError):
    """Raised when a money amount that must be positive is not."""

    default_error_code: str = "INVALID_AMOUNT"


class UnknownEntityTypeError(LedgerError, ValidationError):
    """Raised when a payment names an entity type with no revenue account."""

    default_error_code: str = "UNKNOWN_ENTITY_TYPE"


class RefundExceedsPayment(LedgerError, ValidationError):
    """
    Raised when a refund would push cumulative refunds past the payment amount.

    Attributes:
        payment_id: The payment being refunded
        requested_cents: Amount of this refund request
        available_cents: Amount still refundable on the payment
    """

    default_error_code: str = "REFUND_EXCEEDS_PAYMENT"

    def __init__(
        self,
        payment_id: Any,
        requested_cents: int,
        available_cents: int,
        message: str | None = None,
    ):
        self.payment_id = payment_id
        self.requested_cents = requested_cents
        self.available_cents = available_cents
        super().__init__(
            message
            or (
                f"Refund of {requested_cents} cents exceeds the "
                f"{available_cents} cents still refundable on payment {payment_id}"
            ),
            details={
                "payment_id": str(payment_id),
                "requested_cents": requested_cents,
                "available_cents": available_cents,
            },
        )


class DuplicateExternalPayment(LedgerError, ConflictError):
    """
    Raised when an external payment id has already been recorded.

    Webhook handlers treat this as a successful no-op, since providers
    deliver events at least once.
    """

    default_error_code: str = "DUPLICATE_EXTERNAL_PAYMENT"

    def __init__(self, external_payment_id: str, existing_payment_id: Any = None):
        self.external_payment_id = external_payment_id
        self.existing_payment_id = existing_payment_id
        details = {"external_payment_id": external_payment_id}
        if existing_payment_id is not None:
            details["existing_payment_id"] = str(existing_payment_id)
        super().__init__(
            f"Payment {external_payment_id} has already been recorded",
            details=details,
        )


class ImmutableEntryError(LedgerError, ConflictError):
    """Raised when code tries to update or delete a posted ledger record."""

    default_error_code: str = "IMMUTABLE_LEDGER_RECORD"
