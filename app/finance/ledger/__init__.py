"""
Ledger - Double-entry bookkeeping for the organization's money.

Every business event (payment, refund, credit) becomes one transaction of
signed entries that sum to zero: positive amounts debit an account,
negative amounts credit it.

Public API:
    Chart:
        ChartOfAccounts, DEFAULT_CHART, AccountKind, AccountName, EntityType

    Service:
        ledger - LedgerService bound to the default chart
        LedgerService - Transaction builder

    Types:
        Money, EntrySpec, PaymentPosting, RefundPosting, LedgerBalanceReport

    Exceptions:
        LedgerError and subclasses (see finance.ledger.exceptions)

Usage:
    from finance.ledger import Money, ledger

    posting = ledger.process_payment(
        user_id=None,
        amount=Money(5000),
        entity_type="donation",
        entity_id="campaign-2024",
        external_payment_id="pi_123",
    )
    ledger.add_credit(user_id, Money(500), reason="goodwill")
"""

from .chart import DEFAULT_CHART, AccountKind, AccountName, ChartOfAccounts, EntityType
from .exceptions import (
    AccountNotFound,
    DuplicateExternalPayment,
    ImmutableEntryError,
    InvalidAmountError,
    LedgerError,
    RefundExceedsPayment,
    UnbalancedTransactionError,
    UnknownEntityTypeError,
)
from .services import LedgerService, ledger
from .types import EntrySpec, LedgerBalanceReport, Money, PaymentPosting, RefundPosting

__all__ = [
    # Chart
    "AccountKind",
    "AccountName",
    "ChartOfAccounts",
    "DEFAULT_CHART",
    "EntityType",
    # Service
    "ledger",
    "LedgerService",
    # Types
    "EntrySpec",
    "LedgerBalanceReport",
    "Money",
    "PaymentPosting",
    "RefundPosting",
    # Exceptions
    "AccountNotFound",
    "DuplicateExternalPayment",
    "ImmutableEntryError",
    "InvalidAmountError",
    "LedgerError",
    "RefundExceedsPayment",
    "UnbalancedTransactionError",
    "UnknownEntityTypeError",
]
