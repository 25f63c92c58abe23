"""
Adapters for external services.

All processor (Stripe) and accounting (QuickBooks) API calls go through
these adapters to get consistent error translation, timeouts, idempotency
and logging.

Usage:
    from finance.adapters import QuickBooksAdapter, StripeAdapter

    movements = StripeAdapter.list_payout_balance_transactions("po_123")
    qb_id = QuickBooksAdapter.create_sales_receipt(document, request_id=str(key))
"""

from finance.adapters.accounting_adapter import QuickBooksAdapter
from finance.adapters.retry import backoff_delay, is_retryable_error
from finance.adapters.stripe_adapter import BalanceMovement, PayoutResult, StripeAdapter

__all__ = [
    "BalanceMovement",
    "PayoutResult",
    "QuickBooksAdapter",
    "StripeAdapter",
    "backoff_delay",
    "is_retryable_error",
]
