"""
Finance domain models.

- Account, LedgerTransaction, LedgerEntry: The double-entry ledger
- Payment: Money received through the processor
- Refund: Money returned against a payment
- Payout: Processor settlement batch and its derived links
- WebhookEvent: Inbound provider events for idempotent processing
- AccountingSyncJob: Durable queue of records to push to accounting
- ExpenseReport: Member expenses synced to accounting as bills
- LedgerReconciliationRun, LedgerDiscrepancy: Ledger integrity check history
"""

from finance.ledger.models import Account, LedgerEntry, LedgerTransaction
from finance.models.accounting_sync import (
    AccountingSyncJob,
    AccountingSyncMixin,
    sync_idempotency_key,
)
from finance.models.expense_report import ExpenseReport
from finance.models.payment import Payment
from finance.models.payout import Payout
from finance.models.reconciliation import (
    DiscrepancyType,
    LedgerDiscrepancy,
    LedgerReconciliationRun,
    ReconciliationRunStatus,
)
from finance.models.refund import Refund
from finance.models.webhook_event import WebhookEvent

__all__ = [
    "Account",
    "AccountingSyncJob",
    "AccountingSyncMixin",
    "DiscrepancyType",
    "ExpenseReport",
    "LedgerDiscrepancy",
    "LedgerEntry",
    "LedgerReconciliationRun",
    "LedgerTransaction",
    "Payment",
    "Payout",
    "ReconciliationRunStatus",
    "Refund",
    "WebhookEvent",
    "sync_idempotency_key",
]
