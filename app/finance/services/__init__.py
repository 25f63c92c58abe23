"""
Finance services.

- AccountingSyncService: Job queue and sync contract for QuickBooks
- PayoutReconciliationService: Links payouts to the payments and refunds they settled
- LedgerReconciliationService: Ledger integrity check
- WebhookReprocessingService, SyncJobReprocessingService: Operator re-drive tooling

The transaction builder lives in finance.ledger.
"""

from finance.services.accounting_sync_service import AccountingSyncService, SyncOutcome
from finance.services.ledger_reconciliation_service import LedgerReconciliationService
from finance.services.payout_reconciliation_service import (
    PayoutReconciliationResult,
    PayoutReconciliationService,
)
from finance.services.reprocessing_service import (
    FailedItemFilter,
    ReprocessResult,
    RetryAllResult,
    SyncJobReprocessingService,
    WebhookReprocessingService,
)

__all__ = [
    "AccountingSyncService",
    "FailedItemFilter",
    "LedgerReconciliationService",
    "PayoutReconciliationResult",
    "PayoutReconciliationService",
    "ReprocessResult",
    "RetryAllResult",
    "SyncJobReprocessingService",
    "SyncOutcome",
    "WebhookReprocessingService",
]
