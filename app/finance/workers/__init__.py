"""
Workers for background finance processing.

- AccountingSyncWorker: Drains the accounting sync job queue
- ReconciliationWorker: Payout reconciliation and the ledger integrity check

Usage:
    from finance.workers import (
        cleanup_stuck_sync_jobs,
        enqueue_unsynced_records,
        process_accounting_sync_jobs,
        reconcile_payout_task,
        run_ledger_balance_check,
        sync_accounting_job,
    )

    reconcile_payout_task.delay("po_123")
"""

from finance.workers.accounting_sync_worker import (
    cleanup_stuck_sync_jobs,
    enqueue_unsynced_records,
    process_accounting_sync_jobs,
    sync_accounting_job,
)
from finance.workers.reconciliation_worker import (
    reconcile_payout_task,
    run_ledger_balance_check,
)

__all__ = [
    # Accounting Sync Worker
    "cleanup_stuck_sync_jobs",
    "enqueue_unsynced_records",
    "process_accounting_sync_jobs",
    "sync_accounting_job",
    # Reconciliation Worker
    "reconcile_payout_task",
    "run_ledger_balance_check",
]
