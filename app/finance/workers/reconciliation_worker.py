"""
Reconciliation worker.

Tasks:
- reconcile_payout_task: Rebuild one payout's links from processor data
- run_ledger_balance_check: Daily ledger integrity check

Usage:
    from finance.workers import reconcile_payout_task

    reconcile_payout_task.delay("po_123")

Celery Beat Schedule (registered by migration):
    run-ledger-balance-check    daily at 03:00
"""

from __future__ import annotations

import logging

from celery import shared_task

from finance.exceptions import StripeError

logger = logging.getLogger(__name__)

MAX_RECONCILE_RETRIES = 3


@shared_task(bind=True, max_retries=MAX_RECONCILE_RETRIES)
def reconcile_payout_task(self, external_payout_id: str) -> dict:
    """
    Reconcile a payout against its processor balance transactions.

    Transient processor errors are retried with backoff; nothing is
    changed locally until a fetch succeeds.
    """
    from finance.adapters import backoff_delay, is_retryable_error
    from finance.models import Payout
    from finance.services import AccountingSyncService, PayoutReconciliationService
    from finance.state_machines import PayoutStatus

    logger.info(
        "Reconciling payout",
        extra={"external_payout_id": external_payout_id, "attempt": self.request.retries},
    )

    try:
        result = PayoutReconciliationService.reconcile_payout(external_payout_id)
    except StripeError as e:
        if is_retryable_error(e) and self.request.retries < MAX_RECONCILE_RETRIES:
            raise self.retry(exc=e, countdown=backoff_delay(self.request.retries, base=30))
        logger.error(
            f"Payout reconciliation failed: {e.message}",
            extra={"external_payout_id": external_payout_id, "error_code": e.error_code},
        )
        return {"status": "failed", "external_payout_id": external_payout_id, "error": e.message}

    payout = Payout.objects.get(id=result.payout_id)
    if payout.status == PayoutStatus.PAID:
        AccountingSyncService.enqueue(payout)

    return {"status": "completed", **result.to_dict()}


@shared_task
def run_ledger_balance_check() -> dict:
    """
    Run the ledger integrity check.

    Findings are recorded as LedgerDiscrepancy rows and logged at ERROR.
    """
    from finance.services import LedgerReconciliationService

    run = LedgerReconciliationService.run()
    return {
        "status": run.status,
        "run_id": str(run.id),
        "transactions_checked": run.transactions_checked,
        "entries_checked": run.entries_checked,
        "ledger_total_cents": run.ledger_total_cents,
        "discrepancies_found": run.discrepancies_found,
    }
