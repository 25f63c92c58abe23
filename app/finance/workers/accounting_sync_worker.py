"""
Accounting sync worker.

Celery tasks that drain the AccountingSyncJob queue.

Tasks:
- process_accounting_sync_jobs: Periodic; queues every due job
- sync_accounting_job: Runs one job (claim, sync, record outcome)
- enqueue_unsynced_records: Nightly; creates jobs for records that have none
- cleanup_stuck_sync_jobs: Periodic; releases jobs a dead worker left in SYNCING

Usage:
    from finance.workers import sync_accounting_job

    sync_accounting_job.delay(str(job_id))

Celery Beat Schedule (registered by migration):
    process-accounting-sync-jobs    every minute
    enqueue-unsynced-records        daily at 02:00
    cleanup-stuck-sync-jobs         every 10 minutes
"""

from __future__ import annotations

import logging
from uuid import UUID

from celery import shared_task

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_LIMIT = 1000


@shared_task
def process_accounting_sync_jobs(limit: int | None = None) -> dict:
    """
    Queue a sync_accounting_job task for each due job.

    Jobs are claimed by the task itself, so queueing the same job twice
    is harmless: the second task finds it already claimed.
    """
    from finance.services import AccountingSyncService

    job_ids = AccountingSyncService.due_job_ids(limit)
    queued = 0
    for job_id in job_ids:
        try:
            sync_accounting_job.delay(str(job_id))
            queued += 1
        except Exception as e:
            logger.error(
                f"Failed to queue sync job: {e}",
                extra={"job_id": str(job_id)},
            )

    if queued:
        logger.info(f"Queued {queued} accounting sync jobs", extra={"queued_count": queued})
    return {"queued_count": queued}


@shared_task(acks_late=True)
def sync_accounting_job(job_id: str) -> dict:
    """
    Run one accounting sync job.

    Retries are driven by the job's next_attempt_at, not by Celery, so
    this task never raises for sync failures.

    Returns:
        Dict with status "synced", "failed", "retry_scheduled" or "skipped"
    """
    from finance.services import AccountingSyncService

    outcome = AccountingSyncService.run_job(UUID(str(job_id)))
    if outcome is None:
        return {"status": "skipped", "job_id": str(job_id)}
    if outcome.ok:
        return {"status": "synced", "job_id": str(job_id), "external_id": outcome.external_id}
    return {
        "status": "retry_scheduled" if outcome.retryable else "failed",
        "job_id": str(job_id),
        "reason": outcome.reason,
    }


@shared_task
def enqueue_unsynced_records(limit: int = DEFAULT_SWEEP_LIMIT) -> dict:
    """Nightly safety net: create sync jobs for settled records that have none."""
    from finance.services import AccountingSyncService

    created = AccountingSyncService.enqueue_unsynced(limit=limit)
    return {"created": created, "total": sum(created.values())}


@shared_task
def cleanup_stuck_sync_jobs() -> dict:
    """
    Periodic task to release sync jobs stuck in SYNCING.

    A worker killed between claiming a job and recording its outcome
    leaves the job and its record SYNCING, where neither the due sweep nor
    the reprocessing tools can reach them.
    """
    from finance.services import AccountingSyncService

    counts = AccountingSyncService.release_stuck_jobs()
    if counts["released"] or counts["failed"]:
        logger.info(
            f"Released {counts['released'] + counts['failed']} stuck sync jobs",
            extra=counts,
        )
    return counts
