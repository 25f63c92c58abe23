"""
Celery tasks for webhook processing.

This module provides async tasks for:
- Processing stored webhook events
- Re-driving failed (and never-queued) webhook events
- Periodic cleanup of stuck and old events

Worker tasks for accounting sync and reconciliation are re-exported at
the bottom so Celery autodiscovery registers them.

Usage:
    from finance.tasks import process_webhook_event

    process_webhook_event.delay(str(webhook_event_id))
"""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from finance.models import WebhookEvent
from finance.models.webhook_event import max_webhook_attempts
from finance.state_machines import WebhookEventStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

RETRY_BATCH_SIZE = 100
DEFAULT_RETENTION_DAYS = 90


def stuck_threshold_minutes() -> int:
    return getattr(settings, "WEBHOOK_STUCK_THRESHOLD_MINUTES", 30)


# =============================================================================
# Webhook Processing Tasks
# =============================================================================


@shared_task(acks_late=True)
def process_webhook_event(webhook_event_id: str) -> dict:
    """
    Process a stored webhook event.

    There is no Celery autoretry: a failed handler leaves the event
    FAILED, and retry_failed_webhooks re-drives it until attempts run out.

    Returns:
        Dict with the processing outcome
    """
    from finance.webhooks.ingest import WebhookIngestionService

    outcome = WebhookIngestionService.process(webhook_event_id)
    return outcome.to_dict()


@shared_task
def retry_failed_webhooks() -> dict:
    """
    Periodic task to re-drive failed webhook events.

    Resets failed events that still have attempts left to PENDING and
    queues them. Also queues PENDING events older than the stuck
    threshold, which were stored but never queued.

    This task should be scheduled via celery-beat, e.g., every 5 minutes.
    """
    failed_ids = list(
        WebhookEvent.objects.filter(
            status=WebhookEventStatus.FAILED,
            attempt_count__lt=max_webhook_attempts(),
        )
        .order_by("updated_at")
        .values_list("id", flat=True)[:RETRY_BATCH_SIZE]
    )
    WebhookEvent.objects.filter(id__in=failed_ids, status=WebhookEventStatus.FAILED).update(
        status=WebhookEventStatus.PENDING, updated_at=timezone.now()
    )

    orphan_cutoff = timezone.now() - timedelta(minutes=stuck_threshold_minutes())
    orphan_ids = list(
        WebhookEvent.objects.filter(
            status=WebhookEventStatus.PENDING,
            updated_at__lt=orphan_cutoff,
        )
        .order_by("updated_at")
        .values_list("id", flat=True)[:RETRY_BATCH_SIZE]
    )

    queued_count = 0
    for webhook_id in [*failed_ids, *orphan_ids]:
        try:
            process_webhook_event.delay(str(webhook_id))
            queued_count += 1
        except Exception as e:
            logger.error(
                f"Failed to queue webhook for retry: {e}",
                extra={"webhook_event_id": str(webhook_id)},
            )

    logger.info(
        f"Queued {queued_count} webhooks for retry",
        extra={
            "queued_count": queued_count,
            "failed_count": len(failed_ids),
            "orphaned_count": len(orphan_ids),
        },
    )
    return {"queued_count": queued_count}


@shared_task
def cleanup_stuck_webhooks() -> dict:
    """
    Periodic task to fail webhooks stuck in PROCESSING.

    A worker that crashed mid-handler leaves its event PROCESSING forever;
    marking it FAILED hands it to the retry sweep.
    """
    threshold = timezone.now() - timedelta(minutes=stuck_threshold_minutes())

    stuck_webhooks = WebhookEvent.objects.filter(
        status=WebhookEventStatus.PROCESSING,
        updated_at__lt=threshold,
    )

    reset_count = 0
    for webhook in stuck_webhooks:
        stuck_since = webhook.updated_at
        webhook.mark_failed("Processing timed out - reset for retry")
        webhook.save(update_fields=["status", "last_error", "updated_at"])
        reset_count += 1
        logger.warning(
            "Reset stuck webhook",
            extra={
                "webhook_event_id": str(webhook.id),
                "event_id": webhook.event_id,
                "stuck_since": stuck_since.isoformat(),
            },
        )

    if reset_count > 0:
        logger.info(
            f"Reset {reset_count} stuck webhooks",
            extra={"reset_count": reset_count},
        )

    return {"reset_count": reset_count}


@shared_task
def cleanup_old_webhooks(days: int = DEFAULT_RETENTION_DAYS) -> dict:
    """
    Periodic task to delete old succeeded webhook events.

    Failed events are kept regardless of age for operator review.
    """
    cutoff = timezone.now() - timedelta(days=days)

    deleted_count, _ = WebhookEvent.objects.filter(
        status=WebhookEventStatus.SUCCEEDED,
        processed_at__lt=cutoff,
    ).delete()

    if deleted_count > 0:
        logger.info(
            f"Deleted {deleted_count} old webhook events",
            extra={
                "deleted_count": deleted_count,
                "cutoff_date": cutoff.isoformat(),
            },
        )

    return {"deleted_count": deleted_count}


# =============================================================================
# Re-exported Worker Tasks
# =============================================================================
# These tasks are defined in finance.workers but re-exported here so
# Celery autodiscover finds them.

from finance.workers import (  # noqa: E402, F401
    enqueue_unsynced_records,
    process_accounting_sync_jobs,
    reconcile_payout_task,
    run_ledger_balance_check,
    sync_accounting_job,
)
