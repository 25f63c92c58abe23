"""
Webhook ingestion and processing.

receive() stores an inbound provider event exactly once per
(provider, event_id) and queues it; process() claims a pending event,
runs its handler in a transaction and records the outcome.

Event state machine:
    PENDING -> PROCESSING -> SUCCEEDED
    PENDING -> PROCESSING -> FAILED -> PENDING (retry sweep or operator)

The claim is a conditional UPDATE on status=PENDING, so two workers
handed the same event cannot both process it.

Usage:
    from finance.webhooks.ingest import WebhookIngestionService

    result = WebhookIngestionService.receive("stripe", "evt_1", "payment_intent.succeeded", payload)
    outcome = WebhookIngestionService.process(result.webhook_event.id)
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from core.services import BaseService

from finance.models import WebhookEvent
from finance.state_machines import WebhookEventStatus
from finance.webhooks.handlers import dispatch_webhook

# IngestResult.status values
QUEUED = "queued"
DUPLICATE = "duplicate"

# ProcessOutcome.status values
SUCCEEDED = "succeeded"
FAILED = "failed"
SKIPPED = "skipped"
NOT_FOUND = "not_found"


@dataclass(frozen=True)
class IngestResult:
    webhook_event: WebhookEvent
    status: str
    created: bool

    @property
    def is_duplicate(self) -> bool:
        return self.status == DUPLICATE


@dataclass(frozen=True)
class ProcessOutcome:
    webhook_event_id: uuid.UUID
    status: str
    error: str = ""

    @property
    def succeeded(self) -> bool:
        return self.status == SUCCEEDED

    def to_dict(self) -> dict[str, Any]:
        data = {"webhook_event_id": str(self.webhook_event_id), "status": self.status}
        if self.error:
            data["error"] = self.error
        return data


def _queue_processing(webhook_event_id: uuid.UUID) -> None:
    # Imported here to avoid a circular import with finance.tasks
    from finance.tasks import process_webhook_event

    try:
        process_webhook_event.delay(str(webhook_event_id))
    except Exception as e:
        # The retry sweep picks up pending events that were never queued
        WebhookIngestionService.get_logger().error(
            f"Failed to queue webhook: {type(e).__name__}",
            extra={"webhook_event_id": str(webhook_event_id)},
            exc_info=True,
        )


class WebhookIngestionService(BaseService):
    """Idempotent storage and processing of provider webhook events."""

    @classmethod
    def receive(
        cls,
        provider: str,
        event_id: str,
        event_type: str,
        payload: dict[str, Any],
    ) -> IngestResult:
        """
        Store an inbound event and queue it for processing.

        Returns DUPLICATE without queueing when the event already
        succeeded. A failed event that still has attempts left is reset
        to pending, since the provider re-sending it is a retry.
        """
        logger = cls.get_logger()
        webhook_event, created = WebhookEvent.objects.get_or_create(
            provider=provider,
            event_id=event_id,
            defaults={
                "event_type": event_type,
                "payload": payload,
                "status": WebhookEventStatus.PENDING,
            },
        )
        log_context = {
            "webhook_event_id": str(webhook_event.id),
            "provider": provider,
            "event_id": event_id,
            "event_type": event_type,
        }

        if not created:
            if webhook_event.is_succeeded:
                logger.info("Webhook already processed, returning duplicate", extra=log_context)
                return IngestResult(webhook_event, DUPLICATE, created=False)

            if webhook_event.is_failed and not webhook_event.is_exhausted:
                WebhookEvent.objects.filter(
                    id=webhook_event.id, status=WebhookEventStatus.FAILED
                ).update(status=WebhookEventStatus.PENDING, updated_at=timezone.now())
                webhook_event.refresh_from_db()

            logger.info(
                f"Webhook already exists with status: {webhook_event.status}",
                extra=log_context,
            )

        transaction.on_commit(lambda: _queue_processing(webhook_event.id))
        logger.info("Webhook queued for processing", extra=log_context)
        return IngestResult(webhook_event, QUEUED, created=created)

    @classmethod
    def process(cls, webhook_event_id: uuid.UUID | str) -> ProcessOutcome:
        """
        Claim a pending event, run its handler and record the outcome.

        The handler runs in its own transaction; a failure (returned or
        raised) rolls back its writes before the event is marked FAILED.
        Never raises for handler errors.
        """
        logger = cls.get_logger()
        if isinstance(webhook_event_id, str):
            webhook_event_id = uuid.UUID(webhook_event_id)
        log_context = {"webhook_event_id": str(webhook_event_id)}

        claimed = WebhookEvent.objects.filter(
            id=webhook_event_id, status=WebhookEventStatus.PENDING
        ).update(
            status=WebhookEventStatus.PROCESSING,
            attempt_count=F("attempt_count") + 1,
            updated_at=timezone.now(),
        )

        webhook_event = WebhookEvent.objects.filter(id=webhook_event_id).first()
        if webhook_event is None:
            logger.error("WebhookEvent not found", extra=log_context)
            return ProcessOutcome(webhook_event_id, NOT_FOUND)
        if not claimed:
            logger.info(
                f"WebhookEvent is {webhook_event.status}, skipping",
                extra={**log_context, "event_id": webhook_event.event_id},
            )
            return ProcessOutcome(webhook_event_id, SKIPPED)

        log_context.update(
            {
                "event_id": webhook_event.event_id,
                "event_type": webhook_event.event_type,
                "attempt": webhook_event.attempt_count,
            }
        )
        logger.info(f"Processing webhook: {webhook_event.event_type}", extra=log_context)

        error = ""
        try:
            with transaction.atomic():
                result = dispatch_webhook(webhook_event)
                if not result.success:
                    error = result.error or "Handler returned failure"
                    transaction.set_rollback(True)
        except Exception as e:
            error = f"{type(e).__name__}: {e}"
            logger.exception("Webhook processing failed with exception", extra=log_context)

        if error:
            webhook_event.mark_failed(error)
            webhook_event.save(update_fields=["status", "last_error", "updated_at"])
            logger.warning(
                f"Webhook handler failed: {error}",
                extra={**log_context, "exhausted": webhook_event.is_exhausted},
            )
            return ProcessOutcome(webhook_event_id, FAILED, error)

        webhook_event.mark_succeeded()
        webhook_event.save(update_fields=["status", "processed_at", "last_error", "updated_at"])
        logger.info("Webhook processed successfully", extra=log_context)
        return ProcessOutcome(webhook_event_id, SUCCEEDED)
