"""
WebhookEvent model for payment-provider event tracking.

Stores every webhook event received from a provider for idempotent
processing, retry and audit. The (provider, event_id) unique constraint
guarantees one row per distinct provider event no matter how many times
the provider re-delivers it.

Usage:
    from finance.models import WebhookEvent

    event, created = WebhookEvent.objects.get_or_create(
        provider="stripe",
        event_id="evt_123",
        defaults={"event_type": "payment_intent.succeeded", "payload": payload},
    )
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from finance.state_machines import WebhookEventStatus


def max_webhook_attempts() -> int:
    return getattr(settings, "WEBHOOK_MAX_ATTEMPTS", 5)


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Tracks provider webhook events for idempotent processing.

    Processing Flow:
        1. Webhook arrives, signature verified
        2. Insert/get WebhookEvent by (provider, event_id)
        3. If exists and SUCCEEDED -> duplicate, nothing to do
        4. Claim PENDING -> PROCESSING (attempt_count + 1)
        5. Dispatch to the handler for event_type
        6. SUCCEEDED, or FAILED with last_error
        7. FAILED events are re-driven by the retry sweep or an operator

    Fields:
        provider: Source of the event (e.g., 'stripe')
        event_id: Provider's event id (evt_xxx)
        event_type: Provider event type used for dispatch
        payload: Full JSON payload
        status: Processing status
        attempt_count: Processing attempts so far
        last_error: Error from the most recent failed attempt
        processed_at: When the event was successfully processed
    """

    # ==========================================================================
    # Event Identification
    # ==========================================================================

    provider = models.CharField(max_length=32, default="stripe")
    event_id = models.CharField(max_length=255)
    event_type = models.CharField(max_length=100, db_index=True)

    payload = models.JSONField(default=dict)

    # ==========================================================================
    # Processing Status
    # ==========================================================================

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
    )
    attempt_count = models.PositiveSmallIntegerField(default=0)
    last_error = models.TextField(blank=True, default="")
    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        constraints = [
            models.UniqueConstraint(
                fields=["provider", "event_id"],
                name="unique_webhook_event_per_provider",
            ),
        ]
        indexes = [
            models.Index(fields=["status", "updated_at"], name="webhook_status_updated_idx"),
            models.Index(fields=["event_type", "created_at"], name="webhook_type_created_idx"),
            models.Index(fields=["status", "attempt_count"], name="webhook_status_attempts_idx"),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.provider}:{self.event_id}, {self.event_type})"

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_succeeded(self) -> bool:
        return self.status == WebhookEventStatus.SUCCEEDED

    @property
    def is_failed(self) -> bool:
        return self.status == WebhookEventStatus.FAILED

    @property
    def is_exhausted(self) -> bool:
        """Failed and out of automatic retries; only an operator can re-drive it."""
        return self.is_failed and self.attempt_count >= max_webhook_attempts()

    # ==========================================================================
    # Helper Methods
    # ==========================================================================

    def mark_succeeded(self) -> None:
        """
        Mark event as successfully processed.

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.SUCCEEDED
        self.processed_at = timezone.now()
        self.last_error = ""

    def mark_failed(self, error: str) -> None:
        """
        Mark event as failed with error message.

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.FAILED
        self.last_error = error

    def reset_to_pending(self) -> None:
        """Note: Does not save - caller must save after calling."""
        self.status = WebhookEventStatus.PENDING

    def get_object(self) -> dict:
        """The `data.object` of the payload, or an empty dict."""
        try:
            obj = self.payload.get("data", {}).get("object", {})
        except AttributeError:
            return {}
        return obj if isinstance(obj, dict) else {}

    def get_object_id(self) -> str | None:
        """Primary object id from the payload (payload.data.object.id)."""
        return self.get_object().get("id")
