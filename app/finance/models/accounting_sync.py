"""
Accounting sync state and the durable sync job queue.

Two pieces work together to mirror settled records into the external
accounting system:

- AccountingSyncMixin: embedded on every synced record (Payment, Refund,
  Payout, ExpenseReport). Holds the record's own view of its sync status
  and the external id once synced.
- AccountingSyncJob: one row per synced record. A work item that workers
  claim, attempt, and reschedule with backoff. Attempt counting, the
  attempt limit and the next due time live here as plain columns.

Usage:
    from finance.models import AccountingSyncJob
    from finance.state_machines import SyncStatus

    due = AccountingSyncJob.objects.due()
"""

from __future__ import annotations

import uuid

from django.conf import settings
from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from finance.state_machines import SyncEntityType, SyncStatus

# Namespace for sync idempotency keys. Changing it would re-create every
# record in the accounting system, so it is fixed.
SYNC_IDEMPOTENCY_NAMESPACE = uuid.UUID("6f1c1a2e-3c57-4d55-9a7e-0b8f6d2c4e11")


def sync_idempotency_key(entity_type: str, entity_id: uuid.UUID | str) -> uuid.UUID:
    """Stable idempotency key for one record's accounting sync."""
    return uuid.uuid5(SYNC_IDEMPOTENCY_NAMESPACE, f"{entity_type}:{entity_id}")


class AccountingSyncMixin(models.Model):
    """
    Accounting sync state embedded on a synced record.

    State Flow:
        PENDING -> SYNCING -> SYNCED
        SYNCING -> FAILED -> PENDING (retry)
        SYNCING -> PENDING (retryable failure, attempt recorded)

    Subclasses set `sync_entity_type` to their SyncEntityType value.
    """

    sync_entity_type: str = ""

    sync_status = FSMField(
        default=SyncStatus.PENDING,
        choices=SyncStatus.choices,
        db_index=True,
        help_text="Accounting sync status (managed by FSM)",
    )
    external_accounting_id = models.CharField(
        max_length=64,
        null=True,
        blank=True,
        help_text="Id assigned by the accounting system once synced",
    )
    sync_last_attempt_at = models.DateTimeField(null=True, blank=True)
    synced_at = models.DateTimeField(null=True, blank=True)
    sync_error = models.TextField(blank=True, default="")

    class Meta:
        abstract = True

    @transition(field=sync_status, source=SyncStatus.PENDING, target=SyncStatus.SYNCING)
    def begin_sync(self):
        """Transition: PENDING -> SYNCING."""
        self.sync_last_attempt_at = timezone.now()

    @transition(field=sync_status, source=SyncStatus.SYNCING, target=SyncStatus.SYNCED)
    def mark_synced(self, external_id: str):
        """Transition: SYNCING -> SYNCED."""
        self.external_accounting_id = external_id
        self.synced_at = timezone.now()
        self.sync_error = ""

    @transition(field=sync_status, source=SyncStatus.SYNCING, target=SyncStatus.PENDING)
    def defer_sync(self, error: str):
        """Transition: SYNCING -> PENDING, a retry is scheduled."""
        self.sync_error = error

    @transition(field=sync_status, source=SyncStatus.SYNCING, target=SyncStatus.FAILED)
    def fail_sync(self, error: str):
        """Transition: SYNCING -> FAILED (terminal until an operator retries)."""
        self.sync_error = error

    @transition(field=sync_status, source=SyncStatus.FAILED, target=SyncStatus.PENDING)
    def requeue_sync(self):
        """Transition: FAILED -> PENDING."""
        self.sync_error = ""

    @property
    def is_synced(self) -> bool:
        return self.sync_status == SyncStatus.SYNCED


class AccountingSyncJobQuerySet(models.QuerySet):
    def due(self, now=None):
        """Pending jobs whose next attempt time has passed."""
        now = now or timezone.now()
        return self.filter(status=SyncStatus.PENDING, next_attempt_at__lte=now)

    def failed(self):
        return self.filter(status=SyncStatus.FAILED)


def _default_max_attempts() -> int:
    return getattr(settings, "ACCOUNTING_SYNC_MAX_ATTEMPTS", 3)


class AccountingSyncJob(UUIDPrimaryKeyMixin, BaseModel):
    """
    Durable work item for syncing one record to the accounting system.

    Processing Flow:
        1. enqueue() creates the job in the same DB transaction as the record
        2. A worker claims a due PENDING job with a conditional UPDATE
           (status -> SYNCING, attempt_count + 1)
        3. The sync call succeeds -> SYNCED, external_id stored
        4. Retryable failure with attempts left -> PENDING, next_attempt_at pushed
        5. Otherwise -> FAILED (operator-visible)

    Fields:
        entity_type: Which model the job syncs
        entity_id: Primary key of the synced record
        status: Job status
        attempt_count: Attempts made so far
        max_attempts: Attempts allowed before terminal failure
        next_attempt_at: Earliest time the job may be claimed
        idempotency_key: Stable key sent with every attempt
        external_id: Id returned by the accounting system
    """

    entity_type = models.CharField(
        max_length=32,
        choices=SyncEntityType.choices,
    )
    entity_id = models.UUIDField()
    status = models.CharField(
        max_length=20,
        choices=SyncStatus.choices,
        default=SyncStatus.PENDING,
        db_index=True,
    )
    attempt_count = models.PositiveIntegerField(default=0)
    max_attempts = models.PositiveIntegerField(default=_default_max_attempts)
    next_attempt_at = models.DateTimeField(default=timezone.now, db_index=True)
    last_attempt_at = models.DateTimeField(null=True, blank=True)
    last_error = models.TextField(blank=True, default="")
    idempotency_key = models.UUIDField(unique=True)
    external_id = models.CharField(max_length=64, null=True, blank=True)
    synced_at = models.DateTimeField(null=True, blank=True)

    objects = AccountingSyncJobQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Accounting Sync Job"
        constraints = [
            models.UniqueConstraint(
                fields=["entity_type", "entity_id"],
                name="unique_sync_job_per_entity",
            ),
        ]
        indexes = [
            models.Index(fields=["status", "next_attempt_at"], name="sync_job_status_due_idx"),
            models.Index(fields=["status", "updated_at"], name="sync_job_status_updated_idx"),
        ]

    def __str__(self) -> str:
        return f"AccountingSyncJob({self.entity_type}:{self.entity_id}, {self.status})"

    def save(self, *args, **kwargs):
        if not self.idempotency_key:
            self.idempotency_key = sync_idempotency_key(self.entity_type, self.entity_id)
        super().save(*args, **kwargs)

    @property
    def attempts_remaining(self) -> int:
        return max(self.max_attempts - self.attempt_count, 0)

    @property
    def is_exhausted(self) -> bool:
        return self.attempt_count >= self.max_attempts
