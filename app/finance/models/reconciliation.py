"""
Ledger integrity check history.

- LedgerReconciliationRun: One execution of the ledger balance check
- LedgerDiscrepancy: One finding from a run, queued for operator review

Discrepancies are never auto-corrected: the ledger is append-only, so a
fix is a new correcting transaction posted by a person after review.

Usage:
    from finance.models import LedgerDiscrepancy

    LedgerDiscrepancy.objects.filter(reviewed=False)
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class ReconciliationRunStatus(models.TextChoices):
    """Status of a reconciliation run."""

    RUNNING = "running", "Running"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


class DiscrepancyType(models.TextChoices):
    """Kinds of ledger integrity findings."""

    LEDGER_IMBALANCE = "ledger_imbalance", "Ledger does not net to zero"
    TRANSACTION_IMBALANCE = "transaction_imbalance", "Transaction does not net to zero"
    PAYMENT_WITHOUT_TRANSACTION = (
        "payment_without_transaction",
        "Succeeded payment has no payment transaction",
    )
    REFUND_OVER_PAYMENT = "refund_over_payment", "Refunds exceed payment amount"


class LedgerReconciliationRun(UUIDPrimaryKeyMixin, BaseModel):
    """
    Tracks one execution of the ledger integrity check.

    Example:
        run = LedgerReconciliationRun.objects.create(started_at=timezone.now())
        # ... checks ...
        run.status = ReconciliationRunStatus.COMPLETED
        run.save()
    """

    started_at = models.DateTimeField()
    completed_at = models.DateTimeField(null=True, blank=True)

    transactions_checked = models.PositiveIntegerField(default=0)
    entries_checked = models.PositiveIntegerField(default=0)
    payments_checked = models.PositiveIntegerField(default=0)
    ledger_total_cents = models.BigIntegerField(default=0)
    discrepancies_found = models.PositiveIntegerField(default=0)

    status = models.CharField(
        max_length=20,
        choices=ReconciliationRunStatus.choices,
        default=ReconciliationRunStatus.RUNNING,
        db_index=True,
    )
    error_message = models.TextField(blank=True)

    class Meta:
        indexes = [
            models.Index(fields=["status", "started_at"], name="ledger_run_status_started_idx"),
        ]
        ordering = ["-started_at"]

    def __str__(self) -> str:
        return f"LedgerReconciliationRun({self.id}, {self.status}, {self.started_at})"

    @property
    def duration_seconds(self) -> float | None:
        """Run duration in seconds, or None if not complete."""
        if self.completed_at and self.started_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    @property
    def is_clean(self) -> bool:
        return self.status == ReconciliationRunStatus.COMPLETED and self.discrepancies_found == 0


class LedgerDiscrepancy(UUIDPrimaryKeyMixin, BaseModel):
    """
    A single integrity finding awaiting operator review.

    Fields:
        run: The run that found it
        discrepancy_type: What kind of problem it is
        entity_type: 'ledger', 'transaction' or 'payment'
        entity_id: Id of the affected record (blank for the whole ledger)
        amount_cents: The offending amount (net imbalance or over-refund)
        details: Extra context for the reviewer
    """

    run = models.ForeignKey(
        LedgerReconciliationRun,
        on_delete=models.CASCADE,
        related_name="discrepancies",
    )
    discrepancy_type = models.CharField(
        max_length=50,
        choices=DiscrepancyType.choices,
        db_index=True,
    )
    entity_type = models.CharField(max_length=50)
    entity_id = models.CharField(max_length=64, blank=True)
    amount_cents = models.BigIntegerField(null=True, blank=True)
    details = models.JSONField(default=dict, blank=True)

    reviewed = models.BooleanField(default=False, db_index=True)
    reviewed_at = models.DateTimeField(null=True, blank=True)
    review_notes = models.TextField(blank=True)

    class Meta:
        indexes = [
            models.Index(fields=["entity_type", "entity_id"], name="discrepancy_entity_idx"),
            models.Index(fields=["run", "discrepancy_type"], name="discrepancy_run_type_idx"),
        ]
        ordering = ["-created_at"]
        verbose_name_plural = "Ledger discrepancies"

    def __str__(self) -> str:
        return f"LedgerDiscrepancy({self.entity_type}:{self.entity_id}, {self.discrepancy_type})"
