"""
Payout model for processor settlement batches.

A Payout is one transfer from the processor to the organization's bank.
Which payments and refunds it settled is derived by the payout
reconciler from the processor's balance movements; those links and the
fee total are recomputed from scratch on every reconciliation run.

Usage:
    from finance.models import Payout

    payout = Payout.objects.get(external_payout_id="po_123")
    payout.payments.count()
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from finance.models.accounting_sync import AccountingSyncMixin
from finance.state_machines import PayoutStatus, SyncEntityType


class Payout(UUIDPrimaryKeyMixin, AccountingSyncMixin, BaseModel):
    """
    A settlement batch paid out by the processor.

    State Flow:
        PENDING -> IN_TRANSIT -> PAID
        PENDING/IN_TRANSIT -> PAID (webhook may skip in_transit)
        PENDING/IN_TRANSIT -> FAILED
        PENDING/IN_TRANSIT -> CANCELED

    Fields:
        external_payout_id: Processor payout id (po_xxx), unique
        amount_cents: Net amount deposited
        fee_total_cents: Sum of processor fees in the batch (None until reconciled)
        status: Current status (managed by FSM)
        arrival_date: Expected or actual arrival at the bank
        payments: Payments settled by this payout (derived)
        refunds: Refunds deducted in this payout (derived)
        unresolved_count: Movements the last reconciliation could not match
        last_reconciled_at: When links were last recomputed
    """

    sync_entity_type = SyncEntityType.PAYOUT

    external_payout_id = models.CharField(max_length=255, unique=True)
    amount_cents = models.BigIntegerField()
    currency = models.CharField(max_length=3, default="usd")
    fee_total_cents = models.BigIntegerField(null=True, blank=True)
    status = FSMField(
        default=PayoutStatus.PENDING,
        choices=PayoutStatus.choices,
        db_index=True,
    )
    arrival_date = models.DateTimeField(null=True, blank=True)
    description = models.CharField(max_length=255, blank=True, default="")

    payments = models.ManyToManyField(
        "finance.Payment",
        related_name="payouts",
        blank=True,
    )
    refunds = models.ManyToManyField(
        "finance.Refund",
        related_name="payouts",
        blank=True,
    )
    unresolved_count = models.PositiveIntegerField(default=0)
    last_reconciled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "arrival_date"], name="payout_status_arrival_idx"),
            models.Index(fields=["sync_status", "created_at"], name="payout_sync_status_idx"),
        ]

    def __str__(self) -> str:
        return f"Payout({self.external_payout_id}, {self.status}, {self.amount_cents / 100:.2f})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(field=status, source=PayoutStatus.PENDING, target=PayoutStatus.IN_TRANSIT)
    def mark_in_transit(self):
        """Transition: PENDING -> IN_TRANSIT."""

    @transition(
        field=status,
        source=[PayoutStatus.PENDING, PayoutStatus.IN_TRANSIT],
        target=PayoutStatus.PAID,
    )
    def mark_paid(self):
        """Transition: PENDING/IN_TRANSIT -> PAID."""
        if self.arrival_date is None:
            self.arrival_date = timezone.now()

    @transition(
        field=status,
        source=[PayoutStatus.PENDING, PayoutStatus.IN_TRANSIT],
        target=PayoutStatus.FAILED,
    )
    def mark_failed(self):
        """Transition: PENDING/IN_TRANSIT -> FAILED."""

    @transition(
        field=status,
        source=[PayoutStatus.PENDING, PayoutStatus.IN_TRANSIT],
        target=PayoutStatus.CANCELED,
    )
    def cancel(self):
        """Transition: PENDING/IN_TRANSIT -> CANCELED."""

    @property
    def is_reconciled(self) -> bool:
        return self.last_reconciled_at is not None
