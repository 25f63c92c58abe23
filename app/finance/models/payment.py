"""
Payment model for money received through the payment processor.

A Payment is created exactly once per successful processor charge, by
LedgerService.process_payment, together with its ledger transaction.
After creation only its status (forward only) and accounting sync state
change.

Usage:
    from finance.models import Payment

    payment = Payment.objects.get(external_payment_id="pi_123")
    payment.refundable_cents()
"""

from __future__ import annotations

import secrets

from django.db import models
from django.db.models import Sum
from django.db.models.functions import Coalesce

from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from finance.models.accounting_sync import AccountingSyncMixin
from finance.state_machines import PaymentStatus, SyncEntityType


def generate_payment_reference() -> str:
    """Internal human-readable reference, e.g. PAY-7K2M9QX4T1AB."""
    alphabet = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
    return "PAY-" + "".join(secrets.choice(alphabet) for _ in range(12))


class Payment(UUIDPrimaryKeyMixin, AccountingSyncMixin, BaseModel):
    """
    A payment received from a member through the processor.

    State Flow (forward only):
        PENDING -> SUCCEEDED -> PARTIALLY_REFUNDED -> REFUNDED
        SUCCEEDED -> REFUNDED
        PENDING -> FAILED

    Fields:
        reference_id: Internal unique reference (PAY-xxxx)
        external_provider: Processor name (e.g., 'stripe')
        external_payment_id: Processor's id for the charge (unique)
        amount_cents: Gross amount charged
        processor_fee_cents: Fee withheld by the processor
        status: Current status (managed by FSM)
        user_id: Member who paid, if known
        entity_type: What was paid for (membership, event, booking, donation)
        entity_id: Identifier of the thing paid for
        payment_date: When the processor reports the charge succeeded
    """

    sync_entity_type = SyncEntityType.PAYMENT

    reference_id = models.CharField(
        max_length=32,
        unique=True,
        default=generate_payment_reference,
        editable=False,
    )
    external_provider = models.CharField(max_length=32, default="stripe")
    external_payment_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Processor payment id (e.g., pi_xxx); unique to reject double-recording",
    )
    amount_cents = models.PositiveBigIntegerField()
    processor_fee_cents = models.PositiveBigIntegerField(default=0)
    currency = models.CharField(max_length=3, default="usd")
    status = FSMField(
        default=PaymentStatus.PENDING,
        choices=PaymentStatus.choices,
        db_index=True,
    )
    user_id = models.UUIDField(null=True, blank=True, db_index=True)
    entity_type = models.CharField(max_length=32, blank=True, default="")
    entity_id = models.CharField(max_length=255, blank=True, default="")
    description = models.CharField(max_length=255, blank=True, default="")
    payment_date = models.DateTimeField()

    class Meta:
        ordering = ["-payment_date"]
        indexes = [
            models.Index(fields=["status", "payment_date"], name="payment_status_date_idx"),
            models.Index(fields=["entity_type", "entity_id"], name="payment_entity_idx"),
            models.Index(fields=["sync_status", "created_at"], name="payment_sync_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_cents__gt=0),
                name="payment_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"Payment({self.reference_id}, {self.status}, {self.amount_cents / 100:.2f})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(field=status, source=PaymentStatus.PENDING, target=PaymentStatus.SUCCEEDED)
    def succeed(self):
        """Transition: PENDING -> SUCCEEDED."""

    @transition(field=status, source=PaymentStatus.PENDING, target=PaymentStatus.FAILED)
    def fail(self):
        """Transition: PENDING -> FAILED."""

    @transition(
        field=status,
        source=[PaymentStatus.SUCCEEDED, PaymentStatus.PARTIALLY_REFUNDED],
        target=PaymentStatus.PARTIALLY_REFUNDED,
    )
    def mark_partially_refunded(self):
        """Transition: SUCCEEDED/PARTIALLY_REFUNDED -> PARTIALLY_REFUNDED."""

    @transition(
        field=status,
        source=[PaymentStatus.SUCCEEDED, PaymentStatus.PARTIALLY_REFUNDED],
        target=PaymentStatus.REFUNDED,
    )
    def mark_refunded(self):
        """Transition: SUCCEEDED/PARTIALLY_REFUNDED -> REFUNDED."""

    # ==========================================================================
    # Helpers
    # ==========================================================================

    def refunded_cents(self) -> int:
        return self.refunds.aggregate(total=Coalesce(Sum("amount_cents"), 0))["total"]

    def refundable_cents(self) -> int:
        return self.amount_cents - self.refunded_cents()

    @property
    def net_cents(self) -> int:
        return self.amount_cents - self.processor_fee_cents
