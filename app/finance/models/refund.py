"""
Refund model for money returned against a Payment.

Each Refund is recorded by LedgerService.process_refund together with a
refund-kind ledger transaction. The processor's refund id is unique, so
re-delivered refund events resolve to the existing row.
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from finance.models.accounting_sync import AccountingSyncMixin
from finance.state_machines import SyncEntityType


class Refund(UUIDPrimaryKeyMixin, AccountingSyncMixin, BaseModel):
    """
    A refund of part or all of a Payment.

    Fields:
        payment: The payment being refunded
        transaction: Ledger transaction that recorded the refund
        amount_cents: Amount returned
        reason: Free-text or processor reason code
        external_refund_id: Processor refund id (re_xxx), unique
    """

    sync_entity_type = SyncEntityType.REFUND

    payment = models.ForeignKey(
        "finance.Payment",
        on_delete=models.PROTECT,
        related_name="refunds",
    )
    transaction = models.OneToOneField(
        "finance.LedgerTransaction",
        on_delete=models.PROTECT,
        related_name="refund",
    )
    amount_cents = models.PositiveBigIntegerField()
    reason = models.CharField(max_length=255, blank=True, default="")
    external_refund_id = models.CharField(max_length=255, unique=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["sync_status", "created_at"], name="refund_sync_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_cents__gt=0),
                name="refund_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"Refund({self.external_refund_id}, {self.amount_cents / 100:.2f})"
