"""
ExpenseReport model for member-submitted expenses.

Approved reports are pushed to the accounting system as vendor bills,
through the same sync job queue as payments, refunds and payouts.
"""

from __future__ import annotations

from django.db import models

from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from finance.models.accounting_sync import AccountingSyncMixin
from finance.state_machines import ExpenseReportStatus, SyncEntityType


class ExpenseReport(UUIDPrimaryKeyMixin, AccountingSyncMixin, BaseModel):
    """
    An expense report awaiting or past approval.

    State Flow:
        DRAFT -> SUBMITTED -> APPROVED -> PAID
        SUBMITTED -> REJECTED

    Only APPROVED and PAID reports are eligible for accounting sync.
    """

    sync_entity_type = SyncEntityType.EXPENSE_REPORT

    user_id = models.UUIDField(db_index=True)
    purpose = models.CharField(max_length=255)
    total_amount_cents = models.PositiveBigIntegerField()
    status = FSMField(
        default=ExpenseReportStatus.DRAFT,
        choices=ExpenseReportStatus.choices,
        db_index=True,
    )

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"ExpenseReport({self.id}, {self.status}, {self.total_amount_cents / 100:.2f})"

    @transition(field=status, source=ExpenseReportStatus.DRAFT, target=ExpenseReportStatus.SUBMITTED)
    def submit(self):
        """Transition: DRAFT -> SUBMITTED."""

    @transition(
        field=status, source=ExpenseReportStatus.SUBMITTED, target=ExpenseReportStatus.APPROVED
    )
    def approve(self):
        """Transition: SUBMITTED -> APPROVED."""

    @transition(
        field=status, source=ExpenseReportStatus.SUBMITTED, target=ExpenseReportStatus.REJECTED
    )
    def reject(self):
        """Transition: SUBMITTED -> REJECTED."""

    @transition(field=status, source=ExpenseReportStatus.APPROVED, target=ExpenseReportStatus.PAID)
    def mark_paid(self):
        """Transition: APPROVED -> PAID."""

    @property
    def is_syncable(self) -> bool:
        return self.status in (ExpenseReportStatus.APPROVED, ExpenseReportStatus.PAID)
