"""
Ledger models for double-entry bookkeeping.

This module defines the persisted side of the ledger:
- Account: One row per chart-of-accounts entry, seeded by migration
- LedgerTransaction: Groups entries that must net to zero
- LedgerEntry: A single signed movement against one account

Entries use one signed amount instead of separate debit and credit
columns: positive amounts are debits, negative amounts are credits, and
every transaction's entries sum to zero.

Entries are append-only. Corrections are new transactions, never updates.

Usage:
    from finance.ledger.models import Account, LedgerEntry

    cash = Account.objects.get(name="cash")
    balance = cash.get_balance_cents()
"""

from __future__ import annotations

from django.db import models
from django.db.models import Sum
from django.db.models.functions import Coalesce
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from finance.ledger.chart import AccountKind
from finance.ledger.exceptions import ImmutableEntryError
from finance.state_machines import TransactionKind, TransactionStatus


class Account(UUIDPrimaryKeyMixin, BaseModel):
    """
    A ledger account from the chart of accounts.

    Rows are created by the seed migration (and lazily by LedgerService
    for charts extended after deployment). Names are never renamed or
    deleted once entries reference them.

    Constraints:
        - Unique combination of (kind, name)
        - Unique name
    """

    kind = models.CharField(
        max_length=20,
        choices=AccountKind.choices,
        help_text="Account classification",
    )
    name = models.CharField(
        max_length=64,
        unique=True,
        help_text="Chart name of this account (e.g., 'cash')",
    )
    description = models.CharField(
        max_length=255,
        blank=True,
        default="",
    )

    class Meta:
        ordering = ["kind", "name"]
        constraints = [
            models.UniqueConstraint(
                fields=["kind", "name"],
                name="unique_account_kind_name",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.kind})"

    def get_balance_cents(self) -> int:
        """
        Raw signed sum of this account's entries.

        Debit-normal accounts (assets, expenses) are positive when they
        hold value; credit-normal accounts are negative.
        """
        return self.entries.aggregate(
            total=Coalesce(Sum("amount_cents"), 0)
        )["total"]


class LedgerTransaction(UUIDPrimaryKeyMixin, BaseModel):
    """
    A balanced group of ledger entries.

    Created by LedgerService inside one database transaction together with
    its entries, then moved from pending to posted before commit.

    Fields:
        kind: payment, refund, fee or adjustment
        payment: Payment this transaction belongs to, if any
        total_amount_cents: Sum of the debit side
        status: pending while entries are being written, posted afterwards
        description: Human-readable summary
        posted_at: When the transaction was posted
    """

    kind = models.CharField(
        max_length=20,
        choices=TransactionKind.choices,
        db_index=True,
    )
    payment = models.ForeignKey(
        "finance.Payment",
        on_delete=models.PROTECT,
        related_name="transactions",
        null=True,
        blank=True,
    )
    total_amount_cents = models.BigIntegerField(
        help_text="Sum of the debit side of this transaction, in cents",
    )
    status = FSMField(
        default=TransactionStatus.PENDING,
        choices=TransactionStatus.choices,
        db_index=True,
    )
    description = models.CharField(max_length=255, blank=True, default="")
    posted_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["payment", "kind"], name="ledger_txn_payment_kind_idx"),
        ]

    def __str__(self) -> str:
        return f"LedgerTransaction({self.id}, {self.kind}, {self.status})"

    @transition(
        field=status,
        source=TransactionStatus.PENDING,
        target=TransactionStatus.POSTED,
    )
    def post(self):
        """Transition: PENDING -> POSTED."""
        self.posted_at = timezone.now()

    def delete(self, *args, **kwargs):
        raise ImmutableEntryError(
            "Ledger transactions cannot be deleted",
            details={"transaction_id": str(self.id)},
        )

    def entries_total_cents(self) -> int:
        return self.entries.aggregate(total=Coalesce(Sum("amount_cents"), 0))["total"]


class LedgerEntry(UUIDPrimaryKeyMixin, BaseModel):
    """
    A single signed movement against one account.

    Fields:
        transaction: The transaction this entry belongs to
        account: Account being debited (positive) or credited (negative)
        amount_cents: Signed amount, never zero
        related_entity_type: What the money was for (membership, event, refund, ...)
        related_entity_id: Identifier of that entity in its own system
        payment: Payment this entry traces back to, if any
        description: Line description

    Entries are immutable: saving an existing entry or deleting one raises
    ImmutableEntryError. Queryset-level bulk deletes bypass this check, and
    account/payment foreign keys are PROTECT so cascades cannot remove them.
    """

    transaction = models.ForeignKey(
        LedgerTransaction,
        on_delete=models.PROTECT,
        related_name="entries",
    )
    account = models.ForeignKey(
        Account,
        on_delete=models.PROTECT,
        related_name="entries",
    )
    amount_cents = models.BigIntegerField(
        help_text="Signed amount in cents: positive = debit, negative = credit",
    )
    related_entity_type = models.CharField(max_length=50, blank=True, default="")
    related_entity_id = models.CharField(max_length=255, blank=True, default="")
    payment = models.ForeignKey(
        "finance.Payment",
        on_delete=models.PROTECT,
        related_name="ledger_entries",
        null=True,
        blank=True,
    )
    description = models.CharField(max_length=255, blank=True, default="")

    class Meta:
        ordering = ["created_at"]
        verbose_name_plural = "Ledger entries"
        indexes = [
            models.Index(fields=["account", "created_at"], name="ledger_entry_account_idx"),
            models.Index(
                fields=["related_entity_type", "related_entity_id"],
                name="ledger_entry_related_idx",
            ),
        ]
        constraints = [
            models.CheckConstraint(
                condition=~models.Q(amount_cents=0),
                name="ledger_entry_amount_nonzero",
            ),
        ]

    def __str__(self) -> str:
        side = "DR" if self.amount_cents > 0 else "CR"
        return f"LedgerEntry({side} {abs(self.amount_cents)} {self.account_id})"

    @property
    def is_debit(self) -> bool:
        return self.amount_cents > 0

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableEntryError(
                "Ledger entries cannot be modified; post a correcting transaction",
                details={"entry_id": str(self.id)},
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableEntryError(
            "Ledger entries cannot be deleted; post a correcting transaction",
            details={"entry_id": str(self.id)},
        )
