"""
Ledger service layer: the transaction builder.

All ledger writes go through LedgerService. Each public operation maps
one business event to a balanced set of signed entries and writes the
business record, the transaction and its entries in a single database
transaction, so either everything is persisted or nothing is.

The chart of accounts is injected at construction. The module-level
`ledger` singleton uses the default chart.

Usage:
    from finance.ledger import ledger
    from finance.ledger.types import Money

    posting = ledger.process_payment(
        user_id=user.id,
        amount=Money(7500),
        entity_type="event",
        entity_id="evt-2024-gala",
        external_payment_id="pi_123",
        processor_fee=Money(247),
    )
    ledger.process_refund(posting.payment.id, Money(3750), "requested_by_customer", "re_1")
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction
from django.db.models import Sum
from django.db.models.functions import Coalesce
from django.utils import timezone

from finance.ledger.chart import DEFAULT_CHART, AccountName, ChartOfAccounts
from finance.ledger.exceptions import (
    DuplicateExternalPayment,
    InvalidAmountError,
    RefundExceedsPayment,
    UnbalancedTransactionError,
)
from finance.ledger.models import Account, LedgerEntry, LedgerTransaction
from finance.ledger.types import (
    EntrySpec,
    LedgerBalanceReport,
    Money,
    PaymentPosting,
    RefundPosting,
)
from finance.models.payment import Payment
from finance.models.refund import Refund
from finance.state_machines import PaymentStatus, TransactionKind

if TYPE_CHECKING:
    from collections.abc import Sequence

    from finance.ledger.chart import AccountSpec


class LedgerService:
    """
    Builds and posts balanced ledger transactions.

    Key features:
    - One atomic database transaction per operation
    - Balance check before anything is written
    - Duplicate detection through unique constraints, not pre-checks
    - Row lock on the payment while refunding it
    """

    def __init__(self, chart: ChartOfAccounts | None = None):
        self.chart = chart or DEFAULT_CHART

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # Accounts
    # =========================================================================

    def get_account(self, name: str) -> Account:
        """
        Return the Account row for a chart account.

        Accounts are seeded by migration; the get_or_create covers charts
        that gained an account after the seed ran.
        """
        spec: AccountSpec = self.chart.get(name)
        account, _ = Account.objects.get_or_create(
            name=spec.name,
            defaults={"kind": spec.kind, "description": spec.description},
        )
        return account

    def get_account_balance(self, name: str) -> Money:
        """
        Balance of a chart account in its normal direction.

        Assets and expenses report debits minus credits; liabilities,
        revenue and equity report credits minus debits. A healthy cash
        account and a healthy revenue account are both positive.
        """
        spec = self.chart.get(name)
        raw = LedgerEntry.objects.filter(account__name=spec.name).aggregate(
            total=Coalesce(Sum("amount_cents"), 0)
        )["total"]
        return Money(cents=raw if spec.is_debit_normal else -raw)

    # =========================================================================
    # Transaction Builder
    # =========================================================================

    def post_transaction(
        self,
        kind: str,
        entries: Sequence[EntrySpec],
        *,
        payment: Payment | None = None,
        description: str = "",
        related_entity_type: str = "",
        related_entity_id: str = "",
    ) -> LedgerTransaction:
        """
        Write a transaction and its entries, then post it.

        Validates before writing: at least two entries, no zero amounts,
        and a zero sum. Must be balanced as given; nothing is adjusted.

        Raises:
            UnbalancedTransactionError: If the entries fail validation
            AccountNotFound: If an entry names an account outside the chart
        """
        self._validate_entries(entries)
        accounts = {spec.account: self.get_account(spec.account) for spec in entries}
        debit_total = sum(spec.amount_cents for spec in entries if spec.amount_cents > 0)

        with transaction.atomic():
            txn = LedgerTransaction.objects.create(
                kind=kind,
                payment=payment,
                total_amount_cents=debit_total,
                description=description[:255],
            )
            for spec in entries:
                LedgerEntry.objects.create(
                    transaction=txn,
                    account=accounts[spec.account],
                    amount_cents=spec.amount_cents,
                    related_entity_type=related_entity_type,
                    related_entity_id=str(related_entity_id or ""),
                    payment=payment,
                    description=(spec.description or description)[:255],
                )
            txn.post()
            txn.save(update_fields=["status", "posted_at", "updated_at"])

        self.get_logger().info(
            "Posted ledger transaction",
            extra={
                "transaction_id": str(txn.id),
                "kind": kind,
                "entry_count": len(entries),
                "total_amount_cents": debit_total,
            },
        )
        return txn

    @staticmethod
    def _validate_entries(entries: Sequence[EntrySpec]) -> None:
        if len(entries) < 2:
            raise UnbalancedTransactionError(
                "A transaction needs at least two entries",
                details={"entry_count": len(entries)},
            )
        zero = [spec.account for spec in entries if spec.amount_cents == 0]
        if zero:
            raise UnbalancedTransactionError(
                "Ledger entries cannot be zero",
                details={"accounts": zero},
            )
        total = sum(spec.amount_cents for spec in entries)
        if total != 0:
            raise UnbalancedTransactionError(
                f"Entries sum to {total} cents instead of zero",
                details={
                    "sum_cents": total,
                    "entries": [[spec.account, spec.amount_cents] for spec in entries],
                },
            )

    @staticmethod
    def _require_positive(amount: Money, field_name: str) -> None:
        if amount.cents <= 0:
            raise InvalidAmountError(
                f"{field_name} must be positive",
                details={field_name: amount.cents},
            )

    # =========================================================================
    # Business Operations
    # =========================================================================

    def process_payment(
        self,
        user_id: uuid.UUID | None,
        amount: Money,
        entity_type: str,
        entity_id: str,
        external_payment_id: str,
        processor_fee: Money | None = None,
        description: str = "",
        external_provider: str = "stripe",
        payment_date: datetime | None = None,
    ) -> PaymentPosting:
        """
        Record a successful processor payment.

        Entries:
            DR cash                  amount
            CR <revenue for entity>  amount
            DR processor_fees        fee     (only when a fee is given)
            CR cash                  fee

        Raises:
            DuplicateExternalPayment: external_payment_id already recorded
            UnknownEntityTypeError: entity_type has no revenue account
            InvalidAmountError: amount not positive or fee negative
        """
        self._require_positive(amount, "amount_cents")
        if processor_fee is not None and processor_fee.cents < 0:
            raise InvalidAmountError(
                "processor_fee cannot be negative",
                details={"processor_fee_cents": processor_fee.cents},
            )
        revenue = self.chart.revenue_account_for(entity_type)
        fee_cents = processor_fee.cents if processor_fee else 0

        entries = [
            EntrySpec.debit(AccountName.CASH, amount.cents),
            EntrySpec.credit(revenue.name, amount.cents),
        ]
        if fee_cents:
            entries += [
                EntrySpec.debit(AccountName.PROCESSOR_FEES, fee_cents, "Processor fee"),
                EntrySpec.credit(AccountName.CASH, fee_cents, "Processor fee"),
            ]

        with transaction.atomic():
            # Savepoint so a duplicate leaves the caller's transaction usable
            try:
                with transaction.atomic():
                    payment = Payment.objects.create(
                        external_provider=external_provider,
                        external_payment_id=external_payment_id,
                        amount_cents=amount.cents,
                        processor_fee_cents=fee_cents,
                        currency=amount.currency,
                        status=PaymentStatus.SUCCEEDED,
                        user_id=user_id,
                        entity_type=entity_type,
                        entity_id=str(entity_id),
                        description=description[:255],
                        payment_date=payment_date or timezone.now(),
                    )
            except IntegrityError:
                existing = (
                    Payment.objects.filter(external_payment_id=external_payment_id)
                    .values_list("id", flat=True)
                    .first()
                )
                if existing is None:
                    raise
                raise DuplicateExternalPayment(external_payment_id, existing)

            txn = self.post_transaction(
                TransactionKind.PAYMENT,
                entries,
                payment=payment,
                description=description or f"Payment {external_payment_id}",
                related_entity_type=entity_type,
                related_entity_id=entity_id,
            )

        self.get_logger().info(
            f"Recorded payment of {amount}",
            extra={
                "payment_id": str(payment.id),
                "external_payment_id": external_payment_id,
                "entity_type": entity_type,
                "processor_fee_cents": fee_cents,
            },
        )
        return PaymentPosting(payment=payment, transaction=txn)

    def process_refund(
        self,
        payment_id: uuid.UUID,
        refund_amount: Money,
        reason: str,
        external_refund_id: str,
    ) -> RefundPosting:
        """
        Record a refund against a payment.

        Entries:
            DR refund_expense  refund_amount
            CR cash            refund_amount

        The payment row is locked for the duration so concurrent refunds
        on the same payment are checked one at a time. A refund id that
        was already recorded returns the existing refund with created=False.

        Raises:
            Payment.DoesNotExist: payment_id is unknown
            RefundExceedsPayment: cumulative refunds would exceed the payment
        """
        self._require_positive(refund_amount, "refund_amount_cents")

        with transaction.atomic():
            payment = Payment.objects.select_for_update().get(id=payment_id)

            existing = (
                Refund.objects.select_related("transaction")
                .filter(external_refund_id=external_refund_id)
                .first()
            )
            if existing is not None:
                self.get_logger().info(
                    "Refund already recorded",
                    extra={
                        "refund_id": str(existing.id),
                        "external_refund_id": external_refund_id,
                    },
                )
                return RefundPosting(
                    refund=existing, transaction=existing.transaction, created=False
                )

            refundable = payment.refundable_cents()
            if refund_amount.cents > refundable:
                raise RefundExceedsPayment(
                    payment_id=payment.id,
                    requested_cents=refund_amount.cents,
                    available_cents=refundable,
                )

            txn = self.post_transaction(
                TransactionKind.REFUND,
                [
                    EntrySpec.debit(AccountName.REFUND_EXPENSE, refund_amount.cents),
                    EntrySpec.credit(AccountName.CASH, refund_amount.cents),
                ],
                payment=payment,
                description=f"Refund {external_refund_id}: {reason or 'unspecified'}",
                related_entity_type="refund",
                related_entity_id=external_refund_id,
            )
            refund = Refund.objects.create(
                payment=payment,
                transaction=txn,
                amount_cents=refund_amount.cents,
                reason=reason[:255],
                external_refund_id=external_refund_id,
            )

            if refund_amount.cents == refundable:
                payment.mark_refunded()
            else:
                payment.mark_partially_refunded()
            payment.save(update_fields=["status", "updated_at"])

        self.get_logger().info(
            f"Recorded refund of {refund_amount}",
            extra={
                "payment_id": str(payment.id),
                "refund_id": str(refund.id),
                "external_refund_id": external_refund_id,
                "payment_status": payment.status,
            },
        )
        return RefundPosting(refund=refund, transaction=txn)

    def add_credit(
        self,
        user_id: uuid.UUID | None,
        amount: Money,
        reason: str,
        entity_type: str = "",
        entity_id: str = "",
    ) -> LedgerTransaction:
        """
        Record an administrative credit not backed by the processor.

        Entries:
            DR accounts_receivable  amount
            CR cash                 amount
        """
        self._require_positive(amount, "amount_cents")
        txn = self.post_transaction(
            TransactionKind.ADJUSTMENT,
            [
                EntrySpec.debit(AccountName.ACCOUNTS_RECEIVABLE, amount.cents),
                EntrySpec.credit(AccountName.CASH, amount.cents),
            ],
            description=f"Credit: {reason}" if reason else "Credit",
            related_entity_type=entity_type,
            related_entity_id=entity_id,
        )
        self.get_logger().info(
            f"Recorded credit of {amount}",
            extra={
                "transaction_id": str(txn.id),
                "user_id": str(user_id) if user_id else None,
                "reason": reason,
            },
        )
        return txn

    # =========================================================================
    # Queries
    # =========================================================================

    @staticmethod
    def get_transaction_entries(transaction_id: uuid.UUID) -> list[LedgerEntry]:
        return list(
            LedgerEntry.objects.filter(transaction_id=transaction_id)
            .select_related("account")
            .order_by("created_at")
        )

    @staticmethod
    def get_payment_refunded_total(payment: Payment) -> Money:
        return Money(cents=payment.refunded_cents(), currency=payment.currency)

    @staticmethod
    def verify_ledger_balance() -> LedgerBalanceReport:
        """
        Check that every transaction, and so the whole ledger, nets to zero.
        """
        totals = LedgerEntry.objects.aggregate(
            total=Coalesce(Sum("amount_cents"), 0),
        )
        imbalanced = list(
            LedgerEntry.objects.order_by()
            .values("transaction_id")
            .annotate(net=Sum("amount_cents"))
            .exclude(net=0)
            .values_list("transaction_id", flat=True)
        )
        return LedgerBalanceReport(
            total_cents=totals["total"],
            entry_count=LedgerEntry.objects.count(),
            imbalanced_transaction_ids=imbalanced,
        )


ledger = LedgerService()
