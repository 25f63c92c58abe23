"""
Ledger integrity check.

Verifies the invariants the transaction builder is supposed to guarantee
and records every violation as a LedgerDiscrepancy for operator review:

- the sum of every entry in the ledger is zero
- every transaction's entries sum to zero
- every succeeded (or refunded) payment has a payment transaction
- no payment has refunds totalling more than the payment amount

Nothing is corrected automatically; the ledger is append-only.
"""

from __future__ import annotations

from django.db.models import Count, F, Sum
from django.utils import timezone

from core.services import BaseService

from finance.ledger import ledger
from finance.models import (
    DiscrepancyType,
    LedgerDiscrepancy,
    LedgerEntry,
    LedgerReconciliationRun,
    LedgerTransaction,
    Payment,
    ReconciliationRunStatus,
)
from finance.state_machines import PaymentStatus, TransactionKind

SETTLED_PAYMENT_STATUSES = [
    PaymentStatus.SUCCEEDED,
    PaymentStatus.PARTIALLY_REFUNDED,
    PaymentStatus.REFUNDED,
]


class LedgerReconciliationService(BaseService):
    """Runs the ledger integrity check and records its findings."""

    @classmethod
    def run(cls) -> LedgerReconciliationRun:
        logger = cls.get_logger()
        run = LedgerReconciliationRun.objects.create(started_at=timezone.now())
        logger.info("Starting ledger integrity check", extra={"run_id": str(run.id)})

        try:
            discrepancies = cls._collect_discrepancies(run)
            LedgerDiscrepancy.objects.bulk_create(discrepancies)
        except Exception as e:
            run.status = ReconciliationRunStatus.FAILED
            run.error_message = f"{type(e).__name__}: {e}"
            run.completed_at = timezone.now()
            run.save()
            logger.exception("Ledger integrity check failed", extra={"run_id": str(run.id)})
            raise

        run.discrepancies_found = len(discrepancies)
        run.status = ReconciliationRunStatus.COMPLETED
        run.completed_at = timezone.now()
        run.save()

        for discrepancy in discrepancies:
            logger.error(
                f"Ledger discrepancy: {discrepancy.get_discrepancy_type_display()}",
                extra={
                    "run_id": str(run.id),
                    "discrepancy_type": discrepancy.discrepancy_type,
                    "entity_type": discrepancy.entity_type,
                    "entity_id": discrepancy.entity_id,
                    "amount_cents": discrepancy.amount_cents,
                },
            )
        logger.info(
            "Ledger integrity check completed",
            extra={
                "run_id": str(run.id),
                "transactions_checked": run.transactions_checked,
                "entries_checked": run.entries_checked,
                "discrepancies_found": run.discrepancies_found,
            },
        )
        return run

    @classmethod
    def _collect_discrepancies(cls, run: LedgerReconciliationRun) -> list[LedgerDiscrepancy]:
        found: list[LedgerDiscrepancy] = []

        report = ledger.verify_ledger_balance()
        run.entries_checked = report.entry_count
        run.ledger_total_cents = report.total_cents
        run.transactions_checked = LedgerTransaction.objects.count()

        if report.total_cents != 0:
            found.append(
                LedgerDiscrepancy(
                    run=run,
                    discrepancy_type=DiscrepancyType.LEDGER_IMBALANCE,
                    entity_type="ledger",
                    amount_cents=report.total_cents,
                )
            )

        if report.imbalanced_transaction_ids:
            nets = dict(
                LedgerEntry.objects.filter(transaction_id__in=report.imbalanced_transaction_ids)
                .order_by()
                .values("transaction_id")
                .annotate(net=Sum("amount_cents"))
                .values_list("transaction_id", "net")
            )
            for txn_id in report.imbalanced_transaction_ids:
                found.append(
                    LedgerDiscrepancy(
                        run=run,
                        discrepancy_type=DiscrepancyType.TRANSACTION_IMBALANCE,
                        entity_type="transaction",
                        entity_id=str(txn_id),
                        amount_cents=nets.get(txn_id),
                    )
                )

        settled = Payment.objects.filter(status__in=SETTLED_PAYMENT_STATUSES)
        run.payments_checked = settled.count()

        missing = settled.exclude(
            id__in=LedgerTransaction.objects.filter(
                kind=TransactionKind.PAYMENT, payment__isnull=False
            ).values("payment_id")
        )
        for payment in missing.only("id", "amount_cents", "external_payment_id"):
            found.append(
                LedgerDiscrepancy(
                    run=run,
                    discrepancy_type=DiscrepancyType.PAYMENT_WITHOUT_TRANSACTION,
                    entity_type="payment",
                    entity_id=str(payment.id),
                    amount_cents=payment.amount_cents,
                    details={"external_payment_id": payment.external_payment_id},
                )
            )

        over_refunded = (
            Payment.objects.annotate(
                refunded=Sum("refunds__amount_cents"), refund_count=Count("refunds")
            )
            .filter(refund_count__gt=0, refunded__gt=F("amount_cents"))
            .values_list("id", "amount_cents", "refunded")
        )
        for payment_id, amount_cents, refunded in over_refunded:
            found.append(
                LedgerDiscrepancy(
                    run=run,
                    discrepancy_type=DiscrepancyType.REFUND_OVER_PAYMENT,
                    entity_type="payment",
                    entity_id=str(payment_id),
                    amount_cents=refunded - amount_cents,
                    details={"payment_cents": amount_cents, "refunded_cents": refunded},
                )
            )

        return found
