"""
External accounting sync.

Pushes settled finance records to QuickBooks as accounting documents:

    Payment        -> SalesReceipt
    Refund         -> RefundReceipt
    Payout         -> Deposit (after all linked payments and refunds)
    ExpenseReport  -> Bill

Ledger posting never waits on this service. Handlers call enqueue() inside
the posting transaction so the job row commits with the record; workers
call run_job() later, and failures only move the job and the record's
sync state machine.

Usage:
    from finance.services import AccountingSyncService

    job = AccountingSyncService.enqueue(payment)          # inside the posting txn
    outcome = AccountingSyncService.run_job(job.id)       # from a worker
    if outcome and not outcome.ok:
        ...
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.db.models import F
from django.utils import timezone

from core.exceptions import ValidationError
from core.services import BaseService

from finance.adapters import QuickBooksAdapter, backoff_delay, is_retryable_error
from finance.exceptions import AccountingSyncError
from finance.models import (
    AccountingSyncJob,
    ExpenseReport,
    Payment,
    Payout,
    Refund,
    sync_idempotency_key,
)
from finance.state_machines import (
    ExpenseReportStatus,
    PaymentStatus,
    PayoutStatus,
    SyncEntityType,
    SyncStatus,
)

if TYPE_CHECKING:
    from finance.models import AccountingSyncMixin


# Reason codes returned in SyncOutcome.reason
ENTITY_NOT_FOUND = "entity_not_found"
DEPENDENCIES_NOT_SYNCED = "dependencies_not_synced"
PAYOUT_NOT_RECONCILED = "payout_not_reconciled"
NOT_SYNCABLE = "not_syncable"
STUCK_IN_SYNCING = "stuck_in_syncing"

# Payout blockers that clear once other jobs finish. Waiting on them does
# not use an attempt.
WAITING_REASONS = frozenset({DEPENDENCIES_NOT_SYNCED, PAYOUT_NOT_RECONCILED})

ENTITY_MODELS: dict[str, type] = {
    SyncEntityType.PAYMENT: Payment,
    SyncEntityType.REFUND: Refund,
    SyncEntityType.PAYOUT: Payout,
    SyncEntityType.EXPENSE_REPORT: ExpenseReport,
}


@dataclass(frozen=True)
class SyncOutcome:
    """
    Result of one sync attempt.

    ok=True carries the accounting system's id; ok=False carries a reason
    and whether another attempt may succeed.
    """

    ok: bool
    external_id: str | None = None
    reason: str = ""
    retryable: bool = False

    @classmethod
    def succeeded(cls, external_id: str) -> SyncOutcome:
        return cls(ok=True, external_id=external_id)

    @classmethod
    def error(cls, reason: str, retryable: bool) -> SyncOutcome:
        return cls(ok=False, reason=reason, retryable=retryable)

    def to_dict(self) -> dict[str, Any]:
        if self.ok:
            return {"ok": True, "external_id": self.external_id}
        return {"ok": False, "reason": self.reason, "retryable": self.retryable}


def _dollars(cents: int) -> float:
    return round(cents / 100, 2)


def _ref(value: Any) -> dict[str, str]:
    return {"value": str(value)}


# =============================================================================
# Document Builders
# =============================================================================


def build_sales_receipt(payment: Payment) -> dict[str, Any]:
    item_ids = getattr(settings, "QUICKBOOKS_ITEM_IDS", {})
    amount = _dollars(payment.amount_cents)
    return {
        "TxnDate": payment.payment_date.date().isoformat(),
        "DocNumber": payment.reference_id,
        "PrivateNote": f"{payment.external_provider} {payment.external_payment_id}",
        "CustomerRef": _ref(settings.QUICKBOOKS_DEFAULT_CUSTOMER_ID),
        "DepositToAccountRef": _ref(settings.QUICKBOOKS_UNDEPOSITED_FUNDS_ACCOUNT_ID),
        "Line": [
            {
                "Amount": amount,
                "DetailType": "SalesItemLineDetail",
                "Description": payment.description or f"{payment.entity_type} {payment.entity_id}",
                "SalesItemLineDetail": {
                    "ItemRef": _ref(item_ids.get(payment.entity_type, "")),
                    "Qty": 1,
                    "UnitPrice": amount,
                },
            }
        ],
    }


def build_refund_receipt(refund: Refund) -> dict[str, Any]:
    payment = refund.payment
    item_ids = getattr(settings, "QUICKBOOKS_ITEM_IDS", {})
    amount = _dollars(refund.amount_cents)
    return {
        "TxnDate": refund.created_at.date().isoformat(),
        "PrivateNote": f"{refund.external_refund_id} for {payment.external_payment_id}",
        "CustomerRef": _ref(settings.QUICKBOOKS_DEFAULT_CUSTOMER_ID),
        "DepositToAccountRef": _ref(settings.QUICKBOOKS_UNDEPOSITED_FUNDS_ACCOUNT_ID),
        "Line": [
            {
                "Amount": amount,
                "DetailType": "SalesItemLineDetail",
                "Description": refund.reason or "Refund",
                "SalesItemLineDetail": {
                    "ItemRef": _ref(item_ids.get(payment.entity_type, "")),
                    "Qty": 1,
                    "UnitPrice": amount,
                },
            }
        ],
    }


def build_deposit(payout: Payout) -> dict[str, Any]:
    """
    Deposit moving the payout's receipts out of undeposited funds.

    Each linked payment is a line linked to its SalesReceipt; refunds and
    processor fees are negative lines, so the deposit nets to what arrived
    in the bank.
    """
    lines: list[dict[str, Any]] = []
    for payment in payout.payments.order_by("payment_date"):
        lines.append(
            {
                "Amount": _dollars(payment.amount_cents),
                "LinkedTxn": [
                    {
                        "TxnId": payment.external_accounting_id,
                        "TxnType": "SalesReceipt",
                        "TxnLineId": "0",
                    }
                ],
            }
        )
    for refund in payout.refunds.order_by("created_at"):
        lines.append(
            {
                "Amount": -_dollars(refund.amount_cents),
                "DetailType": "DepositLineDetail",
                "Description": f"Refund {refund.external_refund_id}",
                "DepositLineDetail": {
                    "AccountRef": _ref(settings.QUICKBOOKS_UNDEPOSITED_FUNDS_ACCOUNT_ID),
                },
            }
        )
    if payout.fee_total_cents:
        lines.append(
            {
                "Amount": -_dollars(payout.fee_total_cents),
                "DetailType": "DepositLineDetail",
                "Description": "Processor fees",
                "DepositLineDetail": {
                    "AccountRef": _ref(settings.QUICKBOOKS_FEE_ACCOUNT_ID),
                },
            }
        )
    arrival = payout.arrival_date or payout.created_at
    return {
        "TxnDate": arrival.date().isoformat(),
        "PrivateNote": f"Payout {payout.external_payout_id}",
        "DepositToAccountRef": _ref(settings.QUICKBOOKS_DEPOSIT_ACCOUNT_ID),
        "Line": lines,
    }


def build_bill(report: ExpenseReport) -> dict[str, Any]:
    return {
        "TxnDate": report.created_at.date().isoformat(),
        "PrivateNote": f"Expense report {report.id}",
        "VendorRef": _ref(settings.QUICKBOOKS_DEFAULT_VENDOR_ID),
        "Line": [
            {
                "Amount": _dollars(report.total_amount_cents),
                "DetailType": "AccountBasedExpenseLineDetail",
                "Description": report.purpose,
                "AccountBasedExpenseLineDetail": {
                    "AccountRef": _ref(settings.QUICKBOOKS_EXPENSE_ACCOUNT_ID),
                },
            }
        ],
    }


# =============================================================================
# Service
# =============================================================================


class AccountingSyncService(BaseService):
    """
    Job queue and sync contract for the accounting system.

    Attempts are bounded by AccountingSyncJob.max_attempts. Retryable
    failures are rescheduled with exponential backoff; anything else is
    terminal until an operator re-drives the job. A payout blocked on its
    receipts waits without using attempts and is woken when a linked
    payment or refund syncs.
    """

    @classmethod
    def enqueue(cls, entity: AccountingSyncMixin) -> AccountingSyncJob:
        """
        Create (or return) the sync job for a record.

        Call inside the transaction that created the record so the job
        commits with it.

        Raises:
            ValidationError: Expense report not approved or paid
        """
        if isinstance(entity, ExpenseReport) and not entity.is_syncable:
            raise ValidationError(
                "Only approved or paid expense reports are synced",
                details={"expense_report_id": str(entity.id), "status": entity.status},
            )

        job, created = AccountingSyncJob.objects.get_or_create(
            entity_type=entity.sync_entity_type,
            entity_id=entity.id,
            defaults={
                "idempotency_key": sync_idempotency_key(entity.sync_entity_type, entity.id),
            },
        )
        if created:
            cls.get_logger().info(
                "Enqueued accounting sync",
                extra={
                    "job_id": str(job.id),
                    "entity_type": job.entity_type,
                    "entity_id": str(job.entity_id),
                },
            )
        return job

    # =========================================================================
    # Sync Contract
    # =========================================================================

    @classmethod
    def sync(cls, entity_id: uuid.UUID, entity_type: str) -> SyncOutcome:
        """
        Push one record to the accounting system.

        Returns SyncOutcome.succeeded(external_id) or
        SyncOutcome.error(reason, retryable). Does not touch job or
        record sync state; run_job() owns those.
        """
        model = ENTITY_MODELS.get(entity_type)
        if model is None:
            return SyncOutcome.error(f"unknown entity type {entity_type}", retryable=False)

        entity = model.objects.filter(id=entity_id).first()
        if entity is None:
            return SyncOutcome.error(ENTITY_NOT_FOUND, retryable=False)

        if entity.external_accounting_id:
            return SyncOutcome.succeeded(entity.external_accounting_id)

        request_id = str(sync_idempotency_key(entity_type, entity_id))
        try:
            if entity_type == SyncEntityType.PAYMENT:
                external_id = QuickBooksAdapter.create_sales_receipt(
                    build_sales_receipt(entity), request_id
                )
            elif entity_type == SyncEntityType.REFUND:
                external_id = QuickBooksAdapter.create_refund_receipt(
                    build_refund_receipt(entity), request_id
                )
            elif entity_type == SyncEntityType.PAYOUT:
                blocked = cls._payout_blocker(entity)
                if blocked:
                    return SyncOutcome.error(blocked, retryable=True)
                external_id = QuickBooksAdapter.create_deposit(build_deposit(entity), request_id)
            else:
                if not entity.is_syncable:
                    return SyncOutcome.error(NOT_SYNCABLE, retryable=False)
                external_id = QuickBooksAdapter.create_bill(build_bill(entity), request_id)
        except AccountingSyncError as e:
            retryable = is_retryable_error(e)
            cls.get_logger().warning(
                f"Accounting sync failed: {e.message}",
                extra={
                    "entity_type": entity_type,
                    "entity_id": str(entity_id),
                    "error_code": e.error_code,
                    "retryable": retryable,
                },
            )
            return SyncOutcome.error(e.message, retryable=retryable)

        return SyncOutcome.succeeded(external_id)

    @staticmethod
    def _payout_blocker(payout: Payout) -> str | None:
        """A Deposit may only reference receipts that already exist in accounting."""
        if payout.last_reconciled_at is None or payout.fee_total_cents is None:
            return PAYOUT_NOT_RECONCILED
        unsynced = payout.payments.exclude(sync_status=SyncStatus.SYNCED).exists()
        unsynced = unsynced or payout.refunds.exclude(sync_status=SyncStatus.SYNCED).exists()
        if unsynced:
            return DEPENDENCIES_NOT_SYNCED
        return None

    # =========================================================================
    # Job Execution
    # =========================================================================

    @classmethod
    def run_job(cls, job_id: uuid.UUID) -> SyncOutcome | None:
        """
        Claim and run one due job.

        Returns None when the job is missing, not pending or not yet due
        (another worker has it, or it is waiting out its backoff).
        Unexpected exceptions are recorded as retryable failures.
        """
        logger = cls.get_logger()
        now = timezone.now()

        claimed = (
            AccountingSyncJob.objects.due(now)
            .filter(id=job_id)
            .update(
                status=SyncStatus.SYNCING,
                attempt_count=F("attempt_count") + 1,
                last_attempt_at=now,
                updated_at=now,
            )
        )
        if not claimed:
            logger.debug("Sync job not claimable", extra={"job_id": str(job_id)})
            return None

        job = AccountingSyncJob.objects.get(id=job_id)
        entity = cls._start_entity_sync(job)

        try:
            outcome = cls.sync(job.entity_id, job.entity_type)
        except Exception as e:
            logger.exception(
                "Unexpected error during accounting sync",
                extra={"job_id": str(job.id), "entity_type": job.entity_type},
            )
            outcome = SyncOutcome.error(f"{type(e).__name__}: {e}", retryable=True)

        cls._record_outcome(job, entity, outcome)
        return outcome

    @staticmethod
    def _load_entity(job: AccountingSyncJob) -> AccountingSyncMixin | None:
        model = ENTITY_MODELS.get(job.entity_type)
        return model.objects.filter(id=job.entity_id).first() if model else None

    @classmethod
    def _start_entity_sync(cls, job: AccountingSyncJob) -> AccountingSyncMixin | None:
        entity = cls._load_entity(job)
        if entity is None:
            return None

        if entity.sync_status == SyncStatus.FAILED:
            entity.requeue_sync()
        if entity.sync_status == SyncStatus.PENDING:
            entity.begin_sync()
            entity.save(
                update_fields=["sync_status", "sync_last_attempt_at", "sync_error", "updated_at"]
            )
        return entity

    @classmethod
    def _record_outcome(
        cls,
        job: AccountingSyncJob,
        entity: AccountingSyncMixin | None,
        outcome: SyncOutcome,
    ) -> None:
        logger = cls.get_logger()
        now = timezone.now()
        log_context = {
            "job_id": str(job.id),
            "entity_type": job.entity_type,
            "entity_id": str(job.entity_id),
            "attempt": job.attempt_count,
        }

        if outcome.ok:
            job.status = SyncStatus.SYNCED
            job.external_id = outcome.external_id
            job.synced_at = now
            job.last_error = ""
            if entity is not None and entity.sync_status == SyncStatus.SYNCING:
                entity.mark_synced(outcome.external_id)
            logger.info(
                "Accounting sync succeeded",
                extra={**log_context, "external_id": outcome.external_id},
            )
        elif outcome.reason in WAITING_REASONS:
            wait = getattr(settings, "ACCOUNTING_SYNC_DEPENDENCY_WAIT_SECONDS", 3600)
            job.status = SyncStatus.PENDING
            job.attempt_count = max(job.attempt_count - 1, 0)
            job.last_error = outcome.reason
            job.next_attempt_at = now + timedelta(seconds=wait)
            if entity is not None and entity.sync_status == SyncStatus.SYNCING:
                entity.defer_sync(outcome.reason)
            logger.info(
                "Accounting sync waiting on other records",
                extra={**log_context, "reason": outcome.reason, "retry_in_seconds": wait},
            )
        elif outcome.retryable and job.attempt_count < job.max_attempts:
            delay = backoff_delay(
                job.attempt_count - 1,
                base=getattr(settings, "ACCOUNTING_SYNC_BACKOFF_BASE_SECONDS", 60),
                max_delay=getattr(settings, "ACCOUNTING_SYNC_BACKOFF_MAX_SECONDS", 3600),
            )
            job.status = SyncStatus.PENDING
            job.last_error = outcome.reason
            job.next_attempt_at = now + timedelta(seconds=delay)
            if entity is not None and entity.sync_status == SyncStatus.SYNCING:
                entity.defer_sync(outcome.reason)
            logger.warning(
                "Accounting sync failed, retry scheduled",
                extra={**log_context, "reason": outcome.reason, "retry_in_seconds": delay},
            )
        else:
            job.status = SyncStatus.FAILED
            job.last_error = outcome.reason
            if entity is not None and entity.sync_status == SyncStatus.SYNCING:
                entity.fail_sync(outcome.reason)
            logger.error(
                "Accounting sync failed permanently",
                extra={**log_context, "reason": outcome.reason, "retryable": outcome.retryable},
            )

        job.save(
            update_fields=[
                "status",
                "attempt_count",
                "external_id",
                "synced_at",
                "last_error",
                "next_attempt_at",
                "updated_at",
            ]
        )
        if entity is not None:
            entity.save(
                update_fields=[
                    "sync_status",
                    "external_accounting_id",
                    "synced_at",
                    "sync_error",
                    "updated_at",
                ]
            )
        if outcome.ok and job.entity_type in (SyncEntityType.PAYMENT, SyncEntityType.REFUND):
            cls._wake_waiting_payouts(job)

    @classmethod
    def _wake_waiting_payouts(cls, job: AccountingSyncJob) -> None:
        """Make payout jobs blocked on this receipt due now."""
        link = "payments" if job.entity_type == SyncEntityType.PAYMENT else "refunds"
        payout_ids = Payout.objects.filter(**{link: job.entity_id}).values("id")
        woken = AccountingSyncJob.objects.filter(
            entity_type=SyncEntityType.PAYOUT,
            entity_id__in=payout_ids,
            status=SyncStatus.PENDING,
            last_error=DEPENDENCIES_NOT_SYNCED,
        ).update(next_attempt_at=timezone.now(), updated_at=timezone.now())
        if woken:
            cls.get_logger().info(
                "Woke payout sync jobs waiting on receipts",
                extra={"job_id": str(job.id), "woken_count": woken},
            )

    # =========================================================================
    # Sweeps
    # =========================================================================

    @classmethod
    def release_stuck_jobs(cls, threshold_minutes: int | None = None) -> dict[str, int]:
        """
        Release jobs left in SYNCING by a worker that died mid-attempt.

        The abandoned attempt counts as a retryable failure: jobs with
        attempts left go back to PENDING with backoff, exhausted jobs (and
        their records) become FAILED and show up in the reprocessing tools.
        """
        minutes = threshold_minutes or getattr(
            settings, "ACCOUNTING_SYNC_STUCK_THRESHOLD_MINUTES", 30
        )
        cutoff = timezone.now() - timedelta(minutes=minutes)
        stuck_jobs = AccountingSyncJob.objects.filter(
            status=SyncStatus.SYNCING,
            last_attempt_at__lt=cutoff,
        )

        counts = {"released": 0, "failed": 0}
        for job in stuck_jobs:
            stuck_since = job.last_attempt_at
            cls._record_outcome(
                job,
                cls._load_entity(job),
                SyncOutcome.error(STUCK_IN_SYNCING, retryable=True),
            )
            counts["failed" if job.status == SyncStatus.FAILED else "released"] += 1
            cls.get_logger().warning(
                "Released stuck sync job",
                extra={
                    "job_id": str(job.id),
                    "entity_type": job.entity_type,
                    "stuck_since": stuck_since.isoformat(),
                    "job_status": job.status,
                },
            )
        return counts

    @classmethod
    def due_job_ids(cls, limit: int | None = None) -> list[uuid.UUID]:
        limit = limit or getattr(settings, "ACCOUNTING_SYNC_BATCH_SIZE", 100)
        return list(
            AccountingSyncJob.objects.due()
            .order_by("next_attempt_at")
            .values_list("id", flat=True)[:limit]
        )

    @classmethod
    def enqueue_unsynced(cls, limit: int = 1000) -> dict[str, int]:
        """
        Create jobs for settled records that never got one.

        Safety net for records written before their handler enqueued a
        job, or whose job creation was lost. Returns created counts by
        entity type.
        """
        candidates = {
            SyncEntityType.PAYMENT: Payment.objects.filter(
                status__in=[
                    PaymentStatus.SUCCEEDED,
                    PaymentStatus.PARTIALLY_REFUNDED,
                    PaymentStatus.REFUNDED,
                ]
            ),
            SyncEntityType.REFUND: Refund.objects.all(),
            SyncEntityType.PAYOUT: Payout.objects.filter(
                status=PayoutStatus.PAID, last_reconciled_at__isnull=False
            ),
            SyncEntityType.EXPENSE_REPORT: ExpenseReport.objects.filter(
                status__in=[ExpenseReportStatus.APPROVED, ExpenseReportStatus.PAID]
            ),
        }

        created: dict[str, int] = {}
        remaining = limit
        for entity_type, queryset in candidates.items():
            if remaining <= 0:
                break
            existing = AccountingSyncJob.objects.filter(entity_type=entity_type).values(
                "entity_id"
            )
            missing = (
                queryset.filter(sync_status=SyncStatus.PENDING)
                .exclude(id__in=existing)
                .order_by("created_at")[:remaining]
            )
            count = 0
            for entity in missing:
                cls.enqueue(entity)
                count += 1
            created[entity_type] = count
            remaining -= count

        total = sum(created.values())
        if total:
            cls.get_logger().info(
                f"Enqueued {total} unsynced records",
                extra={"created_by_type": created, "limit": limit},
            )
        return created
