"""
Payout reconciliation.

Links a processor payout to the payments and refunds it settled, using
the processor's balance transactions as the source of truth. The linked
sets are derived data: every run recomputes them from scratch and
replaces the stored sets in one transaction, so re-runs converge and a
failed fetch never leaves a half-updated payout.

Usage:
    from finance.services import PayoutReconciliationService

    result = PayoutReconciliationService.reconcile_payout("po_123")
    if result.unresolved:
        ...
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from datetime import timezone as dt_timezone
from typing import Any

from django.db import IntegrityError, transaction
from django.utils import timezone

from core.services import BaseService

from finance.adapters import BalanceMovement, StripeAdapter
from finance.ledger.types import Money
from finance.models import Payment, Payout, Refund
from finance.state_machines import PayoutStatus

# Balance transaction type for the payout itself
PAYOUT_TYPE = "payout"
CHARGE_CATEGORY = "charge"
REFUND_CATEGORY = "refund"

STRIPE_PAYOUT_STATUSES = {
    "pending": PayoutStatus.PENDING,
    "in_transit": PayoutStatus.IN_TRANSIT,
    "paid": PayoutStatus.PAID,
    "failed": PayoutStatus.FAILED,
    "canceled": PayoutStatus.CANCELED,
}


@dataclass
class PayoutReconciliationResult:
    """
    Outcome of one reconciliation run.

    Attributes:
        payout_id: Local Payout id
        external_payout_id: Processor payout id
        linked_payments: Payment ids now linked to the payout
        linked_refunds: Refund ids now linked to the payout
        fee_total: Sum of processor fees across the payout's movements
        unresolved: Balance transaction ids of charges/refunds with no local record
    """

    payout_id: uuid.UUID
    external_payout_id: str
    linked_payments: list[uuid.UUID] = field(default_factory=list)
    linked_refunds: list[uuid.UUID] = field(default_factory=list)
    fee_total: Money = field(default_factory=Money.zero)
    unresolved: list[str] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return not self.unresolved

    def to_dict(self) -> dict[str, Any]:
        return {
            "payout_id": str(self.payout_id),
            "external_payout_id": self.external_payout_id,
            "linked_payments": [str(pk) for pk in self.linked_payments],
            "linked_refunds": [str(pk) for pk in self.linked_refunds],
            "fee_total": self.fee_total.to_dict(),
            "unresolved": list(self.unresolved),
        }


class PayoutReconciliationService(BaseService):
    """Rebuilds a payout's payment and refund links from processor data."""

    @classmethod
    def reconcile_payout(cls, external_payout_id: str) -> PayoutReconciliationResult:
        """
        Recompute and store the payout's linked payments, refunds and fee total.

        Raises:
            StripeError: The processor could not be read; nothing was changed
        """
        logger = cls.get_logger()
        payout = cls.get_or_create_payout(external_payout_id)

        # Fetch everything before touching the database
        movements = StripeAdapter.list_payout_balance_transactions(external_payout_id)

        payment_ids, refund_ids, fee_cents, unresolved = cls._match_movements(
            movements, external_payout_id
        )

        with transaction.atomic():
            payout = Payout.objects.select_for_update().get(id=payout.id)
            payout.payments.set(payment_ids)
            payout.refunds.set(refund_ids)
            payout.fee_total_cents = fee_cents
            payout.unresolved_count = len(unresolved)
            payout.last_reconciled_at = timezone.now()
            payout.save(
                update_fields=[
                    "fee_total_cents",
                    "unresolved_count",
                    "last_reconciled_at",
                    "updated_at",
                ]
            )

        result = PayoutReconciliationResult(
            payout_id=payout.id,
            external_payout_id=external_payout_id,
            linked_payments=payment_ids,
            linked_refunds=refund_ids,
            fee_total=Money(fee_cents, payout.currency),
            unresolved=unresolved,
        )
        logger.info(
            "Payout reconciled",
            extra={
                "external_payout_id": external_payout_id,
                "linked_payments": len(payment_ids),
                "linked_refunds": len(refund_ids),
                "fee_total_cents": fee_cents,
                "unresolved_count": len(unresolved),
            },
        )
        return result

    @classmethod
    def _match_movements(
        cls,
        movements: list[BalanceMovement],
        external_payout_id: str,
    ) -> tuple[list[uuid.UUID], list[uuid.UUID], int, list[str]]:
        logger = cls.get_logger()
        settled = [m for m in movements if m.type != PAYOUT_TYPE]
        fee_cents = sum(m.fee_cents for m in settled)

        charge_refs = {
            m.payment_intent_id: m
            for m in settled
            if m.reporting_category == CHARGE_CATEGORY and m.payment_intent_id
        }
        refund_refs = {
            m.source_id: m
            for m in settled
            if m.reporting_category == REFUND_CATEGORY and m.source_id
        }

        payments = dict(
            Payment.objects.filter(external_payment_id__in=charge_refs).values_list(
                "external_payment_id", "id"
            )
        )
        refunds = dict(
            Refund.objects.filter(external_refund_id__in=refund_refs).values_list(
                "external_refund_id", "id"
            )
        )

        unresolved: list[str] = []
        for movement in settled:
            if movement.reporting_category == CHARGE_CATEGORY:
                matched = movement.payment_intent_id in payments
            elif movement.reporting_category == REFUND_CATEGORY:
                matched = movement.source_id in refunds
            else:
                continue
            if not matched:
                unresolved.append(movement.id)
                logger.warning(
                    "Payout movement has no local record",
                    extra={
                        "external_payout_id": external_payout_id,
                        "balance_transaction_id": movement.id,
                        "reporting_category": movement.reporting_category,
                        "source_id": movement.source_id,
                        "payment_intent_id": movement.payment_intent_id,
                    },
                )

        return list(payments.values()), list(refunds.values()), fee_cents, unresolved

    @classmethod
    def get_or_create_payout(
        cls,
        external_payout_id: str,
        payout_data: dict[str, Any] | None = None,
    ) -> Payout:
        """
        Return the local Payout, creating it when unknown.

        payout_data is a processor payout object (e.g. from a webhook
        payload); without it the payout is fetched from the processor.
        """
        payout = Payout.objects.filter(external_payout_id=external_payout_id).first()
        if payout is not None:
            return payout

        if payout_data is None:
            fetched = StripeAdapter.retrieve_payout(external_payout_id)
            defaults = {
                "amount_cents": fetched.amount_cents,
                "currency": fetched.currency,
                "status": STRIPE_PAYOUT_STATUSES.get(fetched.status, PayoutStatus.PENDING),
                "arrival_date": fetched.arrival_date,
                "description": fetched.description[:255],
            }
        else:
            arrival = payout_data.get("arrival_date")
            defaults = {
                "amount_cents": payout_data.get("amount", 0),
                "currency": payout_data.get("currency", "usd"),
                "status": PayoutStatus.PENDING,
                "arrival_date": (
                    datetime.fromtimestamp(arrival, tz=dt_timezone.utc) if arrival else None
                ),
                "description": (payout_data.get("description") or "")[:255],
            }

        try:
            with transaction.atomic():
                payout, created = Payout.objects.get_or_create(
                    external_payout_id=external_payout_id, defaults=defaults
                )
        except IntegrityError:
            payout = Payout.objects.get(external_payout_id=external_payout_id)
            created = False

        if created:
            cls.get_logger().info(
                "Created payout",
                extra={
                    "payout_id": str(payout.id),
                    "external_payout_id": external_payout_id,
                    "amount_cents": payout.amount_cents,
                },
            )
        return payout
