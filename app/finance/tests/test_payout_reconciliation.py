"""
Tests for PayoutReconciliationService.

The processor's balance transactions are mocked; matching, fee totals,
unresolved reporting and re-run convergence are checked against real rows.
"""

from datetime import datetime
from datetime import timezone as dt_timezone
from unittest.mock import patch

import pytest

from finance.adapters import PayoutResult
from finance.exceptions import StripeAPIUnavailableError
from finance.ledger import Money
from finance.models import Payout
from finance.services import PayoutReconciliationService
from finance.state_machines import PayoutStatus
from finance.tests.factories import (
    PaymentFactory,
    PayoutFactory,
    RefundFactory,
    charge_movement,
    payout_movement,
    refund_movement,
)


@pytest.fixture
def payout(db):
    return PayoutFactory(external_payout_id="po_1", status=PayoutStatus.PAID)


class TestReconcilePayout:
    """Tests for linking payments and refunds to a payout."""

    def test_links_payments_refunds_and_fees(self, payout, mock_stripe_movements):
        p1 = PaymentFactory(external_payment_id="pi_1")
        p2 = PaymentFactory(external_payment_id="pi_2")
        refund = RefundFactory(payment=p1, external_refund_id="re_1", amount_cents=1000)
        mock_stripe_movements.return_value = [
            charge_movement("txn_1", "pi_1", 7500, 247),
            charge_movement("txn_2", "pi_2", 5000, 175),
            refund_movement("txn_3", "re_1", 1000),
            payout_movement("txn_4", 11078),
        ]

        result = PayoutReconciliationService.reconcile_payout("po_1")

        assert set(result.linked_payments) == {p1.id, p2.id}
        assert result.linked_refunds == [refund.id]
        assert result.fee_total == Money(422)
        assert result.is_complete

        payout.refresh_from_db()
        assert set(payout.payments.values_list("id", flat=True)) == {p1.id, p2.id}
        assert list(payout.refunds.values_list("id", flat=True)) == [refund.id]
        assert payout.fee_total_cents == 422
        assert payout.unresolved_count == 0
        assert payout.is_reconciled

    def test_unknown_movements_reported(self, payout, mock_stripe_movements):
        PaymentFactory(external_payment_id="pi_1")
        mock_stripe_movements.return_value = [
            charge_movement("txn_1", "pi_1", 7500, 247),
            charge_movement("txn_2", "pi_unknown", 5000, 175),
            refund_movement("txn_3", "re_unknown", 1000),
        ]

        result = PayoutReconciliationService.reconcile_payout("po_1")

        assert not result.is_complete
        assert sorted(result.unresolved) == ["txn_2", "txn_3"]
        payout.refresh_from_db()
        assert payout.unresolved_count == 2
        assert payout.payments.count() == 1

    def test_fees_from_non_charge_movements_count(self, payout, mock_stripe_movements):
        from finance.adapters import BalanceMovement

        mock_stripe_movements.return_value = [
            BalanceMovement(
                id="txn_fee",
                type="stripe_fee",
                reporting_category="fee",
                amount_cents=-200,
                fee_cents=0,
                net_cents=-200,
            ),
            BalanceMovement(
                id="txn_adj",
                type="adjustment",
                reporting_category="other_adjustment",
                amount_cents=0,
                fee_cents=15,
                net_cents=-15,
            ),
        ]

        result = PayoutReconciliationService.reconcile_payout("po_1")

        assert result.fee_total == Money(15)
        assert result.is_complete

    def test_rerun_converges(self, payout, mock_stripe_movements):
        p1 = PaymentFactory(external_payment_id="pi_1")
        mock_stripe_movements.return_value = [charge_movement("txn_1", "pi_1", 7500, 247)]

        first = PayoutReconciliationService.reconcile_payout("po_1")
        second = PayoutReconciliationService.reconcile_payout("po_1")

        assert first.to_dict()["linked_payments"] == second.to_dict()["linked_payments"]
        payout.refresh_from_db()
        assert list(payout.payments.values_list("id", flat=True)) == [p1.id]

    def test_rerun_replaces_stale_links(self, payout, mock_stripe_movements):
        p1 = PaymentFactory(external_payment_id="pi_1")
        p2 = PaymentFactory(external_payment_id="pi_2")
        payout.payments.add(p1)

        mock_stripe_movements.return_value = [charge_movement("txn_2", "pi_2", 5000, 175)]
        PayoutReconciliationService.reconcile_payout("po_1")

        payout.refresh_from_db()
        assert list(payout.payments.values_list("id", flat=True)) == [p2.id]
        assert payout.fee_total_cents == 175

    def test_fetch_error_changes_nothing(self, payout, mock_stripe_movements):
        p1 = PaymentFactory(external_payment_id="pi_1")
        payout.payments.add(p1)
        mock_stripe_movements.side_effect = StripeAPIUnavailableError("down")

        with pytest.raises(StripeAPIUnavailableError):
            PayoutReconciliationService.reconcile_payout("po_1")

        payout.refresh_from_db()
        assert list(payout.payments.all()) == [p1]
        assert payout.last_reconciled_at is None


class TestGetOrCreatePayout:
    def test_returns_existing(self, payout):
        assert PayoutReconciliationService.get_or_create_payout("po_1") == payout

    def test_creates_from_payload(self, db):
        payout = PayoutReconciliationService.get_or_create_payout(
            "po_new",
            {"id": "po_new", "amount": 12345, "currency": "usd", "arrival_date": 1717200000},
        )

        assert payout.amount_cents == 12345
        assert payout.status == PayoutStatus.PENDING
        assert payout.arrival_date == datetime(2024, 6, 1, tzinfo=dt_timezone.utc)

    def test_fetches_unknown_payout(self, db):
        fetched = PayoutResult(
            id="po_fetched",
            amount_cents=999,
            currency="usd",
            status="in_transit",
            description="STRIPE PAYOUT",
        )
        with patch(
            "finance.services.payout_reconciliation_service.StripeAdapter.retrieve_payout",
            return_value=fetched,
        ):
            payout = PayoutReconciliationService.get_or_create_payout("po_fetched")

        assert payout.amount_cents == 999
        assert payout.status == PayoutStatus.IN_TRANSIT
        assert Payout.objects.filter(external_payout_id="po_fetched").exists()
