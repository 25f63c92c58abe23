"""
Tests for webhook event handlers.

Handlers are called through dispatch_webhook with a stored WebhookEvent,
the same way WebhookIngestionService.process() calls them.
"""

from unittest.mock import patch

import pytest

from finance.ledger.models import LedgerEntry
from finance.models import AccountingSyncJob, Payment, Payout, Refund
from finance.state_machines import (
    PaymentStatus,
    PayoutStatus,
    SyncEntityType,
)
from finance.tests.factories import (
    PayoutFactory,
    WebhookEventFactory,
    charge_movement,
    stripe_event,
)
from finance.webhooks.handlers import WEBHOOK_HANDLERS, dispatch_webhook


def event_from(payload):
    return WebhookEventFactory(
        event_id=payload["id"], event_type=payload["type"], payload=payload
    )


# =============================================================================
# Registry
# =============================================================================


class TestDispatch:
    def test_known_handlers_registered(self):
        for event_type in [
            "payment_intent.succeeded",
            "payment_intent.payment_failed",
            "charge.refunded",
            "refund.created",
            "charge.dispute.created",
            "payout.paid",
            "payout.failed",
            "payout.canceled",
        ]:
            assert event_type in WEBHOOK_HANDLERS

    def test_unknown_type_succeeds_without_work(self, db):
        event = WebhookEventFactory(event_type="customer.created")
        result = dispatch_webhook(event)

        assert result.success
        assert result.data is None


# =============================================================================
# payment_intent.succeeded
# =============================================================================


class TestPaymentIntentSucceeded:
    """Tests for recording payments from PaymentIntents."""

    def test_records_payment_and_enqueues_sync(self, db, payment_intent_payload):
        result = dispatch_webhook(event_from(payment_intent_payload))

        assert result.success
        payment = Payment.objects.get(external_payment_id="pi_webhook_1")
        assert payment.amount_cents == 7500
        assert payment.processor_fee_cents == 247
        assert payment.entity_type == "event"
        assert payment.description == "Gala ticket"
        assert str(payment.user_id) == "6b1f0b4e-8d1c-4c55-9a43-2f1b0c7a9e10"
        assert LedgerEntry.objects.filter(payment=payment).count() == 4
        assert AccountingSyncJob.objects.filter(
            entity_type=SyncEntityType.PAYMENT, entity_id=payment.id
        ).exists()

    def test_duplicate_is_noop(self, db, payment_intent_payload):
        dispatch_webhook(event_from(payment_intent_payload))

        payload = dict(payment_intent_payload, id="evt_pi_succeeded_again")
        result = dispatch_webhook(event_from(payload))

        assert result.success
        assert Payment.objects.count() == 1
        assert AccountingSyncJob.objects.count() == 1

    def test_missing_entity_type_fails(self, db, payment_intent_payload):
        payment_intent_payload["data"]["object"]["metadata"] = {}
        result = dispatch_webhook(event_from(payment_intent_payload))

        assert not result.success
        assert result.error_code == "MISSING_ENTITY_TYPE"
        assert Payment.objects.count() == 0

    def test_unknown_entity_type_fails(self, db, payment_intent_payload):
        payment_intent_payload["data"]["object"]["metadata"]["entity_type"] = "raffle"
        result = dispatch_webhook(event_from(payment_intent_payload))

        assert not result.success
        assert Payment.objects.count() == 0

    def test_fee_fetched_when_charge_not_expanded(self, db, payment_intent_payload):
        payment_intent_payload["data"]["object"]["latest_charge"] = "ch_unexpanded"

        with patch(
            "finance.webhooks.handlers.StripeAdapter.retrieve_charge_fee", return_value=310
        ) as fetch:
            dispatch_webhook(event_from(payment_intent_payload))

        fetch.assert_called_once_with("ch_unexpanded")
        assert Payment.objects.get().processor_fee_cents == 310

    def test_no_charge_means_no_fee(self, db, payment_intent_payload):
        del payment_intent_payload["data"]["object"]["latest_charge"]
        dispatch_webhook(event_from(payment_intent_payload))

        assert Payment.objects.get().processor_fee_cents == 0

    def test_missing_intent_id_fails(self, db):
        result = dispatch_webhook(
            event_from(stripe_event("evt_x", "payment_intent.succeeded", {}))
        )
        assert result.error_code == "INVALID_WEBHOOK_PAYLOAD"


# =============================================================================
# Refunds
# =============================================================================


class TestRefundHandlers:
    """Tests for refund.created and charge.refunded."""

    @pytest.fixture
    def paid_intent(self, db, payment_intent_payload):
        dispatch_webhook(event_from(payment_intent_payload))
        return Payment.objects.get(external_payment_id="pi_webhook_1")

    def test_refund_created(self, paid_intent, refund_payload):
        result = dispatch_webhook(event_from(refund_payload))

        assert result.success
        refund = Refund.objects.get(external_refund_id="re_webhook_1")
        assert refund.amount_cents == 3750
        paid_intent.refresh_from_db()
        assert paid_intent.status == PaymentStatus.PARTIALLY_REFUNDED
        assert AccountingSyncJob.objects.filter(
            entity_type=SyncEntityType.REFUND, entity_id=refund.id
        ).exists()

    def test_charge_refunded_skips_recorded_refunds(self, paid_intent, refund_payload):
        dispatch_webhook(event_from(refund_payload))

        charge = {
            "id": "ch_webhook_1",
            "payment_intent": "pi_webhook_1",
            "refunds": {
                "data": [
                    {"id": "re_webhook_1", "amount": 3750, "status": "succeeded"},
                    {"id": "re_webhook_2", "amount": 3750, "status": "succeeded"},
                ]
            },
        }
        result = dispatch_webhook(event_from(stripe_event("evt_ch_ref", "charge.refunded", charge)))

        assert result.success
        assert Refund.objects.count() == 2
        paid_intent.refresh_from_db()
        assert paid_intent.status == PaymentStatus.REFUNDED
        assert AccountingSyncJob.objects.filter(entity_type=SyncEntityType.REFUND).count() == 2

    def test_refund_for_unknown_payment_fails(self, db, refund_payload):
        result = dispatch_webhook(event_from(refund_payload))

        assert not result.success
        assert result.error_code == "PAYMENT_NOT_FOUND"

    def test_over_refund_fails(self, paid_intent, refund_payload):
        refund_payload["data"]["object"]["amount"] = 9000
        result = dispatch_webhook(event_from(refund_payload))

        assert not result.success
        assert result.error_code == "REFUND_EXCEEDS_PAYMENT"
        assert Refund.objects.count() == 0

    def test_failed_refund_skipped(self, paid_intent, refund_payload):
        refund_payload["data"]["object"]["status"] = "failed"
        result = dispatch_webhook(event_from(refund_payload))

        assert result.success
        assert Refund.objects.count() == 0


# =============================================================================
# Payouts
# =============================================================================


class TestPayoutHandlers:
    def test_payout_paid_reconciles_and_enqueues(
        self, db, payout_paid_payload, mock_stripe_movements
    ):
        mock_stripe_movements.return_value = []
        result = dispatch_webhook(event_from(payout_paid_payload))

        assert result.success
        payout = Payout.objects.get(external_payout_id="po_webhook_1")
        assert payout.status == PayoutStatus.PAID
        assert payout.amount_cents == 3503
        assert payout.is_reconciled
        assert AccountingSyncJob.objects.filter(
            entity_type=SyncEntityType.PAYOUT, entity_id=payout.id
        ).exists()

    def test_payout_paid_links_payment(self, db, payout_paid_payload, mock_stripe_movements):
        from finance.tests.factories import PaymentFactory

        payment = PaymentFactory(external_payment_id="pi_settled")
        mock_stripe_movements.return_value = [charge_movement("txn_1", "pi_settled", 7500, 247)]

        result = dispatch_webhook(event_from(payout_paid_payload))

        assert list(result.data.linked_payments) == [payment.id]
        payout = Payout.objects.get(external_payout_id="po_webhook_1")
        assert payout.fee_total_cents == 247

    def test_payout_paid_propagates_processor_error(
        self, db, payout_paid_payload, mock_stripe_movements
    ):
        from finance.exceptions import StripeAPIUnavailableError

        mock_stripe_movements.side_effect = StripeAPIUnavailableError("down")

        with pytest.raises(StripeAPIUnavailableError):
            dispatch_webhook(event_from(payout_paid_payload))

    def test_payout_paid_on_canceled_payout_fails(self, db, payout_paid_payload):
        PayoutFactory(external_payout_id="po_webhook_1", status=PayoutStatus.CANCELED)
        result = dispatch_webhook(event_from(payout_paid_payload))

        assert not result.success
        assert result.error_code == "INVALID_STATE_TRANSITION"

    @pytest.mark.parametrize(
        "event_type,expected",
        [("payout.failed", PayoutStatus.FAILED), ("payout.canceled", PayoutStatus.CANCELED)],
    )
    def test_payout_failed_and_canceled(self, db, event_type, expected):
        PayoutFactory(external_payout_id="po_x", status=PayoutStatus.IN_TRANSIT)
        payload = stripe_event(
            "evt_po", event_type, {"id": "po_x", "amount": 100, "failure_code": "account_closed"}
        )

        result = dispatch_webhook(event_from(payload))

        assert result.success
        assert Payout.objects.get(external_payout_id="po_x").status == expected

    def test_repeated_payout_failed_is_noop(self, db):
        PayoutFactory(external_payout_id="po_x", status=PayoutStatus.FAILED)
        payload = stripe_event("evt_po", "payout.failed", {"id": "po_x"})

        assert dispatch_webhook(event_from(payload)).success
