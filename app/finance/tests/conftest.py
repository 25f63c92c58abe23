"""
Pytest fixtures for finance tests.

Fixtures are grouped by concern: operators and API clients, recorded
payments, webhook payloads, and mocks for the two external services.

Usage:
    def test_retry(staff_client, failed_webhook):
        response = staff_client.post(f"/api/v1/finance/ops/webhooks/{failed_webhook.id}/retry/")
"""

from unittest.mock import patch

import pytest
from rest_framework.test import APIClient

from finance.ledger import Money, ledger
from finance.state_machines import WebhookEventStatus
from finance.tests.factories import (
    StaffUserFactory,
    UserFactory,
    WebhookEventFactory,
    stripe_event,
)


# =============================================================================
# Operator Fixtures
# =============================================================================


@pytest.fixture
def staff_user(db):
    return StaffUserFactory()


@pytest.fixture
def staff_client(staff_user):
    """APIClient authenticated as a staff operator."""
    client = APIClient()
    client.force_authenticate(user=staff_user)
    return client


@pytest.fixture
def member_client(db):
    """APIClient authenticated as a non-staff user."""
    client = APIClient()
    client.force_authenticate(user=UserFactory())
    return client


# =============================================================================
# Ledger Fixtures
# =============================================================================


@pytest.fixture
def recorded_payment(db):
    """A $75.00 event payment with a $2.47 fee, recorded through the ledger."""
    return ledger.process_payment(
        user_id=None,
        amount=Money(7500),
        entity_type="event",
        entity_id="evt-2024-gala",
        external_payment_id="pi_recorded",
        processor_fee=Money(247),
    ).payment


@pytest.fixture
def recorded_refund(recorded_payment):
    """A $10.00 refund against recorded_payment."""
    return ledger.process_refund(
        recorded_payment.id, Money(1000), "requested_by_customer", "re_recorded"
    ).refund


# =============================================================================
# Webhook Payload Fixtures
# =============================================================================


@pytest.fixture
def payment_intent_payload():
    """
    payment_intent.succeeded for a $75.00 event ticket.

    The latest charge is expanded with its balance transaction, so the fee
    is read from the payload and no processor call is needed.
    """
    return stripe_event(
        "evt_pi_succeeded",
        "payment_intent.succeeded",
        {
            "id": "pi_webhook_1",
            "object": "payment_intent",
            "amount": 7500,
            "amount_received": 7500,
            "currency": "usd",
            "description": "Gala ticket",
            "metadata": {
                "entity_type": "event",
                "entity_id": "evt-2024-gala",
                "user_id": "6b1f0b4e-8d1c-4c55-9a43-2f1b0c7a9e10",
            },
            "latest_charge": {
                "id": "ch_webhook_1",
                "balance_transaction": {"id": "txn_ch_1", "fee": 247},
            },
        },
    )


@pytest.fixture
def refund_payload():
    """refund.created for a $37.50 refund of pi_webhook_1."""
    return stripe_event(
        "evt_refund_created",
        "refund.created",
        {
            "id": "re_webhook_1",
            "object": "refund",
            "amount": 3750,
            "currency": "usd",
            "payment_intent": "pi_webhook_1",
            "reason": "requested_by_customer",
            "status": "succeeded",
        },
    )


@pytest.fixture
def payout_paid_payload():
    return stripe_event(
        "evt_payout_paid",
        "payout.paid",
        {
            "id": "po_webhook_1",
            "object": "payout",
            "amount": 3503,
            "currency": "usd",
            "arrival_date": 1717200000,
            "status": "paid",
        },
    )


@pytest.fixture
def failed_webhook(db):
    """A failed webhook event with attempts left."""
    return WebhookEventFactory(
        status=WebhookEventStatus.FAILED,
        attempt_count=1,
        last_error="Payment not found",
        event_type="payment_intent.payment_failed",
    )


# =============================================================================
# External Service Mocks
# =============================================================================


@pytest.fixture
def mock_quickbooks():
    """
    QuickBooksAdapter.create_entity returning sequential ids.

    Patched where the sync service looks it up, so every document type
    goes through the same mock.
    """
    counter = {"n": 0}

    def create(entity, document, request_id):
        counter["n"] += 1
        return f"qb-{counter['n']}"

    with patch(
        "finance.adapters.accounting_adapter.QuickBooksAdapter.create_entity",
        side_effect=create,
    ) as mock:
        yield mock


@pytest.fixture
def mock_stripe_movements():
    """
    StripeAdapter.list_payout_balance_transactions returning whatever the
    test assigns to `mock.return_value`.
    """
    with patch(
        "finance.services.payout_reconciliation_service.StripeAdapter.list_payout_balance_transactions"
    ) as mock:
        mock.return_value = []
        yield mock


@pytest.fixture
def mock_stripe_signature():
    """verify_webhook_signature returning the parsed request body."""
    import json

    def verify(payload, signature):
        return json.loads(payload)

    with patch(
        "finance.webhooks.views.StripeAdapter.verify_webhook_signature",
        side_effect=verify,
    ) as mock:
        yield mock

