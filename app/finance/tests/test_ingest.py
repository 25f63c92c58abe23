"""
Tests for WebhookIngestionService.

receive() must store each provider event once and queue it only after
commit; process() must claim, run and record exactly once per claim.
"""

from unittest.mock import patch

import pytest

from finance.ledger.models import LedgerTransaction
from finance.models import AccountingSyncJob, Payment, WebhookEvent
from finance.state_machines import WebhookEventStatus
from finance.tests.factories import WebhookEventFactory
from finance.webhooks.ingest import DUPLICATE, QUEUED, WebhookIngestionService


@pytest.fixture
def mock_delay():
    with patch("finance.tasks.process_webhook_event.delay") as mock:
        yield mock


def receive(payload):
    return WebhookIngestionService.receive("stripe", payload["id"], payload["type"], payload)


# =============================================================================
# receive()
# =============================================================================


class TestReceive:
    """Tests for idempotent storage and queueing."""

    def test_new_event_stored_and_queued_on_commit(
        self, db, payment_intent_payload, mock_delay, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            result = receive(payment_intent_payload)

        assert result.status == QUEUED
        assert result.created
        assert len(callbacks) == 1
        mock_delay.assert_called_once_with(str(result.webhook_event.id))

        event = WebhookEvent.objects.get()
        assert event.event_id == "evt_pi_succeeded"
        assert event.status == WebhookEventStatus.PENDING
        assert event.payload == payment_intent_payload

    def test_nothing_queued_before_commit(self, db, payment_intent_payload, mock_delay):
        receive(payment_intent_payload)
        mock_delay.assert_not_called()

    def test_succeeded_event_is_duplicate(
        self, db, payment_intent_payload, mock_delay, django_capture_on_commit_callbacks
    ):
        WebhookEventFactory(
            event_id="evt_pi_succeeded",
            event_type="payment_intent.succeeded",
            status=WebhookEventStatus.SUCCEEDED,
        )

        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            result = receive(payment_intent_payload)

        assert result.status == DUPLICATE
        assert result.is_duplicate
        assert callbacks == []
        mock_delay.assert_not_called()
        assert WebhookEvent.objects.count() == 1

    def test_redelivery_of_failed_event_resets_to_pending(
        self, db, payment_intent_payload, mock_delay, django_capture_on_commit_callbacks
    ):
        WebhookEventFactory(
            event_id="evt_pi_succeeded",
            event_type="payment_intent.succeeded",
            status=WebhookEventStatus.FAILED,
            attempt_count=1,
        )

        with django_capture_on_commit_callbacks(execute=True):
            result = receive(payment_intent_payload)

        assert result.status == QUEUED
        assert not result.created
        assert result.webhook_event.status == WebhookEventStatus.PENDING
        mock_delay.assert_called_once()

    def test_redelivery_of_exhausted_event_stays_failed(
        self, db, settings, payment_intent_payload, mock_delay
    ):
        settings.WEBHOOK_MAX_ATTEMPTS = 2
        WebhookEventFactory(
            event_id="evt_pi_succeeded",
            event_type="payment_intent.succeeded",
            status=WebhookEventStatus.FAILED,
            attempt_count=2,
        )

        result = receive(payment_intent_payload)

        assert result.webhook_event.status == WebhookEventStatus.FAILED

    def test_queue_failure_is_logged_not_raised(
        self, db, payment_intent_payload, django_capture_on_commit_callbacks
    ):
        with patch(
            "finance.tasks.process_webhook_event.delay", side_effect=ConnectionError("broker down")
        ):
            with django_capture_on_commit_callbacks(execute=True):
                result = receive(payment_intent_payload)

        assert result.webhook_event.status == WebhookEventStatus.PENDING


# =============================================================================
# process()
# =============================================================================


class TestProcess:
    """Tests for claiming, dispatching and recording outcomes."""

    def test_success(self, db, payment_intent_payload):
        event = WebhookEventFactory(
            event_id=payment_intent_payload["id"],
            event_type=payment_intent_payload["type"],
            payload=payment_intent_payload,
        )

        outcome = WebhookIngestionService.process(event.id)

        assert outcome.succeeded
        event.refresh_from_db()
        assert event.status == WebhookEventStatus.SUCCEEDED
        assert event.attempt_count == 1
        assert event.processed_at is not None
        assert Payment.objects.count() == 1

    def test_accepts_string_id(self, db):
        event = WebhookEventFactory(event_type="customer.created")
        assert WebhookIngestionService.process(str(event.id)).succeeded

    def test_handler_failure_rolls_back_and_marks_failed(self, db, payment_intent_payload):
        event = WebhookEventFactory(
            event_id=payment_intent_payload["id"],
            event_type=payment_intent_payload["type"],
            payload=payment_intent_payload,
        )

        with patch(
            "finance.webhooks.handlers.AccountingSyncService.enqueue",
            side_effect=RuntimeError("queue table locked"),
        ):
            outcome = WebhookIngestionService.process(event.id)

        assert outcome.status == "failed"
        assert "RuntimeError" in outcome.error
        event.refresh_from_db()
        assert event.status == WebhookEventStatus.FAILED
        assert event.attempt_count == 1
        # The payment written before the failure was rolled back with it
        assert Payment.objects.count() == 0
        assert LedgerTransaction.objects.count() == 0
        assert AccountingSyncJob.objects.count() == 0

    def test_returned_failure_marks_failed(self, db, refund_payload):
        event = WebhookEventFactory(
            event_id=refund_payload["id"],
            event_type=refund_payload["type"],
            payload=refund_payload,
        )

        outcome = WebhookIngestionService.process(event.id)

        assert outcome.status == "failed"
        event.refresh_from_db()
        assert event.is_failed
        assert "Payment not found" in event.last_error

    @pytest.mark.parametrize(
        "status",
        [
            WebhookEventStatus.PROCESSING,
            WebhookEventStatus.SUCCEEDED,
            WebhookEventStatus.FAILED,
        ],
    )
    def test_non_pending_is_skipped(self, db, status):
        event = WebhookEventFactory(status=status, attempt_count=1)

        outcome = WebhookIngestionService.process(event.id)

        assert outcome.status == "skipped"
        event.refresh_from_db()
        assert event.attempt_count == 1
        assert event.status == status

    def test_second_process_of_same_event_is_skipped(self, db, payment_intent_payload):
        event = WebhookEventFactory(
            event_id=payment_intent_payload["id"],
            event_type=payment_intent_payload["type"],
            payload=payment_intent_payload,
        )

        first = WebhookIngestionService.process(event.id)
        second = WebhookIngestionService.process(event.id)

        assert first.succeeded
        assert second.status == "skipped"
        assert Payment.objects.count() == 1

    def test_missing_event(self, db):
        import uuid

        assert WebhookIngestionService.process(uuid.uuid4()).status == "not_found"
