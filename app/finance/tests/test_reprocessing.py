"""
Tests for operator re-drive services.
"""

import uuid
from datetime import timedelta
from unittest.mock import patch

import pytest
from django.utils import timezone

from core.exceptions import NotFoundError
from finance.exceptions import NotInFailedState
from finance.models import AccountingSyncJob, WebhookEvent
from finance.services import (
    FailedItemFilter,
    SyncJobReprocessingService,
    WebhookReprocessingService,
)
from finance.state_machines import SyncEntityType, SyncStatus, WebhookEventStatus
from finance.tests.factories import (
    AccountingSyncJobFactory,
    PaymentFactory,
    WebhookEventFactory,
)


def failed_event(**kwargs):
    kwargs.setdefault("event_type", "customer.created")
    kwargs.setdefault("attempt_count", 1)
    return WebhookEventFactory(status=WebhookEventStatus.FAILED, **kwargs)


def age(obj, **delta):
    """Push an item's updated_at into the past."""
    type(obj).objects.filter(id=obj.id).update(updated_at=timezone.now() - timedelta(**delta))


# =============================================================================
# Webhook events
# =============================================================================


class TestWebhookListAndStats:
    def test_list_failed_newest_first(self, db):
        older = failed_event()
        newer = failed_event()
        age(older, hours=2)
        WebhookEventFactory(status=WebhookEventStatus.SUCCEEDED)

        assert WebhookReprocessingService.list_failed() == [newer, older]

    def test_list_failed_filters(self, db):
        refund = failed_event(event_type="refund.created")
        failed_event(event_type="payout.paid")
        stale = failed_event(event_type="refund.created")
        age(stale, days=3)

        result = WebhookReprocessingService.list_failed(
            FailedItemFilter(event_type="refund.created", since=timezone.now() - timedelta(days=1))
        )

        assert result == [refund]

    def test_list_failed_limit(self, db):
        for _ in range(3):
            failed_event()

        assert len(WebhookReprocessingService.list_failed(limit=2)) == 2

    def test_stats(self, db, settings):
        settings.WEBHOOK_MAX_ATTEMPTS = 3
        failed_event(event_type="refund.created")
        failed_event(event_type="refund.created", attempt_count=3)
        old = failed_event(event_type="payout.paid")
        age(old, days=2)

        stats = WebhookReprocessingService.stats()

        assert stats["total_failed"] == 3
        assert stats["recent_24h"] == 2
        assert stats["by_type"] == {"refund.created": 2, "payout.paid": 1}
        assert stats["by_provider"] == {"stripe": 3}
        assert stats["exhausted"] == 1


class TestWebhookRetry:
    """Tests for resetting and re-driving webhook events."""

    def test_reset_to_pending(self, failed_webhook):
        event = WebhookReprocessingService.reset_to_pending(failed_webhook.id)

        assert event.status == WebhookEventStatus.PENDING
        assert event.attempt_count == 1

    def test_reset_requires_failed(self, db):
        event = WebhookEventFactory(status=WebhookEventStatus.SUCCEEDED)

        with pytest.raises(NotInFailedState):
            WebhookReprocessingService.reset_to_pending(event.id)

    def test_unknown_id(self, db):
        with pytest.raises(NotFoundError):
            WebhookReprocessingService.retry_one(uuid.uuid4())

    def test_retry_one_processes_event(self, db):
        event = failed_event()

        result = WebhookReprocessingService.retry_one(event.id)

        assert result.success
        assert result.status == "succeeded"
        event.refresh_from_db()
        assert event.status == WebhookEventStatus.SUCCEEDED
        assert event.attempt_count == 2

    def test_retry_one_records_new_failure(self, db, refund_payload):
        event = failed_event(
            event_id=refund_payload["id"],
            event_type=refund_payload["type"],
            payload=refund_payload,
        )

        result = WebhookReprocessingService.retry_one(event.id)

        assert not result.success
        assert result.status == "failed"
        event.refresh_from_db()
        assert event.status == WebhookEventStatus.FAILED
        assert event.attempt_count == 2

    def test_retry_all_dry_run_changes_nothing(self, db):
        events = [failed_event(), failed_event()]

        summary = WebhookReprocessingService.retry_all(dry_run=True)

        assert summary.dry_run
        assert summary.found == 2
        assert {r.status for r in summary.results} == {"would_retry"}
        assert WebhookEvent.objects.filter(
            id__in=[e.id for e in events], status=WebhookEventStatus.FAILED
        ).count() == 2

    def test_retry_all(self, db, refund_payload):
        failed_event()
        failed_event(
            event_id=refund_payload["id"],
            event_type=refund_payload["type"],
            payload=refund_payload,
        )

        summary = WebhookReprocessingService.retry_all()

        assert summary.found == 2
        assert summary.succeeded == 1
        assert summary.failed == 1
        assert summary.to_dict()["results"][0]["id"]

    def test_retry_all_respects_filter_and_limit(self, db):
        for _ in range(3):
            failed_event(event_type="customer.created")
        failed_event(event_type="customer.updated")

        summary = WebhookReprocessingService.retry_all(
            FailedItemFilter(event_type="customer.created"), limit=2
        )

        assert summary.found == 2
        assert WebhookEvent.objects.filter(status=WebhookEventStatus.FAILED).count() == 2

    def test_retry_all_skips_items_taken_elsewhere(self, db):
        event = failed_event()

        with patch.object(
            WebhookReprocessingService,
            "retry_one",
            side_effect=NotInFailedState("webhook_event", event.id, "pending"),
        ):
            summary = WebhookReprocessingService.retry_all()

        assert summary.results[0].status == "skipped"
        assert summary.failed == 1


# =============================================================================
# Sync jobs
# =============================================================================


class TestSyncJobReprocessing:
    @pytest.fixture
    def failed_job(self, db):
        payment = PaymentFactory(sync_status=SyncStatus.FAILED, sync_error="Invalid CustomerRef")
        return AccountingSyncJobFactory(
            entity_id=payment.id,
            status=SyncStatus.FAILED,
            attempt_count=3,
            last_error="Invalid CustomerRef",
        )

    def test_list_failed_by_entity_type(self, failed_job):
        AccountingSyncJobFactory(entity_type=SyncEntityType.REFUND, status=SyncStatus.FAILED)

        result = SyncJobReprocessingService.list_failed(
            FailedItemFilter(entity_type=SyncEntityType.PAYMENT)
        )

        assert result == [failed_job]

    def test_stats(self, failed_job):
        AccountingSyncJobFactory(entity_type=SyncEntityType.PAYOUT, status=SyncStatus.FAILED)
        AccountingSyncJobFactory()

        stats = SyncJobReprocessingService.stats()

        assert stats["total_failed"] == 2
        assert stats["by_type"] == {SyncEntityType.PAYMENT: 1, SyncEntityType.PAYOUT: 1}
        assert stats["pending"] == 1

    def test_reset_gives_fresh_attempts(self, failed_job):
        job = SyncJobReprocessingService.reset_to_pending(failed_job.id)

        assert job.status == SyncStatus.PENDING
        assert job.attempt_count == 0
        assert job.next_attempt_at <= timezone.now()

    def test_reset_requires_failed(self, db):
        job = AccountingSyncJobFactory(status=SyncStatus.SYNCED)

        with pytest.raises(NotInFailedState):
            SyncJobReprocessingService.reset_to_pending(job.id)

    def test_retry_one_syncs(self, failed_job, mock_quickbooks):
        result = SyncJobReprocessingService.retry_one(failed_job.id)

        assert result.success
        assert result.status == SyncStatus.SYNCED
        failed_job.refresh_from_db()
        assert failed_job.attempt_count == 1
        assert failed_job.external_id == "qb-1"

    def test_retry_all_dry_run(self, failed_job, mock_quickbooks):
        summary = SyncJobReprocessingService.retry_all(dry_run=True)

        assert summary.found == 1
        mock_quickbooks.assert_not_called()
        assert AccountingSyncJob.objects.get(id=failed_job.id).status == SyncStatus.FAILED
