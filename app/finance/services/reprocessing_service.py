"""
Operator tooling for re-driving failed work.

Two kinds of work can end up failed and need a person to look at them:
webhook events whose handler kept failing, and accounting sync jobs that
ran out of attempts or hit a permanent error. Both services share the
same operations:

    list_failed(filters)          newest first
    stats()                       counts for dashboards
    retry_one(id)                 reset to pending and process now
    retry_all(filters, limit, dry_run)
    reset_to_pending(id)          let the normal sweep pick it up

Only FAILED items can be re-driven; anything else raises NotInFailedState.

Usage:
    from finance.services import WebhookReprocessingService

    WebhookReprocessingService.retry_all(FailedItemFilter(event_type="refund.created"), dry_run=True)
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from django.db import models
from django.db.models import Count
from django.utils import timezone

from core.exceptions import NotFoundError
from core.services import BaseService

from finance.exceptions import NotInFailedState
from finance.models import AccountingSyncJob, WebhookEvent
from finance.services.accounting_sync_service import AccountingSyncService
from finance.state_machines import SyncStatus, WebhookEventStatus

DEFAULT_LIST_LIMIT = 100
DEFAULT_RETRY_LIMIT = 50


@dataclass
class FailedItemFilter:
    """
    Filters for listing and bulk-retrying failed items.

    provider and event_type apply to webhook events, entity_type to sync
    jobs; since applies to both (failures updated at or after it).
    """

    provider: str | None = None
    event_type: str | None = None
    entity_type: str | None = None
    since: datetime | None = None


@dataclass
class ReprocessResult:
    id: uuid.UUID
    success: bool
    status: str
    error: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "success": self.success,
            "status": self.status,
            "error": self.error,
        }


@dataclass
class RetryAllResult:
    found: int
    succeeded: int = 0
    failed: int = 0
    dry_run: bool = False
    results: list[ReprocessResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "found": self.found,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "dry_run": self.dry_run,
            "results": [r.to_dict() for r in self.results],
        }


class FailedItemReprocessingService(BaseService):
    """
    Shared re-drive operations over a model with a FAILED status.

    Subclasses set model, kind, failed_status, pending_status and implement
    _apply_filter(), _reset() and _run().
    """

    model: type[models.Model]
    kind: str
    failed_status: str
    pending_status: str

    @classmethod
    def failed_queryset(cls) -> models.QuerySet:
        return cls.model.objects.filter(status=cls.failed_status)

    @classmethod
    def _apply_filter(cls, queryset: models.QuerySet, filters: FailedItemFilter) -> models.QuerySet:
        if filters.since:
            queryset = queryset.filter(updated_at__gte=filters.since)
        return queryset

    @classmethod
    def list_failed(
        cls,
        filters: FailedItemFilter | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[models.Model]:
        queryset = cls._apply_filter(cls.failed_queryset(), filters or FailedItemFilter())
        return list(queryset.order_by("-updated_at")[:limit])

    @classmethod
    def stats(cls) -> dict[str, Any]:
        failed = cls.failed_queryset()
        return {
            "total_failed": failed.count(),
            "recent_24h": failed.filter(
                updated_at__gte=timezone.now() - timedelta(hours=24)
            ).count(),
        }

    @classmethod
    def get(cls, item_id: uuid.UUID) -> models.Model:
        item = cls.model.objects.filter(id=item_id).first()
        if item is None:
            raise NotFoundError(
                f"{cls.kind} {item_id} not found",
                details={"kind": cls.kind, "id": str(item_id)},
            )
        return item

    @classmethod
    def reset_to_pending(cls, item_id: uuid.UUID) -> models.Model:
        """
        Move a failed item back to pending.

        Raises:
            NotFoundError: No such item
            NotInFailedState: The item is not failed
        """
        item = cls.get(item_id)
        if item.status != cls.failed_status:
            raise NotInFailedState(cls.kind, item_id, item.status)

        cls._reset(item)
        item.refresh_from_db()
        cls.get_logger().info(
            f"Reset {cls.kind} to pending",
            extra={"kind": cls.kind, "id": str(item_id)},
        )
        return item

    @classmethod
    def retry_one(cls, item_id: uuid.UUID) -> ReprocessResult:
        """
        Reset a failed item and process it synchronously.

        Raises:
            NotFoundError: No such item
            NotInFailedState: The item is not failed
        """
        cls.reset_to_pending(item_id)
        result = cls._run(item_id)
        cls.get_logger().info(
            f"Re-drove {cls.kind}",
            extra={"kind": cls.kind, "id": str(item_id), "success": result.success},
        )
        return result

    @classmethod
    def retry_all(
        cls,
        filters: FailedItemFilter | None = None,
        limit: int = DEFAULT_RETRY_LIMIT,
        dry_run: bool = False,
    ) -> RetryAllResult:
        """
        Re-drive up to `limit` failed items, oldest failure first.

        A dry run lists what would be retried and changes nothing.
        """
        queryset = cls._apply_filter(cls.failed_queryset(), filters or FailedItemFilter())
        item_ids = list(queryset.order_by("updated_at").values_list("id", flat=True)[:limit])
        summary = RetryAllResult(found=len(item_ids), dry_run=dry_run)

        if dry_run:
            summary.results = [
                ReprocessResult(item_id, success=False, status="would_retry")
                for item_id in item_ids
            ]
            return summary

        for item_id in item_ids:
            try:
                result = cls.retry_one(item_id)
            except (NotFoundError, NotInFailedState) as e:
                # Another operator or the sweep got to it first
                result = ReprocessResult(item_id, success=False, status="skipped", error=e.message)
            summary.results.append(result)
            if result.success:
                summary.succeeded += 1
            else:
                summary.failed += 1

        cls.get_logger().info(
            f"Bulk re-drive of {cls.kind} finished",
            extra={
                "kind": cls.kind,
                "found": summary.found,
                "succeeded": summary.succeeded,
                "failed": summary.failed,
            },
        )
        return summary

    @classmethod
    def _reset(cls, item: models.Model) -> None:
        raise NotImplementedError

    @classmethod
    def _run(cls, item_id: uuid.UUID) -> ReprocessResult:
        raise NotImplementedError


# =============================================================================
# Webhook Events
# =============================================================================


class WebhookReprocessingService(FailedItemReprocessingService):
    model = WebhookEvent
    kind = "webhook_event"
    failed_status = WebhookEventStatus.FAILED
    pending_status = WebhookEventStatus.PENDING

    @classmethod
    def _apply_filter(cls, queryset, filters):
        queryset = super()._apply_filter(queryset, filters)
        if filters.provider:
            queryset = queryset.filter(provider=filters.provider)
        if filters.event_type:
            queryset = queryset.filter(event_type=filters.event_type)
        return queryset

    @classmethod
    def stats(cls) -> dict[str, Any]:
        stats = super().stats()
        failed = cls.failed_queryset()
        stats["by_type"] = dict(
            failed.order_by().values("event_type").annotate(n=Count("id")).values_list(
                "event_type", "n"
            )
        )
        stats["by_provider"] = dict(
            failed.order_by().values("provider").annotate(n=Count("id")).values_list(
                "provider", "n"
            )
        )
        stats["exhausted"] = sum(1 for event in failed.only("attempt_count") if event.is_exhausted)
        return stats

    @classmethod
    def _reset(cls, item: WebhookEvent) -> None:
        WebhookEvent.objects.filter(id=item.id, status=cls.failed_status).update(
            status=cls.pending_status, updated_at=timezone.now()
        )

    @classmethod
    def _run(cls, item_id: uuid.UUID) -> ReprocessResult:
        # Imported here to avoid circular imports with finance.webhooks
        from finance.webhooks.ingest import WebhookIngestionService

        outcome = WebhookIngestionService.process(item_id)
        return ReprocessResult(
            item_id, success=outcome.succeeded, status=outcome.status, error=outcome.error
        )


# =============================================================================
# Accounting Sync Jobs
# =============================================================================


class SyncJobReprocessingService(FailedItemReprocessingService):
    model = AccountingSyncJob
    kind = "sync_job"
    failed_status = SyncStatus.FAILED
    pending_status = SyncStatus.PENDING

    @classmethod
    def _apply_filter(cls, queryset, filters):
        queryset = super()._apply_filter(queryset, filters)
        if filters.entity_type:
            queryset = queryset.filter(entity_type=filters.entity_type)
        return queryset

    @classmethod
    def stats(cls) -> dict[str, Any]:
        stats = super().stats()
        stats["by_type"] = dict(
            cls.failed_queryset()
            .order_by()
            .values("entity_type")
            .annotate(n=Count("id"))
            .values_list("entity_type", "n")
        )
        stats["pending"] = AccountingSyncJob.objects.filter(status=SyncStatus.PENDING).count()
        return stats

    @classmethod
    def _reset(cls, item: AccountingSyncJob) -> None:
        """
        Give the job a fresh set of attempts and make it due now.

        The record's sync state is moved back to pending by run_job()
        when the job is next claimed.
        """
        AccountingSyncJob.objects.filter(id=item.id, status=cls.failed_status).update(
            status=cls.pending_status,
            attempt_count=0,
            next_attempt_at=timezone.now(),
            updated_at=timezone.now(),
        )

    @classmethod
    def _run(cls, item_id: uuid.UUID) -> ReprocessResult:
        outcome = AccountingSyncService.run_job(item_id)
        if outcome is None:
            return ReprocessResult(item_id, success=False, status="skipped")
        job = AccountingSyncJob.objects.get(id=item_id)
        return ReprocessResult(
            item_id, success=outcome.ok, status=job.status, error=outcome.reason
        )
