"""
Serializers for the finance operator API.

Serializers:
    WebhookEventSerializer: Failed webhook event details
    AccountingSyncJobSerializer: Failed sync job details
    FailedItemQuerySerializer: Query parameters for listing failed items
    RetryAllRequestSerializer: Body for bulk re-drive
    ReprocessResultSerializer: Outcome of re-driving one item
    RetryAllResultSerializer: Outcome of a bulk re-drive
"""

from __future__ import annotations

from rest_framework import serializers

from finance.models import AccountingSyncJob, WebhookEvent
from finance.services.reprocessing_service import DEFAULT_LIST_LIMIT, DEFAULT_RETRY_LIMIT
from finance.state_machines import SyncEntityType


class WebhookEventSerializer(serializers.ModelSerializer):
    """Failed webhook event; the payload is included for diagnosis."""

    is_exhausted = serializers.BooleanField(read_only=True)

    class Meta:
        model = WebhookEvent
        fields = [
            "id",
            "provider",
            "event_id",
            "event_type",
            "status",
            "attempt_count",
            "is_exhausted",
            "last_error",
            "payload",
            "processed_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class AccountingSyncJobSerializer(serializers.ModelSerializer):
    class Meta:
        model = AccountingSyncJob
        fields = [
            "id",
            "entity_type",
            "entity_id",
            "status",
            "attempt_count",
            "max_attempts",
            "next_attempt_at",
            "last_attempt_at",
            "last_error",
            "idempotency_key",
            "external_id",
            "synced_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class FailedItemQuerySerializer(serializers.Serializer):
    """
    Filters shared by the list and bulk-retry endpoints.

    provider and event_type are ignored for sync jobs, entity_type for
    webhook events.
    """

    provider = serializers.CharField(required=False)
    event_type = serializers.CharField(required=False)
    entity_type = serializers.ChoiceField(choices=SyncEntityType.choices, required=False)
    since = serializers.DateTimeField(required=False)
    limit = serializers.IntegerField(
        required=False, min_value=1, max_value=1000, default=DEFAULT_LIST_LIMIT
    )


class RetryAllRequestSerializer(FailedItemQuerySerializer):
    limit = serializers.IntegerField(
        required=False, min_value=1, max_value=500, default=DEFAULT_RETRY_LIMIT
    )
    dry_run = serializers.BooleanField(required=False, default=False)


class ReprocessResultSerializer(serializers.Serializer):
    id = serializers.UUIDField()
    success = serializers.BooleanField()
    status = serializers.CharField()
    error = serializers.CharField(allow_blank=True)


class RetryAllResultSerializer(serializers.Serializer):
    found = serializers.IntegerField()
    succeeded = serializers.IntegerField()
    failed = serializers.IntegerField()
    dry_run = serializers.BooleanField()
    results = ReprocessResultSerializer(many=True)
