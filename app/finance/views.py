"""
Operator API for re-driving failed finance work.

ViewSets:
    FailedWebhookViewSet: Failed webhook events
    FailedSyncJobViewSet: Failed accounting sync jobs

Endpoints (prefixed with /api/v1/finance/ops/):
    GET  webhooks/failed/          - List failed webhook events
    GET  webhooks/stats/           - Failure counts
    POST webhooks/{id}/retry/      - Reset and process now
    POST webhooks/{id}/reset/      - Reset to pending for the retry sweep
    POST webhooks/retry-all/       - Bulk re-drive (supports dry_run)

    The same set is served under sync-jobs/.

Security:
    - Staff only (IsAdminUser)
"""

from __future__ import annotations

from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response

from drf_spectacular.utils import OpenApiResponse, extend_schema

from core.exceptions import BaseApplicationError, ConflictError, NotFoundError

from finance.serializers import (
    AccountingSyncJobSerializer,
    FailedItemQuerySerializer,
    ReprocessResultSerializer,
    RetryAllRequestSerializer,
    RetryAllResultSerializer,
    WebhookEventSerializer,
)
from finance.services import (
    FailedItemFilter,
    SyncJobReprocessingService,
    WebhookReprocessingService,
)

TAGS = ["Finance - Operations"]

ERROR_RESPONSES = {
    404: OpenApiResponse(description="Not found"),
    409: OpenApiResponse(description="Item is not in a failed state"),
}


def error_response(exc: BaseApplicationError) -> Response:
    """Translate a domain error to a 404, 409 or 400 response."""
    if isinstance(exc, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, ConflictError):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_400_BAD_REQUEST
    return Response(exc.to_dict(), status=code)


def _filters(data: dict) -> FailedItemFilter:
    return FailedItemFilter(
        provider=data.get("provider"),
        event_type=data.get("event_type"),
        entity_type=data.get("entity_type"),
        since=data.get("since"),
    )


class FailedItemViewSet(viewsets.ViewSet):
    """
    Shared operator actions over a reprocessing service.

    Subclasses set service and serializer_class.
    """

    permission_classes = [IsAdminUser]
    service = None
    serializer_class = None
    lookup_value_regex = "[0-9a-f-]{36}"

    @extend_schema(
        summary="List failed items, newest first",
        parameters=[FailedItemQuerySerializer],
        tags=TAGS,
    )
    @action(detail=False, methods=["get"])
    def failed(self, request):
        query = FailedItemQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        items = self.service.list_failed(
            _filters(query.validated_data), limit=query.validated_data["limit"]
        )
        return Response(self.serializer_class(items, many=True).data)

    @extend_schema(summary="Failure counts", tags=TAGS)
    @action(detail=False, methods=["get"])
    def stats(self, request):
        return Response(self.service.stats())

    @extend_schema(
        summary="Reset a failed item and process it now",
        request=None,
        responses={200: ReprocessResultSerializer, **ERROR_RESPONSES},
        tags=TAGS,
    )
    @action(detail=True, methods=["post"])
    def retry(self, request, pk=None):
        try:
            result = self.service.retry_one(pk)
        except BaseApplicationError as e:
            return error_response(e)
        return Response(ReprocessResultSerializer(result).data)

    @extend_schema(
        summary="Reset a failed item to pending",
        request=None,
        responses={**ERROR_RESPONSES},
        tags=TAGS,
    )
    @action(detail=True, methods=["post"])
    def reset(self, request, pk=None):
        try:
            item = self.service.reset_to_pending(pk)
        except BaseApplicationError as e:
            return error_response(e)
        return Response(self.serializer_class(item).data)

    @extend_schema(
        summary="Re-drive failed items in bulk",
        request=RetryAllRequestSerializer,
        responses={200: RetryAllResultSerializer},
        tags=TAGS,
    )
    @action(detail=False, methods=["post"], url_path="retry-all")
    def retry_all(self, request):
        body = RetryAllRequestSerializer(data=request.data)
        body.is_valid(raise_exception=True)
        summary = self.service.retry_all(
            _filters(body.validated_data),
            limit=body.validated_data["limit"],
            dry_run=body.validated_data["dry_run"],
        )
        return Response(RetryAllResultSerializer(summary).data)


class FailedWebhookViewSet(FailedItemViewSet):
    """Failed webhook events."""

    service = WebhookReprocessingService
    serializer_class = WebhookEventSerializer


class FailedSyncJobViewSet(FailedItemViewSet):
    """Failed accounting sync jobs."""

    service = SyncJobReprocessingService
    serializer_class = AccountingSyncJobSerializer
