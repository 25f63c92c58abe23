"""
Infrastructure endpoints that sit outside the finance domain.
"""

from django.db import connection
from django.http import JsonResponse


def health_check(request):
    """
    Health check endpoint for load balancers and container probes.

    Reports database connectivity plus the operator backlog: how many
    webhook events and accounting sync jobs are sitting in a failed state.
    A non-zero backlog does not make the service unhealthy.

    Returns:
        200 with component status when the database is reachable, else 503.

    Example Response:
        {
            "status": "healthy",
            "database": "connected",
            "failed_webhooks": 0,
            "failed_sync_jobs": 2
        }
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
    }

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        health_status["database"] = "connected"
    except Exception:
        health_status["database"] = "disconnected"
        health_status["status"] = "unhealthy"
        return JsonResponse(health_status, status=503)

    from finance.models import AccountingSyncJob, WebhookEvent
    from finance.state_machines import SyncStatus, WebhookEventStatus

    health_status["failed_webhooks"] = WebhookEvent.objects.filter(
        status=WebhookEventStatus.FAILED
    ).count()
    health_status["failed_sync_jobs"] = AccountingSyncJob.objects.filter(
        status=SyncStatus.FAILED
    ).count()

    return JsonResponse(health_status, status=200)
