"""
Tests for the health check endpoint.
"""

from unittest.mock import patch

from finance.state_machines import SyncStatus, WebhookEventStatus
from finance.tests.factories import AccountingSyncJobFactory, WebhookEventFactory


class TestHealthCheck:
    def test_healthy_with_backlog(self, client, db):
        WebhookEventFactory(status=WebhookEventStatus.FAILED)
        AccountingSyncJobFactory(status=SyncStatus.FAILED)
        AccountingSyncJobFactory(status=SyncStatus.FAILED)

        response = client.get("/health/")

        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy",
            "database": "connected",
            "failed_webhooks": 1,
            "failed_sync_jobs": 2,
        }

    def test_database_down(self, client, db):
        with patch("core.views.connection.cursor", side_effect=Exception("connection refused")):
            response = client.get("/health/")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"
