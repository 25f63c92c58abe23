"""
URL configuration for the finance app.

Routes:
    - POST /webhooks/stripe/ - Stripe webhook endpoint
    - /ops/webhooks/...      - Failed webhook re-drive (staff)
    - /ops/sync-jobs/...     - Failed sync job re-drive (staff)

All routes are prefixed with /api/v1/finance/ when included in the main URLconf.
"""

from django.urls import path

from rest_framework.routers import SimpleRouter

from finance.views import FailedSyncJobViewSet, FailedWebhookViewSet
from finance.webhooks.views import stripe_webhook

router = SimpleRouter()
router.register(r"ops/webhooks", FailedWebhookViewSet, basename="ops-webhook")
router.register(r"ops/sync-jobs", FailedSyncJobViewSet, basename="ops-sync-job")

app_name = "finance"

urlpatterns = [
    # Webhook endpoints
    path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
] + router.urls
