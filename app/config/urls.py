"""
URL configuration for the Django application.

The `urlpatterns` list routes URLs to views. This is the root URL configuration
that includes all app-specific routes.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (for load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/finance/               - Finance endpoints
        webhooks/stripe/           - Stripe webhook endpoint (POST)
        ops/webhooks/failed/       - Failed webhook events (staff)
        ops/webhooks/stats/        - Failed webhook counts (staff)
        ops/webhooks/{id}/retry/   - Re-drive one webhook event (staff)
        ops/webhooks/{id}/reset/   - Reset one webhook event to pending (staff)
        ops/webhooks/retry-all/    - Bulk re-drive webhook events (staff)
        ops/sync-jobs/...          - Same set for accounting sync jobs (staff)

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
# All routes here are prefixed with /api/v1/ automatically
api_v1_patterns = [
    # Finance (webhooks and operator tooling)
    path("finance/", include("finance.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Finance Admin"
admin.site.site_title = "Finance Admin Portal"
admin.site.index_title = "Ledger, reconciliation and accounting sync"
