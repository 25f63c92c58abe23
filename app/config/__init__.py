# =============================================================================
# Finance Ledger Project Configuration
# =============================================================================
# Settings, URLs, WSGI and Celery for the ledger and reconciliation service.
#
# The Celery app is imported here so finance tasks are registered whenever
# Django starts, including in web processes that only queue them.
# =============================================================================

from config.celery import app as celery_app

__all__ = ("celery_app",)
