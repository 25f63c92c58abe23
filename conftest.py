"""
Root pytest configuration for the Django project.

This module sets safe environment defaults and configures Django before
any test module is imported. App-specific fixtures are defined in each
app's tests/conftest.py.
"""

import os

import django

# Ensure Django settings are configured before any tests run
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

# Tests never need real services: in-memory sqlite, eager Celery, no secrets
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DEBUG", "True")
os.environ.setdefault("DATABASE_URL", "sqlite://:memory:")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "True")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_dummy")
os.environ.setdefault("QUICKBOOKS_API_BASE_URL", "https://quickbooks.test")
os.environ.setdefault("QUICKBOOKS_REALM_ID", "realm-1")
os.environ.setdefault("QUICKBOOKS_ACCESS_TOKEN", "qb-token")
os.environ.setdefault("ENV_FILE", "/nonexistent/.env.test")


def pytest_configure():
    """Configure Django settings before tests run."""
    django.setup()

    from django.conf import settings

    # Local memory cache so tests never touch Redis
    settings.CACHES = {
        "default": {"BACKEND": "django.core.cache.backends.locmem.LocMemCache"},
    }
    settings.SESSION_ENGINE = "django.contrib.sessions.backends.db"
