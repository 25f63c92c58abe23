"""
Finance app configuration.

This app provides the organization's money infrastructure:
- Double-entry ledger
- Stripe webhook ingestion and payout reconciliation
- QuickBooks accounting sync
"""

from django.apps import AppConfig


class FinanceConfig(AppConfig):
    """Configuration for the finance application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "finance"
    verbose_name = "Finance"
