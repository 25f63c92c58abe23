"""
Webhook handling for processor events.

Events are verified, stored once per (provider, event_id) and processed
asynchronously by a Celery task that dispatches to the handler registry.

Usage:
    from finance.webhooks import WebhookIngestionService

    WebhookIngestionService.receive("stripe", event_id, event_type, payload)
"""

from finance.webhooks.handlers import WEBHOOK_HANDLERS, dispatch_webhook, register_handler
from finance.webhooks.ingest import IngestResult, ProcessOutcome, WebhookIngestionService
from finance.webhooks.views import stripe_webhook

__all__ = [
    "IngestResult",
    "ProcessOutcome",
    "WEBHOOK_HANDLERS",
    "WebhookIngestionService",
    "dispatch_webhook",
    "register_handler",
    "stripe_webhook",
]
