"""
Webhook endpoint for Stripe.

The view:
1. Verifies the webhook signature
2. Stores the event idempotently via WebhookIngestionService.receive()
3. Returns immediately; processing happens in a Celery task

Usage:
    # In urls.py
    from finance.webhooks.views import stripe_webhook

    urlpatterns = [
        path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    ]
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from finance.adapters import StripeAdapter
from finance.exceptions import StripeInvalidRequestError
from finance.webhooks.ingest import WebhookIngestionService

logger = logging.getLogger(__name__)

PROVIDER = "stripe"


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> HttpResponse:
    """
    Receive and queue Stripe webhook events.

    Stripe expects a 2xx response within 20 seconds, so the handler
    never runs here. Duplicate deliveries get 200 without reprocessing.

    Returns:
        HttpResponse with status:
        - 200: Event accepted (new or duplicate)
        - 400: Missing or invalid signature, or malformed event
    """
    payload = request.body
    signature = request.headers.get("Stripe-Signature", "")

    if not signature:
        logger.warning("Webhook received without Stripe-Signature header")
        return HttpResponse("Missing signature", status=400)

    try:
        event_data = StripeAdapter.verify_webhook_signature(payload, signature)
    except StripeInvalidRequestError as e:
        logger.warning(
            "Webhook signature verification failed",
            extra={"error": str(e)},
        )
        return HttpResponse("Invalid signature", status=400)

    event_id = event_data.get("id")
    event_type = event_data.get("type")

    if not event_id or not event_type:
        logger.warning("Webhook missing required fields")
        return HttpResponse("Invalid event", status=400)

    logger.info(
        f"Received Stripe webhook: {event_type}",
        extra={"event_id": event_id, "event_type": event_type},
    )

    result = WebhookIngestionService.receive(PROVIDER, event_id, event_type, event_data)
    if result.is_duplicate:
        return HttpResponse("Already processed", status=200)
    return HttpResponse("Accepted", status=200)
