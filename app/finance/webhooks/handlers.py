"""
Webhook event handlers for Stripe events.

This module provides a handler registry and the handlers that turn
processor events into ledger postings, payout updates and accounting
sync jobs.

Handlers run inside the transaction opened by
WebhookIngestionService.process(): a handler that raises or returns a
failed ServiceResult has every write it made rolled back, including the
sync jobs it enqueued.

Usage:
    from finance.webhooks.handlers import dispatch_webhook, register_handler

    @register_handler("custom.event")
    def handle_custom_event(webhook_event: WebhookEvent) -> ServiceResult:
        ...

    result = dispatch_webhook(webhook_event)
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Callable

from django_fsm import can_proceed

from core.services import ServiceResult

from finance.adapters import StripeAdapter
from finance.ledger import (
    DuplicateExternalPayment,
    InvalidAmountError,
    Money,
    RefundExceedsPayment,
    UnknownEntityTypeError,
    ledger,
)
from finance.models import Payment, Payout, WebhookEvent
from finance.services.accounting_sync_service import AccountingSyncService
from finance.services.payout_reconciliation_service import PayoutReconciliationService
from finance.state_machines import PayoutStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Handler Registry
# =============================================================================


# Maps event type strings to handler functions
WEBHOOK_HANDLERS: dict[str, Callable[[WebhookEvent], ServiceResult]] = {}


def register_handler(event_type: str) -> Callable:
    """
    Decorator to register a webhook event handler.

    Usage:
        @register_handler("payment_intent.succeeded")
        def handle_payment_succeeded(webhook_event: WebhookEvent) -> ServiceResult:
            ...
    """

    def decorator(func: Callable[[WebhookEvent], ServiceResult]) -> Callable:
        WEBHOOK_HANDLERS[event_type] = func
        logger.debug(f"Registered webhook handler for {event_type}")
        return func

    return decorator


def dispatch_webhook(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Dispatch a webhook event to the handler registered for its type.

    Event types without a handler are logged and treated as success, so
    an unknown type never lands in the failed queue.
    """
    handler = WEBHOOK_HANDLERS.get(webhook_event.event_type)
    log_context = {
        "webhook_event_id": str(webhook_event.id),
        "event_id": webhook_event.event_id,
        "event_type": webhook_event.event_type,
    }

    if not handler:
        logger.info(
            f"Unhandled webhook event type: {webhook_event.event_type}",
            extra=log_context,
        )
        return ServiceResult.success(None)

    logger.info(f"Dispatching {webhook_event.event_type} to handler", extra=log_context)
    return handler(webhook_event)


# =============================================================================
# Helpers
# =============================================================================


def _parse_user_id(value: Any) -> uuid.UUID | None:
    if not value:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _extract_processor_fee(payment_intent: dict[str, Any]) -> Money | None:
    """
    Processor fee for a PaymentIntent.

    Read from the expanded latest_charge.balance_transaction when the
    payload carries it, otherwise fetched from the processor.
    """
    currency = payment_intent.get("currency", "usd")
    charge = payment_intent.get("latest_charge")
    if isinstance(charge, dict):
        balance_transaction = charge.get("balance_transaction")
        if isinstance(balance_transaction, dict) and balance_transaction.get("fee") is not None:
            return Money(balance_transaction["fee"], currency)
        charge = charge.get("id")

    if not charge:
        return None
    fee = StripeAdapter.retrieve_charge_fee(charge)
    return Money(fee, currency) if fee is not None else None


def _record_refund(refund: dict[str, Any], payment_intent_id: str | None) -> ServiceResult:
    """Post one processor refund object to the ledger and enqueue its sync."""
    refund_id = refund.get("id")
    payment_intent_id = refund.get("payment_intent") or payment_intent_id
    log_context = {"external_refund_id": refund_id, "payment_intent_id": payment_intent_id}

    if not refund_id or not payment_intent_id:
        logger.error("Refund object missing id or payment_intent", extra=log_context)
        return ServiceResult.failure(
            "Refund object missing id or payment_intent",
            error_code="INVALID_WEBHOOK_PAYLOAD",
        )

    if refund.get("status") in ("failed", "canceled"):
        logger.info(
            f"Skipping {refund.get('status')} refund",
            extra=log_context,
        )
        return ServiceResult.success(None)

    payment = Payment.objects.filter(external_payment_id=payment_intent_id).first()
    if payment is None:
        logger.warning("Payment not found for refund", extra=log_context)
        return ServiceResult.failure(
            f"Payment not found for intent: {payment_intent_id}",
            error_code="PAYMENT_NOT_FOUND",
        )

    try:
        posting = ledger.process_refund(
            payment.id,
            Money(refund.get("amount", 0), refund.get("currency", payment.currency)),
            reason=refund.get("reason") or "",
            external_refund_id=refund_id,
        )
    except (RefundExceedsPayment, InvalidAmountError) as e:
        logger.error(
            f"Refund rejected: {e.message}",
            extra={**log_context, "payment_id": str(payment.id), **e.details},
        )
        return ServiceResult.from_exception(e)

    if posting.created:
        AccountingSyncService.enqueue(posting.refund)
    return ServiceResult.success(posting.refund)


# =============================================================================
# Payment Intent Handlers
# =============================================================================


@register_handler("payment_intent.succeeded")
def handle_payment_intent_succeeded(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Record a successful payment in the ledger.

    The PaymentIntent's metadata must carry `entity_type` (membership,
    event, booking or donation); `entity_id` and `user_id` are optional.
    A payment already recorded under the same intent id is a no-op.
    """
    intent = webhook_event.get_object()
    intent_id = intent.get("id")

    if not intent_id:
        logger.error(
            "payment_intent.succeeded: Could not extract payment_intent_id",
            extra={"event_id": webhook_event.event_id},
        )
        return ServiceResult.failure(
            "Could not extract payment_intent_id from webhook",
            error_code="INVALID_WEBHOOK_PAYLOAD",
        )

    metadata = intent.get("metadata") or {}
    entity_type = metadata.get("entity_type")
    if not entity_type:
        logger.error(
            "PaymentIntent has no entity_type metadata",
            extra={"event_id": webhook_event.event_id, "payment_intent_id": intent_id},
        )
        return ServiceResult.failure(
            f"PaymentIntent {intent_id} has no entity_type metadata",
            error_code="MISSING_ENTITY_TYPE",
        )

    amount = intent.get("amount_received") or intent.get("amount") or 0
    currency = intent.get("currency", "usd")

    try:
        posting = ledger.process_payment(
            user_id=_parse_user_id(metadata.get("user_id")),
            amount=Money(amount, currency),
            entity_type=entity_type,
            entity_id=metadata.get("entity_id", ""),
            external_payment_id=intent_id,
            processor_fee=_extract_processor_fee(intent),
            description=intent.get("description") or "",
        )
    except DuplicateExternalPayment as e:
        logger.info(
            "Payment already recorded, skipping (idempotency)",
            extra={"payment_intent_id": intent_id, "payment_id": str(e.existing_payment_id)},
        )
        return ServiceResult.success(None)
    except (UnknownEntityTypeError, InvalidAmountError) as e:
        logger.error(
            f"Payment rejected: {e.message}",
            extra={"payment_intent_id": intent_id, **e.details},
        )
        return ServiceResult.from_exception(e)

    AccountingSyncService.enqueue(posting.payment)
    return ServiceResult.success(posting.payment)


@register_handler("payment_intent.payment_failed")
def handle_payment_intent_failed(webhook_event: WebhookEvent) -> ServiceResult:
    """Failed attempts never reach the ledger; logged for visibility."""
    intent = webhook_event.get_object()
    error = intent.get("last_payment_error") or {}
    logger.info(
        "Payment intent failed",
        extra={
            "payment_intent_id": intent.get("id"),
            "failure_code": error.get("code"),
            "failure_message": error.get("message"),
        },
    )
    return ServiceResult.success(None)


# =============================================================================
# Charge and Refund Handlers
# =============================================================================


@register_handler("charge.refunded")
def handle_charge_refunded(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Record every refund listed on a refunded charge.

    refund.created normally records each refund first; refunds already
    recorded are skipped, so this handler only fills gaps.
    """
    charge = webhook_event.get_object()
    refunds = (charge.get("refunds") or {}).get("data") or []

    if not refunds:
        logger.warning(
            "No refunds data in charge.refunded event",
            extra={"charge_id": charge.get("id"), "event_id": webhook_event.event_id},
        )
        return ServiceResult.success(None)

    recorded = []
    for refund in refunds:
        result = _record_refund(refund, charge.get("payment_intent"))
        if not result.success:
            return result
        recorded.append(result.data)
    return ServiceResult.success(recorded)


@register_handler("refund.created")
def handle_refund_created(webhook_event: WebhookEvent) -> ServiceResult:
    return _record_refund(webhook_event.get_object(), None)


@register_handler("charge.dispute.created")
def handle_dispute_created(webhook_event: WebhookEvent) -> ServiceResult:
    dispute = webhook_event.get_object()
    logger.warning(
        "Chargeback/dispute created",
        extra={
            "dispute_id": dispute.get("id"),
            "charge_id": dispute.get("charge"),
            "amount_cents": dispute.get("amount"),
            "reason": dispute.get("reason"),
        },
    )
    return ServiceResult.success(None)


# =============================================================================
# Payout Handlers
# =============================================================================


@register_handler("payout.paid")
def handle_payout_paid(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Mark the payout paid, reconcile it and enqueue its accounting sync.

    A processor error during reconciliation propagates so the event is
    marked failed and retried; the status change rolls back with it.
    """
    payout_data = webhook_event.get_object()
    external_payout_id = payout_data.get("id")
    if not external_payout_id:
        return ServiceResult.failure(
            "Could not extract payout id from webhook",
            error_code="INVALID_WEBHOOK_PAYLOAD",
        )

    payout = PayoutReconciliationService.get_or_create_payout(external_payout_id, payout_data)
    if payout.status != PayoutStatus.PAID:
        if not can_proceed(payout.mark_paid):
            logger.error(
                f"Cannot mark {payout.status} payout as paid",
                extra={"external_payout_id": external_payout_id},
            )
            return ServiceResult.failure(
                f"Cannot mark {payout.status} payout as paid",
                error_code="INVALID_STATE_TRANSITION",
            )
        payout.mark_paid()
        payout.save(update_fields=["status", "updated_at"])

    result = PayoutReconciliationService.reconcile_payout(external_payout_id)
    AccountingSyncService.enqueue(payout)
    return ServiceResult.success(result)


def _transition_payout(webhook_event: WebhookEvent, target: str) -> ServiceResult:
    payout_data = webhook_event.get_object()
    external_payout_id = payout_data.get("id")
    if not external_payout_id:
        return ServiceResult.failure(
            "Could not extract payout id from webhook",
            error_code="INVALID_WEBHOOK_PAYLOAD",
        )

    payout = PayoutReconciliationService.get_or_create_payout(external_payout_id, payout_data)
    if payout.status == target:
        return ServiceResult.success(payout)

    transition = payout.mark_failed if target == PayoutStatus.FAILED else payout.cancel
    if not can_proceed(transition):
        return ServiceResult.failure(
            f"Cannot move {payout.status} payout to {target}",
            error_code="INVALID_STATE_TRANSITION",
        )
    transition()
    payout.save(update_fields=["status", "updated_at"])
    logger.warning(
        f"Payout {target}",
        extra={
            "external_payout_id": external_payout_id,
            "failure_code": payout_data.get("failure_code"),
            "failure_message": payout_data.get("failure_message"),
        },
    )
    return ServiceResult.success(payout)


@register_handler("payout.failed")
def handle_payout_failed(webhook_event: WebhookEvent) -> ServiceResult:
    return _transition_payout(webhook_event, PayoutStatus.FAILED)


@register_handler("payout.canceled")
def handle_payout_canceled(webhook_event: WebhookEvent) -> ServiceResult:
    return _transition_payout(webhook_event, PayoutStatus.CANCELED)
