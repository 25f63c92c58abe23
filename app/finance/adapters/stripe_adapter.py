"""
Stripe API adapter.

All Stripe calls go through StripeAdapter so timeouts, error translation
and logging are handled the same way everywhere. Callers receive plain
dataclasses and domain exceptions, never Stripe SDK objects or errors.

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_WEBHOOK_SECRET: Webhook signing secret
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)

Usage:
    from finance.adapters import StripeAdapter

    movements = StripeAdapter.list_payout_balance_transactions("po_123")
    payout = StripeAdapter.retrieve_payout("po_123")
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import stripe
from django.conf import settings

from finance.exceptions import (
    StripeAPIUnavailableError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    StripeTimeoutError,
)

# Page size for list calls; Stripe's maximum
PAGE_SIZE = 100


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class BalanceMovement:
    """
    One balance transaction inside a payout.

    Attributes:
        id: Balance transaction id (txn_xxx)
        type: Stripe type (charge, payment, refund, stripe_fee, payout, ...)
        reporting_category: Stripe reporting category (charge, refund, fee, ...)
        amount_cents: Gross amount (negative for money leaving the balance)
        fee_cents: Processor fee charged on this movement
        net_cents: amount_cents - fee_cents
        source_id: Id of the source object (ch_xxx, re_xxx, ...)
        payment_intent_id: PaymentIntent behind a charge source, if any
    """

    id: str
    type: str
    reporting_category: str
    amount_cents: int
    fee_cents: int
    net_cents: int
    source_id: str | None = None
    payment_intent_id: str | None = None


@dataclass
class PayoutResult:
    """Stripe payout details."""

    id: str
    amount_cents: int
    currency: str
    status: str
    arrival_date: datetime | None = None
    description: str = ""
    raw_response: dict[str, Any] = field(default_factory=dict)


def _as_dict(obj: Any) -> dict[str, Any]:
    if obj is None:
        return {}
    if isinstance(obj, str):
        return {"id": obj}
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


# =============================================================================
# Stripe Adapter
# =============================================================================


class StripeAdapter:
    """
    Adapter for Stripe API operations.

    All methods are classmethods - no instance state is maintained.
    Thread-safe for use from Celery workers.
    """

    @staticmethod
    def _configure_stripe() -> None:
        """Configure Stripe client with API key and timeout."""
        stripe.api_key = settings.STRIPE_SECRET_KEY
        timeout = getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # Payouts
    # =========================================================================

    @classmethod
    def list_payout_balance_transactions(cls, payout_id: str) -> list[BalanceMovement]:
        """
        Fetch every balance movement settled by a payout.

        Follows Stripe's cursor pagination until has_more is false, so the
        returned list is complete or an exception is raised; callers never
        see a partial page set.

        Args:
            payout_id: Stripe payout id (po_xxx)

        Raises:
            StripeError subclasses on any API failure
        """
        cls._configure_stripe()
        logger = cls.get_logger()
        log_context = {"operation": "list_payout_balance_transactions", "payout_id": payout_id}

        start_time = time.time()
        logger.debug("Starting Stripe operation", extra=log_context)

        movements: list[BalanceMovement] = []
        starting_after: str | None = None
        pages = 0
        try:
            while True:
                params: dict[str, Any] = {
                    "payout": payout_id,
                    "limit": PAGE_SIZE,
                    "expand": ["data.source"],
                }
                if starting_after:
                    params["starting_after"] = starting_after

                page = stripe.BalanceTransaction.list(**params)
                pages += 1
                for txn in page.data:
                    movements.append(cls._to_movement(txn))

                if not page.has_more or not page.data:
                    break
                starting_after = page.data[-1].id

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "Stripe operation completed",
            extra={
                **log_context,
                "movement_count": len(movements),
                "pages": pages,
                "duration_ms": duration_ms,
            },
        )
        return movements

    @staticmethod
    def _to_movement(txn: Any) -> BalanceMovement:
        data = _as_dict(txn)
        source = _as_dict(data.get("source"))
        payment_intent = source.get("payment_intent")
        if isinstance(payment_intent, dict):
            payment_intent = payment_intent.get("id")
        return BalanceMovement(
            id=data["id"],
            type=data.get("type", ""),
            reporting_category=data.get("reporting_category", ""),
            amount_cents=data.get("amount", 0),
            fee_cents=data.get("fee", 0),
            net_cents=data.get("net", 0),
            source_id=source.get("id"),
            payment_intent_id=payment_intent,
        )

    @classmethod
    def retrieve_payout(cls, payout_id: str) -> PayoutResult:
        """
        Retrieve a payout by id.

        Raises:
            StripeInvalidRequestError: Payout not found
        """
        cls._configure_stripe()
        logger = cls.get_logger()
        log_context = {"operation": "retrieve_payout", "payout_id": payout_id}

        start_time = time.time()
        logger.debug("Starting Stripe operation", extra=log_context)

        try:
            payout = stripe.Payout.retrieve(payout_id)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

        data = _as_dict(payout)
        duration_ms = (time.time() - start_time) * 1000
        logger.debug(
            "Stripe operation completed",
            extra={**log_context, "status": data.get("status"), "duration_ms": duration_ms},
        )

        arrival = data.get("arrival_date")
        return PayoutResult(
            id=data["id"],
            amount_cents=data.get("amount", 0),
            currency=data.get("currency", "usd"),
            status=data.get("status", ""),
            arrival_date=datetime.fromtimestamp(arrival, tz=timezone.utc) if arrival else None,
            description=data.get("description") or "",
            raw_response=data,
        )

    # =========================================================================
    # Charges
    # =========================================================================

    @classmethod
    def retrieve_charge_fee(cls, charge_id: str) -> int | None:
        """
        Processor fee in cents for a charge, from its balance transaction.

        Returns None when the charge has no balance transaction yet.
        """
        cls._configure_stripe()
        logger = cls.get_logger()
        log_context = {"operation": "retrieve_charge_fee", "charge_id": charge_id}

        start_time = time.time()
        try:
            charge = stripe.Charge.retrieve(charge_id, expand=["balance_transaction"])
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

        balance_transaction = _as_dict(charge).get("balance_transaction")
        fee = balance_transaction.get("fee") if isinstance(balance_transaction, dict) else None
        logger.debug(
            "Stripe operation completed",
            extra={
                **log_context,
                "fee_cents": fee,
                "duration_ms": (time.time() - start_time) * 1000,
            },
        )
        return fee

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    @classmethod
    def verify_webhook_signature(cls, payload: bytes, signature: str) -> dict[str, Any]:
        """
        Verify and parse a Stripe webhook event.

        Returns:
            Parsed event data dict

        Raises:
            StripeInvalidRequestError: Invalid signature or payload
        """
        try:
            event = stripe.Webhook.construct_event(
                payload,
                signature,
                settings.STRIPE_WEBHOOK_SECRET,
            )
        except stripe.SignatureVerificationError as e:
            raise StripeInvalidRequestError(
                "Invalid webhook signature",
                stripe_code="signature_verification_failed",
                details={"error": str(e)},
            )
        except ValueError as e:
            raise StripeInvalidRequestError(
                "Invalid webhook payload",
                stripe_code="invalid_payload",
                details={"error": str(e)},
            )
        return _as_dict(event)

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_stripe_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe exceptions to domain exceptions.

        Raises:
            StripeInvalidRequestError: Invalid request or authentication
            StripeRateLimitError: Rate limited
            StripeTimeoutError: Request timed out
            StripeAPIUnavailableError: Connection failure, server or unknown error
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )
            raise StripeInvalidRequestError(str(error), stripe_code=error.code)

        elif isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise StripeRateLimitError(
                "Stripe rate limit exceeded. Please retry.",
                stripe_code="rate_limit",
            )

        elif isinstance(error, stripe.APIConnectionError):
            if "timed out" in str(error).lower() or "timeout" in str(error).lower():
                logger.error("Stripe request timed out", extra=log_context)
                raise StripeTimeoutError(
                    "Stripe request timed out. Please retry.",
                    stripe_code="timeout",
                )
            logger.error("Connection error to Stripe", extra=log_context, exc_info=True)
            raise StripeAPIUnavailableError(
                "Could not connect to Stripe. Please retry.",
                stripe_code="api_connection_error",
            )

        elif isinstance(error, stripe.APIError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise StripeAPIUnavailableError(
                "Stripe service error. Please retry.",
                stripe_code="api_error",
            )

        elif isinstance(error, stripe.AuthenticationError):
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            raise StripeInvalidRequestError(
                "Stripe authentication failed",
                stripe_code="authentication_error",
            )

        else:
            logger.error(
                f"Unexpected error from Stripe: {type(error).__name__}",
                extra=log_context,
                exc_info=True,
            )
            raise StripeAPIUnavailableError(
                f"Unexpected Stripe error: {error}",
                stripe_code="unknown_error",
            )
