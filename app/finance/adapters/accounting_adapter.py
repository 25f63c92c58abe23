"""
QuickBooks Online adapter.

Posts accounting documents (SalesReceipt, RefundReceipt, Deposit, Bill) to
the QuickBooks v3 REST API. Every create call carries a `requestid` query
parameter; QuickBooks answers a repeated requestid with the document it
created the first time, so a retried sync never creates a duplicate.

The adapter does not refresh OAuth tokens. It reads the access token from
settings on each call, and a rejected token (401) is a terminal sync failure:
rotate QUICKBOOKS_ACCESS_TOKEN, then re-drive the failed jobs with
reprocess_sync_jobs.

Configuration (via settings):
- QUICKBOOKS_API_BASE_URL: e.g. https://sandbox-quickbooks.api.intuit.com
- QUICKBOOKS_REALM_ID: Company id
- QUICKBOOKS_ACCESS_TOKEN: Bearer token
- QUICKBOOKS_MINOR_VERSION: API minor version (default: 65)
- QUICKBOOKS_TIMEOUT_SECONDS: HTTP timeout (default: 30)
"""

from __future__ import annotations

import logging
import time
from typing import Any

import requests
from django.conf import settings

from finance.exceptions import (
    AccountingAuthenticationError,
    AccountingRateLimitError,
    AccountingServiceUnavailableError,
    AccountingSyncError,
    AccountingValidationError,
)

SALES_RECEIPT = "SalesReceipt"
REFUND_RECEIPT = "RefundReceipt"
DEPOSIT = "Deposit"
BILL = "Bill"


class QuickBooksAdapter:
    """
    Adapter for QuickBooks Online document creation.

    All methods are classmethods; configuration is read from settings on
    every call so tests can override it with the settings fixture.
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @staticmethod
    def _entity_url(entity: str) -> str:
        base = settings.QUICKBOOKS_API_BASE_URL.rstrip("/")
        return f"{base}/v3/company/{settings.QUICKBOOKS_REALM_ID}/{entity.lower()}"

    @staticmethod
    def _headers() -> dict[str, str]:
        return {
            "Authorization": f"Bearer {settings.QUICKBOOKS_ACCESS_TOKEN}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    # =========================================================================
    # Document Creation
    # =========================================================================

    @classmethod
    def create_sales_receipt(cls, document: dict[str, Any], request_id: str) -> str:
        """Create a SalesReceipt for a payment. Returns the QuickBooks Id."""
        return cls.create_entity(SALES_RECEIPT, document, request_id)

    @classmethod
    def create_refund_receipt(cls, document: dict[str, Any], request_id: str) -> str:
        """Create a RefundReceipt for a refund. Returns the QuickBooks Id."""
        return cls.create_entity(REFUND_RECEIPT, document, request_id)

    @classmethod
    def create_deposit(cls, document: dict[str, Any], request_id: str) -> str:
        """Create a Deposit for a payout. Returns the QuickBooks Id."""
        return cls.create_entity(DEPOSIT, document, request_id)

    @classmethod
    def create_bill(cls, document: dict[str, Any], request_id: str) -> str:
        """Create a Bill for an expense report. Returns the QuickBooks Id."""
        return cls.create_entity(BILL, document, request_id)

    @classmethod
    def create_entity(cls, entity: str, document: dict[str, Any], request_id: str) -> str:
        """
        POST a document and return the Id QuickBooks assigned to it.

        Args:
            entity: QuickBooks entity name (SalesReceipt, Deposit, ...)
            document: JSON body
            request_id: Idempotency key sent as `requestid`

        Raises:
            AccountingRateLimitError: 429
            AccountingServiceUnavailableError: Timeout, connection error or 5xx
            AccountingAuthenticationError: 401
            AccountingValidationError: Any other 4xx, or a body without an Id
        """
        logger = cls.get_logger()
        log_context = {"operation": f"create_{entity}", "request_id": request_id}

        start_time = time.time()
        logger.debug("Starting QuickBooks operation", extra=log_context)

        params = {
            "minorversion": getattr(settings, "QUICKBOOKS_MINOR_VERSION", 65),
            "requestid": request_id,
        }
        timeout = getattr(settings, "QUICKBOOKS_TIMEOUT_SECONDS", 30)

        try:
            response = requests.post(
                cls._entity_url(entity),
                params=params,
                json=document,
                headers=cls._headers(),
                timeout=timeout,
            )
        except requests.exceptions.Timeout:
            logger.error(
                "QuickBooks request timed out",
                extra={**log_context, "duration_ms": (time.time() - start_time) * 1000},
            )
            raise AccountingServiceUnavailableError(
                f"QuickBooks {entity} request timed out",
                details={"entity": entity},
            )
        except requests.exceptions.RequestException as e:
            logger.error(
                "Connection error to QuickBooks",
                extra={**log_context, "error": str(e)},
            )
            raise AccountingServiceUnavailableError(
                f"Could not reach QuickBooks: {e}",
                details={"entity": entity},
            )

        duration_ms = (time.time() - start_time) * 1000
        if response.status_code >= 400:
            cls._handle_error_response(entity, response, {**log_context, "duration_ms": duration_ms})

        try:
            external_id = str(response.json()[entity]["Id"])
        except (ValueError, KeyError, TypeError):
            raise AccountingValidationError(
                f"QuickBooks {entity} response did not include an Id",
                status_code=response.status_code,
                details={"entity": entity},
            )

        logger.info(
            "QuickBooks operation completed",
            extra={**log_context, "external_id": external_id, "duration_ms": duration_ms},
        )
        return external_id

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_error_response(
        cls,
        entity: str,
        response: requests.Response,
        log_context: dict[str, Any],
    ) -> None:
        logger = cls.get_logger()
        status = response.status_code
        detail = cls._fault_message(response)
        details = {"entity": entity, "fault": detail}
        log_context = {**log_context, "status_code": status, "fault": detail}

        if status == 429:
            logger.warning("Rate limited by QuickBooks", extra=log_context)
            raise AccountingRateLimitError(
                "QuickBooks rate limit exceeded", status_code=status, details=details
            )
        if status >= 500:
            logger.error("QuickBooks server error", extra=log_context)
            raise AccountingServiceUnavailableError(
                f"QuickBooks server error ({status})", status_code=status, details=details
            )
        if status == 401:
            logger.critical("QuickBooks rejected the access token", extra=log_context)
            raise AccountingAuthenticationError(
                "QuickBooks authentication failed", status_code=status, details=details
            )
        if 400 <= status < 500:
            logger.error("QuickBooks rejected document", extra=log_context)
            raise AccountingValidationError(
                f"QuickBooks rejected {entity}: {detail}", status_code=status, details=details
            )
        raise AccountingSyncError(
            f"Unexpected QuickBooks response ({status})", status_code=status, details=details
        )

    @staticmethod
    def _fault_message(response: requests.Response) -> str:
        """Pull the first error message out of a QuickBooks Fault body."""
        try:
            errors = response.json()["Fault"]["Error"]
            first = errors[0]
            return first.get("Detail") or first.get("Message") or ""
        except (ValueError, KeyError, IndexError, TypeError):
            return response.text[:500]
