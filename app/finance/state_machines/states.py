"""
State enums for finance models.

These are Django TextChoices used as django-fsm field choices.

State Machines Overview:

Payment Status (forward only):
    pending → succeeded → partially_refunded → refunded
    pending → failed

Payout Status:
    pending → in_transit → paid
    pending/in_transit → failed / canceled

Webhook Event Status:
    pending → processing → succeeded
    pending → processing → failed → pending (retry)
    failed is terminal once attempt_count reaches WEBHOOK_MAX_ATTEMPTS

Accounting Sync Status (entities and sync jobs):
    pending → syncing → synced
    syncing → failed → pending (retry)
    failed is terminal once attempt_count reaches max_attempts

Expense Report Status:
    draft → submitted → approved → paid
    submitted → rejected
"""

from django.db import models


class PaymentStatus(models.TextChoices):
    """Lifecycle of a Payment received from the processor."""

    PENDING = "pending", "Pending"
    SUCCEEDED = "succeeded", "Succeeded"
    PARTIALLY_REFUNDED = "partially_refunded", "Partially Refunded"
    REFUNDED = "refunded", "Refunded"
    FAILED = "failed", "Failed"


class PayoutStatus(models.TextChoices):
    """Lifecycle of a processor Payout to the organization's bank."""

    PENDING = "pending", "Pending"
    IN_TRANSIT = "in_transit", "In Transit"
    PAID = "paid", "Paid"
    FAILED = "failed", "Failed"
    CANCELED = "canceled", "Canceled"


class WebhookEventStatus(models.TextChoices):
    """Processing status of an inbound webhook event."""

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    SUCCEEDED = "succeeded", "Succeeded"
    FAILED = "failed", "Failed"


class SyncStatus(models.TextChoices):
    """Accounting sync status, shared by synced entities and sync jobs."""

    PENDING = "pending", "Pending"
    SYNCING = "syncing", "Syncing"
    SYNCED = "synced", "Synced"
    FAILED = "failed", "Failed"


class ExpenseReportStatus(models.TextChoices):
    """Approval lifecycle of an expense report."""

    DRAFT = "draft", "Draft"
    SUBMITTED = "submitted", "Submitted"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"
    PAID = "paid", "Paid"


class TransactionKind(models.TextChoices):
    """Kind of a ledger transaction."""

    PAYMENT = "payment", "Payment"
    REFUND = "refund", "Refund"
    FEE = "fee", "Fee"
    ADJUSTMENT = "adjustment", "Adjustment"


class TransactionStatus(models.TextChoices):
    """Posting status of a ledger transaction."""

    PENDING = "pending", "Pending"
    POSTED = "posted", "Posted"


class SyncEntityType(models.TextChoices):
    """Record types that are mirrored into the accounting system."""

    PAYMENT = "payment", "Payment"
    REFUND = "refund", "Refund"
    PAYOUT = "payout", "Payout"
    EXPENSE_REPORT = "expense_report", "Expense Report"
