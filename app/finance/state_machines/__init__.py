"""
State machine enums for finance models.
"""

from finance.state_machines.states import (
    ExpenseReportStatus,
    PaymentStatus,
    PayoutStatus,
    SyncEntityType,
    SyncStatus,
    TransactionKind,
    TransactionStatus,
    WebhookEventStatus,
)

__all__ = [
    "ExpenseReportStatus",
    "PaymentStatus",
    "PayoutStatus",
    "SyncEntityType",
    "SyncStatus",
    "TransactionKind",
    "TransactionStatus",
    "WebhookEventStatus",
]
