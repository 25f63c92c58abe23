"""
Finance admin configuration.

This file imports admin configurations from the ledger submodule
and registers finance domain models with the Django admin.

State changes (sync retries, webhook re-drives) go through the operator
API or the reprocess_* management commands, not the admin.
"""

from django.contrib import admin

from finance.ledger.admin import AccountAdmin, LedgerEntryAdmin, LedgerTransactionAdmin
from finance.models import (
    AccountingSyncJob,
    ExpenseReport,
    LedgerDiscrepancy,
    LedgerReconciliationRun,
    Payment,
    Payout,
    Refund,
    WebhookEvent,
)

__all__ = [
    "AccountAdmin",
    "LedgerEntryAdmin",
    "LedgerTransactionAdmin",
    "PaymentAdmin",
    "RefundAdmin",
    "PayoutAdmin",
    "ExpenseReportAdmin",
    "WebhookEventAdmin",
    "AccountingSyncJobAdmin",
    "LedgerReconciliationRunAdmin",
]

SYNC_FIELDSET = (
    "Accounting Sync",
    {
        "fields": (
            "sync_status",
            "external_accounting_id",
            "sync_last_attempt_at",
            "synced_at",
            "sync_error",
        ),
        "classes": ("collapse",),
    },
)


def _dollars(cents: int | None) -> str:
    if cents is None:
        return "-"
    return f"${cents / 100:.2f}"


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    """
    Admin configuration for Payment.

    Payments are created by the ledger only and never deleted.
    """

    list_display = [
        "reference_id",
        "external_payment_id",
        "amount_display",
        "status",
        "entity_type",
        "sync_status",
        "payment_date",
    ]
    list_filter = ["status", "sync_status", "entity_type", "external_provider"]
    search_fields = ["id", "reference_id", "external_payment_id", "entity_id"]
    readonly_fields = [
        "id",
        "reference_id",
        "external_provider",
        "external_payment_id",
        "amount_cents",
        "processor_fee_cents",
        "currency",
        "status",
        "user_id",
        "entity_type",
        "entity_id",
        "description",
        "payment_date",
        "sync_status",
        "external_accounting_id",
        "sync_last_attempt_at",
        "synced_at",
        "sync_error",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "payment_date"
    ordering = ["-payment_date"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "reference_id", "status"),
            },
        ),
        (
            "Processor",
            {
                "fields": ("external_provider", "external_payment_id"),
            },
        ),
        (
            "Amount",
            {
                "fields": ("amount_cents", "processor_fee_cents", "currency"),
            },
        ),
        (
            "Purpose",
            {
                "fields": ("user_id", "entity_type", "entity_id", "description", "payment_date"),
            },
        ),
        SYNC_FIELDSET,
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    def amount_display(self, obj: Payment) -> str:
        """Display the amount formatted as currency."""
        return _dollars(obj.amount_cents)

    amount_display.short_description = "Amount"

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for payments (audit trail)."""
        return False


@admin.register(Refund)
class RefundAdmin(admin.ModelAdmin):
    list_display = [
        "external_refund_id",
        "payment",
        "amount_display",
        "reason",
        "sync_status",
        "created_at",
    ]
    list_filter = ["sync_status", "created_at"]
    search_fields = ["id", "external_refund_id", "payment__reference_id", "reason"]
    readonly_fields = [
        "id",
        "payment",
        "transaction",
        "amount_cents",
        "reason",
        "external_refund_id",
        "sync_status",
        "external_accounting_id",
        "sync_last_attempt_at",
        "synced_at",
        "sync_error",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def amount_display(self, obj: Refund) -> str:
        """Display the amount formatted as currency."""
        return _dollars(obj.amount_cents)

    amount_display.short_description = "Amount"

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for refunds (audit trail)."""
        return False


@admin.register(Payout)
class PayoutAdmin(admin.ModelAdmin):
    """
    Admin configuration for Payout.

    Linked payments and refunds are derived by reconciliation and shown
    read-only.
    """

    list_display = [
        "external_payout_id",
        "amount_display",
        "fee_display",
        "status",
        "unresolved_count",
        "last_reconciled_at",
        "sync_status",
        "arrival_date",
    ]
    list_filter = ["status", "sync_status", "arrival_date"]
    search_fields = ["id", "external_payout_id"]
    readonly_fields = [
        "id",
        "external_payout_id",
        "amount_cents",
        "currency",
        "fee_total_cents",
        "status",
        "arrival_date",
        "description",
        "payments",
        "refunds",
        "unresolved_count",
        "last_reconciled_at",
        "sync_status",
        "external_accounting_id",
        "sync_last_attempt_at",
        "synced_at",
        "sync_error",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "external_payout_id", "status", "arrival_date", "description"),
            },
        ),
        (
            "Amount",
            {
                "fields": ("amount_cents", "fee_total_cents", "currency"),
            },
        ),
        (
            "Reconciliation",
            {
                "fields": ("payments", "refunds", "unresolved_count", "last_reconciled_at"),
            },
        ),
        SYNC_FIELDSET,
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    def amount_display(self, obj: Payout) -> str:
        """Display the amount formatted as currency."""
        return _dollars(obj.amount_cents)

    amount_display.short_description = "Amount"

    def fee_display(self, obj: Payout) -> str:
        return _dollars(obj.fee_total_cents)

    fee_display.short_description = "Fees"

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(ExpenseReport)
class ExpenseReportAdmin(admin.ModelAdmin):
    list_display = ["id", "purpose", "amount_display", "status", "sync_status", "created_at"]
    list_filter = ["status", "sync_status"]
    search_fields = ["id", "purpose", "user_id"]
    readonly_fields = [
        "id",
        "status",
        "sync_status",
        "external_accounting_id",
        "sync_last_attempt_at",
        "synced_at",
        "sync_error",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]

    def amount_display(self, obj: ExpenseReport) -> str:
        return _dollars(obj.total_amount_cents)

    amount_display.short_description = "Total"


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """
    Admin configuration for WebhookEvent.

    Provides visibility into webhook processing status.
    Webhook events are immutable once received.
    """

    list_display = [
        "id",
        "provider",
        "event_id",
        "event_type",
        "status",
        "attempt_count",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "provider", "event_type", "created_at"]
    search_fields = ["id", "event_id", "event_type"]
    readonly_fields = [
        "id",
        "provider",
        "event_id",
        "event_type",
        "payload",
        "status",
        "attempt_count",
        "last_error",
        "processed_at",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "provider", "event_id", "event_type", "status"),
            },
        ),
        (
            "Processing",
            {
                "fields": ("processed_at", "attempt_count"),
            },
        ),
        (
            "Error Info",
            {
                "fields": ("last_error",),
                "classes": ("collapse",),
            },
        ),
        (
            "Payload",
            {
                "fields": ("payload",),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for webhook events (audit trail)."""
        return False

    def has_add_permission(self, request) -> bool:
        """Disable adding webhook events through admin."""
        return False


@admin.register(AccountingSyncJob)
class AccountingSyncJobAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "entity_type",
        "entity_id",
        "status",
        "attempt_count",
        "max_attempts",
        "next_attempt_at",
        "external_id",
    ]
    list_filter = ["status", "entity_type"]
    search_fields = ["id", "entity_id", "external_id", "idempotency_key"]
    readonly_fields = [
        "id",
        "entity_type",
        "entity_id",
        "status",
        "attempt_count",
        "max_attempts",
        "next_attempt_at",
        "last_attempt_at",
        "last_error",
        "idempotency_key",
        "external_id",
        "synced_at",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]

    def has_add_permission(self, request) -> bool:
        return False


# =============================================================================
# Ledger Integrity Admin
# =============================================================================


class LedgerDiscrepancyInline(admin.TabularInline):
    """Inline display of discrepancies for a reconciliation run."""

    model = LedgerDiscrepancy
    extra = 0
    readonly_fields = [
        "id",
        "discrepancy_type",
        "entity_type",
        "entity_id",
        "amount_cents",
        "details",
    ]
    fields = readonly_fields + ["reviewed", "review_notes"]
    can_delete = False
    show_change_link = True

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(LedgerReconciliationRun)
class LedgerReconciliationRunAdmin(admin.ModelAdmin):
    """
    Admin configuration for LedgerReconciliationRun.

    Runs are created by the integrity check; only discrepancy review
    fields are editable.
    """

    list_display = [
        "id",
        "started_at",
        "status",
        "duration_display",
        "transactions_checked",
        "payments_checked",
        "discrepancies_found",
    ]
    list_filter = ["status", "started_at"]
    readonly_fields = [
        "id",
        "started_at",
        "completed_at",
        "duration_display",
        "transactions_checked",
        "entries_checked",
        "payments_checked",
        "ledger_total_cents",
        "discrepancies_found",
        "status",
        "error_message",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "started_at"
    ordering = ["-started_at"]
    inlines = [LedgerDiscrepancyInline]

    def duration_display(self, obj: LedgerReconciliationRun) -> str:
        """Display the run duration in human-readable format."""
        if obj.duration_seconds is not None:
            return f"{obj.duration_seconds:.1f}s"
        return "Running..."

    duration_display.short_description = "Duration"
