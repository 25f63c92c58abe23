"""
Django admin configuration for ledger models.

Accounts, transactions and entries are read-only in the admin: rows are
created by the seed migration and LedgerService only, and corrections are
new transactions rather than edits.
"""

from django.contrib import admin

from .models import Account, LedgerEntry, LedgerTransaction


class ReadOnlyAdminMixin:
    """Disable add, change and delete for append-only tables."""

    def has_add_permission(self, request, obj=None) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Account)
class AccountAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """Chart of accounts with computed balances."""

    list_display = ["name", "kind", "balance_display", "description"]
    list_filter = ["kind"]
    search_fields = ["name", "description"]
    ordering = ["kind", "name"]

    def balance_display(self, obj: Account) -> str:
        """
        Display the raw signed balance formatted as currency.

        This performs a database query per row.
        """
        return f"${obj.get_balance_cents() / 100:.2f}"

    balance_display.short_description = "Balance"


class LedgerEntryInline(admin.TabularInline):
    model = LedgerEntry
    extra = 0
    fields = ["account", "amount_cents", "related_entity_type", "related_entity_id", "description"]
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(LedgerTransaction)
class LedgerTransactionAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ["id", "kind", "status", "amount_display", "payment", "posted_at"]
    list_filter = ["kind", "status", "posted_at"]
    search_fields = ["id", "description", "payment__reference_id", "payment__external_payment_id"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    inlines = [LedgerEntryInline]

    def amount_display(self, obj: LedgerTransaction) -> str:
        """Display the debit-side total formatted as currency."""
        return f"${obj.total_amount_cents / 100:.2f}"

    amount_display.short_description = "Amount"


@admin.register(LedgerEntry)
class LedgerEntryAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """
    Admin configuration for LedgerEntry.

    Ledger entries are immutable - they cannot be edited or deleted
    through the admin interface. Corrections should be made via
    new adjustment transactions.
    """

    list_display = [
        "id",
        "created_at",
        "account",
        "side_display",
        "amount_display",
        "related_entity_type",
        "related_entity_id",
    ]
    list_filter = ["account", "related_entity_type", "created_at"]
    search_fields = ["id", "related_entity_id", "description", "transaction__id"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def side_display(self, obj: LedgerEntry) -> str:
        return "Debit" if obj.is_debit else "Credit"

    side_display.short_description = "Side"

    def amount_display(self, obj: LedgerEntry) -> str:
        """Display the unsigned amount formatted as currency."""
        return f"${abs(obj.amount_cents) / 100:.2f}"

    amount_display.short_description = "Amount"
