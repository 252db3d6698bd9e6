"""
Django admin configuration for ledger models.

Postings and entries are read-only in the admin: the only write an
operator can make is the "reverse" action, which records a new offsetting
posting through LedgerService.
"""

from django.contrib import admin, messages

from .models import LedgerEntry, LedgerPosting
from .services import LedgerService


class LedgerEntryInline(admin.TabularInline):
    model = LedgerEntry
    extra = 0
    can_delete = False
    fields = ["side", "account_type", "amount_cents", "currency", "owner_id", "status", "settled_at"]
    readonly_fields = fields

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(LedgerPosting)
class LedgerPostingAdmin(admin.ModelAdmin):
    list_display = ["id", "created_at", "transaction_type", "booking_id", "idempotency_key", "reverses"]
    list_filter = ["transaction_type", "created_at"]
    search_fields = ["id", "booking_id", "idempotency_key"]
    readonly_fields = [
        "id",
        "created_at",
        "booking_id",
        "transaction_type",
        "idempotency_key",
        "fingerprint",
        "reverses",
        "description",
        "created_by",
        "metadata",
    ]
    inlines = [LedgerEntryInline]
    actions = ["reverse_postings"]
    date_hierarchy = "created_at"

    @admin.action(description="Reverse selected postings")
    def reverse_postings(self, request, queryset):
        for posting in queryset:
            LedgerService.reverse(
                posting.id,
                idempotency_key=f"{posting.idempotency_key}:reversal",
                reason=f"Operator reversal by {request.user}",
                created_by=f"admin:{request.user.pk}",
            )
        messages.success(request, f"Reversed {queryset.count()} posting(s).")

    def has_delete_permission(self, request, obj=None) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    def has_add_permission(self, request) -> bool:
        return False


@admin.register(LedgerEntry)
class LedgerEntryAdmin(admin.ModelAdmin):
    """
    Admin configuration for LedgerEntry.

    Entries are immutable here. Corrections are made via reversal postings.
    """

    list_display = [
        "id",
        "created_at",
        "transaction_type",
        "account_type",
        "side",
        "amount_display",
        "status",
        "booking_id",
    ]
    list_filter = ["transaction_type", "account_type", "side", "status"]
    search_fields = ["id", "booking_id", "owner_id", "posting__idempotency_key"]
    date_hierarchy = "created_at"

    def amount_display(self, obj: LedgerEntry) -> str:
        """Display the amount formatted as currency."""
        return f"{obj.amount_cents / 100:.2f} {obj.currency.upper()}"

    amount_display.short_description = "Amount"

    def has_delete_permission(self, request, obj=None) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    def has_add_permission(self, request) -> bool:
        return False
