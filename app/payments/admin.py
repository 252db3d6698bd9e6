"""
Payment admin configuration.

This file imports admin configurations from the ledger submodule and
registers payment records with the Django admin. Records are read-only;
operator actions go through the services so the ledger stays balanced.
"""

from django.contrib import admin, messages

from payments.ledger.admin import LedgerEntryAdmin, LedgerPostingAdmin
from payments.models import DepositHold, Payment, Payout, Refund, WebhookEvent
from payments.services import PayoutService
from payments.state_machines import PayoutStatus

__all__ = [
    "LedgerPostingAdmin",
    "LedgerEntryAdmin",
    "PaymentAdmin",
    "RefundAdmin",
    "PayoutAdmin",
    "DepositHoldAdmin",
    "WebhookEventAdmin",
]


class ReadOnlyAdmin(admin.ModelAdmin):
    """Financial records are written by services only (audit trail)."""

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


def _amount(cents: int, currency: str) -> str:
    return f"{cents / 100:.2f} {currency.upper()}"


@admin.register(Payment)
class PaymentAdmin(ReadOnlyAdmin):
    list_display = ["id", "booking_id", "payer_id", "amount_display", "status", "processed_at", "created_at"]
    list_filter = ["status", "currency", "created_at"]
    search_fields = ["id", "booking_id", "payer_id", "processor_reference", "idempotency_key"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def amount_display(self, obj: Payment) -> str:
        """Display the amount formatted as currency."""
        return _amount(obj.amount_cents, obj.currency)

    amount_display.short_description = "Amount"


@admin.register(Refund)
class RefundAdmin(ReadOnlyAdmin):
    list_display = ["id", "booking_id", "payment", "amount_display", "status", "reason", "created_at"]
    list_filter = ["status", "created_at"]
    search_fields = ["id", "booking_id", "payment__id", "processor_reference"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def amount_display(self, obj: Refund) -> str:
        return _amount(obj.amount_cents, obj.currency)

    amount_display.short_description = "Amount"


@admin.register(Payout)
class PayoutAdmin(ReadOnlyAdmin):
    """
    Admin configuration for Payout.

    FAILED payouts can be re-queued; the next payout sweep transfers them.
    """

    list_display = [
        "id",
        "owner_id",
        "booking_id",
        "amount_display",
        "status",
        "attempt_count",
        "paid_at",
        "created_at",
    ]
    list_filter = ["status", "currency", "created_at"]
    search_fields = ["id", "owner_id", "booking_id", "processor_reference", "destination_account"]
    actions = ["retry_failed_payouts"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def amount_display(self, obj: Payout) -> str:
        return _amount(obj.amount_cents, obj.currency)

    amount_display.short_description = "Amount"

    @admin.action(description="Re-queue failed payouts")
    def retry_failed_payouts(self, request, queryset):
        count = 0
        for payout in queryset.filter(status=PayoutStatus.FAILED):
            PayoutService.retry_payout(payout.id)
            count += 1
        self.message_user(request, f"{count} payout(s) re-queued", messages.SUCCESS)


@admin.register(DepositHold)
class DepositHoldAdmin(ReadOnlyAdmin):
    list_display = [
        "id",
        "booking_id",
        "amount_cents",
        "deducted_cents",
        "released_cents",
        "status",
        "expires_at",
    ]
    list_filter = ["status", "created_at"]
    search_fields = ["id", "booking_id", "owner_id", "processor_reference"]
    ordering = ["-created_at"]


@admin.register(WebhookEvent)
class WebhookEventAdmin(ReadOnlyAdmin):
    list_display = ["event_id", "event_type", "status", "retry_count", "processed_at", "created_at"]
    list_filter = ["status", "event_type", "created_at"]
    search_fields = ["event_id", "event_type"]
    actions = ["reprocess_events"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    @admin.action(description="Re-process selected webhook events")
    def reprocess_events(self, request, queryset):
        from payments.tasks import process_webhook_event

        count = 0
        for webhook_event in queryset:
            if webhook_event.is_processed:
                continue
            process_webhook_event.delay(str(webhook_event.id))
            count += 1
        self.message_user(request, f"{count} webhook event(s) queued", messages.SUCCESS)
