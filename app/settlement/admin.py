"""
Django admin configuration for settlement.

FAILED settlements are the operator queue: filter by status, read the last
error, and re-queue with the "requeue" action once the cause is fixed.
"""

from django.contrib import admin, messages

from settlement.exceptions import SettlementError
from settlement.models import Settlement
from settlement.services import SettlementOrchestrator


@admin.register(Settlement)
class SettlementAdmin(admin.ModelAdmin):
    list_display = [
        "booking_id",
        "status",
        "attempt_count",
        "next_attempt_at",
        "last_error_code",
        "settled_at",
        "failed_at",
    ]
    list_filter = ["status", "last_error_code"]
    search_fields = ["booking_id", "owner_id"]
    readonly_fields = [field.name for field in Settlement._meta.fields]
    actions = ["requeue_settlements"]
    ordering = ["-created_at"]

    def has_add_permission(self, request) -> bool:
        return False

    @admin.action(description="Re-queue selected failed settlements")
    def requeue_settlements(self, request, queryset):
        requeued = 0
        for settlement in queryset:
            try:
                SettlementOrchestrator.requeue(settlement.booking_id)
                requeued += 1
            except SettlementError as e:
                self.message_user(request, f"{settlement.booking_id}: {e.message}", messages.WARNING)
        self.message_user(request, f"{requeued} settlement(s) re-queued", messages.SUCCESS)
