"""
Django admin configuration for disputes.

Disputes are read-only here; the workflow runs through DisputeService so
every resolution moves money and the booking together.
"""

from django.contrib import admin, messages

from disputes.models import Dispute, DisputeResolution, DisputeResponse
from disputes.services import DisputeService


class DisputeResponseInline(admin.TabularInline):
    model = DisputeResponse
    extra = 0
    can_delete = False
    fields = ["author_id", "message", "evidence", "created_at"]
    readonly_fields = fields

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Dispute)
class DisputeAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "booking_id",
        "dispute_type",
        "status",
        "priority",
        "initiator_role",
        "claimed_amount_cents",
        "response_due_at",
        "created_at",
    ]
    list_filter = ["status", "priority", "dispute_type", "initiator_role"]
    search_fields = ["id", "booking_id", "initiator_id", "defendant_id"]
    readonly_fields = [field.name for field in Dispute._meta.fields]
    inlines = [DisputeResponseInline]
    actions = ["escalate_overdue"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    @admin.action(description="Escalate disputes past their response SLA")
    def escalate_overdue(self, request, queryset):
        count = DisputeService.escalate_overdue_disputes()
        self.message_user(request, f"{count} dispute(s) escalated", messages.SUCCESS)


@admin.register(DisputeResolution)
class DisputeResolutionAdmin(admin.ModelAdmin):
    list_display = ["dispute", "outcome", "refund_amount_cents", "payout_adjustment_cents", "booking_status", "resolved_at"]
    list_filter = ["outcome", "booking_status"]
    search_fields = ["dispute__id", "dispute__booking_id"]
    readonly_fields = [field.name for field in DisputeResolution._meta.fields]

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False
