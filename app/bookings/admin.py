"""
Django admin configuration for bookings.

Bookings are read-only here: status changes go through the state machine,
so the only write an operator can make is the "expire" action, which
applies EXPIRE as an admin-triggered system transition.
"""

from django.contrib import admin, messages

from bookings.exceptions import BookingError
from bookings.models import Booking, BookingStateHistory
from bookings.services import BookingStateMachine
from bookings.states import Actor, BookingAction


class BookingStateHistoryInline(admin.TabularInline):
    model = BookingStateHistory
    extra = 0
    can_delete = False
    fields = ["sequence", "action", "from_status", "to_status", "actor", "reason", "created_at"]
    readonly_fields = fields
    ordering = ["sequence"]

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "status",
        "booking_mode",
        "start_at",
        "end_at",
        "total_cents",
        "currency",
        "renter_id",
        "owner_id",
        "created_at",
    ]
    list_filter = ["status", "booking_mode", "cancellation_policy", "currency"]
    search_fields = ["id", "listing_id", "renter_id", "owner_id", "payment_intent_id"]
    readonly_fields = [field.name for field in Booking._meta.fields]
    inlines = [BookingStateHistoryInline]
    actions = ["expire_bookings"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    @admin.action(description="Expire selected bookings awaiting approval or payment")
    def expire_bookings(self, request, queryset):
        actor = Actor.system(f"admin:{request.user.pk}")
        expired = 0
        for booking in queryset:
            try:
                BookingStateMachine.transition(booking.id, BookingAction.EXPIRE, actor, reason="Expired by operator")
            except BookingError as e:
                messages.warning(request, f"{booking.id}: {e.message}")
            else:
                expired += 1
        messages.success(request, f"Expired {expired} booking(s).")

    def has_delete_permission(self, request, obj=None) -> bool:
        return False

    def has_add_permission(self, request) -> bool:
        return False


@admin.register(BookingStateHistory)
class BookingStateHistoryAdmin(admin.ModelAdmin):
    list_display = ["booking", "sequence", "action", "from_status", "to_status", "actor", "created_at"]
    list_filter = ["action", "to_status", "actor_role"]
    search_fields = ["booking__id", "actor"]
    readonly_fields = [field.name for field in BookingStateHistory._meta.fields]

    def has_delete_permission(self, request, obj=None) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    def has_add_permission(self, request) -> bool:
        return False
