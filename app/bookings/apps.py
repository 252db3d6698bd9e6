"""
Django app configuration for bookings.
"""

from django.apps import AppConfig


class BookingsConfig(AppConfig):
    """Booking aggregate, transition table and state machine."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "bookings"
    verbose_name = "Bookings"

    def ready(self):
        """
        Import signals when the app is ready.

        This ensures signal handlers are connected when Django starts.
        """
        from bookings import signals  # noqa: F401
