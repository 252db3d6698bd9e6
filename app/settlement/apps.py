"""
Django app configuration for settlement.
"""

from django.apps import AppConfig


class SettlementConfig(AppConfig):
    """Settlement Orchestrator and owner payouts."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "settlement"
    verbose_name = "Settlement"

    def ready(self):
        """
        Import signals when the app is ready.

        This ensures the booking event receiver is connected when Django starts.
        """
        from settlement import signals  # noqa: F401
