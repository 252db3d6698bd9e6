"""
Payments app configuration.

Owns everything that touches money:
- Double-entry ledger (payments.ledger)
- Security deposit holds (payments.deposits)
- Processor adapter contract and Stripe implementation
- Payment, Refund and Payout records
- Webhook intake
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"
