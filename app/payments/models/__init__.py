"""
Payment domain models.

- Payment: Money collected from a renter for a booking
- Refund: Money returned to a renter
- Payout: Owner earnings transferred out of the platform
- WebhookEvent: Processor webhook deliveries for idempotent processing
- LedgerPosting / LedgerEntry: Double-entry ledger (payments.ledger)
- DepositHold: Security deposit authorizations (payments.deposits)
"""

from payments.deposits.models import DepositHold
from payments.ledger.models import LedgerEntry, LedgerPosting
from payments.models.payment import Payment
from payments.models.payout import Payout
from payments.models.refund import Refund
from payments.models.webhook_event import WebhookEvent

__all__ = [
    "DepositHold",
    "LedgerEntry",
    "LedgerPosting",
    "Payment",
    "Payout",
    "Refund",
    "WebhookEvent",
]
