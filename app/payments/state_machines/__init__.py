"""
State enums for payment-side records.
"""

from payments.state_machines.states import (
    ACTIVE_HOLD_STATUSES,
    DepositHoldStatus,
    PaymentStatus,
    PayoutStatus,
    RefundStatus,
    WebhookEventStatus,
)

__all__ = [
    "ACTIVE_HOLD_STATUSES",
    "DepositHoldStatus",
    "PaymentStatus",
    "PayoutStatus",
    "RefundStatus",
    "WebhookEventStatus",
]
