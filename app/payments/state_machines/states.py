"""
State enums for payment-side records.

These are Django TextChoices for database storage and admin integration.

State Machines Overview:

Payment States:
    pending → succeeded → partially_refunded → refunded
    pending → failed
    pending → canceled

Refund States:
    pending → succeeded
    pending → failed

Payout States:
    pending → processing → paid
    pending/processing → failed → pending (retry)

Deposit Hold States:
    pending → authorized → captured | released | expired
    pending/authorized → failed
"""

from django.db import models


class PaymentStatus(models.TextChoices):
    """
    States for a Payment (money collected from the renter).

    Terminal states: FAILED, CANCELED, REFUNDED
    """

    PENDING = "pending", "Pending"
    SUCCEEDED = "succeeded", "Succeeded"
    PARTIALLY_REFUNDED = "partially_refunded", "Partially Refunded"
    REFUNDED = "refunded", "Refunded"
    FAILED = "failed", "Failed"
    CANCELED = "canceled", "Canceled"


class RefundStatus(models.TextChoices):
    """
    States for a Refund (money returned to the renter).

    A PENDING refund was accepted by the processor but not confirmed yet;
    the ``charge.refunded`` webhook resolves it.
    """

    PENDING = "pending", "Pending"
    SUCCEEDED = "succeeded", "Succeeded"
    FAILED = "failed", "Failed"


class PayoutStatus(models.TextChoices):
    """
    States for a Payout (owner earnings leaving the platform).

    State Flow:
        PENDING → PROCESSING → PAID
        PROCESSING → FAILED → PENDING (retry)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PAID = "paid", "Paid"
    FAILED = "failed", "Failed"


class DepositHoldStatus(models.TextChoices):
    """
    States for a DepositHold.

    Active states: PENDING, AUTHORIZED (at most one per booking)
    Closed states: CAPTURED, RELEASED, EXPIRED, FAILED
    """

    PENDING = "pending", "Pending"
    AUTHORIZED = "authorized", "Authorized"
    CAPTURED = "captured", "Captured"
    RELEASED = "released", "Released"
    EXPIRED = "expired", "Expired"
    FAILED = "failed", "Failed"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for WebhookEvent.

    State Flow:
        PENDING → PROCESSING → PROCESSED
        PENDING → PROCESSING → FAILED (can retry)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"


ACTIVE_HOLD_STATUSES = (DepositHoldStatus.PENDING, DepositHoldStatus.AUTHORIZED)


__all__ = [
    "ACTIVE_HOLD_STATUSES",
    "DepositHoldStatus",
    "PaymentStatus",
    "PayoutStatus",
    "RefundStatus",
    "WebhookEventStatus",
]
