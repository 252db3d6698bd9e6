"""
Deposit Hold Manager - security deposits held against damage.

Public API:
    Model:
        DepositHold - One authorization per booking

    Service:
        DepositHoldManager - authorize / confirm / release / deduct /
                             fail / expire_stale_holds

    Exceptions:
        DepositError - Base deposit business-rule error
        DeductionExceedsHold - Deduction larger than the amount still held
        InvalidHoldState - Operation not allowed in the hold's status
        DepositHoldNotFound - Unknown hold id

Usage:
    from payments.deposits import DepositHoldManager

    hold = DepositHoldManager.authorize(booking.id, booking.deposit, booking.currency, "pm_card_visa")
    DepositHoldManager.release(hold.id)
"""

from .exceptions import (
    DeductionExceedsHold,
    DepositError,
    DepositHoldNotFound,
    InvalidHoldState,
)
from .models import DepositHold
from .services import DepositHoldManager

__all__ = [
    # Model
    "DepositHold",
    # Service
    "DepositHoldManager",
    # Exceptions
    "DepositError",
    "DeductionExceedsHold",
    "InvalidHoldState",
    "DepositHoldNotFound",
]
