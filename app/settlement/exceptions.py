"""
Settlement exceptions.

Exception Hierarchy:
    SettlementError (base)
    ├── SettlementNotFound - No settlement record for the booking
    └── SettlementNotEligible - Booking or settlement is in the wrong state
"""

from __future__ import annotations

from core.exceptions import BaseApplicationError, ConflictError, NotFoundError


class SettlementError(BaseApplicationError):
    default_error_code: str = "SETTLEMENT_ERROR"


class SettlementNotFound(SettlementError, NotFoundError):
    default_error_code: str = "SETTLEMENT_NOT_FOUND"


class SettlementNotEligible(SettlementError, ConflictError):
    default_error_code: str = "SETTLEMENT_NOT_ELIGIBLE"
