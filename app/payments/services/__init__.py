"""
Payment services for money leaving the platform.

This module provides:
- RefundService: Returns captured money to renters
- PayoutService: Transfers owner earnings to their processor account

Usage:
    from payments.services import RefundService

    refund = RefundService.issue_refund(payment, 5750, reason="Cancelled", purpose="cancel")

    from payments.services import PayoutService

    result = PayoutService.execute_payout(payout_id)
"""

from payments.services.payout_service import PayoutService
from payments.services.refund_service import RefundEligibility, RefundService

__all__ = [
    "PayoutService",
    "RefundEligibility",
    "RefundService",
]
