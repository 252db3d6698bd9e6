"""
Settlement app: closing out completed bookings and paying owners.

This app handles:
- One Settlement record per booking with retry bookkeeping
- Settling a COMPLETED booking once its dispute filing window has passed:
  confirm the capture, post owner earning and fee legs, release the
  deposit, mark ledger entries SETTLED and move the booking to SETTLED
- Exponential backoff for attempts the processor cannot confirm yet, and
  FAILED records for operators once the retry ceiling is reached
- Owner payouts for settled earnings, batched by a minimum amount

Related apps:
    - bookings: COMPLETED events schedule settlement; SETTLE transition
    - disputes: bookings settled by a dispute resolution get their payout here
    - payments: ledger, deposit holds, payouts

Usage:
    from settlement.services import SettlementOrchestrator

    settlement = SettlementOrchestrator.settle_booking(booking.id)
"""
