"""
Payments app: money movement and the financial record.

This app handles:
- Double-entry ledger of every booking money movement (payments.ledger)
- Security deposit holds (payments.deposits)
- Payment processor contract and the Stripe adapter
- Payment, Refund and Payout records
- Processor webhook intake and processing

Related apps:
    - bookings: posts payment, refund and fee legs as transition side effects
    - disputes: deposit deductions and payout adjustments
    - settlement: settles ledger entries and executes payouts

Usage:
    from payments.ledger import LedgerService

    balances = LedgerService.get_booking_balances(booking_id)
"""
