"""
Bookings app: the booking lifecycle.

This app handles:
- Booking aggregate and its price breakdown
- Transition table and the state machine that applies it
- Cancellation refunds and deposit release
- Payment suspension and resumption (processor webhooks)
- Time-driven transitions (approval/payment timeouts, check-in, checkout,
  inspection grace)
- Booking events for notification and settlement receivers

Related apps:
    - payments: ledger, deposit holds, processor adapter, refunds
    - disputes: forces DISPUTED bookings into SETTLED or REFUNDED
    - settlement: drives COMPLETED bookings to SETTLED

Usage:
    from bookings.services import BookingService, BookingStateMachine
    from bookings.states import Actor, BookingAction

    booking = BookingService.create_booking(listing_id=..., renter_id=..., ...)
    BookingStateMachine.transition(booking.id, BookingAction.SUBMIT_REQUEST, Actor.renter(renter_id))
"""
