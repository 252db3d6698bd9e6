"""
Disputes app - damage and payment disputes raised against a booking.

This app provides:
- Dispute model with an FSM-managed status (django-fsm)
- DisputeResponse: statements and evidence added by the parties
- DisputeResolution: the single terminal record written when a dispute ends
- DisputeService: open, review, resolve, close and SLA escalation

Workflow:
    OPEN -> UNDER_REVIEW / INVESTIGATING -> AWAITING_RESPONSE / IN_MEDIATION
         -> RESOLVED / CLOSED

Opening a dispute moves the booking to DISPUTED; resolving it records the
resolution, posts the money movements (deposit deduction, refund, payout
adjustment, settlement legs) and force-transitions the booking to SETTLED
or REFUNDED, all in one database transaction.

Usage:
    from disputes.services import DisputeService

    dispute = DisputeService.open_dispute(
        booking_id=booking.id,
        initiator_id=owner_id,
        dispute_type=DisputeType.PROPERTY_DAMAGE,
        claimed_amount_cents=3000,
        description="Scratched table",
    )
"""
