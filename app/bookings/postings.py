"""
Ledger postings owned by the booking lifecycle.

Each helper posts with a key derived from (booking, transaction type,
sequence), so calling it again for the same booking replays the original
posting instead of writing a second one.

    post_payment        PAYMENT        LIABILITY -> CASH               total
    post_settlement     OWNER_EARNING  RECEIVABLE(owner) -> LIABILITY  owner earnings
                        PLATFORM_FEE   REVENUE -> LIABILITY            platform fee
                        SERVICE_FEE    REVENUE -> LIABILITY            service fee
    post_payout_adjustment
                        PAYOUT         RECEIVABLE(owner) -> LIABILITY  (+) / flipped (-)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from payments.ledger import AccountType, LedgerLeg, LedgerPosting, LedgerService, TransactionType

if TYPE_CHECKING:
    from bookings.models import Booking
    from payments.models import Payment


def post_payment(booking: Booking, payment: Payment) -> LedgerPosting:
    return LedgerService.post(
        LedgerLeg.pair(
            booking.id,
            TransactionType.PAYMENT,
            debit=AccountType.LIABILITY,
            credit=AccountType.CASH,
            amount_cents=payment.amount_cents,
            currency=payment.currency,
        ),
        idempotency_key=LedgerService.posting_key(booking.id, TransactionType.PAYMENT),
        description="Booking payment captured",
        metadata={"payment_id": str(payment.id), "processor_reference": payment.processor_reference},
    )


def post_settlement(booking: Booking, created_by: str = "") -> list[LedgerPosting]:
    """Post the owner earning and fee legs; zero amounts are skipped."""
    movements = [
        (TransactionType.OWNER_EARNING, AccountType.RECEIVABLE, booking.owner_earnings_cents, booking.owner_id),
        (TransactionType.PLATFORM_FEE, AccountType.REVENUE, booking.platform_fee_cents, None),
        (TransactionType.SERVICE_FEE, AccountType.REVENUE, booking.service_fee_cents, None),
    ]
    postings = []
    for transaction_type, debit, amount_cents, owner_id in movements:
        if amount_cents <= 0:
            continue
        postings.append(
            LedgerService.post(
                LedgerLeg.pair(
                    booking.id,
                    transaction_type,
                    debit=debit,
                    credit=AccountType.LIABILITY,
                    amount_cents=amount_cents,
                    currency=booking.currency,
                    debit_owner_id=owner_id,
                ),
                idempotency_key=LedgerService.posting_key(booking.id, transaction_type),
                description=f"Settlement: {transaction_type.label}",
                created_by=created_by or None,
            )
        )
    return postings


def post_payout_adjustment(
    booking: Booking,
    amount_cents: int,
    sequence: str,
    reason: str = "",
) -> LedgerPosting | None:
    """
    Correct the owner's receivable by a signed amount.

    Positive amounts increase what the owner is paid; negative amounts
    reduce it.
    """
    if amount_cents == 0:
        return None
    debit, credit = AccountType.RECEIVABLE, AccountType.LIABILITY
    debit_owner, credit_owner = booking.owner_id, None
    if amount_cents < 0:
        debit, credit = credit, debit
        debit_owner, credit_owner = None, booking.owner_id
    return LedgerService.post(
        LedgerLeg.pair(
            booking.id,
            TransactionType.PAYOUT,
            debit=debit,
            credit=credit,
            amount_cents=abs(amount_cents),
            currency=booking.currency,
            debit_owner_id=debit_owner,
            credit_owner_id=credit_owner,
        ),
        idempotency_key=LedgerService.posting_key(booking.id, TransactionType.PAYOUT, sequence),
        description=f"Payout adjustment: {reason}"[:255],
        metadata={"adjustment_cents": amount_cents},
    )
