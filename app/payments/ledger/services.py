"""
Ledger service layer for financial operations.

This module provides the LedgerService class which encapsulates all
business logic for ledger operations. All ledger writes go through this
service so that every posting is validated as balanced, recorded exactly
once per idempotency key, and written atomically.

Posting directions used by the engine (debit -> credit):
    PAYMENT          LIABILITY -> CASH
    DEPOSIT_HOLD     LIABILITY -> CASH
    DEPOSIT_RELEASE  CASH -> LIABILITY
    REFUND           CASH -> LIABILITY
    PLATFORM_FEE     REVENUE -> LIABILITY
    SERVICE_FEE      REVENUE -> LIABILITY
    OWNER_EARNING    RECEIVABLE(owner) -> LIABILITY
    DISPUTE          RECEIVABLE(owner) -> LIABILITY
    PAYOUT           CASH -> RECEIVABLE(owner)

Usage:
    from payments.ledger.services import ledger
    from payments.ledger.types import LedgerLeg

    posting = ledger.post(
        LedgerLeg.pair(booking.id, TransactionType.PAYMENT,
                       AccountType.LIABILITY, AccountType.CASH, 11500),
        idempotency_key=ledger.posting_key(booking.id, TransactionType.PAYMENT),
    )
"""

from __future__ import annotations

import hashlib
import logging
import uuid
from collections import defaultdict
from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction
from django.db.models import BigIntegerField, Case, F, Sum, Value, When
from django.db.models.functions import Coalesce
from django.utils import timezone

from .exceptions import IdempotencyConflict, UnbalancedPosting
from .models import (
    AccountType,
    EntrySide,
    EntryStatus,
    LedgerEntry,
    LedgerPosting,
)
from .types import LedgerLeg, Money

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from datetime import datetime, timedelta
    from typing import Any

logger = logging.getLogger(__name__)


def _value(choice: Any) -> Any:
    return getattr(choice, "value", choice)


# debit contributes +amount, credit -amount
SIGNED_AMOUNT = Case(
    When(side=EntrySide.DEBIT, then=F("amount_cents")),
    default=-F("amount_cents"),
    output_field=BigIntegerField(),
)


class LedgerService:
    """
    Service class for ledger operations.

    Key features:
    - Balanced postings only (per currency, single booking, single type)
    - Idempotency via unique keys plus a fingerprint of the legs
    - Savepoint-protected insert so a concurrent duplicate resolves to
      the stored posting instead of aborting the caller's transaction
    - Status moves PENDING -> SETTLED/FAILED/REVERSED; SETTLED is final

    All methods are static - no instance state is maintained.
    """

    # =========================================================================
    # Writes
    # =========================================================================

    @staticmethod
    def posting_key(booking_id: uuid.UUID, transaction_type: str, sequence: int | str = 1) -> str:
        """
        Build the conventional idempotency key for a booking posting.

        Example:
            ledger.posting_key(booking.id, TransactionType.REFUND, "cancel")
            # "3f1c...:refund:cancel"
        """
        return f"{booking_id}:{_value(transaction_type)}:{sequence}"

    @staticmethod
    def fingerprint(legs: Iterable[LedgerLeg]) -> str:
        """Order-independent hash of the legs' economic content."""
        normalized = sorted(
            "|".join(
                str(part)
                for part in (
                    leg.booking_id,
                    _value(leg.transaction_type),
                    _value(leg.account_type),
                    _value(leg.side),
                    leg.amount_cents,
                    leg.currency.lower(),
                    leg.owner_id or "",
                )
            )
            for leg in legs
        )
        return hashlib.sha256("\n".join(normalized).encode()).hexdigest()

    @staticmethod
    def validate_legs(legs: Sequence[LedgerLeg]) -> None:
        """
        Check that legs form a balanced posting.

        Raises:
            UnbalancedPosting: fewer than two legs, mixed bookings or
                transaction types, or a currency whose debits and credits
                differ
        """
        if len(legs) < 2:
            raise UnbalancedPosting(
                "A posting needs at least two legs",
                details={"leg_count": len(legs)},
            )

        booking_ids = {leg.booking_id for leg in legs}
        transaction_types = {_value(leg.transaction_type) for leg in legs}
        if len(booking_ids) > 1 or len(transaction_types) > 1:
            raise UnbalancedPosting(
                "All legs of a posting must share one booking and transaction type",
                details={
                    "booking_ids": sorted(str(b) for b in booking_ids),
                    "transaction_types": sorted(transaction_types),
                },
            )

        totals: dict[str, int] = defaultdict(int)
        for leg in legs:
            totals[leg.currency.lower()] += leg.signed_amount
        unbalanced = {currency: net for currency, net in totals.items() if net != 0}
        if unbalanced:
            raise UnbalancedPosting(
                "Posting legs do not sum to zero",
                details={"net_by_currency": unbalanced},
            )

    @staticmethod
    def post(
        legs: Sequence[LedgerLeg],
        idempotency_key: str,
        description: str | None = None,
        created_by: str | None = None,
        metadata: dict[str, Any] | None = None,
        reverses: LedgerPosting | None = None,
        entry_status: str = EntryStatus.PENDING,
    ) -> LedgerPosting:
        """
        Record a balanced posting exactly once.

        A repeated key with identical legs returns the stored posting
        without writing anything. A repeated key with different legs is a
        caller bug.

        Args:
            legs: Legs of the posting
            idempotency_key: Caller-generated unique key
            description: Optional description
            created_by: Optional identifier of who created this
            metadata: Optional JSON metadata
            reverses: Original posting when recording a reversal
            entry_status: Initial status of the legs

        Returns:
            The created or existing LedgerPosting

        Raises:
            UnbalancedPosting: If the legs are not a balanced group
            IdempotencyConflict: If the key was used for different legs
        """
        if not idempotency_key:
            raise UnbalancedPosting("idempotency_key is required")

        log_context = {
            "idempotency_key": idempotency_key,
            "leg_count": len(legs),
        }
        try:
            LedgerService.validate_legs(legs)
        except UnbalancedPosting as e:
            logger.error(
                f"Rejected unbalanced posting: {e.message}",
                extra={**log_context, **e.details},
            )
            raise

        fingerprint = LedgerService.fingerprint(legs)
        first = legs[0]

        with transaction.atomic():
            existing = LedgerPosting.objects.filter(idempotency_key=idempotency_key).first()
            if existing is not None:
                return LedgerService._resolve_duplicate(existing, fingerprint)

            try:
                # Savepoint: a concurrent insert of the same key must not
                # poison the caller's outer transaction.
                with transaction.atomic():
                    posting = LedgerPosting.objects.create(
                        booking_id=first.booking_id,
                        transaction_type=_value(first.transaction_type),
                        idempotency_key=idempotency_key,
                        fingerprint=fingerprint,
                        reverses=reverses,
                        description=description,
                        created_by=created_by,
                        metadata=metadata or {},
                    )
                    LedgerEntry.objects.bulk_create(
                        [
                            LedgerEntry(
                                posting=posting,
                                booking_id=leg.booking_id,
                                account_type=_value(leg.account_type),
                                side=_value(leg.side),
                                amount_cents=leg.amount_cents,
                                currency=leg.currency.lower(),
                                transaction_type=_value(leg.transaction_type),
                                status=_value(entry_status),
                                owner_id=leg.owner_id,
                                reversal_of_id=leg.reversal_of_id,
                            )
                            for leg in legs
                        ]
                    )
            except IntegrityError:
                existing = LedgerPosting.objects.get(idempotency_key=idempotency_key)
                return LedgerService._resolve_duplicate(existing, fingerprint)

        logger.info(
            "Ledger posting recorded",
            extra={
                **log_context,
                "posting_id": str(posting.id),
                "booking_id": str(posting.booking_id),
                "transaction_type": posting.transaction_type,
            },
        )
        return posting

    @staticmethod
    def _resolve_duplicate(existing: LedgerPosting, fingerprint: str) -> LedgerPosting:
        if existing.fingerprint != fingerprint:
            logger.error(
                "Idempotency key reused with different legs",
                extra={
                    "idempotency_key": existing.idempotency_key,
                    "posting_id": str(existing.id),
                },
            )
            raise IdempotencyConflict(existing.idempotency_key, existing.id)
        return existing

    @staticmethod
    def reverse(
        posting_id: uuid.UUID,
        idempotency_key: str,
        reason: str = "",
        created_by: str | None = None,
    ) -> LedgerPosting:
        """
        Offset a posting with mirror legs.

        The mirror legs are recorded with status REVERSED and point at the
        legs they offset. Original legs still PENDING become REVERSED;
        SETTLED originals are left untouched.

        Returns:
            The reversal posting (existing one on retry)
        """
        original = LedgerPosting.objects.get(id=posting_id)
        entries = list(original.entries.all())
        legs = [
            LedgerLeg(
                booking_id=entry.booking_id,
                transaction_type=entry.transaction_type,
                account_type=entry.account_type,
                side=entry.side,
                amount_cents=entry.amount_cents,
                currency=entry.currency,
                owner_id=entry.owner_id,
            ).flipped(reversal_of_id=entry.id)
            for entry in entries
        ]

        with transaction.atomic():
            reversal = LedgerService.post(
                legs,
                idempotency_key=idempotency_key,
                description=reason or f"Reversal of {original.idempotency_key}",
                created_by=created_by,
                reverses=original,
                entry_status=EntryStatus.REVERSED,
            )
            original.entries.filter(status=EntryStatus.PENDING).update(
                status=EntryStatus.REVERSED
            )
        return reversal

    @staticmethod
    def settle_entries(booking_id: uuid.UUID, exclude_postings: Iterable[uuid.UUID] = ()) -> int:
        """
        Mark the PENDING legs of a booking SETTLED. Returns the row count.

        Legs of ``exclude_postings`` stay PENDING; callers pass postings whose
        external confirmation has not arrived yet.
        """
        excluded = list(exclude_postings)
        count = (
            LedgerEntry.objects.filter(booking_id=booking_id, status=EntryStatus.PENDING)
            .exclude(posting_id__in=excluded)
            .update(status=EntryStatus.SETTLED, settled_at=timezone.now())
        )
        logger.info(
            "Ledger entries settled",
            extra={
                "booking_id": str(booking_id),
                "entry_count": count,
                "deferred_postings": [str(posting_id) for posting_id in excluded],
            },
        )
        return count

    @staticmethod
    def settle_posting(posting_id: uuid.UUID) -> int:
        """Mark the PENDING legs of one posting SETTLED."""
        return LedgerEntry.objects.filter(
            posting_id=posting_id, status=EntryStatus.PENDING
        ).update(status=EntryStatus.SETTLED, settled_at=timezone.now())

    @staticmethod
    def has_open_entries(booking_id: uuid.UUID, exclude_postings: Iterable[uuid.UUID] = ()) -> bool:
        """Whether any leg of the booking is still PENDING or FAILED."""
        return (
            LedgerEntry.objects.filter(
                booking_id=booking_id,
                status__in=[EntryStatus.PENDING, EntryStatus.FAILED],
            )
            .exclude(posting_id__in=list(exclude_postings))
            .exists()
        )

    @staticmethod
    def fail_entries(booking_id: uuid.UUID) -> int:
        """Mark every PENDING leg of a booking FAILED for operator attention."""
        count = LedgerEntry.objects.filter(
            booking_id=booking_id, status=EntryStatus.PENDING
        ).update(status=EntryStatus.FAILED)
        logger.error(
            "Ledger entries marked FAILED",
            extra={"booking_id": str(booking_id), "entry_count": count},
        )
        return count

    @staticmethod
    def reopen_failed_entries(booking_id: uuid.UUID) -> int:
        """Return FAILED legs to PENDING so settlement can be re-driven."""
        return LedgerEntry.objects.filter(
            booking_id=booking_id, status=EntryStatus.FAILED
        ).update(status=EntryStatus.PENDING)

    # =========================================================================
    # Queries
    # =========================================================================

    @staticmethod
    def _net(queryset) -> int:
        return queryset.aggregate(
            net=Coalesce(Sum(SIGNED_AMOUNT), Value(0), output_field=BigIntegerField())
        )["net"]

    @staticmethod
    def get_balance(
        booking_id: uuid.UUID,
        account_type: AccountType | str,
        currency: str = "usd",
    ) -> Money:
        """
        Running balance (debit minus credit) of one account for a booking.

        FAILED legs are excluded; they never moved money.
        """
        queryset = LedgerEntry.objects.filter(
            booking_id=booking_id,
            account_type=account_type,
            currency=currency.lower(),
        ).exclude(status=EntryStatus.FAILED)
        return Money(cents=LedgerService._net(queryset), currency=currency.lower())

    @staticmethod
    def get_booking_balances(booking_id: uuid.UUID, currency: str = "usd") -> dict[str, int]:
        """Balance per account type for a booking, in cents."""
        rows = (
            LedgerEntry.objects.filter(booking_id=booking_id, currency=currency.lower())
            .exclude(status=EntryStatus.FAILED)
            .values("account_type")
            .annotate(net=Sum(SIGNED_AMOUNT))
            .order_by("account_type")
        )
        return {row["account_type"]: row["net"] for row in rows}

    @staticmethod
    def get_booking_ledger(booking_id: uuid.UUID) -> list[LedgerEntry]:
        """Every leg recorded for a booking, oldest first (read-only audit view)."""
        return list(
            LedgerEntry.objects.filter(booking_id=booking_id)
            .select_related("posting")
            .order_by("created_at", "posting__created_at", "side")
        )

    @staticmethod
    def get_owner_balance(owner_id: uuid.UUID, currency: str = "usd") -> Money:
        """Unpaid earnings in an owner's receivable sub-ledger."""
        queryset = LedgerEntry.objects.filter(
            owner_id=owner_id,
            account_type=AccountType.RECEIVABLE,
            currency=currency.lower(),
        ).exclude(status=EntryStatus.FAILED)
        return Money(cents=LedgerService._net(queryset), currency=currency.lower())

    @staticmethod
    def get_platform_revenue(
        start: datetime | None = None,
        end: datetime | None = None,
        currency: str = "usd",
    ) -> Money:
        """Settled platform revenue (fees) recognised in a time window."""
        queryset = LedgerEntry.objects.filter(
            account_type=AccountType.REVENUE,
            status=EntryStatus.SETTLED,
            currency=currency.lower(),
        )
        if start is not None:
            queryset = queryset.filter(created_at__gte=start)
        if end is not None:
            queryset = queryset.filter(created_at__lt=end)
        return Money(cents=LedgerService._net(queryset), currency=currency.lower())

    @staticmethod
    def reconciliation_report(older_than: timedelta) -> list[LedgerEntry]:
        """
        All PENDING legs created more than ``older_than`` ago.

        Feeds the settlement sweep; grouped by booking via ``booking_id``.
        """
        cutoff = timezone.now() - older_than
        return list(
            LedgerEntry.objects.filter(
                status=EntryStatus.PENDING,
                created_at__lt=cutoff,
            ).order_by("booking_id", "created_at")
        )

    @staticmethod
    def find_unbalanced_postings() -> list[uuid.UUID]:
        """Posting ids whose legs do not net to zero for some currency."""
        rows = (
            LedgerEntry.objects.order_by()
            .values("posting_id", "currency")
            .annotate(net=Sum(SIGNED_AMOUNT))
            .exclude(net=0)
        )
        return sorted({row["posting_id"] for row in rows}, key=str)


# Singleton instance for convenience
# Usage: from payments.ledger.services import ledger
ledger = LedgerService()
