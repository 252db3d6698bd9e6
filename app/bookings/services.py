"""
Booking services.

BookingStateMachine: the only code path that changes ``Booking.status``.
BookingService: booking creation and read-only views (ledger, history).

Every transition is one unit of work:

    lock row (+ optional version check)
      -> validate edge and actor against TRANSITIONS
      -> guard
      -> side effects (refunds, hold release, ledger legs)
      -> new status + BookingStateHistory row
      -> on commit: BookingEvent

A failure anywhere rolls everything back; side-effect failures surface as
TransitionFailed carrying the cause.

Usage:
    from bookings.services import BookingStateMachine
    from bookings.states import Actor, BookingAction

    booking = BookingStateMachine.transition(
        booking_id, BookingAction.CANCEL, Actor.renter(renter_id), reason="Plans changed"
    )
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from bookings.exceptions import (
    BookingError,
    BookingNotFound,
    BookingValidationError,
    InvalidTransition,
    TransitionFailed,
    TransitionNotPermitted,
)
from bookings.models import Booking, BookingStateHistory, CancellationPolicy
from bookings.pricing import compute_price
from bookings.side_effects import GUARDS, SIDE_EFFECTS
from bookings.states import (
    TRANSITIONS,
    Actor,
    ActorRole,
    BookingAction,
    BookingMode,
    Transition,
)
from core.services import BaseService
from payments.ledger import LedgerEntry, LedgerService
from payments.locks import check_version


# =============================================================================
# State Machine
# =============================================================================


class BookingStateMachine(BaseService):
    """Applies TRANSITIONS edges to bookings, one booking at a time."""

    @staticmethod
    def _resolve(action: str) -> BookingAction:
        try:
            return BookingAction(action)
        except ValueError:
            raise BookingValidationError(
                f"Unknown booking action {action!r}",
                error_code="UNKNOWN_ACTION",
                details={"action": str(action)},
            ) from None

    @staticmethod
    def _lock(booking_id: uuid.UUID, expected_version: int | None = None) -> Booking:
        if expected_version is not None:
            return check_version(Booking, booking_id, expected_version)
        booking = Booking.objects.select_for_update().filter(pk=booking_id).first()
        if booking is None:
            raise BookingNotFound(
                f"Booking {booking_id} not found",
                details={"booking_id": str(booking_id)},
            )
        return booking

    @staticmethod
    def _check_actor(booking: Booking, action: str, rule: Transition, actor: Actor) -> None:
        if rule.forced_only:
            raise TransitionNotPermitted(
                f"{action} is only applied by dispute resolution",
                details={"action": str(action)},
            )
        if actor.role not in rule.roles:
            raise TransitionNotPermitted(
                f"A {actor.role} cannot {action} a booking",
                details={"action": str(action), "role": str(actor.role)},
            )
        if actor.role in (ActorRole.RENTER, ActorRole.OWNER) and booking.party_role(actor.party_id) != actor.role:
            raise TransitionNotPermitted(
                f"Actor is not the {actor.role} of this booking",
                details={"action": str(action), "role": str(actor.role)},
            )

    @classmethod
    def check(cls, booking: Booking, action: str, actor: Actor) -> Transition:
        """
        Validate ``action`` for ``actor`` without changing anything.

        Raises:
            InvalidTransition: Not an edge out of the current state
            TransitionNotPermitted: Actor may not request it
        """
        action = cls._resolve(action)
        rule = TRANSITIONS[action]
        if booking.status not in rule.sources:
            raise InvalidTransition(booking.status, action)
        cls._check_actor(booking, action, rule, actor)
        return rule

    @classmethod
    def transition(
        cls,
        booking_id: uuid.UUID,
        action: str,
        actor: Actor,
        reason: str = "",
        expected_version: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> Booking:
        """
        Apply ``action`` to a booking on behalf of ``actor``.

        Args:
            booking_id: Booking to transition
            action: BookingAction value
            actor: Who requests the transition
            reason: Free-text reason stored on the history row
            expected_version: Reject with StaleRecordError if the booking moved on
            context: Extra input for side effects (e.g. the captured payment)

        Returns:
            The booking in its new state

        Raises:
            InvalidTransition: Not an edge out of the current state
            TransitionNotPermitted: Actor may not request the action
            StaleRecordError: ``expected_version`` does not match
            TransitionFailed: A side effect failed; nothing was applied
        """
        return cls._apply(booking_id, cls._resolve(action), actor, reason, expected_version, context or {}, forced=False)

    @classmethod
    def force_transition(
        cls,
        booking_id: uuid.UUID,
        action: str,
        reason: str = "",
        resolved_by: uuid.UUID | None = None,
        context: dict[str, Any] | None = None,
    ) -> Booking:
        """
        Apply a forced-only edge (DISPUTED -> SETTLED / REFUNDED).

        Only the dispute workflow calls this; role checks are skipped but
        the edge must still exist in TRANSITIONS.
        """
        action = cls._resolve(action)
        if not TRANSITIONS[action].forced_only:
            raise TransitionNotPermitted(
                f"{action} cannot be forced",
                details={"action": str(action)},
            )
        actor = Actor.admin(resolved_by) if resolved_by else Actor.system("dispute_resolution")
        return cls._apply(booking_id, action, actor, reason, None, context or {}, forced=True)

    @classmethod
    def _apply(
        cls,
        booking_id: uuid.UUID,
        action: BookingAction,
        actor: Actor,
        reason: str,
        expected_version: int | None,
        context: dict[str, Any],
        forced: bool,
    ) -> Booking:
        logger = cls.get_logger()
        log_context = {"booking_id": str(booking_id), "action": str(action), "actor": actor.label}

        with cls.atomic():
            booking = cls._lock(booking_id, expected_version)
            rule = TRANSITIONS[action]
            if booking.status not in rule.sources:
                logger.info(
                    f"Rejected {action} from {booking.status}",
                    extra={**log_context, "status": booking.status},
                )
                raise InvalidTransition(booking.status, action)
            if not forced:
                cls._check_actor(booking, action, rule, actor)

            guard = GUARDS.get(action)
            if guard is not None:
                guard(booking, action, actor, reason, context)

            from_status = booking.status
            target = rule.target_for(booking.booking_mode)

            effect = SIDE_EFFECTS.get(action)
            if effect is not None:
                try:
                    effect(booking, action, actor, reason, context)
                except Exception as e:
                    logger.error(
                        f"Side effect of {action} failed: {e}",
                        extra={**log_context, "error_type": e.__class__.__name__},
                        exc_info=not isinstance(e, BookingError),
                    )
                    raise TransitionFailed(action, e) from e

            booking.advance(action=str(action), target=target, actor=actor.label, reason=reason)
            booking.save()
            BookingStateHistory.objects.create(
                booking=booking,
                sequence=BookingStateHistory.objects.filter(booking=booking).count() + 1,
                action=action,
                from_status=from_status,
                to_status=target,
                reason=reason,
                actor_role=actor.role,
                actor=actor.label,
                metadata={"forced": forced} if forced else {},
            )

        logger.info(
            f"Booking {from_status} -> {target}",
            extra={**log_context, "from_status": from_status, "to_status": target, "version": booking.version},
        )
        return booking


# =============================================================================
# Booking Service
# =============================================================================


class BookingService(BaseService):
    """Booking creation and read-only queries."""

    @classmethod
    def create_booking(
        cls,
        listing_id: uuid.UUID,
        renter_id: uuid.UUID,
        owner_id: uuid.UUID,
        start_at: datetime,
        end_at: datetime,
        base_price_cents: int,
        guest_count: int = 1,
        tax_cents: int = 0,
        deposit_cents: int = 0,
        discount_cents: int = 0,
        service_fee_cents: int | None = None,
        booking_mode: str = BookingMode.REQUEST,
        cancellation_policy: str = CancellationPolicy.MODERATE,
        currency: str | None = None,
        owner_payout_account: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> Booking:
        """
        Create a DRAFT booking with a validated price breakdown.

        Raises:
            BookingValidationError: Bad dates, guests, parties or amounts
        """
        from django.conf import settings

        errors: dict[str, str] = {}
        if end_at <= start_at:
            errors["end_at"] = "must be after start_at"
        if guest_count < 1:
            errors["guest_count"] = "must be at least 1"
        if str(renter_id) == str(owner_id):
            errors["renter_id"] = "renter cannot book their own listing"
        if errors:
            raise BookingValidationError("Invalid booking request", details=errors)

        breakdown = compute_price(
            base_price_cents=base_price_cents,
            tax_cents=tax_cents,
            deposit_cents=deposit_cents,
            discount_cents=discount_cents,
            service_fee_cents=service_fee_cents,
        )

        booking = Booking.objects.create(
            listing_id=listing_id,
            renter_id=renter_id,
            owner_id=owner_id,
            start_at=start_at,
            end_at=end_at,
            guest_count=guest_count,
            booking_mode=booking_mode,
            cancellation_policy=cancellation_policy,
            currency=(currency or settings.DEFAULT_CURRENCY).lower(),
            owner_payout_account=owner_payout_account,
            metadata=metadata or {},
            **breakdown.as_model_fields(),
        )
        cls.get_logger().info(
            "Booking created",
            extra={
                "booking_id": str(booking.id),
                "listing_id": str(listing_id),
                "total_cents": booking.total_cents,
                "booking_mode": booking_mode,
            },
        )
        return booking

    @staticmethod
    def get_booking(booking_id: uuid.UUID) -> Booking:
        try:
            return Booking.objects.get(pk=booking_id)
        except Booking.DoesNotExist:
            raise BookingNotFound(
                f"Booking {booking_id} not found",
                details={"booking_id": str(booking_id)},
            ) from None

    @classmethod
    def get_ledger(cls, booking_id: uuid.UUID) -> list[LedgerEntry]:
        """Read-only audit view of every ledger leg of the booking."""
        cls.get_booking(booking_id)
        return LedgerService.get_booking_ledger(booking_id)

    @classmethod
    def get_history(cls, booking_id: uuid.UUID) -> list[BookingStateHistory]:
        booking = cls.get_booking(booking_id)
        return list(booking.history.order_by("sequence"))
