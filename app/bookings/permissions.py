"""
Permission classes and actor resolution for the bookings API.

Users are not stored here: requests carry a JWT whose ``user_id`` claim is
the caller's id and whose ``is_staff`` claim marks platform admins
(simplejwt's stateless TokenUser).

- IsBookingParty: caller is the booking's renter or owner, or staff
- actor_for: map the caller onto the Actor a transition is requested by
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from rest_framework import permissions

from bookings.exceptions import TransitionNotPermitted
from bookings.states import Actor, ActorRole

if TYPE_CHECKING:
    from rest_framework.request import Request
    from rest_framework.views import APIView

    from bookings.models import Booking


def user_uuid(user) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(user.id))
    except (TypeError, ValueError, AttributeError):
        return None


def is_staff(user) -> bool:
    return bool(getattr(user, "is_staff", False))


class IsBookingParty(permissions.BasePermission):
    """Allows access to the booking's renter, its owner and staff."""

    message = "You are not a party to this booking."

    def has_object_permission(self, request: Request, view: APIView, obj: Booking) -> bool:
        if not request.user.is_authenticated:
            return False
        if is_staff(request.user):
            return True
        return obj.party_role(user_uuid(request.user)) is not None


def actor_for(request: Request, booking: Booking) -> Actor:
    """
    Actor for the authenticated caller on ``booking``.

    Raises:
        TransitionNotPermitted: Caller is neither a party nor staff
    """
    party_id = user_uuid(request.user)
    if is_staff(request.user):
        return Actor.admin(party_id)
    role = booking.party_role(party_id)
    if role == ActorRole.RENTER:
        return Actor.renter(party_id)
    if role == ActorRole.OWNER:
        return Actor.owner(party_id)
    raise TransitionNotPermitted(
        "You are not a party to this booking",
        details={"booking_id": str(booking.id)},
    )
