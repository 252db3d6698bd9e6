"""
Permission classes for the disputes API.

- IsDisputeParty: caller is the initiator or the defendant, or staff
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework import permissions

from bookings.permissions import is_staff, user_uuid

if TYPE_CHECKING:
    from rest_framework.request import Request
    from rest_framework.views import APIView

    from disputes.models import Dispute


class IsDisputeParty(permissions.BasePermission):
    """Allows access to the two parties of a dispute and to staff."""

    message = "You are not a party to this dispute."

    def has_object_permission(self, request: Request, view: APIView, obj: Dispute) -> bool:
        if not request.user.is_authenticated:
            return False
        if is_staff(request.user):
            return True
        return obj.is_party(user_uuid(request.user))


class IsStaff(permissions.BasePermission):
    """Platform admins, identified by the token's ``is_staff`` claim."""

    message = "Only staff can perform this action."

    def has_permission(self, request: Request, view: APIView) -> bool:
        return bool(request.user and request.user.is_authenticated and is_staff(request.user))
