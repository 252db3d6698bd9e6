"""
Booking lifecycle states, actions and the transition table.

``TRANSITIONS`` is the single source of truth for which action moves a
booking from which states to which state, and who may request it. The
state machine (bookings.services.BookingStateMachine), the timeout
scheduler and the API all read it; adding a state or an edge means
touching this module only.

Lifecycle:

    DRAFT ─submit─> PENDING_OWNER_APPROVAL ─approve─> PENDING_PAYMENT
      └──submit (instant book)────────────────────────────┘
    PENDING_PAYMENT ─complete_payment─> CONFIRMED ─activate─> ACTIVE
    ACTIVE ─start_rental─> IN_PROGRESS ─request_return─> AWAITING_RETURN_INSPECTION
    AWAITING_RETURN_INSPECTION ─approve_return─> COMPLETED ─settle─> SETTLED
    AWAITING_RETURN_INSPECTION / COMPLETED ─initiate_dispute─> DISPUTED
    DISPUTED ═resolve_dispute═> SETTLED | ═refund═> REFUNDED   (forced only)
    PENDING_* / CONFIRMED / ACTIVE ─cancel/reject/expire/fail─> CANCELLED

Usage:
    from bookings.states import BookingAction, BookingStatus, can_transition

    if can_transition(booking.status, BookingAction.CANCEL):
        ...
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from django.db import models


class BookingStatus(models.TextChoices):
    """Booking lifecycle states."""

    DRAFT = "draft", "Draft"
    PENDING_OWNER_APPROVAL = "pending_owner_approval", "Pending Owner Approval"
    PENDING_PAYMENT = "pending_payment", "Pending Payment"
    CONFIRMED = "confirmed", "Confirmed"
    ACTIVE = "active", "Active"
    IN_PROGRESS = "in_progress", "In Progress"
    AWAITING_RETURN_INSPECTION = "awaiting_return_inspection", "Awaiting Return Inspection"
    COMPLETED = "completed", "Completed"
    SETTLED = "settled", "Settled"
    CANCELLED = "cancelled", "Cancelled"
    DISPUTED = "disputed", "Disputed"
    REFUNDED = "refunded", "Refunded"


TERMINAL_STATUSES = frozenset({BookingStatus.SETTLED, BookingStatus.CANCELLED, BookingStatus.REFUNDED})


class BookingAction(models.TextChoices):
    """Actions that move a booking along an edge of ``TRANSITIONS``."""

    SUBMIT_REQUEST = "submit_request", "Submit Request"
    OWNER_APPROVE = "owner_approve", "Owner Approve"
    OWNER_REJECT = "owner_reject", "Owner Reject"
    COMPLETE_PAYMENT = "complete_payment", "Complete Payment"
    FAIL_PAYMENT = "fail_payment", "Fail Payment"
    EXPIRE = "expire", "Expire"
    ACTIVATE = "activate", "Activate"
    START_RENTAL = "start_rental", "Start Rental"
    REQUEST_RETURN = "request_return", "Request Return"
    APPROVE_RETURN = "approve_return", "Approve Return"
    INITIATE_DISPUTE = "initiate_dispute", "Initiate Dispute"
    SETTLE = "settle", "Settle"
    CANCEL = "cancel", "Cancel"
    RESOLVE_DISPUTE = "resolve_dispute", "Resolve Dispute"
    REFUND = "refund", "Refund"


# Actions whose side effect unwinds money (refund, hold release, void).
CANCELLING_ACTIONS = frozenset(
    {
        BookingAction.CANCEL,
        BookingAction.OWNER_REJECT,
        BookingAction.EXPIRE,
        BookingAction.FAIL_PAYMENT,
    }
)


class BookingMode(models.TextChoices):
    INSTANT = "instant", "Instant Book"
    REQUEST = "request", "Request to Book"


class ActorRole(models.TextChoices):
    RENTER = "renter", "Renter"
    OWNER = "owner", "Owner"
    ADMIN = "admin", "Admin"
    SYSTEM = "system", "System"


@dataclass(frozen=True)
class Actor:
    """
    Who requested a transition.

    RENTER and OWNER actors carry the party id, which must match the
    booking's renter/owner id. SYSTEM actors (timeouts, webhooks,
    settlement) carry a name instead.
    """

    role: str
    party_id: uuid.UUID | None = None
    name: str = ""

    @classmethod
    def system(cls, name: str = "system") -> Actor:
        return cls(role=ActorRole.SYSTEM, name=name)

    @classmethod
    def renter(cls, party_id: uuid.UUID) -> Actor:
        return cls(role=ActorRole.RENTER, party_id=party_id)

    @classmethod
    def owner(cls, party_id: uuid.UUID) -> Actor:
        return cls(role=ActorRole.OWNER, party_id=party_id)

    @classmethod
    def admin(cls, party_id: uuid.UUID | None = None) -> Actor:
        return cls(role=ActorRole.ADMIN, party_id=party_id)

    @property
    def label(self) -> str:
        """Audit label stored on history rows, e.g. ``renter:<uuid>``."""
        suffix = str(self.party_id) if self.party_id else self.name
        return f"{self.role}:{suffix}" if suffix else str(self.role)


@dataclass(frozen=True)
class Transition:
    """
    One row of the transition table.

    Attributes:
        sources: States the action may be applied in
        target: Resulting state
        instant_target: Resulting state for instant-book bookings, if different
        roles: Actor roles allowed to request the action
        forced_only: Only reachable through ``force_transition`` (dispute workflow)
    """

    sources: frozenset[str]
    target: str
    instant_target: str | None = None
    roles: frozenset[str] = field(default_factory=frozenset)
    forced_only: bool = False

    def target_for(self, booking_mode: str) -> str:
        if self.instant_target and booking_mode == BookingMode.INSTANT:
            return self.instant_target
        return self.target

    @property
    def targets(self) -> frozenset[str]:
        return frozenset(t for t in (self.target, self.instant_target) if t)


def _edge(sources: Iterable[str], target: str, roles: Iterable[str] = (), **kwargs) -> Transition:
    return Transition(sources=frozenset(sources), target=target, roles=frozenset(roles), **kwargs)


S = BookingStatus
R = ActorRole

TRANSITIONS: dict[str, Transition] = {
    BookingAction.SUBMIT_REQUEST: _edge(
        [S.DRAFT],
        S.PENDING_OWNER_APPROVAL,
        instant_target=S.PENDING_PAYMENT,
        roles=[R.RENTER, R.SYSTEM, R.ADMIN],
    ),
    BookingAction.OWNER_APPROVE: _edge([S.PENDING_OWNER_APPROVAL], S.PENDING_PAYMENT, roles=[R.OWNER, R.ADMIN]),
    BookingAction.OWNER_REJECT: _edge([S.PENDING_OWNER_APPROVAL], S.CANCELLED, roles=[R.OWNER, R.ADMIN]),
    BookingAction.COMPLETE_PAYMENT: _edge([S.PENDING_PAYMENT], S.CONFIRMED, roles=[R.RENTER, R.SYSTEM]),
    BookingAction.FAIL_PAYMENT: _edge([S.PENDING_PAYMENT], S.CANCELLED, roles=[R.SYSTEM]),
    BookingAction.EXPIRE: _edge([S.PENDING_OWNER_APPROVAL, S.PENDING_PAYMENT], S.CANCELLED, roles=[R.SYSTEM]),
    BookingAction.ACTIVATE: _edge([S.CONFIRMED], S.ACTIVE, roles=[R.SYSTEM, R.ADMIN]),
    BookingAction.START_RENTAL: _edge([S.ACTIVE], S.IN_PROGRESS, roles=[R.RENTER, R.OWNER, R.ADMIN]),
    BookingAction.REQUEST_RETURN: _edge(
        [S.IN_PROGRESS],
        S.AWAITING_RETURN_INSPECTION,
        roles=[R.RENTER, R.OWNER, R.SYSTEM, R.ADMIN],
    ),
    BookingAction.APPROVE_RETURN: _edge(
        [S.AWAITING_RETURN_INSPECTION], S.COMPLETED, roles=[R.OWNER, R.SYSTEM, R.ADMIN]
    ),
    BookingAction.INITIATE_DISPUTE: _edge(
        [S.AWAITING_RETURN_INSPECTION, S.COMPLETED], S.DISPUTED, roles=[R.SYSTEM]
    ),
    BookingAction.SETTLE: _edge([S.COMPLETED], S.SETTLED, roles=[R.SYSTEM]),
    BookingAction.CANCEL: _edge(
        [S.PENDING_OWNER_APPROVAL, S.PENDING_PAYMENT, S.CONFIRMED, S.ACTIVE],
        S.CANCELLED,
        roles=[R.RENTER, R.OWNER, R.ADMIN],
    ),
    BookingAction.RESOLVE_DISPUTE: _edge([S.DISPUTED], S.SETTLED, forced_only=True),
    BookingAction.REFUND: _edge([S.DISPUTED], S.REFUNDED, forced_only=True),
}

del S, R

EDGES: frozenset[tuple[str, str]] = frozenset(
    (source, target)
    for rule in TRANSITIONS.values()
    for source in rule.sources
    for target in rule.targets
)


# =============================================================================
# Queries
# =============================================================================


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def can_transition(status: str, action: str, role: str | None = None) -> bool:
    """Whether ``action`` is an edge out of ``status`` (and allowed for ``role``, if given)."""
    rule = TRANSITIONS.get(action)
    if rule is None or status not in rule.sources:
        return False
    if role is None:
        return True
    return not rule.forced_only and role in rule.roles


def available_actions(status: str, role: str | None = None) -> list[str]:
    """Actions that can be requested from ``status``, in table order."""
    return [
        str(action)
        for action, rule in TRANSITIONS.items()
        if status in rule.sources and (role is None or (not rule.forced_only and role in rule.roles))
    ]


def is_valid_walk(steps: Sequence[tuple[str, str]], require_terminal: bool = False) -> bool:
    """
    Check that ``(from_status, to_status)`` steps form a walk over the table.

    The walk must start at DRAFT and each step must start where the
    previous one ended. With ``require_terminal`` the last step must end in
    a terminal state.
    """
    current = BookingStatus.DRAFT
    for from_status, to_status in steps:
        if from_status != current or (from_status, to_status) not in EDGES:
            return False
        current = to_status
    if require_terminal:
        return bool(steps) and is_terminal(current)
    return True
