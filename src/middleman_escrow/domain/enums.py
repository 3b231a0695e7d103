"""Domain enumerations for the Middleman Escrow coordinator.

These enums define the canonical states and types used throughout the system.
They are framework-agnostic (no SQLAlchemy, no FastAPI imports).
"""

from __future__ import annotations

import enum


class EscrowStatus(enum.StrEnum):
    """Lifecycle states of a middleman request.

    Legal edges live in domain/state_machine.py.
    """

    PENDING = "pending"
    ACCEPTED = "accepted"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    INCOMPLETED = "incompleted"
    WITHDRAWN = "withdrawn"


class PartyRole(enum.StrEnum):
    """The two sides of a middleman request."""

    BUYER = "buyer"
    SELLER = "seller"

    @property
    def other(self) -> PartyRole:
        return PartyRole.SELLER if self is PartyRole.BUYER else PartyRole.BUYER


class StatusEvent(enum.StrEnum):
    """Names of the state machine events that move a request between statuses."""

    SELLER_ACCEPTS = "seller_accepts"
    STALE_REQUEST_EXPIRED = "stale_request_expired"
    BOTH_PARTIES_CONFIRMED = "both_parties_confirmed"
    TRANSACTION_COMPLETED = "transaction_completed"
    FUNDS_WITHDRAWN = "funds_withdrawn"


class TransitionResult(enum.StrEnum):
    """Outcome of a transition request.

    A transition whose precondition is false never raises; the caller gets
    ALREADY_APPLIED when the request already sits in the target status and
    REJECTED otherwise.
    """

    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    REJECTED = "rejected"


class EventType(enum.StrEnum):
    """Types of audit events recorded in the escrow_events table."""

    REQUEST_CREATED = "REQUEST_CREATED"
    CODE_ISSUED = "CODE_ISSUED"
    CODE_REDEEMED = "CODE_REDEEMED"
    REQUEST_ACCEPTED = "REQUEST_ACCEPTED"
    REQUEST_CONFIRMED = "REQUEST_CONFIRMED"
    PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED"
    REQUEST_COMPLETED = "REQUEST_COMPLETED"
    REQUEST_EXPIRED = "REQUEST_EXPIRED"
    FUNDS_WITHDRAWN = "FUNDS_WITHDRAWN"
