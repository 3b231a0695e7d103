"""Middleman Request State Machine Guard.

Uses python-statemachine to define the legal status transitions at the domain
level. The storage layer never hard-codes a source status: it asks this module
which statuses an event may fire from and turns the answer into the WHERE
clause of a single conditional UPDATE.

Transition table:
    pending    -> accepted     (seller_accepts)
    pending    -> incompleted  (stale_request_expired)
    pending    -> confirmed    (both_parties_confirmed)
    accepted   -> confirmed    (both_parties_confirmed)
    confirmed  -> completed    (transaction_completed)
    completed  -> withdrawn    (funds_withdrawn)

Guards that depend on row data (is_paid, age, both confirmation flags,
withdrawn) are enforced by the conditional UPDATE itself.
"""

from __future__ import annotations

from functools import lru_cache

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from middleman_escrow.domain.enums import EscrowStatus, StatusEvent


class EscrowStateMachine(StateMachine):
    """State machine that guards middleman request lifecycle transitions.

    Usage:
        sm = EscrowStateMachine(current_status="pending")
        sm.seller_accepts()  # transitions to accepted
        sm.status            # "accepted"
    """

    # --- States ---
    PENDING = State("Pending", value=EscrowStatus.PENDING.value, initial=True)
    ACCEPTED = State("Accepted", value=EscrowStatus.ACCEPTED.value)
    CONFIRMED = State("Confirmed", value=EscrowStatus.CONFIRMED.value)
    COMPLETED = State("Completed", value=EscrowStatus.COMPLETED.value)
    INCOMPLETED = State("Incompleted", value=EscrowStatus.INCOMPLETED.value, final=True)
    WITHDRAWN = State("Withdrawn", value=EscrowStatus.WITHDRAWN.value, final=True)

    # --- Events / Transitions ---
    seller_accepts = PENDING.to(ACCEPTED)
    stale_request_expired = PENDING.to(INCOMPLETED)
    both_parties_confirmed = PENDING.to(CONFIRMED) | ACCEPTED.to(CONFIRMED)
    transaction_completed = CONFIRMED.to(COMPLETED)
    funds_withdrawn = COMPLETED.to(WITHDRAWN)

    def __init__(self, current_status: str = EscrowStatus.PENDING.value) -> None:
        """Initialize the state machine at a given status.

        Args:
            current_status: The current EscrowStatus value (e.g., "pending").
        """
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(
                f"Unknown status '{current_status}'. Valid states: {valid}"
            )
        super().__init__(start_value=str(current_status))

    @property
    def status(self) -> str:
        """Return the current state value as a string (matches EscrowStatus enum)."""
        return str(self.current_state_value)

    def get_allowed_events(self) -> list[str]:
        """Return the event names that can fire from the current state."""
        return [event.value for event in StatusEvent if can_fire(self.status, event)]


def can_fire(current_status: str, event_name: str) -> bool:
    """Return True if `event_name` is a legal transition out of `current_status`."""
    sm = EscrowStateMachine(current_status=current_status)
    try:
        getattr(sm, event_name)()
    except TransitionNotAllowed:
        return False
    return True


@lru_cache(maxsize=None)
def source_statuses(event_name: str) -> frozenset[EscrowStatus]:
    """Statuses from which `event_name` may fire."""
    return frozenset(
        status for status in EscrowStatus if can_fire(status.value, event_name)
    )


@lru_cache(maxsize=None)
def target_status(event_name: str) -> EscrowStatus:
    """The status a request lands in after `event_name` fires."""
    sources = source_statuses(event_name)
    if not sources:
        raise ValueError(f"Event '{event_name}' has no source states")
    targets = {
        EscrowStatus(validate_transition(status.value, event_name)) for status in sources
    }
    if len(targets) != 1:
        raise ValueError(f"Event '{event_name}' has ambiguous targets: {sorted(targets)}")
    return targets.pop()


def validate_transition(current_status: str, event_name: str) -> str:
    """Validate a state transition and return the new status.

    Creates a temporary state machine, fires the named event, and returns
    the resulting status string.

    Raises:
        TransitionNotAllowed: If the transition is illegal.
        ValueError: If the status or event name is invalid.
    """
    sm = EscrowStateMachine(current_status=current_status)

    if event_name not in {event.value for event in StatusEvent}:
        raise ValueError(
            f"Unknown event '{event_name}'. "
            f"Allowed events from {current_status}: {sm.get_allowed_events()}"
        )

    getattr(sm, event_name)()
    return sm.status
