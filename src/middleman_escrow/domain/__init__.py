"""Domain layer — pure business logic with zero framework dependencies."""

from middleman_escrow.domain.enums import (
    EscrowStatus,
    EventType,
    PartyRole,
    StatusEvent,
    TransitionResult,
)
from middleman_escrow.domain.exceptions import (
    CodeAlreadyUsedError,
    CodeExpiredError,
    CodeMismatchError,
    CodeNotFoundError,
    EscrowError,
    NothingToWithdrawError,
    RequestNotFoundError,
    StorageUnavailableError,
    UnauthorizedPartyError,
)
from middleman_escrow.domain.notifier_protocol import EmailNotifier, EscrowNotice
from middleman_escrow.domain.state_machine import (
    EscrowStateMachine,
    source_statuses,
    target_status,
    validate_transition,
)

__all__ = [
    "EscrowStatus",
    "EventType",
    "PartyRole",
    "StatusEvent",
    "TransitionResult",
    "CodeAlreadyUsedError",
    "CodeExpiredError",
    "CodeMismatchError",
    "CodeNotFoundError",
    "EscrowError",
    "NothingToWithdrawError",
    "RequestNotFoundError",
    "StorageUnavailableError",
    "UnauthorizedPartyError",
    "EmailNotifier",
    "EscrowNotice",
    "EscrowStateMachine",
    "source_statuses",
    "target_status",
    "validate_transition",
]
