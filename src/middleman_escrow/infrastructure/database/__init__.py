"""Database infrastructure — engine, ORM models, and repositories."""

from middleman_escrow.infrastructure.database.engine import Database
from middleman_escrow.infrastructure.database.orm_models import (
    Base,
    ConfirmationCode,
    EscrowEvent,
    EscrowRequest,
    WithdrawRequest,
)
from middleman_escrow.infrastructure.database.repositories import (
    ConfirmationCodeRepository,
    EscrowRequestRepository,
    EventRepository,
    WithdrawRequestRepository,
)

__all__ = [
    "Base",
    "ConfirmationCode",
    "EscrowEvent",
    "EscrowRequest",
    "WithdrawRequest",
    "ConfirmationCodeRepository",
    "EscrowRequestRepository",
    "EventRepository",
    "WithdrawRequestRepository",
    "Database",
]
