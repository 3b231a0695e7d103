"""Application services — use case orchestration."""

from middleman_escrow.services.confirmation_service import ConfirmationService, RedemptionResult
from middleman_escrow.services.escrow_service import EscrowService, TransitionOutcome
from middleman_escrow.services.settlement_service import SettlementService

__all__ = [
    "ConfirmationService",
    "EscrowService",
    "RedemptionResult",
    "SettlementService",
    "TransitionOutcome",
]
