"""Settlement Service — withdrawable balance and withdrawals for sellers.

The claim is a single conditional UPDATE over the seller's completed,
unwithdrawn requests. Whatever rows it returns are the rows this withdrawal
owns, so two concurrent withdrawals can never both count the same request.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from middleman_escrow.domain.enums import EscrowStatus, EventType
from middleman_escrow.domain.exceptions import NothingToWithdrawError
from middleman_escrow.infrastructure.database.orm_models import WithdrawRequest
from middleman_escrow.infrastructure.database.repositories import (
    EscrowRequestRepository,
    EventRepository,
    WithdrawRequestRepository,
)
from middleman_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from middleman_escrow.infrastructure.database.engine import Database

logger = get_logger(__name__)


class SettlementService:
    """Aggregates completed requests into withdrawals."""

    def __init__(self, database: Database) -> None:
        self._database = database

    async def get_withdrawable_amount(self, email: str) -> Decimal:
        """Sum of completed, unwithdrawn prices where `email` is the seller.

        Currencies are not converted; the sum is taken over raw prices.
        """
        async with self._database.transaction() as session:
            return await EscrowRequestRepository(session).withdrawable_total(email)

    async def withdraw(
        self,
        user_id: str,
        email: str,
        crypto_currency: str,
        wallet_address: str,
        amount: Decimal | None = None,
    ) -> WithdrawRequest:
        """Claim every withdrawable request of `email` into one WithdrawRequest.

        The recorded amount is always the claimed total. A differing `amount`
        from the caller is only logged.

        Raises:
            NothingToWithdrawError: If no request could be claimed.
        """
        async with self._database.transaction() as session:
            claimed = await EscrowRequestRepository(session).claim_for_withdrawal(email)
            if not claimed:
                raise NothingToWithdrawError(email)

            total = sum((Decimal(price) for _, price in claimed), Decimal("0"))
            if amount is not None and Decimal(amount) != total:
                logger.warning(
                    "settlement.amount_mismatch",
                    email=email,
                    requested=str(amount),
                    claimed=str(total),
                )

            withdrawal = await WithdrawRequestRepository(session).create(
                WithdrawRequest(
                    user_id=user_id,
                    email=email,
                    amount=total,
                    crypto_currency=crypto_currency,
                    wallet_address=wallet_address,
                )
            )
            request_ids = [request_id for request_id, _ in claimed]
            await EscrowRequestRepository(session).link_withdrawal(request_ids, withdrawal.id)

            events = EventRepository(session)
            for request_id in request_ids:
                await events.record(
                    request_id=request_id,
                    event_type=EventType.FUNDS_WITHDRAWN,
                    old_status=EscrowStatus.COMPLETED,
                    new_status=EscrowStatus.WITHDRAWN,
                    actor=email,
                    metadata={"withdraw_request_id": str(withdrawal.id)},
                )

        logger.info(
            "settlement.withdrawn",
            email=email,
            withdraw_request_id=str(withdrawal.id),
            amount=str(total),
            request_count=len(request_ids),
        )
        return withdrawal

    async def get_withdrawals(self, email: str) -> list[WithdrawRequest]:
        async with self._database.transaction() as session:
            return await WithdrawRequestRepository(session).get_by_email(email)
