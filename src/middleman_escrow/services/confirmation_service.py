"""Confirmation Service — issues and redeems per-party confirmation codes.

Coordinates between:
    - Code generator (domain/confirmation.py)
    - Confirmation code ledger (ConfirmationCodeRepository)
    - Middleman request flags and the both-confirmed transition
    - Audit event log

Redemption consumes the code, sets the party's flag and, if the other party
has already confirmed, moves the request to confirmed, all in one transaction.
Either party's redemption can be the one that flips the status; the flip is a
conditional UPDATE, so exactly one redemption ever reports it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from middleman_escrow.config import Settings, get_settings
from middleman_escrow.domain.confirmation import generate_code, is_expired
from middleman_escrow.domain.enums import EscrowStatus, EventType, PartyRole, StatusEvent
from middleman_escrow.domain.exceptions import (
    CodeAlreadyUsedError,
    CodeExpiredError,
    CodeMismatchError,
    CodeNotFoundError,
    RequestNotFoundError,
    UnauthorizedPartyError,
)
from middleman_escrow.infrastructure.database.orm_models import EscrowRequest
from middleman_escrow.infrastructure.database.repositories import (
    ConfirmationCodeRepository,
    EscrowRequestRepository,
    EventRepository,
)
from middleman_escrow.logging_config import get_logger
from middleman_escrow.services.notices import build_notice, dispatch

if TYPE_CHECKING:
    import uuid
    from collections.abc import Callable

    from sqlalchemy.ext.asyncio import AsyncSession

    from middleman_escrow.domain.notifier_protocol import EmailNotifier
    from middleman_escrow.infrastructure.database.engine import Database

logger = get_logger(__name__)


@dataclass(frozen=True)
class RedemptionResult:
    """What a successful redemption did to the request."""

    request_id: uuid.UUID
    role: PartyRole
    buyer_confirmed: bool
    seller_confirmed: bool
    status: EscrowStatus
    status_changed: bool


class ConfirmationService:
    """Manages the confirmation code ledger for middleman requests."""

    def __init__(
        self,
        database: Database,
        notifier: EmailNotifier,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._database = database
        self._notifier = notifier
        self._settings = settings or get_settings()
        self._clock = clock or (lambda: datetime.now(UTC))

    # ------------------------------------------------------------------
    # Issuance
    # ------------------------------------------------------------------

    async def issue(self, request_id: uuid.UUID, email: str, role: PartyRole) -> str:
        """Issue (or reissue) the code for one party and email it to them.

        A reissue overwrites the previous unconsumed code, so the old one can
        never succeed afterwards.
        """
        async with self._database.transaction() as session:
            request = await EscrowRequestRepository(session).get_by_id(request_id)
            if request is None:
                raise RequestNotFoundError(str(request_id))
            self._require_party(request, email, role)
            code = await self.stage_code(session, request, role, actor=email)

        await dispatch(
            self._notifier,
            [build_notice(request, role, self._settings.public_base_url, code=code)],
        )
        return code

    async def stage_code(
        self,
        session: AsyncSession,
        request: EscrowRequest,
        role: PartyRole,
        actor: str = "SYSTEM",
    ) -> str:
        """Write a fresh code for `role` inside the caller's transaction.

        Raises CodeAlreadyUsedError if that party has already confirmed.
        """
        code = generate_code()
        email = request.email_for(role)
        written = await ConfirmationCodeRepository(session).upsert_unconfirmed(
            request_id=request.id,
            email=email,
            role=role,
            code=code,
            issued_at=self._clock(),
        )
        if not written:
            raise CodeAlreadyUsedError(str(request.id), role.value)

        status = EscrowStatus(request.status)
        await EventRepository(session).record(
            request_id=request.id,
            event_type=EventType.CODE_ISSUED,
            old_status=status,
            new_status=status,
            actor=actor,
            metadata={"role": role.value},
        )
        logger.info("ledger.code_issued", request_id=str(request.id), role=role.value)
        return code

    # ------------------------------------------------------------------
    # Redemption
    # ------------------------------------------------------------------

    async def redeem(
        self,
        request_id: uuid.UUID,
        email: str,
        role: PartyRole,
        code: str,
    ) -> RedemptionResult:
        """Redeem a party's code.

        Checks run in this order: unknown request, wrong party, no ledger
        entry, expired, already used, wrong code.
        """
        now = self._clock()
        async with self._database.transaction() as session:
            requests = EscrowRequestRepository(session)
            codes = ConfirmationCodeRepository(session)
            events = EventRepository(session)

            request = await requests.get_by_id(request_id)
            if request is None:
                raise RequestNotFoundError(str(request_id))
            self._require_party(request, email, role)

            entry = await codes.get(request_id, email, role)
            if entry is None:
                raise CodeNotFoundError(str(request_id), role.value)
            if is_expired(entry.created_at, now, self._settings.confirmation_code_ttl):
                raise CodeExpiredError(str(request_id), role.value)
            if entry.confirmed:
                raise CodeAlreadyUsedError(str(request_id), role.value)
            if entry.code != code:
                raise CodeMismatchError(str(request_id), role.value)

            # Another redemption may have consumed the entry since we read it.
            if not await codes.consume(request_id, email, role, code):
                raise CodeAlreadyUsedError(str(request_id), role.value)

            old_status = EscrowStatus(request.status)
            await requests.set_party_confirmed(request_id, role)
            flipped = await requests.apply_transition(
                request_id,
                StatusEvent.BOTH_PARTIES_CONFIRMED,
                EscrowRequest.buyer_confirmed.is_(True),
                EscrowRequest.seller_confirmed.is_(True),
            )
            request = await requests.get_by_id(request_id)
            new_status = EscrowStatus(request.status)

            await events.record(
                request_id=request_id,
                event_type=EventType.CODE_REDEEMED,
                old_status=old_status,
                new_status=old_status,
                actor=email,
                metadata={"role": role.value},
            )
            if flipped:
                await events.record(
                    request_id=request_id,
                    event_type=EventType.REQUEST_CONFIRMED,
                    old_status=old_status,
                    new_status=new_status,
                    actor=email,
                )

        logger.info(
            "ledger.code_redeemed",
            request_id=str(request_id),
            role=role.value,
            status=new_status.value,
            status_changed=flipped,
        )

        if flipped:
            await dispatch(
                self._notifier,
                [
                    build_notice(
                        request,
                        party,
                        self._settings.public_base_url,
                        headline="Both parties have confirmed this middleman request:",
                    )
                    for party in PartyRole
                ],
            )

        return RedemptionResult(
            request_id=request_id,
            role=role,
            buyer_confirmed=request.buyer_confirmed,
            seller_confirmed=request.seller_confirmed,
            status=new_status,
            status_changed=flipped,
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _require_party(request: EscrowRequest, email: str, role: PartyRole) -> None:
        if request.email_for(role) != email:
            raise UnauthorizedPartyError(str(request.id), email, role.value)
