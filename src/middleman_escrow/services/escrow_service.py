"""Escrow Service — middleman request lifecycle.

This is the application layer that coordinates between:
    - Domain state machine (legal edges, via the repositories)
    - Repositories (data access)
    - Event log (audit trail)
    - Email notifier (after commit)

Transitions never raise when their precondition is false. They return a
TransitionOutcome whose result tells the caller whether the change was
applied, had already been applied, or was rejected.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from middleman_escrow.config import Settings, get_settings
from middleman_escrow.domain.enums import (
    EscrowStatus,
    EventType,
    PartyRole,
    StatusEvent,
    TransitionResult,
)
from middleman_escrow.domain.exceptions import RequestNotFoundError, UnauthorizedPartyError
from middleman_escrow.domain.state_machine import EscrowStateMachine, target_status
from middleman_escrow.infrastructure.database.orm_models import EscrowRequest
from middleman_escrow.infrastructure.database.repositories import (
    EscrowRequestRepository,
    EventRepository,
)
from middleman_escrow.logging_config import get_logger
from middleman_escrow.services.confirmation_service import ConfirmationService
from middleman_escrow.services.notices import build_notice, dispatch

if TYPE_CHECKING:
    import uuid
    from collections.abc import Callable
    from decimal import Decimal

    from sqlalchemy.ext.asyncio import AsyncSession

    from middleman_escrow.domain.notifier_protocol import EmailNotifier, EscrowNotice
    from middleman_escrow.infrastructure.database.engine import Database
    from middleman_escrow.infrastructure.database.orm_models import EscrowEvent

logger = get_logger(__name__)


@dataclass(frozen=True)
class TransitionOutcome:
    """A request as it stands after a transition attempt, plus what happened."""

    request: EscrowRequest
    result: TransitionResult

    @property
    def applied(self) -> bool:
        return self.result is TransitionResult.APPLIED


class EscrowService:
    """Manages the middleman request lifecycle."""

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
        self._codes = ConfirmationService(database, notifier, self._settings, self._clock)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_request(
        self,
        role: PartyRole,
        email: str,
        counterparty_email: str,
        category: str,
        price: Decimal,
        currency: str,
        first_name: str = "",
        last_name: str = "",
    ) -> EscrowRequest:
        """Create a pending request and issue a confirmation code to each party."""
        notices: list[EscrowNotice] = []
        async with self._database.transaction() as session:
            request = EscrowRequest(
                role=role.value,
                first_name=first_name,
                last_name=last_name,
                email=email,
                counterparty_email=counterparty_email,
                category=category,
                price=price,
                currency=currency,
                status=EscrowStatus.PENDING.value,
                created_at=self._clock(),
            )
            request = await EscrowRequestRepository(session).create(request)

            await EventRepository(session).record(
                request_id=request.id,
                event_type=EventType.REQUEST_CREATED,
                old_status=None,
                new_status=EscrowStatus.PENDING,
                actor=email,
                metadata={"role": role.value, "category": category, "currency": currency},
            )

            for party in PartyRole:
                code = await self._codes.stage_code(session, request, party, actor=email)
                notices.append(
                    build_notice(request, party, self._settings.public_base_url, code=code)
                )

        logger.info(
            "escrow.created",
            request_id=str(request.id),
            role=role.value,
            price=str(price),
            currency=currency,
        )
        await dispatch(self._notifier, notices)
        return request

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_request(self, request_id: uuid.UUID) -> EscrowRequest:
        async with self._database.transaction() as session:
            return await self._get_or_raise(EscrowRequestRepository(session), request_id)

    async def get_status(self, request_id: uuid.UUID) -> dict[str, Any]:
        """Status, confirmation flags and the events that may fire next."""
        request = await self.get_request(request_id)
        sm = EscrowStateMachine(current_status=request.status)
        return {
            "request_id": request.id,
            "status": EscrowStatus(request.status),
            "buyer_confirmed": request.buyer_confirmed,
            "seller_confirmed": request.seller_confirmed,
            "is_paid": request.is_paid,
            "withdrawn": request.withdrawn,
            "allowed_events": sm.get_allowed_events(),
        }

    async def get_role(self, request_id: uuid.UUID, email: str) -> PartyRole:
        """Return the role `email` plays on the request."""
        request = await self.get_request(request_id)
        role = request.role_of(email)
        if role is None:
            raise UnauthorizedPartyError(str(request_id), email)
        return role

    async def get_events(self, request_id: uuid.UUID) -> list[EscrowEvent]:
        async with self._database.transaction() as session:
            await self._get_or_raise(EscrowRequestRepository(session), request_id)
            return await EventRepository(session).get_by_request(request_id)

    async def list_for_participant(self, email: str) -> dict[EscrowStatus, list[EscrowRequest]]:
        """All requests involving `email`, grouped by status, newest first.

        Stale unpaid requests are swept to incompleted before listing, so the
        caller never sees a pending request older than the stale window.
        """
        async with self._database.transaction() as session:
            await self._sweep(session)
            requests = await EscrowRequestRepository(session).get_for_participant(email)

        grouped: dict[EscrowStatus, list[EscrowRequest]] = {status: [] for status in EscrowStatus}
        for request in requests:
            grouped[EscrowStatus(request.status)].append(request)
        return grouped

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def sweep_stale_requests(self) -> list[uuid.UUID]:
        """Move every stale unpaid pending request to incompleted."""
        async with self._database.transaction() as session:
            return await self._sweep(session)

    async def accept(self, request_id: uuid.UUID, email: str) -> TransitionOutcome:
        """The seller accepts a pending request."""
        async with self._database.transaction() as session:
            requests = EscrowRequestRepository(session)
            request = await self._get_or_raise(requests, request_id)
            if request.seller_email != email:
                raise UnauthorizedPartyError(str(request_id), email, PartyRole.SELLER.value)

            outcome = await self._transition(
                session, request, StatusEvent.SELLER_ACCEPTS, EventType.REQUEST_ACCEPTED, email
            )

        logger.info("escrow.accepted", request_id=str(request_id), result=outcome.result.value)
        return outcome

    async def mark_paid(self, request_id: uuid.UUID) -> TransitionOutcome:
        """Record the external "payment confirmed" signal. Status is unchanged."""
        async with self._database.transaction() as session:
            requests = EscrowRequestRepository(session)
            request = await self._get_or_raise(requests, request_id)
            flipped = await requests.mark_paid(request_id)
            if flipped:
                status = EscrowStatus(request.status)
                await EventRepository(session).record(
                    request_id=request_id,
                    event_type=EventType.PAYMENT_CONFIRMED,
                    old_status=status,
                    new_status=status,
                )
            request = await requests.get_by_id(request_id)

        result = TransitionResult.APPLIED if flipped else TransitionResult.ALREADY_APPLIED
        logger.info("escrow.payment_confirmed", request_id=str(request_id), result=result.value)
        return TransitionOutcome(request=request, result=result)

    async def complete(self, request_id: uuid.UUID, email: str) -> TransitionOutcome:
        """Complete a confirmed, paid request. Either party may call this."""
        async with self._database.transaction() as session:
            requests = EscrowRequestRepository(session)
            request = await self._get_or_raise(requests, request_id)
            if request.role_of(email) is None:
                raise UnauthorizedPartyError(str(request_id), email)

            outcome = await self._transition(
                session,
                request,
                StatusEvent.TRANSACTION_COMPLETED,
                EventType.REQUEST_COMPLETED,
                email,
                EscrowRequest.is_paid.is_(True),
            )

        logger.info("escrow.completed", request_id=str(request_id), result=outcome.result.value)
        if outcome.applied:
            await dispatch(
                self._notifier,
                [
                    build_notice(
                        outcome.request,
                        party,
                        self._settings.public_base_url,
                        headline="This middleman transaction has been completed:",
                    )
                    for party in PartyRole
                ],
            )
        return outcome

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _get_or_raise(
        self, requests: EscrowRequestRepository, request_id: uuid.UUID
    ) -> EscrowRequest:
        request = await requests.get_by_id(request_id)
        if request is None:
            raise RequestNotFoundError(str(request_id))
        return request

    async def _transition(
        self,
        session: AsyncSession,
        request: EscrowRequest,
        event: StatusEvent,
        event_type: EventType,
        actor: str,
        *guards: Any,
    ) -> TransitionOutcome:
        requests = EscrowRequestRepository(session)
        old_status = EscrowStatus(request.status)
        applied = await requests.apply_transition(request.id, event, *guards)
        request = await requests.get_by_id(request.id)

        if applied:
            await EventRepository(session).record(
                request_id=request.id,
                event_type=event_type,
                old_status=old_status,
                new_status=EscrowStatus(request.status),
                actor=actor,
            )
            return TransitionOutcome(request=request, result=TransitionResult.APPLIED)

        if request.status == target_status(event.value):
            return TransitionOutcome(request=request, result=TransitionResult.ALREADY_APPLIED)

        logger.info(
            "escrow.transition_rejected",
            request_id=str(request.id),
            transition=event.value,
            status=request.status,
        )
        return TransitionOutcome(request=request, result=TransitionResult.REJECTED)

    async def _sweep(self, session: AsyncSession) -> list[uuid.UUID]:
        cutoff = self._clock() - self._settings.stale_request_age
        swept = await EscrowRequestRepository(session).expire_stale_unpaid(cutoff)
        events = EventRepository(session)
        for request_id in swept:
            await events.record(
                request_id=request_id,
                event_type=EventType.REQUEST_EXPIRED,
                old_status=EscrowStatus.PENDING,
                new_status=EscrowStatus.INCOMPLETED,
                metadata={"cutoff": cutoff.isoformat()},
            )
        if swept:
            logger.info("escrow.stale_swept", count=len(swept))
        return swept
