"""Repository classes for database access.

Repositories encapsulate all SQL queries and provide a clean interface
to the service layer. They accept an AsyncSession and never manage
their own transactions (that's the caller's responsibility).

Every write that depends on current row state is a single conditional
statement (UPDATE ... WHERE <guard> RETURNING ...), so two concurrent
callers can never both observe the precondition and both act on it.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from middleman_escrow.domain.enums import PartyRole, StatusEvent
from middleman_escrow.domain.state_machine import source_statuses, target_status
from middleman_escrow.infrastructure.database.orm_models import (
    ConfirmationCode,
    EscrowEvent,
    EscrowRequest,
    WithdrawRequest,
)

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.sql.elements import ColumnElement

    from middleman_escrow.domain.enums import EscrowStatus, EventType


def _sources(event: StatusEvent) -> list[str]:
    return sorted(status.value for status in source_statuses(event.value))


def _seller_match(email: str) -> ColumnElement[bool]:
    """Rows where `email` is the seller, whichever side created the request."""
    return or_(
        and_(
            EscrowRequest.counterparty_email == email,
            EscrowRequest.role == PartyRole.BUYER.value,
        ),
        and_(
            EscrowRequest.email == email,
            EscrowRequest.role == PartyRole.SELLER.value,
        ),
    )


def _settleable(email: str) -> ColumnElement[bool]:
    return and_(
        _seller_match(email),
        EscrowRequest.status.in_(_sources(StatusEvent.FUNDS_WITHDRAWN)),
        EscrowRequest.withdrawn.is_(False),
    )


class EscrowRequestRepository:
    """Data access for middleman requests."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, request: EscrowRequest) -> EscrowRequest:
        """Insert a new middleman request."""
        self._session.add(request)
        await self._session.flush()
        return request

    async def get_by_id(self, request_id: uuid.UUID) -> EscrowRequest | None:
        """Fetch a request by its UUID, always reflecting the latest row."""
        result = await self._session.execute(
            select(EscrowRequest)
            .where(EscrowRequest.id == request_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_for_participant(self, email: str) -> list[EscrowRequest]:
        """Fetch every request where `email` is the initiator or counterparty."""
        result = await self._session.execute(
            select(EscrowRequest)
            .where(
                or_(
                    EscrowRequest.email == email,
                    EscrowRequest.counterparty_email == email,
                )
            )
            .order_by(EscrowRequest.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def apply_transition(
        self,
        request_id: uuid.UUID,
        event: StatusEvent,
        *guards: ColumnElement[bool],
    ) -> bool:
        """Move one request along `event` if its status and guards allow it.

        Returns True if the row changed.
        """
        result = await self._session.execute(
            update(EscrowRequest)
            .where(
                EscrowRequest.id == request_id,
                EscrowRequest.status.in_(_sources(event)),
                *guards,
            )
            .values(status=target_status(event.value).value)
            .returning(EscrowRequest.id)
            .execution_options(synchronize_session=False)
        )
        return result.first() is not None

    async def set_party_confirmed(self, request_id: uuid.UUID, role: PartyRole) -> None:
        """Set the confirmation flag for `role`. Status is left to apply_transition."""
        flag = "buyer_confirmed" if role is PartyRole.BUYER else "seller_confirmed"
        await self._session.execute(
            update(EscrowRequest)
            .where(EscrowRequest.id == request_id)
            .values({flag: True})
            .execution_options(synchronize_session=False)
        )

    async def mark_paid(self, request_id: uuid.UUID) -> bool:
        """Flip is_paid once. Returns True if this call flipped it."""
        result = await self._session.execute(
            update(EscrowRequest)
            .where(EscrowRequest.id == request_id, EscrowRequest.is_paid.is_(False))
            .values(is_paid=True)
            .returning(EscrowRequest.id)
            .execution_options(synchronize_session=False)
        )
        return result.first() is not None

    async def expire_stale_unpaid(self, cutoff: datetime) -> list[uuid.UUID]:
        """Sweep unpaid requests created before `cutoff` to incompleted.

        Paid requests are deliberately left in their current status.
        Returns the ids that were swept by this call.
        """
        event = StatusEvent.STALE_REQUEST_EXPIRED
        result = await self._session.execute(
            update(EscrowRequest)
            .where(
                EscrowRequest.status.in_(_sources(event)),
                EscrowRequest.is_paid.is_(False),
                EscrowRequest.created_at < cutoff,
            )
            .values(status=target_status(event.value).value)
            .returning(EscrowRequest.id)
            .execution_options(synchronize_session=False)
        )
        return [row[0] for row in result.all()]

    async def withdrawable_total(self, email: str) -> Decimal:
        """Sum of prices the seller `email` can currently withdraw (currency-naive)."""
        result = await self._session.execute(
            select(func.coalesce(func.sum(EscrowRequest.price), 0)).where(_settleable(email))
        )
        return Decimal(result.scalar_one())

    async def claim_for_withdrawal(self, email: str) -> list[tuple[uuid.UUID, Decimal]]:
        """Atomically mark every settleable request of `email` as withdrawn.

        Returns (id, price) for exactly the rows this call claimed.
        """
        event = StatusEvent.FUNDS_WITHDRAWN
        result = await self._session.execute(
            update(EscrowRequest)
            .where(_settleable(email))
            .values(withdrawn=True, status=target_status(event.value).value)
            .returning(EscrowRequest.id, EscrowRequest.price)
            .execution_options(synchronize_session=False)
        )
        return [(row[0], row[1]) for row in result.all()]

    async def link_withdrawal(
        self, request_ids: list[uuid.UUID], withdraw_request_id: uuid.UUID
    ) -> None:
        await self._session.execute(
            update(EscrowRequest)
            .where(EscrowRequest.id.in_(request_ids))
            .values(withdraw_request_id=withdraw_request_id)
            .execution_options(synchronize_session=False)
        )


class ConfirmationCodeRepository:
    """Data access for the confirmation code ledger."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(
        self, request_id: uuid.UUID, email: str, role: PartyRole
    ) -> ConfirmationCode | None:
        result = await self._session.execute(
            select(ConfirmationCode)
            .where(
                ConfirmationCode.request_id == request_id,
                ConfirmationCode.email == email,
                ConfirmationCode.role == role.value,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def upsert_unconfirmed(
        self,
        request_id: uuid.UUID,
        email: str,
        role: PartyRole,
        code: str,
        issued_at: datetime,
    ) -> bool:
        """Insert a code or overwrite the existing unconsumed one.

        A consumed entry is left untouched. Returns True if a code was written.
        """
        dialect = self._session.bind.dialect.name
        insert_fn = pg_insert if dialect == "postgresql" else sqlite_insert
        stmt = insert_fn(ConfirmationCode).values(
            request_id=request_id,
            email=email,
            role=role.value,
            code=code,
            confirmed=False,
            created_at=issued_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["request_id", "email", "role"],
            set_={"code": code, "created_at": issued_at, "confirmed": False},
            where=ConfirmationCode.confirmed.is_(False),
        ).returning(ConfirmationCode.request_id)
        result = await self._session.execute(stmt)
        return result.first() is not None

    async def consume(
        self, request_id: uuid.UUID, email: str, role: PartyRole, code: str
    ) -> bool:
        """Mark the entry confirmed only if it is still unconsumed and matches.

        Returns False when a concurrent redemption already consumed it.
        """
        result = await self._session.execute(
            update(ConfirmationCode)
            .where(
                ConfirmationCode.request_id == request_id,
                ConfirmationCode.email == email,
                ConfirmationCode.role == role.value,
                ConfirmationCode.code == code,
                ConfirmationCode.confirmed.is_(False),
            )
            .values(confirmed=True)
            .returning(ConfirmationCode.request_id)
            .execution_options(synchronize_session=False)
        )
        return result.first() is not None


class WithdrawRequestRepository:
    """Data access for withdrawal instructions (insert and read only)."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, withdrawal: WithdrawRequest) -> WithdrawRequest:
        self._session.add(withdrawal)
        await self._session.flush()
        return withdrawal

    async def get_by_email(self, email: str) -> list[WithdrawRequest]:
        """Fetch all withdrawals for an email, newest first."""
        result = await self._session.execute(
            select(WithdrawRequest)
            .where(WithdrawRequest.email == email)
            .order_by(WithdrawRequest.created_at.desc())
        )
        return list(result.scalars().all())


class EventRepository:
    """Data access for the append-only audit event log."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record(
        self,
        request_id: uuid.UUID,
        event_type: EventType,
        old_status: EscrowStatus | None,
        new_status: EscrowStatus,
        actor: str = "SYSTEM",
        metadata: dict | None = None,
    ) -> EscrowEvent:
        """Append a new audit event. This is the ONLY write operation allowed."""
        evt = EscrowEvent(
            request_id=request_id,
            event_type=event_type.value,
            old_status=old_status.value if old_status else None,
            new_status=new_status.value,
            actor=actor,
            metadata_json=metadata,
            created_at=datetime.now(UTC),
        )
        self._session.add(evt)
        await self._session.flush()
        return evt

    async def get_by_request(self, request_id: uuid.UUID) -> list[EscrowEvent]:
        """Fetch all events for a request in chronological order."""
        result = await self._session.execute(
            select(EscrowEvent)
            .where(EscrowEvent.request_id == request_id)
            .order_by(EscrowEvent.created_at.asc())
        )
        return list(result.scalars().all())
