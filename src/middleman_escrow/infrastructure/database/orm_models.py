"""SQLAlchemy 2.0 ORM models for the Middleman Escrow coordinator.

Four tables:
    1. middleman_requests  — The escrowed transaction between buyer and seller.
    2. confirmation_codes  — Per-request, per-role confirmation code ledger.
    3. withdraw_requests   — Settlement instructions created by a withdrawal.
    4. escrow_events       — Append-only audit log of every state change.

Design decisions:
    - UUIDs as primary keys (no sequential leakage of request counts).
    - Decimal for prices (no floating point rounding errors).
    - Status stored as a string, CHECK-constrained to the EscrowStatus values.
    - confirmation_codes keyed by (request_id, email, role) so a reissue is an
      upsert onto the same row, never a second live code.
    - JSON columns become JSONB on PostgreSQL and plain JSON elsewhere.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal  # noqa: TC003 - needed at runtime by SQLAlchemy Mapped[]

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from middleman_escrow.domain.enums import EscrowStatus, PartyRole

_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in EscrowStatus)
_ROLE_VALUES = ", ".join(f"'{r.value}'" for r in PartyRole)

JsonDocument = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# ---------------------------------------------------------------------------
# 1. middleman_requests
# ---------------------------------------------------------------------------
class EscrowRequest(Base):
    """A middleman request between an initiator and a counterparty."""

    __tablename__ = "middleman_requests"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )

    # --- Participants ---
    role: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        comment="Role of the initiator (email); the counterparty holds the other",
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    email: Mapped[str] = mapped_column(
        String(320),
        nullable=False,
        comment="Email of the party who created the request",
    )
    counterparty_email: Mapped[str] = mapped_column(String(320), nullable=False)

    # --- Terms ---
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False)

    # --- Flags ---
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    buyer_confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    seller_confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    withdrawn: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=EscrowStatus.PENDING.value,
        comment="Current lifecycle state (edges defined by EscrowStateMachine)",
    )

    withdraw_request_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(),
        ForeignKey("withdraw_requests.id", ondelete="SET NULL"),
        nullable=True,
        default=None,
        comment="Withdrawal that claimed this request",
    )

    # --- Timestamps ---
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    __table_args__ = (
        CheckConstraint(f"status IN ({_STATUS_VALUES})", name="ck_request_valid_status"),
        CheckConstraint(f"role IN ({_ROLE_VALUES})", name="ck_request_valid_role"),
        CheckConstraint("price > 0", name="ck_request_positive_price"),
        Index("idx_request_email", "email"),
        Index("idx_request_counterparty", "counterparty_email"),
        Index("idx_request_status", "status"),
        Index("idx_request_created_at", "created_at"),
    )

    @property
    def buyer_email(self) -> str:
        return self.email if self.role == PartyRole.BUYER else self.counterparty_email

    @property
    def seller_email(self) -> str:
        return self.email if self.role == PartyRole.SELLER else self.counterparty_email

    def email_for(self, role: PartyRole) -> str:
        return self.buyer_email if role is PartyRole.BUYER else self.seller_email

    def role_of(self, email: str) -> PartyRole | None:
        """Return the role `email` plays on this request, if any."""
        if email == self.buyer_email:
            return PartyRole.BUYER
        if email == self.seller_email:
            return PartyRole.SELLER
        return None

    def __repr__(self) -> str:
        return (
            f"<EscrowRequest id={self.id} status={self.status} "
            f"price={self.price} {self.currency}>"
        )


# ---------------------------------------------------------------------------
# 2. confirmation_codes
# ---------------------------------------------------------------------------
class ConfirmationCode(Base):
    """Ledger entry for one party's confirmation code on one request.

    Rows are never deleted; once `confirmed` is true the entry is inert.
    """

    __tablename__ = "confirmation_codes"

    request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("middleman_requests.id", ondelete="CASCADE"),
        primary_key=True,
    )
    email: Mapped[str] = mapped_column(String(320), primary_key=True)
    role: Mapped[str] = mapped_column(String(10), primary_key=True)

    code: Mapped[str] = mapped_column(String(6), nullable=False)
    confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )

    __table_args__ = (
        CheckConstraint(f"role IN ({_ROLE_VALUES})", name="ck_code_valid_role"),
    )

    def __repr__(self) -> str:
        return (
            f"<ConfirmationCode request={self.request_id} role={self.role} "
            f"confirmed={self.confirmed}>"
        )


# ---------------------------------------------------------------------------
# 3. withdraw_requests
# ---------------------------------------------------------------------------
class WithdrawRequest(Base):
    """Snapshot of a settlement instruction. Immutable once committed."""

    __tablename__ = "withdraw_requests"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    crypto_currency: Mapped[str] = mapped_column(String(20), nullable=False)
    wallet_address: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_withdraw_positive_amount"),
        Index("idx_withdraw_email", "email"),
    )

    def __repr__(self) -> str:
        return f"<WithdrawRequest id={self.id} email={self.email} amount={self.amount}>"


# ---------------------------------------------------------------------------
# 4. escrow_events (Append-Only Audit Log)
# ---------------------------------------------------------------------------
class EscrowEvent(Base):
    """Immutable audit record of a change to a middleman request.

    This table is APPEND-ONLY. No UPDATE or DELETE operations are permitted
    at the application level.
    """

    __tablename__ = "escrow_events"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("middleman_requests.id", ondelete="CASCADE"),
        nullable=False,
    )
    event_type: Mapped[str] = mapped_column(
        String(40),
        nullable=False,
        comment="EventType enum value (e.g., REQUEST_CREATED, CODE_REDEEMED)",
    )
    old_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    new_status: Mapped[str] = mapped_column(String(20), nullable=False)
    actor: Mapped[str] = mapped_column(
        String(320),
        nullable=False,
        default="SYSTEM",
        comment="Who triggered this event (party email or SYSTEM)",
    )
    metadata_json: Mapped[dict | None] = mapped_column(
        "metadata",
        JsonDocument,
        nullable=True,
        default=None,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )

    __table_args__ = (
        Index("idx_event_request", "request_id"),
        Index("idx_event_type", "event_type"),
        Index("idx_event_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<EscrowEvent id={self.id} type={self.event_type} "
            f"{self.old_status}->{self.new_status}>"
        )
