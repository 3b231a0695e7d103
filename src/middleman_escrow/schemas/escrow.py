"""Pydantic schemas for the Middleman API.

These schemas define the request/response shapes for the REST API. They are
separate from the ORM models to maintain clean boundaries between the API
and database layers.
"""

from __future__ import annotations

import uuid  # noqa: TC003 - pydantic resolves field types at runtime
from datetime import datetime  # noqa: TC003
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from middleman_escrow.domain.enums import EscrowStatus, PartyRole, TransitionResult

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class CreateMiddlemanRequest(BaseModel):
    """Request body for starting a middleman transaction."""

    role: PartyRole = Field(
        ...,
        description="Role of the caller in this transaction; the counterparty takes the other",
        examples=["buyer"],
    )
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)
    email: EmailStr = Field(..., description="Email of the caller")
    counterparty_email: EmailStr = Field(..., description="Email of the other party")
    category: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="What is being traded",
        examples=["Domain name"],
    )
    price: Decimal = Field(
        ...,
        gt=0,
        max_digits=12,
        decimal_places=2,
        examples=[250.0],
    )
    currency: str = Field(..., min_length=1, max_length=10, examples=["USD"])

    @model_validator(mode="after")
    def _distinct_parties(self) -> CreateMiddlemanRequest:
        if self.email.lower() == self.counterparty_email.lower():
            raise ValueError("email and counterparty_email must belong to different parties")
        return self


class IssueCodeRequest(BaseModel):
    """Request body for (re)issuing a party's confirmation code."""

    email: EmailStr
    role: PartyRole


class RedeemCodeRequest(BaseModel):
    """Request body for redeeming a confirmation code."""

    email: EmailStr
    role: PartyRole
    code: str = Field(..., pattern=r"^\d{6}$", examples=["123456"])


class PartyActionRequest(BaseModel):
    """Request body for actions taken by one party (accept, complete)."""

    email: EmailStr


class WithdrawalCreateRequest(BaseModel):
    """Request body for withdrawing everything a seller can withdraw."""

    user_id: str = Field(..., min_length=1, max_length=64)
    email: EmailStr
    crypto_currency: str = Field(..., min_length=1, max_length=20, examples=["USDT"])
    wallet_address: str = Field(..., min_length=1, max_length=128)
    amount: Decimal | None = Field(
        default=None,
        gt=0,
        description="Amount the client expects; the recorded amount is always the claimed total",
    )


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class EscrowRequestResponse(BaseModel):
    """Response schema for a middleman request."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    role: PartyRole
    first_name: str
    last_name: str
    email: str
    counterparty_email: str
    buyer_email: str
    seller_email: str
    category: str
    price: Decimal
    currency: str
    is_paid: bool
    buyer_confirmed: bool
    seller_confirmed: bool
    withdrawn: bool
    status: EscrowStatus
    withdraw_request_id: uuid.UUID | None
    created_at: datetime
    updated_at: datetime


class GroupedRequestsResponse(BaseModel):
    """All requests of a participant, keyed by status."""

    email: str
    requests: dict[EscrowStatus, list[EscrowRequestResponse]]


class RequestStatusResponse(BaseModel):
    """Lightweight status check response."""

    request_id: uuid.UUID
    status: EscrowStatus
    buyer_confirmed: bool
    seller_confirmed: bool
    is_paid: bool
    withdrawn: bool
    allowed_events: list[str] = Field(
        description="State machine events that can fire from the current status"
    )


class RoleResponse(BaseModel):
    request_id: uuid.UUID
    email: str
    role: PartyRole


class CodeIssuedResponse(BaseModel):
    """Confirms a code was sent. The code itself only travels by email."""

    request_id: uuid.UUID
    role: PartyRole
    sent_to: str


class RedemptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    request_id: uuid.UUID
    role: PartyRole
    buyer_confirmed: bool
    seller_confirmed: bool
    status: EscrowStatus
    status_changed: bool


class TransitionResponse(BaseModel):
    """Result of a transition attempt plus the request as it now stands."""

    result: TransitionResult
    request: EscrowRequestResponse


class CryptoCurrencyResponse(BaseModel):
    """A currency a seller can ask to be paid out in."""

    model_config = ConfigDict(from_attributes=True)

    name: str
    symbol: str
    logo: str | None = None


class WithdrawableAmountResponse(BaseModel):
    email: str
    amount: Decimal


class WithdrawRequestResponse(BaseModel):
    """Response schema for a committed withdrawal."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: str
    email: str
    amount: Decimal
    crypto_currency: str
    wallet_address: str
    created_at: datetime


class EscrowEventResponse(BaseModel):
    """Response schema for an audit event."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: uuid.UUID
    request_id: uuid.UUID
    event_type: str
    old_status: str | None
    new_status: str
    actor: str
    metadata: dict | None = Field(default=None, alias="metadata_json")
    created_at: datetime


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    database: str = "unknown"
    redis: str = "unknown"
