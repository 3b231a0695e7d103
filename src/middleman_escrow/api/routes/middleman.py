"""Middleman request REST API routes.

Routes:
    POST   /api/v1/middleman/requests                     — Create a request
    GET    /api/v1/middleman/requests?email=              — Requests grouped by status
    GET    /api/v1/middleman/requests/{id}                — Request details
    GET    /api/v1/middleman/requests/{id}/status         — Lightweight status check
    GET    /api/v1/middleman/requests/{id}/role?email=    — Caller's role
    GET    /api/v1/middleman/requests/{id}/events         — Audit trail
    POST   /api/v1/middleman/requests/{id}/accept         — Seller accepts
    POST   /api/v1/middleman/requests/{id}/codes          — (Re)issue a confirmation code
    POST   /api/v1/middleman/requests/{id}/codes/redeem   — Redeem a confirmation code
    POST   /api/v1/middleman/requests/{id}/payment        — Payment confirmed signal
    POST   /api/v1/middleman/requests/{id}/complete       — Complete the transaction
"""

from __future__ import annotations

import uuid  # noqa: TC003 - FastAPI resolves path parameter types at runtime

from fastapi import APIRouter, Depends, Header, Query
from pydantic import EmailStr  # noqa: TC002 - query parameter types are resolved at runtime

from middleman_escrow.api.deps import (
    get_confirmation_service,
    get_escrow_service,
    idempotency_guard,
)
from middleman_escrow.logging_config import get_logger
from middleman_escrow.schemas.escrow import (
    CodeIssuedResponse,
    CreateMiddlemanRequest,
    EscrowEventResponse,
    EscrowRequestResponse,
    GroupedRequestsResponse,
    IssueCodeRequest,
    PartyActionRequest,
    RedeemCodeRequest,
    RedemptionResponse,
    RequestStatusResponse,
    RoleResponse,
    TransitionResponse,
)
from middleman_escrow.services.confirmation_service import ConfirmationService
from middleman_escrow.services.escrow_service import EscrowService, TransitionOutcome

router = APIRouter(prefix="/api/v1/middleman", tags=["Middleman"])
logger = get_logger(__name__)


def _transition_response(outcome: TransitionOutcome) -> TransitionResponse:
    return TransitionResponse(
        result=outcome.result,
        request=EscrowRequestResponse.model_validate(outcome.request),
    )


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


@router.post(
    "/requests",
    response_model=EscrowRequestResponse,
    status_code=201,
    summary="Create a middleman request",
)
async def create_request(
    request: CreateMiddlemanRequest,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    svc: EscrowService = Depends(get_escrow_service),
) -> EscrowRequestResponse:
    """Create a pending request and email a confirmation code to each party."""
    async with idempotency_guard("create_request", idempotency_key):
        created = await svc.create_request(
            role=request.role,
            first_name=request.first_name,
            last_name=request.last_name,
            email=request.email,
            counterparty_email=request.counterparty_email,
            category=request.category,
            price=request.price,
            currency=request.currency,
        )
    return EscrowRequestResponse.model_validate(created)


# ---------------------------------------------------------------------------
# Read endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/requests",
    response_model=GroupedRequestsResponse,
    summary="List a participant's requests grouped by status",
)
async def list_requests(
    email: EmailStr = Query(...),
    svc: EscrowService = Depends(get_escrow_service),
) -> GroupedRequestsResponse:
    """Every request where `email` is a party, newest first within each status."""
    grouped = await svc.list_for_participant(email)
    return GroupedRequestsResponse(
        email=email,
        requests={
            status: [EscrowRequestResponse.model_validate(r) for r in requests]
            for status, requests in grouped.items()
        },
    )


@router.get(
    "/requests/{request_id}",
    response_model=EscrowRequestResponse,
    summary="Get request details",
)
async def get_request(
    request_id: uuid.UUID,
    svc: EscrowService = Depends(get_escrow_service),
) -> EscrowRequestResponse:
    request = await svc.get_request(request_id)
    return EscrowRequestResponse.model_validate(request)


@router.get(
    "/requests/{request_id}/status",
    response_model=RequestStatusResponse,
    summary="Lightweight status check",
)
async def get_request_status(
    request_id: uuid.UUID,
    svc: EscrowService = Depends(get_escrow_service),
) -> RequestStatusResponse:
    """Status, confirmation flags, payment flag and the allowed next events."""
    return RequestStatusResponse(**await svc.get_status(request_id))


@router.get(
    "/requests/{request_id}/role",
    response_model=RoleResponse,
    summary="Get the caller's role in a request",
)
async def get_request_role(
    request_id: uuid.UUID,
    email: EmailStr = Query(...),
    svc: EscrowService = Depends(get_escrow_service),
) -> RoleResponse:
    role = await svc.get_role(request_id, email)
    return RoleResponse(request_id=request_id, email=email, role=role)


@router.get(
    "/requests/{request_id}/events",
    response_model=list[EscrowEventResponse],
    summary="Get audit trail",
)
async def get_request_events(
    request_id: uuid.UUID,
    svc: EscrowService = Depends(get_escrow_service),
) -> list[EscrowEventResponse]:
    """Return the complete audit trail for a request, oldest first."""
    events = await svc.get_events(request_id)
    return [EscrowEventResponse.model_validate(e) for e in events]


# ---------------------------------------------------------------------------
# Confirmation codes
# ---------------------------------------------------------------------------


@router.post(
    "/requests/{request_id}/codes",
    response_model=CodeIssuedResponse,
    summary="Issue or reissue a confirmation code",
)
async def issue_code(
    request_id: uuid.UUID,
    request: IssueCodeRequest,
    svc: ConfirmationService = Depends(get_confirmation_service),
) -> CodeIssuedResponse:
    """Send a fresh code to the party. Any earlier unused code stops working."""
    await svc.issue(request_id, request.email, request.role)
    return CodeIssuedResponse(request_id=request_id, role=request.role, sent_to=request.email)


@router.post(
    "/requests/{request_id}/codes/redeem",
    response_model=RedemptionResponse,
    summary="Redeem a confirmation code",
)
async def redeem_code(
    request_id: uuid.UUID,
    request: RedeemCodeRequest,
    svc: ConfirmationService = Depends(get_confirmation_service),
) -> RedemptionResponse:
    """Confirm a party. When both parties have confirmed the request becomes confirmed."""
    result = await svc.redeem(request_id, request.email, request.role, request.code)
    return RedemptionResponse.model_validate(result)


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


@router.post(
    "/requests/{request_id}/accept",
    response_model=TransitionResponse,
    summary="Seller accepts the request",
)
async def accept_request(
    request_id: uuid.UUID,
    request: PartyActionRequest,
    svc: EscrowService = Depends(get_escrow_service),
) -> TransitionResponse:
    return _transition_response(await svc.accept(request_id, request.email))


@router.post(
    "/requests/{request_id}/payment",
    response_model=TransitionResponse,
    summary="Record that payment was confirmed",
)
async def confirm_payment(
    request_id: uuid.UUID,
    svc: EscrowService = Depends(get_escrow_service),
) -> TransitionResponse:
    """Set the paid flag. Called by the payment integration, not by a party."""
    return _transition_response(await svc.mark_paid(request_id))


@router.post(
    "/requests/{request_id}/complete",
    response_model=TransitionResponse,
    summary="Complete a confirmed, paid request",
)
async def complete_request(
    request_id: uuid.UUID,
    request: PartyActionRequest,
    svc: EscrowService = Depends(get_escrow_service),
) -> TransitionResponse:
    return _transition_response(await svc.complete(request_id, request.email))
