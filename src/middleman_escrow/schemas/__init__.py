"""Pydantic API schemas."""

from middleman_escrow.schemas.escrow import (
    CodeIssuedResponse,
    CryptoCurrencyResponse,
    CreateMiddlemanRequest,
    EscrowEventResponse,
    EscrowRequestResponse,
    GroupedRequestsResponse,
    HealthResponse,
    IssueCodeRequest,
    PartyActionRequest,
    RedeemCodeRequest,
    RedemptionResponse,
    RequestStatusResponse,
    RoleResponse,
    TransitionResponse,
    WithdrawableAmountResponse,
    WithdrawalCreateRequest,
    WithdrawRequestResponse,
)

__all__ = [
    "CodeIssuedResponse",
    "CryptoCurrencyResponse",
    "CreateMiddlemanRequest",
    "EscrowEventResponse",
    "EscrowRequestResponse",
    "GroupedRequestsResponse",
    "HealthResponse",
    "IssueCodeRequest",
    "PartyActionRequest",
    "RedeemCodeRequest",
    "RedemptionResponse",
    "RequestStatusResponse",
    "RoleResponse",
    "TransitionResponse",
    "WithdrawableAmountResponse",
    "WithdrawalCreateRequest",
    "WithdrawRequestResponse",
]
