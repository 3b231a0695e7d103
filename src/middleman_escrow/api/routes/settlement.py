"""Settlement REST API routes.

Routes:
    GET    /api/v1/middleman/settlement/balance?email=   — Withdrawable amount
    GET    /api/v1/middleman/settlement/currencies      — Currencies a payout can use
    GET    /api/v1/middleman/settlement/withdrawals?email= — Past withdrawals
    POST   /api/v1/middleman/settlement/withdrawals      — Withdraw everything available
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Header, Query
from pydantic import EmailStr  # noqa: TC002 - query parameter types are resolved at runtime

from middleman_escrow.api.deps import get_market_data, get_settlement_service, idempotency_guard
from middleman_escrow.infrastructure.market_data import CoinGeckoClient
from middleman_escrow.schemas.escrow import (
    CryptoCurrencyResponse,
    WithdrawableAmountResponse,
    WithdrawalCreateRequest,
    WithdrawRequestResponse,
)
from middleman_escrow.services.settlement_service import SettlementService

router = APIRouter(prefix="/api/v1/middleman/settlement", tags=["Settlement"])


@router.get(
    "/balance",
    response_model=WithdrawableAmountResponse,
    summary="Amount a seller can withdraw",
)
async def get_balance(
    email: EmailStr = Query(...),
    svc: SettlementService = Depends(get_settlement_service),
) -> WithdrawableAmountResponse:
    """Sum of completed, unwithdrawn requests where `email` is the seller."""
    amount = await svc.get_withdrawable_amount(email)
    return WithdrawableAmountResponse(email=email, amount=amount)


@router.get(
    "/withdrawals",
    response_model=list[WithdrawRequestResponse],
    summary="List past withdrawals",
)
async def list_withdrawals(
    email: EmailStr = Query(...),
    svc: SettlementService = Depends(get_settlement_service),
) -> list[WithdrawRequestResponse]:
    withdrawals = await svc.get_withdrawals(email)
    return [WithdrawRequestResponse.model_validate(w) for w in withdrawals]


@router.post(
    "/withdrawals",
    response_model=WithdrawRequestResponse,
    status_code=201,
    summary="Withdraw all available funds",
)
async def create_withdrawal(
    request: WithdrawalCreateRequest,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    svc: SettlementService = Depends(get_settlement_service),
) -> WithdrawRequestResponse:
    """Claim every withdrawable request into a single withdrawal.

    Returns 422 when there is nothing to withdraw.
    """
    async with idempotency_guard("withdraw", idempotency_key):
        withdrawal = await svc.withdraw(
            user_id=request.user_id,
            email=request.email,
            crypto_currency=request.crypto_currency,
            wallet_address=request.wallet_address,
            amount=request.amount,
        )
    return WithdrawRequestResponse.model_validate(withdrawal)


@router.get(
    "/currencies",
    response_model=list[CryptoCurrencyResponse],
    summary="List crypto-currencies available for withdrawals",
)
async def list_currencies(
    market_data: CoinGeckoClient = Depends(get_market_data),
) -> list[CryptoCurrencyResponse]:
    """Top coins by market cap. Returns 503 when CoinGecko is unreachable."""
    currencies = await market_data.list_currencies()
    return [CryptoCurrencyResponse.model_validate(c) for c in currencies]
