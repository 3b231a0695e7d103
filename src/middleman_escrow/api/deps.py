"""FastAPI dependency injection providers.

Services are built per request from the Database and notifier that the app
lifespan (or a test) stored on `app.state`.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import Depends, Request

from middleman_escrow.config import Settings, get_settings
from middleman_escrow.domain.exceptions import DuplicateOperationError
from middleman_escrow.infrastructure.redis_client import (
    claim_idempotency,
    is_redis_available,
    release_idempotency,
)
from middleman_escrow.services.confirmation_service import ConfirmationService
from middleman_escrow.services.escrow_service import EscrowService
from middleman_escrow.services.settlement_service import SettlementService

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from middleman_escrow.domain.notifier_protocol import EmailNotifier
    from middleman_escrow.infrastructure.database.engine import Database
    from middleman_escrow.infrastructure.market_data import CoinGeckoClient


def get_app_settings(request: Request) -> Settings:
    """Provide the settings the app was created with."""
    return getattr(request.app.state, "settings", None) or get_settings()


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_notifier(request: Request) -> EmailNotifier:
    return request.app.state.notifier


def get_market_data(request: Request) -> CoinGeckoClient:
    return request.app.state.market_data


def get_escrow_service(
    request: Request,
    settings: Settings = Depends(get_app_settings),
) -> EscrowService:
    """Provide an EscrowService bound to the app's database and notifier."""
    return EscrowService(get_database(request), get_notifier(request), settings)


def get_confirmation_service(
    request: Request,
    settings: Settings = Depends(get_app_settings),
) -> ConfirmationService:
    """Provide a ConfirmationService bound to the app's database and notifier."""
    return ConfirmationService(get_database(request), get_notifier(request), settings)


def get_settlement_service(request: Request) -> SettlementService:
    """Provide a SettlementService bound to the app's database."""
    return SettlementService(get_database(request))


@asynccontextmanager
async def idempotency_guard(scope: str, key: str | None) -> AsyncIterator[None]:
    """Reserve `Idempotency-Key` for the body of the block.

    Without a key, or without Redis, the block simply runs. A key that is
    already reserved raises DuplicateOperationError. If the block fails the
    key is released so the client can retry with it.
    """
    if not key or not is_redis_available():
        yield
        return

    scoped = f"{scope}:{key}"
    if not await claim_idempotency(scoped):
        raise DuplicateOperationError(key)
    try:
        yield
    except Exception:
        await release_idempotency(scoped)
        raise
