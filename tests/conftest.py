"""Shared test fixtures for the Middleman Escrow test suite.

Provides:
    - A file-backed SQLite Database per test (separate connections, real locking)
    - A frozen clock that tests advance explicitly
    - A notifier that records every notice instead of sending it
    - Services wired to all of the above
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

import pytest
import pytest_asyncio

from middleman_escrow.config import Settings
from middleman_escrow.domain.enums import PartyRole
from middleman_escrow.infrastructure.database.engine import Database
from middleman_escrow.services import ConfirmationService, EscrowService, SettlementService

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

    from middleman_escrow.domain.notifier_protocol import EscrowNotice
    from middleman_escrow.infrastructure.database.orm_models import EscrowRequest

BUYER = "buyer@example.com"
SELLER = "seller@example.com"
STRANGER = "stranger@example.com"


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


@dataclass
class FrozenClock:
    now: datetime = field(default_factory=lambda: datetime(2026, 3, 1, 12, 0, tzinfo=UTC))

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@dataclass
class RecordingNotifier:
    """Collects notices; optionally fails like a broken email provider."""

    sent: list[EscrowNotice] = field(default_factory=list)
    fail: bool = False

    async def send(self, notice: EscrowNotice) -> bool:
        if self.fail:
            raise RuntimeError("provider down")
        self.sent.append(notice)
        return True

    def code_for(self, recipient: str) -> str:
        """The most recent code delivered to `recipient`."""
        for notice in reversed(self.sent):
            if notice.recipient == recipient and notice.code:
                return notice.code
        raise AssertionError(f"no code was sent to {recipient}")

    def to(self, recipient: str) -> list[EscrowNotice]:
        return [n for n in self.sent if n.recipient == recipient]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        app_env="development",
        database_url="sqlite+aiosqlite://",
        brevo_api_key="",
        public_base_url="https://app.example.com",
    )


@pytest_asyncio.fixture
async def database(tmp_path: Path) -> AsyncIterator[Database]:
    db = Database(
        f"sqlite+aiosqlite:///{tmp_path / 'escrow.db'}",
        statement_timeout_seconds=5.0,
    )
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def escrow_service(
    database: Database, notifier: RecordingNotifier, settings: Settings, clock: FrozenClock
) -> EscrowService:
    return EscrowService(database, notifier, settings, clock)


@pytest.fixture
def confirmation_service(
    database: Database, notifier: RecordingNotifier, settings: Settings, clock: FrozenClock
) -> ConfirmationService:
    return ConfirmationService(database, notifier, settings, clock)


@pytest.fixture
def settlement_service(database: Database) -> SettlementService:
    return SettlementService(database)


@pytest.fixture
def create_request(escrow_service: EscrowService):
    """Factory that opens a buyer-initiated request with sensible defaults."""

    async def _create(
        price: str = "50.00",
        role: PartyRole = PartyRole.BUYER,
        email: str = BUYER,
        counterparty_email: str = SELLER,
        currency: str = "USD",
    ) -> EscrowRequest:
        return await escrow_service.create_request(
            role=role,
            first_name="Ada",
            last_name="Lovelace",
            email=email,
            counterparty_email=counterparty_email,
            category="Domain name",
            price=Decimal(price),
            currency=currency,
        )

    return _create


@pytest.fixture
def confirm_both(confirmation_service: ConfirmationService, notifier: RecordingNotifier):
    """Redeem the codes both parties were emailed."""

    async def _confirm(request: EscrowRequest) -> None:
        await confirmation_service.redeem(
            request.id, BUYER, PartyRole.BUYER, notifier.code_for(BUYER)
        )
        await confirmation_service.redeem(
            request.id, SELLER, PartyRole.SELLER, notifier.code_for(SELLER)
        )

    return _confirm
