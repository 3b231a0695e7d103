#!/usr/bin/env python3
"""Middleman Escrow — End-to-End Simulation.

Simulates three scenarios between a Buyer and a Seller:

    Scenario 1: Happy Path
        - Buyer opens a request, seller accepts
        - Both parties redeem their codes -> confirmed
        - Payment arrives, buyer completes -> completed
        - Seller withdraws -> withdrawn

    Scenario 2: Expired Code
        - Seller waits 11 minutes before redeeming -> CODE_EXPIRED
        - Seller asks for a new code and redeems it

    Scenario 3: Stale Requests
        - Two requests sit for 8 days, only one of them paid
        - Listing sweeps the unpaid one to incompleted; the paid one stays pending

Emails are captured by an in-memory inbox instead of being sent, and time is
driven by a simulated clock so expiry can be shown without waiting.

Usage:
    # SQLite in a temporary file (no Docker needed):
    python simulation.py --sqlite

    # Against the database configured in .env:
    python simulation.py

    # Run a specific scenario:
    python simulation.py --sqlite --scenario 2
"""

from __future__ import annotations

import argparse
import asyncio
import tempfile
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from pathlib import Path

from middleman_escrow.config import get_settings
from middleman_escrow.domain.enums import EscrowStatus, PartyRole
from middleman_escrow.domain.exceptions import CodeExpiredError
from middleman_escrow.domain.notifier_protocol import EscrowNotice
from middleman_escrow.infrastructure.database.engine import Database
from middleman_escrow.logging_config import get_logger, setup_logging
from middleman_escrow.services import ConfirmationService, EscrowService, SettlementService

setup_logging(log_level="INFO", json_logs=False)
logger = get_logger("simulation")

BUYER = "buyer@example.com"
SELLER = "seller@example.com"


# ---------------------------------------------------------------------------
# Simulation doubles
# ---------------------------------------------------------------------------


@dataclass
class SimClock:
    """A clock that only moves when told to."""

    now: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


@dataclass
class Inbox:
    """Notifier that keeps every notice so the parties can read their codes."""

    notices: list[EscrowNotice] = field(default_factory=list)

    async def send(self, notice: EscrowNotice) -> bool:
        self.notices.append(notice)
        logger.info("📧 EMAIL", to=notice.recipient, subject=notice.subject, code=notice.code)
        return True

    def latest_code(self, recipient: str) -> str:
        for notice in reversed(self.notices):
            if notice.recipient == recipient and notice.code:
                return notice.code
        raise LookupError(f"No code delivered to {recipient}")


@dataclass
class Harness:
    database: Database
    clock: SimClock = field(default_factory=SimClock)
    inbox: Inbox = field(default_factory=Inbox)

    def __post_init__(self) -> None:
        settings = get_settings()
        self.escrow = EscrowService(self.database, self.inbox, settings, self.clock)
        self.codes = ConfirmationService(self.database, self.inbox, settings, self.clock)
        self.settlement = SettlementService(self.database)

    async def open_request(self, price: str = "250.00") -> uuid.UUID:
        request = await self.escrow.create_request(
            role=PartyRole.BUYER,
            first_name="Ada",
            last_name="Buyer",
            email=BUYER,
            counterparty_email=SELLER,
            category="Domain name",
            price=Decimal(price),
            currency="USD",
        )
        logger.info("🔵 BUYER: Request opened", request_id=str(request.id), price=price)
        return request.id

    async def redeem(self, request_id: uuid.UUID, email: str, role: PartyRole) -> None:
        code = self.inbox.latest_code(email)
        result = await self.codes.redeem(request_id, email, role, code)
        logger.info(
            "✅ Code redeemed",
            role=role.value,
            status=result.status.value,
            status_changed=result.status_changed,
        )

    async def print_audit_trail(self, request_id: uuid.UUID) -> None:
        events = await self.escrow.get_events(request_id)
        print("\n  📜 Audit Trail:")
        for i, evt in enumerate(events, 1):
            old = evt.old_status or "—"
            print(f"    {i}. [{evt.event_type}] {old} → {evt.new_status} (by {evt.actor})")
        print()


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------


def banner(text: str) -> None:
    width = 70
    print("\n" + "=" * width)
    print(f"  {text}")
    print("=" * width + "\n")


def section(text: str) -> None:
    print(f"\n--- {text} ---\n")


# ===========================================================================
# Scenarios
# ===========================================================================


async def scenario_1_happy_path(h: Harness) -> None:
    banner("SCENARIO 1: Happy Path — open, confirm, pay, complete, withdraw")

    section("Step 1: Buyer opens the request")
    request_id = await h.open_request()

    section("Step 2: Seller accepts")
    outcome = await h.escrow.accept(request_id, SELLER)
    logger.info("🟢 SELLER: Accepted", result=outcome.result.value)

    section("Step 3: Both parties redeem their codes")
    await h.redeem(request_id, BUYER, PartyRole.BUYER)
    await h.redeem(request_id, SELLER, PartyRole.SELLER)

    section("Step 4: Payment confirmed and buyer completes")
    await h.escrow.mark_paid(request_id)
    outcome = await h.escrow.complete(request_id, BUYER)
    logger.info("🔵 BUYER: Completed", result=outcome.result.value)

    section("Step 5: Seller withdraws")
    balance = await h.settlement.get_withdrawable_amount(SELLER)
    logger.info("🟢 SELLER: Balance", amount=str(balance))
    withdrawal = await h.settlement.withdraw(
        user_id="seller-1",
        email=SELLER,
        crypto_currency="USDT",
        wallet_address="TQ" + "x" * 32,
    )
    logger.info("🟢 SELLER: Withdrawn", amount=str(withdrawal.amount))

    await h.print_audit_trail(request_id)


async def scenario_2_expired_code(h: Harness) -> None:
    banner("SCENARIO 2: Expired Code — reissue after the window closes")

    request_id = await h.open_request(price="80.00")
    await h.redeem(request_id, BUYER, PartyRole.BUYER)

    section("Seller waits 11 minutes")
    h.clock.advance(timedelta(minutes=11))
    try:
        await h.redeem(request_id, SELLER, PartyRole.SELLER)
    except CodeExpiredError as exc:
        logger.info("⏰ SELLER: Code rejected", error=exc.code)

    section("Seller requests a fresh code")
    await h.codes.issue(request_id, SELLER, PartyRole.SELLER)
    await h.redeem(request_id, SELLER, PartyRole.SELLER)

    await h.print_audit_trail(request_id)


async def scenario_3_stale_requests(h: Harness) -> None:
    banner("SCENARIO 3: Stale Requests — unpaid requests expire after 7 days")

    unpaid = await h.open_request(price="10.00")
    paid = await h.open_request(price="20.00")
    await h.escrow.mark_paid(paid)

    section("Eight days pass")
    h.clock.advance(timedelta(days=8))
    grouped = await h.escrow.list_for_participant(BUYER)
    for status in (EscrowStatus.PENDING, EscrowStatus.INCOMPLETED):
        ids = {r.id for r in grouped[status]}
        print(f"  {status.value}: unpaid={'yes' if unpaid in ids else 'no'}, "
              f"paid={'yes' if paid in ids else 'no'}")


SCENARIOS = {
    1: scenario_1_happy_path,
    2: scenario_2_expired_code,
    3: scenario_3_stale_requests,
}


async def main(use_sqlite: bool, scenario: int | None) -> None:
    if use_sqlite:
        workdir = tempfile.mkdtemp(prefix="middleman-sim-")
        database = Database(f"sqlite+aiosqlite:///{Path(workdir) / 'simulation.db'}")
    else:
        database = Database.from_settings(get_settings())
    await database.create_all()

    try:
        selected = [scenario] if scenario else sorted(SCENARIOS)
        for number in selected:
            await SCENARIOS[number](Harness(database))
    finally:
        await database.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Middleman Escrow simulation")
    parser.add_argument("--sqlite", action="store_true", help="Use a temporary SQLite file")
    parser.add_argument("--scenario", type=int, choices=sorted(SCENARIOS))
    args = parser.parse_args()
    asyncio.run(main(args.sqlite, args.scenario))
