"""Tests for the middleman request lifecycle: creation, reads and transitions."""

from __future__ import annotations

import uuid

import pytest

from middleman_escrow.domain.enums import EscrowStatus, EventType, PartyRole, TransitionResult
from middleman_escrow.domain.exceptions import RequestNotFoundError, UnauthorizedPartyError
from tests.conftest import BUYER, SELLER, STRANGER


class TestCreate:
    @pytest.mark.asyncio
    async def test_request_starts_pending(self, create_request) -> None:
        request = await create_request(price="120.50")

        assert request.status == EscrowStatus.PENDING
        assert request.buyer_email == BUYER
        assert request.seller_email == SELLER
        assert not (request.is_paid or request.buyer_confirmed or request.seller_confirmed)

    @pytest.mark.asyncio
    async def test_creation_is_audited(self, create_request, escrow_service) -> None:
        request = await create_request()
        events = await escrow_service.get_events(request.id)

        assert events[0].event_type == EventType.REQUEST_CREATED
        assert events[0].old_status is None
        assert [e.event_type for e in events].count(EventType.CODE_ISSUED) == 2

    @pytest.mark.asyncio
    async def test_notifier_failure_does_not_undo_creation(
        self, create_request, escrow_service, notifier
    ) -> None:
        notifier.fail = True
        request = await create_request()

        stored = await escrow_service.get_request(request.id)
        assert stored.status == EscrowStatus.PENDING


class TestReads:
    @pytest.mark.asyncio
    async def test_get_unknown_request(self, escrow_service) -> None:
        with pytest.raises(RequestNotFoundError):
            await escrow_service.get_request(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_status_view(self, create_request, escrow_service) -> None:
        request = await create_request()
        status = await escrow_service.get_status(request.id)

        assert status["status"] is EscrowStatus.PENDING
        assert status["is_paid"] is False
        assert "seller_accepts" in status["allowed_events"]

    @pytest.mark.asyncio
    async def test_role_lookup(self, create_request, escrow_service) -> None:
        request = await create_request(role=PartyRole.SELLER, email=SELLER, counterparty_email=BUYER)

        assert await escrow_service.get_role(request.id, SELLER) is PartyRole.SELLER
        assert await escrow_service.get_role(request.id, BUYER) is PartyRole.BUYER
        with pytest.raises(UnauthorizedPartyError):
            await escrow_service.get_role(request.id, STRANGER)


class TestAccept:
    @pytest.mark.asyncio
    async def test_seller_accepts(self, create_request, escrow_service) -> None:
        request = await create_request()
        outcome = await escrow_service.accept(request.id, SELLER)

        assert outcome.result is TransitionResult.APPLIED
        assert outcome.request.status == EscrowStatus.ACCEPTED

    @pytest.mark.asyncio
    async def test_transition_bumps_updated_at(self, create_request, escrow_service) -> None:
        request = await create_request()
        before = (await escrow_service.get_request(request.id)).updated_at

        await escrow_service.accept(request.id, SELLER)

        after = (await escrow_service.get_request(request.id)).updated_at
        assert after > before

    @pytest.mark.asyncio
    async def test_accept_twice_is_already_applied(self, create_request, escrow_service) -> None:
        request = await create_request()
        await escrow_service.accept(request.id, SELLER)
        outcome = await escrow_service.accept(request.id, SELLER)

        assert outcome.result is TransitionResult.ALREADY_APPLIED
        events = await escrow_service.get_events(request.id)
        assert [e.event_type for e in events].count(EventType.REQUEST_ACCEPTED) == 1

    @pytest.mark.asyncio
    async def test_buyer_cannot_accept(self, create_request, escrow_service) -> None:
        request = await create_request()
        with pytest.raises(UnauthorizedPartyError):
            await escrow_service.accept(request.id, BUYER)

    @pytest.mark.asyncio
    async def test_accept_after_confirmation_is_rejected(
        self, create_request, confirm_both, escrow_service
    ) -> None:
        request = await create_request()
        await confirm_both(request)

        outcome = await escrow_service.accept(request.id, SELLER)
        assert outcome.result is TransitionResult.REJECTED
        assert outcome.request.status == EscrowStatus.CONFIRMED


class TestPayment:
    @pytest.mark.asyncio
    async def test_mark_paid_once(self, create_request, escrow_service) -> None:
        request = await create_request()

        first = await escrow_service.mark_paid(request.id)
        second = await escrow_service.mark_paid(request.id)

        assert first.result is TransitionResult.APPLIED
        assert second.result is TransitionResult.ALREADY_APPLIED
        assert second.request.is_paid is True
        assert second.request.status == EscrowStatus.PENDING

    @pytest.mark.asyncio
    async def test_mark_paid_unknown_request(self, escrow_service) -> None:
        with pytest.raises(RequestNotFoundError):
            await escrow_service.mark_paid(uuid.uuid4())


class TestComplete:
    @pytest.mark.asyncio
    async def test_complete_requires_confirmation(self, create_request, escrow_service) -> None:
        request = await create_request()
        await escrow_service.mark_paid(request.id)

        outcome = await escrow_service.complete(request.id, BUYER)
        assert outcome.result is TransitionResult.REJECTED
        assert outcome.request.status == EscrowStatus.PENDING

    @pytest.mark.asyncio
    async def test_complete_requires_payment(
        self, create_request, confirm_both, escrow_service
    ) -> None:
        request = await create_request()
        await confirm_both(request)

        outcome = await escrow_service.complete(request.id, BUYER)
        assert outcome.result is TransitionResult.REJECTED
        assert outcome.request.status == EscrowStatus.CONFIRMED

    @pytest.mark.asyncio
    @pytest.mark.parametrize("caller", [BUYER, SELLER])
    async def test_either_party_completes(
        self, create_request, confirm_both, escrow_service, notifier, caller
    ) -> None:
        request = await create_request()
        await confirm_both(request)
        await escrow_service.mark_paid(request.id)
        sent_before = len(notifier.sent)

        outcome = await escrow_service.complete(request.id, caller)

        assert outcome.result is TransitionResult.APPLIED
        assert outcome.request.status == EscrowStatus.COMPLETED
        assert {n.recipient for n in notifier.sent[sent_before:]} == {BUYER, SELLER}

    @pytest.mark.asyncio
    async def test_complete_twice_is_already_applied(
        self, create_request, confirm_both, escrow_service, notifier
    ) -> None:
        request = await create_request()
        await confirm_both(request)
        await escrow_service.mark_paid(request.id)
        await escrow_service.complete(request.id, BUYER)
        sent_before = len(notifier.sent)

        outcome = await escrow_service.complete(request.id, SELLER)
        assert outcome.result is TransitionResult.ALREADY_APPLIED
        assert len(notifier.sent) == sent_before

    @pytest.mark.asyncio
    async def test_stranger_cannot_complete(self, create_request, escrow_service) -> None:
        request = await create_request()
        with pytest.raises(UnauthorizedPartyError):
            await escrow_service.complete(request.id, STRANGER)

    @pytest.mark.asyncio
    async def test_full_audit_trail(
        self, create_request, confirm_both, escrow_service
    ) -> None:
        request = await create_request()
        await escrow_service.accept(request.id, SELLER)
        await confirm_both(request)
        await escrow_service.mark_paid(request.id)
        await escrow_service.complete(request.id, BUYER)

        events = await escrow_service.get_events(request.id)
        transitions = [
            (e.old_status, e.new_status) for e in events if e.old_status != e.new_status
        ]
        assert transitions == [
            (None, "pending"),
            ("pending", "accepted"),
            ("accepted", "confirmed"),
            ("confirmed", "completed"),
        ]
