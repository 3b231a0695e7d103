"""Tests for the Brevo email notifier using httpx.MockTransport."""

from __future__ import annotations

import json
from decimal import Decimal

import httpx
import pytest
from tenacity import wait_none

from middleman_escrow.domain.notifier_protocol import EmailNotifier, EscrowNotice
from middleman_escrow.infrastructure.email_notifier import BrevoEmailNotifier, render_escrow_email


def _notice(code: str | None = "123456") -> EscrowNotice:
    return EscrowNotice(
        recipient="seller@example.com",
        role="Seller",
        category="<b>Domain</b>",
        price=Decimal("50.00"),
        currency="USD",
        action_link="https://app.example.com/waiting?requestId=abc&role=seller",
        code=code,
    )


def _notifier(handler, max_attempts: int = 3) -> BrevoEmailNotifier:
    return BrevoEmailNotifier(
        api_key="test-key",
        max_attempts=max_attempts,
        wait=wait_none(),
        transport=httpx.MockTransport(handler),
    )


class TestRendering:
    def test_body_contains_terms_and_code(self) -> None:
        html = render_escrow_email(_notice())
        assert "Hello Seller" in html
        assert "USD 50.00" in html
        assert "123456" in html
        assert "requestId=abc" in html

    def test_body_escapes_user_input(self) -> None:
        html = render_escrow_email(_notice())
        assert "<b>Domain</b>" not in html
        assert "&lt;b&gt;Domain&lt;/b&gt;" in html

    def test_no_code_block_without_code(self) -> None:
        assert "confirmation code" not in render_escrow_email(_notice(code=None))


class TestSend:
    def test_satisfies_protocol(self) -> None:
        assert isinstance(BrevoEmailNotifier(), EmailNotifier)

    @pytest.mark.asyncio
    async def test_posts_payload(self) -> None:
        captured: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(201, json={"messageId": "m-1"})

        assert await _notifier(handler).send(_notice()) is True

        request = captured[0]
        assert request.headers["api-key"] == "test-key"
        body = json.loads(request.content)
        assert body["to"] == [{"email": "seller@example.com"}]
        assert body["subject"] == "Middleman Service Details - Seller"

    @pytest.mark.asyncio
    async def test_retries_transient_failures(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(503) if calls < 3 else httpx.Response(201)

        assert await _notifier(handler).send(_notice()) is True
        assert calls == 3

    @pytest.mark.asyncio
    async def test_gives_up_and_returns_false(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            raise httpx.ConnectError("unreachable", request=request)

        assert await _notifier(handler, max_attempts=2).send(_notice()) is False
        assert calls == 2

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(400, json={"message": "invalid sender"})

        assert await _notifier(handler).send(_notice()) is False
        assert calls == 1

    @pytest.mark.asyncio
    async def test_simulate_mode_sends_nothing(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("simulate mode must not call the API")

        notifier = BrevoEmailNotifier(api_key="", transport=httpx.MockTransport(handler))
        assert notifier.simulate is True
        assert await notifier.send(_notice()) is True
