"""End-to-end tests of the REST API through httpx.AsyncClient + ASGITransport.

The app is built with the test Database and recording notifier, so the
lifespan never runs and no real Postgres, Redis or Brevo is touched.
"""

from __future__ import annotations

import uuid
from decimal import Decimal

import httpx
import pytest
import pytest_asyncio

from middleman_escrow.main import create_app
from tests.conftest import BUYER, SELLER, STRANGER

API = "/api/v1/middleman"


@pytest_asyncio.fixture
async def client(settings, database, notifier):
    app = create_app(settings=settings, database=database, notifier=notifier)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def _create(client: httpx.AsyncClient, **overrides) -> dict:
    payload = {
        "role": "buyer",
        "first_name": "Ada",
        "last_name": "Lovelace",
        "email": BUYER,
        "counterparty_email": SELLER,
        "category": "Domain name",
        "price": "50.00",
        "currency": "USD",
    }
    payload.update(overrides)
    response = await client.post(f"{API}/requests", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


async def _redeem(client, request_id, email, role, code) -> httpx.Response:
    return await client.post(
        f"{API}/requests/{request_id}/codes/redeem",
        json={"email": email, "role": role, "code": code},
    )


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_request(self, client, notifier) -> None:
        body = await _create(client)

        assert body["status"] == "pending"
        assert body["buyer_email"] == BUYER
        assert body["seller_email"] == SELLER
        assert {n.recipient for n in notifier.sent} == {BUYER, SELLER}

    @pytest.mark.asyncio
    async def test_same_party_on_both_sides_is_invalid(self, client) -> None:
        response = await client.post(
            f"{API}/requests",
            json={
                "role": "buyer",
                "email": BUYER,
                "counterparty_email": BUYER,
                "category": "Domain name",
                "price": "50.00",
                "currency": "USD",
            },
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_non_positive_price_is_invalid(self, client) -> None:
        response = await client.post(
            f"{API}/requests",
            json={
                "role": "seller",
                "email": SELLER,
                "counterparty_email": BUYER,
                "category": "Domain name",
                "price": "0",
                "currency": "USD",
            },
        )
        assert response.status_code == 422


class TestReads:
    @pytest.mark.asyncio
    async def test_unknown_request_is_404(self, client) -> None:
        response = await client.get(f"{API}/requests/{uuid.uuid4()}")
        assert response.status_code == 404
        assert response.json()["error"] == "REQUEST_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_status_role_events_and_listing(self, client) -> None:
        created = await _create(client)
        request_id = created["id"]

        status = (await client.get(f"{API}/requests/{request_id}/status")).json()
        assert status["status"] == "pending"
        assert "seller_accepts" in status["allowed_events"]

        role = await client.get(f"{API}/requests/{request_id}/role", params={"email": SELLER})
        assert role.json()["role"] == "seller"

        stranger = await client.get(
            f"{API}/requests/{request_id}/role", params={"email": STRANGER}
        )
        assert stranger.status_code == 403

        events = (await client.get(f"{API}/requests/{request_id}/events")).json()
        assert events[0]["event_type"] == "REQUEST_CREATED"

        listing = (await client.get(f"{API}/requests", params={"email": BUYER})).json()
        assert [r["id"] for r in listing["requests"]["pending"]] == [request_id]

    @pytest.mark.asyncio
    async def test_health(self, client) -> None:
        body = (await client.get("/health")).json()
        assert body["database"] == "healthy"
        assert body["status"] == "ok"


class TestRedemptionErrors:
    @pytest.mark.asyncio
    async def test_error_mapping(self, client, notifier) -> None:
        request_id = (await _create(client))["id"]
        code = notifier.code_for(BUYER)
        wrong = "100000" if code != "100000" else "100001"

        mismatch = await _redeem(client, request_id, BUYER, "buyer", wrong)
        assert mismatch.status_code == 400
        assert mismatch.json()["error"] == "CODE_MISMATCH"

        unauthorized = await _redeem(client, request_id, STRANGER, "buyer", code)
        assert unauthorized.status_code == 403

        ok = await _redeem(client, request_id, BUYER, "buyer", code)
        assert ok.status_code == 200
        assert ok.json()["buyer_confirmed"] is True

        reused = await _redeem(client, request_id, BUYER, "buyer", code)
        assert reused.status_code == 409
        assert reused.json()["error"] == "CODE_ALREADY_USED"

    @pytest.mark.asyncio
    async def test_malformed_code_is_rejected(self, client) -> None:
        request_id = (await _create(client))["id"]
        response = await _redeem(client, request_id, BUYER, "buyer", "12ab56")
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_reissue(self, client, notifier) -> None:
        request_id = (await _create(client))["id"]
        response = await client.post(
            f"{API}/requests/{request_id}/codes", json={"email": SELLER, "role": "seller"}
        )
        assert response.status_code == 200
        assert response.json()["sent_to"] == SELLER
        assert "code" not in response.json()
        assert len(notifier.to(SELLER)) == 2


class TestEmailCase:
    @pytest.mark.asyncio
    async def test_reads_accept_the_address_used_at_creation(self, client) -> None:
        mixed = "Seller@Example.COM"
        created = await _create(client, counterparty_email=mixed)
        request_id = created["id"]
        assert created["seller_email"] == "Seller@example.com"

        listing = (await client.get(f"{API}/requests", params={"email": mixed})).json()
        assert [r["id"] for r in listing["requests"]["pending"]] == [request_id]

        role = await client.get(f"{API}/requests/{request_id}/role", params={"email": mixed})
        assert role.status_code == 200
        assert role.json()["role"] == "seller"

        balance = await client.get(f"{API}/settlement/balance", params={"email": mixed})
        assert balance.status_code == 200
        assert Decimal(balance.json()["amount"]) == 0

    @pytest.mark.asyncio
    async def test_malformed_query_email_is_rejected(self, client) -> None:
        response = await client.get(f"{API}/requests", params={"email": "not-an-address"})
        assert response.status_code == 422


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_full_flow_to_withdrawal(self, client, notifier) -> None:
        request_id = (await _create(client, price="50.00"))["id"]

        accepted = await client.post(f"{API}/requests/{request_id}/accept", json={"email": SELLER})
        assert accepted.json()["result"] == "applied"

        await _redeem(client, request_id, BUYER, "buyer", notifier.code_for(BUYER))
        confirmed = await _redeem(client, request_id, SELLER, "seller", notifier.code_for(SELLER))
        assert confirmed.json()["status"] == "confirmed"
        assert confirmed.json()["status_changed"] is True

        early = await client.post(f"{API}/requests/{request_id}/complete", json={"email": BUYER})
        assert early.status_code == 200
        assert early.json()["result"] == "rejected"

        paid = await client.post(f"{API}/requests/{request_id}/payment")
        assert paid.json()["request"]["is_paid"] is True

        done = await client.post(f"{API}/requests/{request_id}/complete", json={"email": BUYER})
        assert done.json()["result"] == "applied"
        assert done.json()["request"]["status"] == "completed"

        balance = await client.get(f"{API}/settlement/balance", params={"email": SELLER})
        assert balance.json()["amount"] == "50.00"

        withdrawal = {
            "user_id": "seller-1",
            "email": SELLER,
            "crypto_currency": "USDT",
            "wallet_address": "TQn9Y2khEsLJW1ChVWFMSMeRDow5KcbLSE",
        }
        first = await client.post(f"{API}/settlement/withdrawals", json=withdrawal)
        assert first.status_code == 201
        assert first.json()["amount"] == "50.00"

        second = await client.post(f"{API}/settlement/withdrawals", json=withdrawal)
        assert second.status_code == 422
        assert second.json()["error"] == "NOTHING_TO_WITHDRAW"

        history = await client.get(f"{API}/settlement/withdrawals", params={"email": SELLER})
        assert len(history.json()) == 1

    @pytest.mark.asyncio
    async def test_buyer_cannot_accept(self, client) -> None:
        request_id = (await _create(client))["id"]
        response = await client.post(f"{API}/requests/{request_id}/accept", json={"email": BUYER})
        assert response.status_code == 403
        assert response.json()["error"] == "UNAUTHORIZED_PARTY"


class TestIdempotency:
    @pytest.fixture
    def claims(self, monkeypatch: pytest.MonkeyPatch) -> set[str]:
        """Stand in for Redis SET NX with an in-memory set."""
        from middleman_escrow.api import deps

        taken: set[str] = set()

        async def claim(key: str, value: str = "1") -> bool:
            if key in taken:
                return False
            taken.add(key)
            return True

        async def release(key: str) -> None:
            taken.discard(key)

        monkeypatch.setattr(deps, "is_redis_available", lambda: True)
        monkeypatch.setattr(deps, "claim_idempotency", claim)
        monkeypatch.setattr(deps, "release_idempotency", release)
        return taken

    @pytest.mark.asyncio
    async def test_repeated_key_is_rejected(self, client, claims) -> None:
        payload = {
            "role": "buyer",
            "email": BUYER,
            "counterparty_email": SELLER,
            "category": "Domain name",
            "price": "50.00",
            "currency": "USD",
        }
        headers = {"Idempotency-Key": "create-1"}

        first = await client.post(f"{API}/requests", json=payload, headers=headers)
        second = await client.post(f"{API}/requests", json=payload, headers=headers)

        assert first.status_code == 201
        assert second.status_code == 409
        assert second.json()["error"] == "DUPLICATE_OPERATION"

    @pytest.mark.asyncio
    async def test_failed_operation_releases_key(self, client, claims) -> None:
        withdrawal = {
            "user_id": "seller-1",
            "email": SELLER,
            "crypto_currency": "USDT",
            "wallet_address": "TQn9Y2khEsLJW1ChVWFMSMeRDow5KcbLSE",
        }
        headers = {"Idempotency-Key": "withdraw-1"}

        response = await client.post(f"{API}/settlement/withdrawals", json=withdrawal, headers=headers)
        assert response.status_code == 422
        assert claims == set()


class TestStorageFailure:
    @pytest.mark.asyncio
    async def test_storage_unavailable_is_503_with_retry_after(
        self, settings, database, notifier
    ) -> None:
        from middleman_escrow.api.deps import get_escrow_service
        from middleman_escrow.domain.exceptions import StorageUnavailableError

        class DownService:
            async def get_request(self, request_id):
                raise StorageUnavailableError("connection refused")

        app = create_app(settings=settings, database=database, notifier=notifier)
        app.dependency_overrides[get_escrow_service] = DownService
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
            response = await c.get(f"{API}/requests/{uuid.uuid4()}")

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "5"
        assert response.json()["error"] == "STORAGE_UNAVAILABLE"
        assert "X-Request-ID" in response.headers


class TestCurrencies:
    @staticmethod
    async def _get(settings, database, notifier, market_data) -> httpx.Response:
        app = create_app(
            settings=settings, database=database, notifier=notifier, market_data=market_data
        )
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
            return await c.get(f"{API}/settlement/currencies")

    @pytest.mark.asyncio
    async def test_lists_currencies(self, settings, database, notifier) -> None:
        from middleman_escrow.infrastructure.market_data import CryptoCurrency

        class Listing:
            async def list_currencies(self):
                return [CryptoCurrency(name="Tether", symbol="usdt", logo=None)]

        response = await self._get(settings, database, notifier, Listing())

        assert response.status_code == 200
        assert response.json() == [{"name": "Tether", "symbol": "usdt", "logo": None}]

    @pytest.mark.asyncio
    async def test_upstream_failure_is_503(self, settings, database, notifier) -> None:
        from middleman_escrow.domain.exceptions import MarketDataUnavailableError

        class DownListing:
            async def list_currencies(self):
                raise MarketDataUnavailableError("timeout")

        response = await self._get(settings, database, notifier, DownListing())

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "5"
        assert response.json()["error"] == "MARKET_DATA_UNAVAILABLE"
