"""Crypto-currency listing backed by CoinGecko's public markets endpoint.

Sellers pick the currency they want a withdrawal paid in from this list.
The top coins by market cap are fetched on demand; transient failures are
retried and then surfaced as MarketDataUnavailableError.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from middleman_escrow.domain.exceptions import MarketDataUnavailableError
from middleman_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from tenacity.wait import wait_base

    from middleman_escrow.config import Settings

logger = get_logger(__name__)


@dataclass(frozen=True)
class CryptoCurrency:
    name: str
    symbol: str
    logo: str | None = None


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500 or exc.response.status_code == 429
    return False


def parse_markets(rows: list[dict[str, Any]]) -> list[CryptoCurrency]:
    """Map CoinGecko market rows to listing entries, skipping malformed rows."""
    return [
        CryptoCurrency(name=row["name"], symbol=row["symbol"], logo=row.get("image"))
        for row in rows
        if row.get("name") and row.get("symbol")
    ]


class CoinGeckoClient:
    """Fetches the top crypto-currencies by market cap."""

    def __init__(
        self,
        markets_url: str = "https://api.coingecko.com/api/v3/coins/markets",
        per_page: int = 10,
        timeout_seconds: float = 10.0,
        max_attempts: int = 3,
        wait: wait_base | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._markets_url = markets_url
        self._per_page = per_page
        self._timeout = timeout_seconds
        self._max_attempts = max_attempts
        self._wait = wait or wait_exponential(multiplier=1, min=1, max=8)
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> CoinGeckoClient:
        return cls(
            markets_url=settings.coingecko_markets_url,
            per_page=settings.crypto_listing_size,
            timeout_seconds=settings.market_data_timeout_seconds,
            max_attempts=settings.market_data_max_attempts,
        )

    async def list_currencies(self) -> list[CryptoCurrency]:
        """Top coins priced in USD, ordered by market cap.

        Raises:
            MarketDataUnavailableError: CoinGecko could not be reached or
                answered with an error after all retries.
        """
        params = {
            "vs_currency": "usd",
            "order": "market_cap_desc",
            "per_page": self._per_page,
            "page": 1,
        }
        try:
            rows = await self._get(params)
        except (httpx.HTTPError, RetryError, ValueError) as exc:
            logger.error("market_data.fetch_failed", error=str(exc))
            raise MarketDataUnavailableError(str(exc)) from exc

        if not isinstance(rows, list):
            raise MarketDataUnavailableError("unexpected response shape")
        currencies = parse_markets(rows)
        logger.debug("market_data.fetched", count=len(currencies))
        return currencies

    async def _get(self, params: dict[str, Any]) -> Any:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._max_attempts),
                wait=self._wait,
                retry=retry_if_exception(_is_transient),
                reraise=True,
            ):
                with attempt:
                    response = await client.get(self._markets_url, params=params)
                    response.raise_for_status()
                    return response.json()
        return None
