"""Binance market-data provider: the primary crypto price source.

Uses the public ``/api/v3/ticker/24hr`` endpoint, one request per symbol.
Crypto prices move constantly, so results are cached for 30 seconds.
Symbols are Binance trading pairs such as ``BTCUSDT``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any

import httpx

from portfolio_prism.core.exceptions import ProviderError, RateLimitError
from portfolio_prism.core.models import Price
from portfolio_prism.prices.cache import TTLCache
from portfolio_prism.prices.provider import deadline

logger = logging.getLogger(__name__)

_BASE_URL = "https://api.binance.com"
_TICKER_PATH = "/api/v3/ticker/24hr"
_PING_PATH = "/api/v3/ping"

DEFAULT_CACHE_TTL = 30.0

SYMBOL_NAMES: MappingProxyType[str, str] = MappingProxyType(
    {
        "BTCUSDT": "Bitcoin",
        "ETHUSDT": "Ethereum",
        "SOLUSDT": "Solana",
        "BNBUSDT": "BNB",
        "XRPUSDT": "XRP",
        "ADAUSDT": "Cardano",
        "DOGEUSDT": "Dogecoin",
        "DOTUSDT": "Polkadot",
        "MATICUSDT": "Polygon",
        "AVAXUSDT": "Avalanche",
    }
)


def crypto_display_name(symbol: str) -> str:
    """Human-readable name for a Binance trading pair."""
    return SYMBOL_NAMES.get(symbol, symbol)


def parse_float(value: Any) -> float:
    """Parse a numeric field, defaulting to 0.0 when it is missing or malformed.

    Binance encodes numbers as strings; one bad field should not sink the
    whole quote.
    """
    if value is None:
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


class BinanceProvider:
    """Fetches 24h ticker quotes from Binance.

    A failed request for one symbol falls back to that symbol's cached
    price (marked stale) and the remaining symbols carry on. If every
    symbol fails and nothing is cached, the call raises ``ProviderError``
    so a ``FallbackProvider`` can try its secondary source.

    Parameters
    ----------
    base_url : str
        Override base URL (useful for testing).
    cache_ttl : float
        Seconds fetched prices stay fresh. Default: 30.
    request_timeout : float
        Per-request HTTP timeout in seconds. Default: 10.
    client : httpx.AsyncClient | None
        Shared client. Created (and owned) by the provider if None.
    clock : Callable[[], datetime] | None
        Wall-clock source for ``last_updated``.
    cache_clock : Callable[[], float] | None
        Monotonic time source for the cache.
    """

    def __init__(
        self,
        base_url: str = _BASE_URL,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        request_timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] | None = None,
        cache_clock: Callable[[], float] | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(request_timeout)
        )
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._cache: TTLCache[Price] = (
            TTLCache(cache_ttl, cache_clock) if cache_clock else TTLCache(cache_ttl)
        )
        self._closed = False

    @property
    def name(self) -> str:
        return "binance"

    async def fetch_prices(
        self, symbols: Iterable[str], *, timeout: float | None = None
    ) -> list[Price]:
        requested = list(dict.fromkeys(symbols))

        cached = await self._cache.get_fresh(requested)
        if cached is not None:
            logger.debug("Returning %d cached Binance prices", len(cached))
            return cached

        logger.info("Fetching Binance data: %s", requested)
        # A timeout is a per-symbol failure, like any other
        results = await asyncio.gather(
            *(self._fetch_ticker_within(symbol, timeout) for symbol in requested),
            return_exceptions=True,
        )

        now = self._clock()
        fresh: dict[str, Price] = {}
        stale: dict[str, Price] = {}
        prices: list[Price] = []
        failures: dict[str, BaseException] = {}

        for symbol, result in zip(requested, results):
            if isinstance(result, BaseException):
                logger.warning("Failed to fetch Binance ticker %s: %s", symbol, result)
                failures[symbol] = result
                previous = await self._cache.get(symbol)
                if previous is not None:
                    stale[symbol] = previous.as_stale()
                    prices.append(stale[symbol])
                continue

            price = self._to_price(symbol, result, now)
            fresh[symbol] = price
            prices.append(price)

        if requested and not prices:
            first = next(iter(failures.values()))
            raise ProviderError(
                f"All Binance ticker requests failed: {first}",
                context={"provider": self.name, "symbols": requested},
            ) from first

        # Cached entries keep their stale flag
        if fresh or stale:
            await self._cache.update({**stale, **fresh})
        return prices

    def _to_price(self, symbol: str, ticker: dict[str, Any], now: datetime) -> Price:
        return Price(
            symbol=symbol,
            name=crypto_display_name(symbol),
            price=max(parse_float(ticker.get("lastPrice")), 0.0),
            daily_change=parse_float(ticker.get("priceChange")),
            daily_pct=parse_float(ticker.get("priceChangePercent")),
            last_updated=now,
            stale=False,
            source=self.name,
        )

    async def _fetch_ticker_within(
        self, symbol: str, timeout: float | None
    ) -> dict[str, Any]:
        async with deadline(timeout, self.name):
            return await self._fetch_ticker(symbol)

    async def _fetch_ticker(self, symbol: str) -> dict[str, Any]:
        """Fetch the raw 24h ticker object for one symbol.

        Raises
        ------
        RateLimitError
            On HTTP 429 or 418 (Binance's IP ban status).
        ProviderError
            On any other HTTP or transport failure.
        """
        url = f"{self._base_url}{_TICKER_PATH}"
        try:
            resp = await self._client.get(url, params={"symbol": symbol})
        except httpx.RequestError as e:
            raise ProviderError(
                f"Binance request error for {symbol}: {e}",
                context={"provider": self.name, "symbol": symbol},
            ) from e

        if resp.status_code in (418, 429):
            retry_after = resp.headers.get("Retry-After")
            raise RateLimitError(
                f"Binance rate limit hit for {symbol}",
                context={
                    "provider": self.name,
                    "symbol": symbol,
                    "retry_after": int(retry_after) if retry_after and retry_after.isdigit() else None,
                },
            )
        if resp.status_code != 200:
            raise ProviderError(
                f"Binance returned HTTP {resp.status_code} for {symbol}",
                context={
                    "provider": self.name,
                    "symbol": symbol,
                    "status_code": resp.status_code,
                    "response_body": resp.text[:200],
                },
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise ProviderError(
                f"Binance returned invalid JSON for {symbol}",
                context={"provider": self.name, "symbol": symbol},
            ) from e
        if not isinstance(data, dict):
            raise ProviderError(
                f"Unexpected Binance ticker shape for {symbol}",
                context={"provider": self.name, "symbol": symbol},
            )
        return data

    async def is_healthy(self, *, timeout: float | None = None) -> bool:
        try:
            async with asyncio.timeout(timeout):
                resp = await self._client.get(f"{self._base_url}{_PING_PATH}")
            return resp.status_code == 200
        except Exception:
            return False

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._owns_client:
            await self._client.aclose()
