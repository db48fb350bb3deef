"""CoinGecko market-data provider: the rate-limited crypto fallback.

CoinGecko identifies coins by id ("bitcoin"), not by trading pair
("BTCUSDT"), so symbols are translated through ``symbol_to_coin_id``.
The free tier is rate-limited, hence the longer 60-second price cache.

Exchange rate
-------------
``fetch_exchange_rate`` returns USD/TRY derived from Tether (USDT) priced
in TRY. USDT tracks USD closely but not exactly; treat the result as an
approximation of the FX rate, not a market quote.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any

import httpx
from aiolimiter import AsyncLimiter

from portfolio_prism.core.exceptions import ProviderError, RateLimitError
from portfolio_prism.core.models import ExchangeRate, Price
from portfolio_prism.prices.cache import TTLCache
from portfolio_prism.prices.provider import deadline

logger = logging.getLogger(__name__)

_BASE_URL = "https://api.coingecko.com/api/v3"
_PRICE_PATH = "/simple/price"
_PING_PATH = "/ping"
_API_KEY_HEADER = "x-cg-demo-api-key"

DEFAULT_CACHE_TTL = 60.0
DEFAULT_EXCHANGE_RATE_TTL = 300.0
DEFAULT_RATE_LIMIT = 30  # requests per minute, free tier

_STABLECOIN_ID = "tether"
_QUOTE_SUFFIX = "USDT"

COIN_IDS: MappingProxyType[str, str] = MappingProxyType(
    {
        "BTCUSDT": "bitcoin",
        "ETHUSDT": "ethereum",
        "SOLUSDT": "solana",
        "BNBUSDT": "binancecoin",
        "XRPUSDT": "ripple",
        "ADAUSDT": "cardano",
        "DOGEUSDT": "dogecoin",
        "DOTUSDT": "polkadot",
        "MATICUSDT": "matic-network",
        "AVAXUSDT": "avalanche-2",
    }
)

COIN_NAMES: MappingProxyType[str, str] = MappingProxyType(
    {
        "bitcoin": "Bitcoin",
        "ethereum": "Ethereum",
        "solana": "Solana",
        "binancecoin": "BNB",
        "ripple": "XRP",
        "cardano": "Cardano",
        "dogecoin": "Dogecoin",
        "polkadot": "Polkadot",
        "matic-network": "Polygon",
        "avalanche-2": "Avalanche",
    }
)


def symbol_to_coin_id(symbol: str) -> str:
    """Translate a Binance pair to a CoinGecko coin id.

    Known pairs use the table; anything else drops a trailing ``USDT`` and
    is lowercased ("FOOUSDT" -> "foo").
    """
    if symbol in COIN_IDS:
        return COIN_IDS[symbol]
    if symbol.endswith(_QUOTE_SUFFIX):
        symbol = symbol[: -len(_QUOTE_SUFFIX)]
    return symbol.lower()


def coin_display_name(coin_id: str) -> str:
    return COIN_NAMES.get(coin_id, coin_id)


def _number(value: Any) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return 0.0


class CoinGeckoProvider:
    """Fetches simple USD prices from CoinGecko; also quotes USD/TRY.

    Coins missing from the response are omitted. Any HTTP or transport
    failure raises (``RateLimitError`` on 429). This provider sits at the
    end of the fallback chain and has nothing further to fall back on.

    Parameters
    ----------
    api_key : str | None
        Demo API key for higher rate limits. Optional.
    base_url : str
        Override base URL (useful for testing).
    cache_ttl : float
        Seconds fetched prices stay fresh. Default: 60.
    exchange_rate_ttl : float
        Seconds the exchange rate stays fresh. Default: 300.
    request_timeout : float
        Per-request HTTP timeout in seconds. Default: 10.
    rate_limit : int
        Maximum requests per minute. Default: 30.
    vs_currency : str
        Currency prices are quoted in. Default: "usd".
    rate_currency : str
        Quote currency of the exchange rate. Default: "try".
    client : httpx.AsyncClient | None
        Shared client. Created (and owned) by the provider if None.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str = _BASE_URL,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        exchange_rate_ttl: float = DEFAULT_EXCHANGE_RATE_TTL,
        request_timeout: float = 10.0,
        rate_limit: int = DEFAULT_RATE_LIMIT,
        vs_currency: str = "usd",
        rate_currency: str = "try",
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] | None = None,
        cache_clock: Callable[[], float] | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._vs_currency = vs_currency.lower()
        self._rate_currency = rate_currency.lower()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(request_timeout)
        )
        self._limiter = AsyncLimiter(max_rate=rate_limit, time_period=60.0)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        # Prices are cached by coin id, not by pair
        self._cache: TTLCache[Price] = (
            TTLCache(cache_ttl, cache_clock) if cache_clock else TTLCache(cache_ttl)
        )
        self._rate_cache: TTLCache[ExchangeRate] = (
            TTLCache(exchange_rate_ttl, cache_clock)
            if cache_clock
            else TTLCache(exchange_rate_ttl)
        )
        self._closed = False

    @property
    def name(self) -> str:
        return "coingecko"

    @property
    def supports_exchange_rate(self) -> bool:
        return True

    def _headers(self) -> dict[str, str]:
        return {_API_KEY_HEADER: self._api_key} if self._api_key else {}

    async def fetch_prices(
        self, symbols: Iterable[str], *, timeout: float | None = None
    ) -> list[Price]:
        requested = list(dict.fromkeys(symbols))
        coin_ids = [symbol_to_coin_id(s) for s in requested]

        cached = await self._cache.get_fresh(coin_ids)
        if cached is not None:
            logger.debug("Returning %d cached CoinGecko prices", len(cached))
            # Cached entries keep the pair they were first fetched under
            return [p.model_copy(update={"symbol": s}) for s, p in zip(requested, cached)]
        if not requested:
            return []

        logger.info("Fetching CoinGecko data: %s", coin_ids)
        async with deadline(timeout, self.name):
            data = await self._simple_price(
                ids=coin_ids,
                vs_currency=self._vs_currency,
                include_24hr_change=True,
            )

        now = self._clock()
        change_key = f"{self._vs_currency}_24h_change"
        prices: list[Price] = []
        fresh: dict[str, Price] = {}
        for symbol, coin_id in zip(requested, coin_ids):
            entry = data.get(coin_id)
            if not isinstance(entry, dict):
                logger.warning("Coin %s (%s) missing from CoinGecko response", coin_id, symbol)
                continue
            price = Price(
                symbol=symbol,
                name=coin_display_name(coin_id),
                price=max(_number(entry.get(self._vs_currency)), 0.0),
                daily_change=0.0,  # simple/price has no absolute change
                daily_pct=_number(entry.get(change_key)),
                last_updated=now,
                stale=False,
                source=self.name,
            )
            prices.append(price)
            fresh[coin_id] = price

        if fresh:
            await self._cache.update(fresh)
        return prices

    async def fetch_exchange_rate(self, *, timeout: float | None = None) -> ExchangeRate:
        """USD/TRY via the Tether price in TRY (a stablecoin proxy, not an FX quote)."""
        key = f"{_STABLECOIN_ID}:{self._rate_currency}"
        cached = await self._rate_cache.get_fresh([key])
        if cached is not None:
            return cached[0]

        logger.info(
            "Fetching USD/%s exchange rate from CoinGecko", self._rate_currency.upper()
        )
        async with deadline(timeout, self.name, "fetch_exchange_rate"):
            data = await self._simple_price(
                ids=[_STABLECOIN_ID], vs_currency=self._rate_currency
            )

        entry = data.get(_STABLECOIN_ID)
        rate = _number(entry.get(self._rate_currency)) if isinstance(entry, dict) else 0.0
        if rate <= 0:
            raise ProviderError(
                "Invalid exchange rate response from CoinGecko",
                context={"provider": self.name, "response": str(data)[:200]},
            )

        result = ExchangeRate(
            base="USD",
            quote=self._rate_currency.upper(),
            rate=rate,
            last_updated=self._clock(),
            source=self.name,
        )
        await self._rate_cache.update({key: result})
        logger.info("Fetched USD/%s exchange rate: %s", result.quote, rate)
        return result

    async def _simple_price(
        self,
        ids: list[str],
        vs_currency: str,
        include_24hr_change: bool = False,
    ) -> dict[str, Any]:
        """Call ``/simple/price`` and return the decoded JSON mapping."""
        params = {"ids": ",".join(ids), "vs_currencies": vs_currency}
        if include_24hr_change:
            params["include_24hr_change"] = "true"

        await self._limiter.acquire()
        try:
            resp = await self._client.get(
                f"{self._base_url}{_PRICE_PATH}",
                params=params,
                headers=self._headers(),
            )
        except httpx.RequestError as e:
            raise ProviderError(
                f"CoinGecko request error: {e}",
                context={"provider": self.name, "ids": ids},
            ) from e

        if resp.status_code == 429:
            retry_after = resp.headers.get("Retry-After")
            raise RateLimitError(
                "CoinGecko rate limit exceeded",
                context={
                    "provider": self.name,
                    "retry_after": int(retry_after) if retry_after and retry_after.isdigit() else None,
                },
            )
        if resp.status_code != 200:
            raise ProviderError(
                f"CoinGecko returned HTTP {resp.status_code}",
                context={
                    "provider": self.name,
                    "status_code": resp.status_code,
                    "response_body": resp.text[:200],
                },
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise ProviderError(
                "CoinGecko returned invalid JSON", context={"provider": self.name}
            ) from e
        if not isinstance(data, dict):
            raise ProviderError(
                "Unexpected CoinGecko response shape", context={"provider": self.name}
            )
        return data

    async def is_healthy(self, *, timeout: float | None = None) -> bool:
        try:
            async with asyncio.timeout(timeout):
                resp = await self._client.get(
                    f"{self._base_url}{_PING_PATH}", headers=self._headers()
                )
            return resp.status_code == 200
        except Exception:
            return False

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._owns_client:
            await self._client.aclose()
