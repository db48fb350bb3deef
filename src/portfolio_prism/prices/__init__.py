"""Source-agnostic price providers.

Architecture
------------
Every source implements one contract, so sources and consumers are
decoupled and sources compose:

    Source → Adapter (TTL cache) → list[Price] → FallbackProvider → Consumer

Key abstractions:

- ``PriceProvider``: fetch_prices / is_healthy / close.
- ``ExchangeRateSource``: optional capability, discovered with
  ``exchange_rate_source(provider)``.
- ``TTLCache``: per-adapter cache behind a read/write lock.
- ``FallbackProvider``: primary, then secondary on hard failure.

Built-in sources:

- ``TefasProvider``: fund prices scraped through a browser session
  (``PlaywrightFundSession``), cached 5 minutes.
- ``BinanceProvider``: primary crypto source, cached 30 seconds.
- ``CoinGeckoProvider``: rate-limited crypto fallback, cached 60 seconds;
  also quotes USD/TRY.

Adding a new price source:
1. Write a class with ``name``, ``fetch_prices``, ``is_healthy``, ``close``.
2. Optionally add ``fetch_exchange_rate``.
3. Wire it up in ``build_providers``.
"""

from portfolio_prism.prices.binance import BinanceProvider, parse_float
from portfolio_prism.prices.cache import ReadWriteLock, TTLCache
from portfolio_prism.prices.coingecko import CoinGeckoProvider, symbol_to_coin_id
from portfolio_prism.prices.factory import ProviderSet, build_providers
from portfolio_prism.prices.fallback import FallbackProvider
from portfolio_prism.prices.provider import (
    ExchangeRateSource,
    PriceProvider,
    exchange_rate_source,
)
from portfolio_prism.prices.tefas import (
    FundRow,
    FundRowFetcher,
    TefasProvider,
    last_business_day,
)

__all__ = [
    # Protocols
    "PriceProvider",
    "ExchangeRateSource",
    "FundRowFetcher",
    "exchange_rate_source",
    # Cache
    "TTLCache",
    "ReadWriteLock",
    # Sources
    "TefasProvider",
    "FundRow",
    "last_business_day",
    "BinanceProvider",
    "parse_float",
    "CoinGeckoProvider",
    "symbol_to_coin_id",
    # Composition
    "FallbackProvider",
    "ProviderSet",
    "build_providers",
]
