"""Price provider protocols: the source-agnostic interface layer.

Architecture
------------
Every price source implements ``PriceProvider``:

    Source → Adapter (TTL cache) → list[Price] → FallbackProvider → PortfolioEngine

- **PriceProvider** is the consumer-facing protocol. Any code that needs
  prices depends only on this interface.

- **ExchangeRateSource** is an optional capability. Not every source can
  quote an exchange rate, so consumers ask ``exchange_rate_source()``
  first instead of calling the method blindly.

Timeouts
--------
Every network-bound method accepts a keyword-only ``timeout`` in seconds.
When it elapses the call raises ``ProviderTimeoutError`` (``fetch_prices``,
``fetch_exchange_rate``) or returns False (``is_healthy``).
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from typing import Protocol, runtime_checkable

from portfolio_prism.core.exceptions import ProviderTimeoutError
from portfolio_prism.core.models import ExchangeRate, Price


@runtime_checkable
class PriceProvider(Protocol):
    """Uniform contract for every price source."""

    @property
    def name(self) -> str:
        """Provider name for logging and health reporting."""
        ...

    async def fetch_prices(
        self, symbols: Iterable[str], *, timeout: float | None = None
    ) -> list[Price]:
        """Fetch current quotes for the requested symbols.

        Result order is unspecified; index by ``Price.symbol``. Symbols the
        source does not know are omitted or returned as stale zero-price
        placeholders, depending on the adapter.

        Raises
        ------
        ProviderError
            When no fresh, cached, or placeholder data can be produced.
        """
        ...

    async def is_healthy(self, *, timeout: float | None = None) -> bool:
        """Lightweight liveness probe. Never raises."""
        ...

    async def close(self) -> None:
        """Release sockets or browser processes. Safe to call repeatedly."""
        ...


@runtime_checkable
class ExchangeRateSource(Protocol):
    """Optional capability: quote a fiat exchange rate."""

    async def fetch_exchange_rate(
        self, *, timeout: float | None = None
    ) -> ExchangeRate: ...


def exchange_rate_source(provider: object | None) -> ExchangeRateSource | None:
    """Return ``provider`` as an ``ExchangeRateSource`` if it supports the capability.

    Composite providers expose ``supports_exchange_rate`` so the answer
    reflects what they wrap rather than the method they always define.
    Returns None when unsupported; never raises.
    """
    if provider is None or not isinstance(provider, ExchangeRateSource):
        return None
    if not getattr(provider, "supports_exchange_rate", True):
        return None
    return provider


@asynccontextmanager
async def deadline(
    timeout: float | None, provider: str, operation: str = "fetch_prices"
) -> AsyncIterator[None]:
    """Bound the enclosed block by ``timeout`` seconds.

    Translates expiry into ``ProviderTimeoutError``. ``None`` means no bound.
    """
    try:
        async with asyncio.timeout(timeout):
            yield
    except TimeoutError as e:
        raise ProviderTimeoutError(
            f"{provider}: {operation} timed out after {timeout}s",
            context={"provider": provider, "operation": operation, "timeout": timeout},
        ) from e
