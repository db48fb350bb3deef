"""Portfolio valuation: join live prices with holdings.

Price-source unavailability never blocks showing positions. A failed or
missing provider yields zero-priced, stale placeholders for every holding
so the valuation is blind, visibly, rather than absent.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timezone

from portfolio_prism.core.exceptions import (
    CapabilityNotSupportedError,
    PriceNotFoundError,
    PrismError,
)
from portfolio_prism.core.models import (
    AssetClass,
    AssetClassValuation,
    ExchangeRate,
    Holding,
    PortfolioSummary,
    Price,
    ValuedAsset,
)
from portfolio_prism.prices.binance import crypto_display_name
from portfolio_prism.prices.provider import PriceProvider, exchange_rate_source
from portfolio_prism.prices.tefas import fund_display_name

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

_DISPLAY_NAMES: dict[AssetClass, Callable[[str], str]] = {
    AssetClass.FUND: fund_display_name,
    AssetClass.CRYPTO: crypto_display_name,
}


class PortfolioEngine:
    """Values holdings per asset class against the configured providers.

    Stateless apart from the providers it wraps; safe to call concurrently.

    Parameters
    ----------
    fund_provider : PriceProvider | None
        Source for fund prices. None means fund valuations are always degraded.
    crypto_provider : PriceProvider | None
        Source (or fallback chain) for crypto prices.
    timeout : float
        Deadline in seconds for each provider call. Default: 30.
    """

    def __init__(
        self,
        fund_provider: PriceProvider | None,
        crypto_provider: PriceProvider | None,
        timeout: float = DEFAULT_TIMEOUT,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._providers: dict[AssetClass, PriceProvider | None] = {
            AssetClass.FUND: fund_provider,
            AssetClass.CRYPTO: crypto_provider,
        }
        self._timeout = timeout
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def provider_for(self, asset_class: AssetClass) -> PriceProvider | None:
        return self._providers[asset_class]

    async def value_asset_class(
        self, asset_class: AssetClass, holdings: Iterable[Holding]
    ) -> AssetClassValuation:
        """Value one asset class. Never raises for provider failures."""
        held = [h for h in holdings if h.type == asset_class]
        by_symbol = {h.symbol: h for h in held}
        symbols = list(by_symbol)
        provider = self.provider_for(asset_class)

        if provider is None or not symbols:
            return self._degraded(asset_class, held, degraded=provider is None)

        try:
            prices = await provider.fetch_prices(symbols, timeout=self._timeout)
        except PrismError as e:
            logger.warning(
                "%s prices unavailable from %s, serving placeholders: %s",
                asset_class,
                provider.name,
                e,
            )
            return self._degraded(asset_class, held, degraded=True)

        assets = [
            ValuedAsset.from_price(p, by_symbol.get(p.symbol), asset_class)
            for p in prices
        ]

        # Holdings the provider returned nothing for still appear
        priced = {p.symbol for p in prices}
        now = self._clock()
        name_of = _DISPLAY_NAMES[asset_class]
        assets.extend(
            ValuedAsset.placeholder(h, name_of(h.symbol), now)
            for h in held
            if h.symbol not in priced
        )
        return AssetClassValuation.from_assets(asset_class, assets)

    def _degraded(
        self, asset_class: AssetClass, held: list[Holding], degraded: bool
    ) -> AssetClassValuation:
        now = self._clock()
        name_of = _DISPLAY_NAMES[asset_class]
        assets = [ValuedAsset.placeholder(h, name_of(h.symbol), now) for h in held]
        return AssetClassValuation.from_assets(asset_class, assets, degraded=degraded)

    async def summarize(self, holdings: Iterable[Holding]) -> PortfolioSummary:
        """Value every asset class concurrently and combine into a summary."""
        held = list(holdings)
        funds, cryptos = await asyncio.gather(
            self.value_asset_class(AssetClass.FUND, held),
            self.value_asset_class(AssetClass.CRYPTO, held),
        )
        return PortfolioSummary.combine(funds, cryptos, self._clock())

    async def lookup(
        self,
        asset_class: AssetClass,
        symbol: str,
        holding: Holding | None = None,
    ) -> ValuedAsset:
        """Price a single symbol. Failures surface as ``PriceNotFoundError``."""
        provider = self.provider_for(asset_class)
        if provider is None:
            raise PriceNotFoundError(
                f"No {asset_class} provider configured",
                context={"asset_class": str(asset_class), "symbol": symbol},
            )

        try:
            prices = await provider.fetch_prices([symbol], timeout=self._timeout)
        except PrismError as e:
            raise PriceNotFoundError(
                f"Price not available for {symbol}: {e}",
                context={"asset_class": str(asset_class), "symbol": symbol},
            ) from e

        price = _find(prices, symbol)
        if price is None:
            raise PriceNotFoundError(
                f"Price not found for {symbol}",
                context={"asset_class": str(asset_class), "symbol": symbol},
            )
        return ValuedAsset.from_price(price, holding, asset_class)

    async def exchange_rate(self) -> ExchangeRate:
        """USD/TRY from the first crypto source able to quote it."""
        source = exchange_rate_source(self.provider_for(AssetClass.CRYPTO))
        if source is None:
            raise CapabilityNotSupportedError(
                "No configured provider supports exchange rates",
                context={"capability": "exchange_rate"},
            )
        return await source.fetch_exchange_rate(timeout=self._timeout)

    async def health(self) -> dict[str, bool]:
        """Health of each configured provider, keyed by provider name."""
        configured = [p for p in self._providers.values() if p is not None]
        results = await asyncio.gather(
            *(p.is_healthy(timeout=self._timeout) for p in configured)
        )
        return {p.name: ok for p, ok in zip(configured, results)}

    async def close(self) -> None:
        for provider in self._providers.values():
            if provider is None:
                continue
            try:
                await provider.close()
            except Exception as e:
                logger.error("Failed to close provider %s: %s", provider.name, e)


def _find(prices: list[Price], symbol: str) -> Price | None:
    for price in prices:
        if price.symbol == symbol:
            return price
    return None
