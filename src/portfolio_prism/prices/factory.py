"""Build the configured provider chain for each asset class."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from portfolio_prism.core.config import PrismConfig
from portfolio_prism.core.exceptions import ConfigError
from portfolio_prism.prices.binance import BinanceProvider
from portfolio_prism.prices.coingecko import CoinGeckoProvider
from portfolio_prism.prices.fallback import FallbackProvider
from portfolio_prism.prices.provider import PriceProvider
from portfolio_prism.prices.tefas import TefasProvider

logger = logging.getLogger(__name__)


@dataclass
class ProviderSet:
    """One provider (or chain) per asset class. None means "always degraded"."""

    fund: PriceProvider | None = None
    crypto: PriceProvider | None = None


def build_fund_provider(config: PrismConfig) -> PriceProvider | None:
    """TEFAS provider, or None if disabled or the browser engine is unavailable."""
    if not config.tefas.enabled:
        logger.info("TEFAS provider disabled")
        return None

    from portfolio_prism.prices.browser import PlaywrightFundSession

    try:
        session = PlaywrightFundSession(
            headless=config.tefas.headless,
            fund_type=config.tefas.fund_type,
        )
    except ConfigError as e:
        logger.error("TEFAS provider unavailable, fund prices will be degraded: %s", e)
        return None

    logger.info("Initializing TEFAS provider (headless=%s)", config.tefas.headless)
    return TefasProvider(
        session,
        cache_ttl=config.tefas.cache_ttl,
        max_consecutive_failures=config.tefas.max_consecutive_failures,
    )


def build_crypto_provider(config: PrismConfig) -> PriceProvider | None:
    """Binance with CoinGecko fallback, whichever of the two are enabled."""
    binance_cfg = config.crypto.binance
    coingecko_cfg = config.crypto.coingecko

    binance = None
    if binance_cfg.enabled:
        binance = BinanceProvider(
            base_url=binance_cfg.base_url,
            cache_ttl=binance_cfg.cache_ttl,
            request_timeout=binance_cfg.request_timeout,
        )

    coingecko = None
    if coingecko_cfg.enabled:
        coingecko = CoinGeckoProvider(
            api_key=coingecko_cfg.api_key,
            base_url=coingecko_cfg.base_url,
            cache_ttl=coingecko_cfg.cache_ttl,
            exchange_rate_ttl=coingecko_cfg.exchange_rate_ttl,
            request_timeout=coingecko_cfg.request_timeout,
            rate_limit=coingecko_cfg.rate_limit,
        )

    if binance is not None and coingecko is not None:
        logger.info("Initializing crypto providers: binance -> coingecko")
        return FallbackProvider(binance, coingecko)
    if binance is not None:
        logger.info("Initializing crypto provider: binance")
        return binance
    if coingecko is not None:
        logger.info("Initializing crypto provider: coingecko")
        return coingecko
    logger.info("No crypto provider enabled")
    return None


def build_providers(config: PrismConfig) -> ProviderSet:
    """Instantiate providers from configuration. Nothing touches the network yet."""
    return ProviderSet(
        fund=build_fund_provider(config),
        crypto=build_crypto_provider(config),
    )
