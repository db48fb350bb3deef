"""Tests for provider construction from configuration."""

from unittest.mock import patch

from portfolio_prism.core.config import (
    BinanceConfig,
    CoinGeckoConfig,
    CryptoConfig,
    PrismConfig,
    TefasConfig,
)
from portfolio_prism.core.exceptions import ConfigError
from portfolio_prism.prices.binance import BinanceProvider
from portfolio_prism.prices.coingecko import CoinGeckoProvider
from portfolio_prism.prices.factory import (
    build_crypto_provider,
    build_fund_provider,
    build_providers,
)
from portfolio_prism.prices.fallback import FallbackProvider
from portfolio_prism.prices.tefas import TefasProvider


def _config(tefas=True, binance=True, coingecko=True) -> PrismConfig:
    return PrismConfig(
        tefas=TefasConfig(enabled=tefas),
        crypto=CryptoConfig(
            binance=BinanceConfig(enabled=binance),
            coingecko=CoinGeckoConfig(enabled=coingecko, api_key="k"),
        ),
    )


class TestCryptoProvider:
    async def test_both_enabled_builds_chain(self):
        provider = build_crypto_provider(_config())
        try:
            assert isinstance(provider, FallbackProvider)
            assert isinstance(provider.primary, BinanceProvider)
            assert isinstance(provider.secondary, CoinGeckoProvider)
            assert provider.supports_exchange_rate is True
        finally:
            await provider.close()

    async def test_binance_only(self):
        provider = build_crypto_provider(_config(coingecko=False))
        assert isinstance(provider, BinanceProvider)
        await provider.close()

    async def test_coingecko_only(self):
        provider = build_crypto_provider(_config(binance=False))
        assert isinstance(provider, CoinGeckoProvider)
        await provider.close()

    def test_none_enabled(self):
        assert build_crypto_provider(_config(binance=False, coingecko=False)) is None


class TestFundProvider:
    def test_disabled(self):
        assert build_fund_provider(_config(tefas=False)) is None

    def test_enabled_wraps_browser_session(self):
        provider = build_fund_provider(_config())
        assert isinstance(provider, TefasProvider)

    def test_missing_browser_engine_leaves_provider_absent(self):
        with patch(
            "portfolio_prism.prices.browser.PlaywrightFundSession",
            side_effect=ConfigError("playwright is required"),
        ):
            assert build_fund_provider(_config()) is None


async def test_build_providers():
    providers = build_providers(_config(tefas=False, coingecko=False))
    assert providers.fund is None
    assert isinstance(providers.crypto, BinanceProvider)
    await providers.crypto.close()
