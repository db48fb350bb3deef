"""Shared pytest fixtures for portfolio-prism."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone

import pytest

from portfolio_prism.core.exceptions import ProviderError
from portfolio_prism.core.models import AssetClass, ExchangeRate, Holding, Price

NOW = datetime(2024, 3, 15, 12, 0, 0, tzinfo=timezone.utc)  # a Friday


class FakeProvider:
    """In-memory PriceProvider that records calls.

    ``prices`` maps symbol to price; unknown symbols are omitted. Set
    ``error`` to make every fetch raise it.
    """

    def __init__(
        self,
        name: str = "fake",
        prices: dict[str, float] | None = None,
        error: Exception | None = None,
        healthy: bool = True,
        stale: bool = False,
        rate: float | None = None,
    ):
        self._name = name
        self.prices = prices or {}
        self.error = error
        self.healthy = healthy
        self.stale = stale
        self.rate = rate
        self.calls: list[list[str]] = []
        self.rate_calls = 0
        self.closed = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def supports_exchange_rate(self) -> bool:
        return self.rate is not None

    async def fetch_prices(
        self, symbols: Iterable[str], *, timeout: float | None = None
    ) -> list[Price]:
        requested = list(symbols)
        self.calls.append(requested)
        if self.error is not None:
            raise self.error
        return [
            Price(
                symbol=s,
                name=f"{s} name",
                price=self.prices[s],
                daily_change=1.0,
                daily_pct=0.5,
                last_updated=NOW,
                stale=self.stale,
                source=self._name,
            )
            for s in requested
            if s in self.prices
        ]

    async def fetch_exchange_rate(self, *, timeout: float | None = None) -> ExchangeRate:
        self.rate_calls += 1
        if self.error is not None:
            raise self.error
        if self.rate is None:
            raise ProviderError("no rate", context={"provider": self._name})
        return ExchangeRate(rate=self.rate, last_updated=NOW, source=self._name)

    async def is_healthy(self, *, timeout: float | None = None) -> bool:
        return self.healthy

    async def close(self) -> None:
        self.closed += 1


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def fake_provider():
    """Factory for FakeProvider instances."""
    return FakeProvider


@pytest.fixture
def make_holding():
    """Factory for Holding with overridable defaults."""
    counter = iter(range(1, 10_000))

    def _make(symbol: str, quantity: float = 1.0, cost_basis: float = 0.0, **overrides):
        defaults = dict(
            id=next(counter),
            type=AssetClass.FUND,
            symbol=symbol,
            quantity=quantity,
            cost_basis=cost_basis,
            created_at=NOW,
            updated_at=NOW,
        )
        defaults.update(overrides)
        return Holding(**defaults)

    return _make
