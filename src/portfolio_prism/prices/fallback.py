"""Primary/secondary provider composition."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from portfolio_prism.core.exceptions import (
    CapabilityNotSupportedError,
    ProviderError,
    ProviderTimeoutError,
)
from portfolio_prism.core.models import ExchangeRate, Price
from portfolio_prism.prices.provider import PriceProvider, exchange_rate_source

logger = logging.getLogger(__name__)


class FallbackProvider:
    """Serves from ``primary``; on a hard failure, from ``secondary``.

    Exactly one attempt per provider per call. A primary result is returned
    as-is even if some entries are stale; only a ``ProviderError`` triggers
    the secondary. Retry policy, if wanted, belongs in the caller.

    ``timeout`` bounds the whole call: the secondary only gets what the
    primary left over.
    """

    def __init__(self, primary: PriceProvider, secondary: PriceProvider) -> None:
        self._primary = primary
        self._secondary = secondary

    @property
    def name(self) -> str:
        return f"{self._primary.name}+{self._secondary.name}"

    @property
    def primary(self) -> PriceProvider:
        return self._primary

    @property
    def secondary(self) -> PriceProvider:
        return self._secondary

    async def fetch_prices(
        self, symbols: Iterable[str], *, timeout: float | None = None
    ) -> list[Price]:
        requested = list(symbols)
        expires_at = self._expires_at(timeout)
        try:
            return await self._primary.fetch_prices(requested, timeout=timeout)
        except ProviderError as e:
            logger.warning(
                "%s failed (%s); falling back to %s",
                self._primary.name,
                e,
                self._secondary.name,
            )
        return await self._secondary.fetch_prices(
            requested, timeout=self._remaining(expires_at, timeout, "fetch_prices")
        )

    @staticmethod
    def _expires_at(timeout: float | None) -> float | None:
        if timeout is None:
            return None
        return asyncio.get_running_loop().time() + timeout

    def _remaining(
        self, expires_at: float | None, timeout: float | None, operation: str
    ) -> float | None:
        if expires_at is None:
            return None
        left = expires_at - asyncio.get_running_loop().time()
        if left <= 0:
            raise ProviderTimeoutError(
                f"{self.name}: {operation} timed out after {timeout}s",
                context={"provider": self.name, "operation": operation, "timeout": timeout},
            )
        return left

    async def is_healthy(self, *, timeout: float | None = None) -> bool:
        expires_at = self._expires_at(timeout)
        if await self._primary.is_healthy(timeout=timeout):
            return True
        try:
            left = self._remaining(expires_at, timeout, "is_healthy")
        except ProviderTimeoutError:
            return False
        return await self._secondary.is_healthy(timeout=left)

    async def close(self) -> None:
        """Close both providers; re-raise the first error after trying both."""
        first_error: Exception | None = None
        for provider in (self._primary, self._secondary):
            try:
                await provider.close()
            except Exception as e:
                logger.error("Failed to close %s: %s", provider.name, e)
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error

    @property
    def supports_exchange_rate(self) -> bool:
        return (
            exchange_rate_source(self._primary) is not None
            or exchange_rate_source(self._secondary) is not None
        )

    async def fetch_exchange_rate(self, *, timeout: float | None = None) -> ExchangeRate:
        expires_at = self._expires_at(timeout)
        primary_error: ProviderError | None = None
        primary = exchange_rate_source(self._primary)
        if primary is not None:
            try:
                return await primary.fetch_exchange_rate(timeout=timeout)
            except ProviderError as e:
                logger.warning(
                    "%s exchange rate failed (%s); trying %s",
                    self._primary.name,
                    e,
                    self._secondary.name,
                )
                primary_error = e

        secondary = exchange_rate_source(self._secondary)
        if secondary is not None:
            return await secondary.fetch_exchange_rate(
                timeout=self._remaining(expires_at, timeout, "fetch_exchange_rate")
            )

        if primary_error is not None:
            raise primary_error
        raise CapabilityNotSupportedError(
            "No provider supports exchange rates",
            context={"provider": self.name, "capability": "exchange_rate"},
        )
