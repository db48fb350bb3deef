"""TEFAS fund-price provider.

TEFAS (the Turkish fund distribution platform) publishes one price per
fund per business day behind a web application firewall that blocks plain
HTTP clients. The provider therefore depends on a ``FundRowFetcher``, an
opaque "give me the raw rows for date X" session, and keeps all browser
mechanics behind that seam (see ``portfolio_prism.prices.browser``).

Prices change at most once a day, so results are cached for five minutes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from datetime import date, datetime, timedelta
from types import MappingProxyType
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from portfolio_prism.core.exceptions import ProviderError
from portfolio_prism.core.models import Price
from portfolio_prism.prices.cache import TTLCache
from portfolio_prism.prices.provider import deadline

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL = 300.0

FUND_NAMES: MappingProxyType[str, str] = MappingProxyType(
    {
        "KUT": "Kuveyt Türk Portföy Kısa Vadeli Kira Sertifikaları Katılım Fonu",
        "TI2": "TEB Portföy İkinci Değişken Fon",
        "AFT": "Ak Portföy Amerikan Doları Fon Sepeti Fonu",
        "YZG": "Yapı Kredi Portföy Gümüş Fonu",
        "KTV": "Kuveyt Türk Portföy Altın Katılım Fonu",
        "HKH": "Halk Portföy Kısa Vadeli Borçlanma Araçları Fonu",
        "IOG": "İş Portföy Orta Vadeli Borçlanma Araçları Fonu",
        "KGM": "Kuveyt Türk Portföy Gümüş Katılım Fonu",
    }
)


def fund_display_name(code: str) -> str:
    """Human-readable name for a fund code."""
    return FUND_NAMES.get(code, f"{code} Fund")


def last_business_day(today: date) -> date:
    """Most recent weekday on or before ``today``.

    Saturday maps to Friday, Sunday to the Friday before; weekdays are
    returned unchanged. Public holidays are not considered.
    """
    weekday = today.weekday()
    if weekday == 5:
        return today - timedelta(days=1)
    if weekday == 6:
        return today - timedelta(days=2)
    return today


def format_tefas_date(day: date) -> str:
    """TEFAS expects DD.MM.YYYY."""
    return day.strftime("%d.%m.%Y")


class FundRow(BaseModel):
    """One row of the TEFAS ``BindHistoryInfo`` response."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    date: str = Field("", alias="TARIH")
    code: str = Field(alias="FONKODU")
    title: str = Field("", alias="FONUNVAN")
    price: float = Field(0.0, alias="FIYAT")
    shares_outstanding: float = Field(0.0, alias="TEDPAYSAYISI")
    investor_count: int = Field(0, alias="KISISAYISI")
    portfolio_size: float = Field(0.0, alias="PORTFOYBUYUKLUK")


def parse_fund_rows(payload: object) -> list[FundRow]:
    """Parse a TEFAS history response (``{"data": [...]}``) into rows.

    Raises
    ------
    ProviderError
        If the payload is not the expected shape.
    """
    if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
        raise ProviderError(
            "Unexpected TEFAS response shape",
            context={"provider": "tefas", "type": type(payload).__name__},
        )
    rows: list[FundRow] = []
    for raw in payload["data"]:
        try:
            rows.append(FundRow.model_validate(raw))
        except ValueError as e:
            logger.warning("Skipping malformed TEFAS row %r: %s", raw, e)
    logger.info(
        "Parsed TEFAS data: total=%s returned=%d",
        payload.get("recordsTotal"),
        len(rows),
    )
    return rows


@runtime_checkable
class FundRowFetcher(Protocol):
    """Opaque session that returns raw TEFAS rows for a date.

    ``start`` is idempotent and may be slow (tens of seconds for a browser).
    """

    @property
    def is_ready(self) -> bool: ...

    async def start(self) -> None: ...

    async def fetch_rows(self, day: date) -> list[FundRow]: ...

    async def close(self) -> None: ...


class TefasProvider:
    """Fund prices scraped from TEFAS through a ``FundRowFetcher`` session.

    Policy per requested symbol: present in the day's rows → fresh price
    (stale on weekends, since the figure is Friday's); absent → stale
    zero-price placeholder. On fetch failure, cached entries are returned
    marked stale; with no cache the call raises ``ProviderError``.

    After ``max_consecutive_failures`` failed fetches the session is torn
    down so the next call starts a new one.

    Parameters
    ----------
    fetcher : FundRowFetcher
        The session behind which the browser lives.
    cache_ttl : float
        Seconds fetched prices stay fresh. Default: 300.
    max_consecutive_failures : int
        Failed fetches tolerated before the session is restarted.
    clock : Callable[[], datetime]
        Wall-clock source, used for weekend checks and ``last_updated``.
    cache_clock : Callable[[], float]
        Monotonic time source for the cache.
    """

    def __init__(
        self,
        fetcher: FundRowFetcher,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        max_consecutive_failures: int = 3,
        clock: Callable[[], datetime] | None = None,
        cache_clock: Callable[[], float] | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._clock = clock or (lambda: datetime.now().astimezone())
        self._cache: TTLCache[Price] = (
            TTLCache(cache_ttl, cache_clock) if cache_clock else TTLCache(cache_ttl)
        )
        self._max_failures = max_consecutive_failures
        self._failures = 0
        self._failure_lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return "tefas"

    async def fetch_prices(
        self, symbols: Iterable[str], *, timeout: float | None = None
    ) -> list[Price]:
        requested = list(dict.fromkeys(symbols))

        cached = await self._cache.get_fresh(requested)
        if cached is not None:
            logger.debug("Returning %d cached TEFAS prices", len(cached))
            return cached

        now = self._clock()
        target = last_business_day(now.date())
        try:
            async with deadline(timeout, self.name):
                await self._start_session()
                logger.info(
                    "Fetching TEFAS data for %s: %s", target.isoformat(), requested
                )
                rows = await self._fetcher.fetch_rows(target)
        except Exception as e:
            await self._record_failure()
            return await self._stale_or_raise(requested, e)

        await self._record_success()
        by_code = {row.code: row for row in rows}
        is_weekend = now.weekday() >= 5

        prices: list[Price] = []
        for symbol in requested:
            row = by_code.get(symbol)
            if row is None:
                logger.warning("Fund %s not found in TEFAS response", symbol)
                prices.append(
                    Price.placeholder(symbol, fund_display_name(symbol), now, self.name)
                )
                continue
            prices.append(
                Price(
                    symbol=row.code,
                    name=row.title or fund_display_name(row.code),
                    price=max(row.price, 0.0),
                    last_updated=now,
                    stale=is_weekend,
                    source=self.name,
                )
            )

        await self._cache.update({p.symbol: p for p in prices})
        return prices

    async def _start_session(self) -> None:
        try:
            await self._fetcher.start()
        except ProviderError:
            raise
        except Exception as e:
            logger.error("Failed to start TEFAS session: %s", e)
            raise ProviderError(
                f"Failed to start TEFAS session: {e}",
                context={"provider": self.name},
            ) from e

    async def _stale_or_raise(self, symbols: list[str], error: Exception) -> list[Price]:
        cached = await self._cache.get_many(symbols)
        if cached:
            logger.warning(
                "Returning %d stale TEFAS prices due to fetch error: %s",
                len(cached),
                error,
            )
            return [p.as_stale() for p in cached.values()]
        logger.error("TEFAS fetch failed with no cache to fall back on: %s", error)
        if isinstance(error, ProviderError):
            raise error
        raise ProviderError(
            f"Failed to fetch TEFAS data: {error}",
            context={"provider": self.name, "symbols": symbols},
        ) from error

    async def _record_failure(self) -> None:
        async with self._failure_lock:
            self._failures += 1
            if self._failures < self._max_failures:
                return
            logger.warning(
                "TEFAS fetch failed %d times in a row; restarting session",
                self._failures,
            )
            self._failures = 0
        try:
            await self._fetcher.close()
        except Exception as e:
            logger.error("Failed to close TEFAS session for restart: %s", e)

    async def _record_success(self) -> None:
        async with self._failure_lock:
            self._failures = 0

    async def is_healthy(self, *, timeout: float | None = None) -> bool:
        try:
            return bool(self._fetcher.is_ready)
        except Exception:
            return False

    async def close(self) -> None:
        logger.info("Closing TEFAS provider")
        await self._fetcher.close()
