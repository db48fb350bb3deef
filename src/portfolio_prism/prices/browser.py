"""Playwright-backed TEFAS session.

The TEFAS history API sits behind a web application firewall that rejects
non-browser clients. This session drives a real Chromium, visits the
history page once to collect cookies and pass any JavaScript challenge,
and then issues the API call from inside the page so it carries the
browser's cookies and fingerprint.

Evasion settings (all required; the WAF blocks without them):
- ``--disable-blink-features=AutomationControlled`` and a
  ``navigator.webdriver`` override hide the automation flag.
- A desktop Chrome user agent, ``tr-TR`` locale, and 1920x1080 viewport.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Any

from portfolio_prism.core.exceptions import ConfigError, ProviderError
from portfolio_prism.prices.tefas import FundRow, format_tefas_date, parse_fund_rows

logger = logging.getLogger(__name__)

BASE_URL = "https://www.tefas.gov.tr"
_HISTORY_PAGE = "/TarihselVeriler.aspx"
_HISTORY_API = "/api/DB/BindHistoryInfo"

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/136.0.0.0 Safari/537.36"
)
VIEWPORT = {"width": 1920, "height": 1080}
LOCALE = "tr-TR"

_LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--disable-blink-features=AutomationControlled",
    "--disable-infobars",
    "--window-size=1920,1080",
]
_HEADLESS_ARGS = ["--disable-gpu", f"--user-agent={USER_AGENT}"]

_HIDE_WEBDRIVER = """
Object.defineProperty(navigator, 'webdriver', {
    get: () => undefined
});
"""

_WAF_MARKERS = ("Erişim Engellendi", "Web Application Firewall")

_FETCH_HISTORY_JS = """
async ([fundType, day, wafMarkers]) => {
    const params = new URLSearchParams({
        fontip: fundType,
        sfontur: '',
        fonkod: '',
        fongrup: '',
        bastarih: day,
        bittarih: day,
        fonturkod: '',
        fonunvantip: '',
        kurucukod: ''
    });
    const response = await fetch('%s', {
        method: 'POST',
        headers: {
            'Content-Type': 'application/x-www-form-urlencoded',
            'X-Requested-With': 'XMLHttpRequest'
        },
        body: params.toString()
    });
    const text = await response.text();
    if (wafMarkers.some((m) => text.includes(m))) {
        throw new Error('WAF_BLOCKED');
    }
    return JSON.parse(text);
}
""" % _HISTORY_API


class PlaywrightFundSession:
    """Long-lived Chromium session implementing ``FundRowFetcher``.

    Started lazily by ``start()`` and torn down by ``close()``; both are
    idempotent. One in-page request runs at a time.

    Parameters
    ----------
    headless : bool
        Run Chromium without a window. The WAF is stricter with headless
        browsers, so headless mode adds extra fingerprint arguments.
    fund_type : str
        TEFAS fund category: "YAT" (investment) or "EMK" (pension).
    base_url : str
        Override base URL (useful for testing).
    challenge_wait : float
        Seconds to wait after the first navigation for WAF challenges.
    navigation_timeout : float
        Seconds allowed for the initial page load.

    Raises
    ------
    ConfigError
        If Playwright is not installed.
    """

    def __init__(
        self,
        headless: bool = True,
        fund_type: str = "YAT",
        base_url: str = BASE_URL,
        challenge_wait: float = 2.0,
        navigation_timeout: float = 60.0,
    ) -> None:
        try:
            from playwright.async_api import async_playwright
        except ImportError as e:
            raise ConfigError(
                "playwright is required for the TEFAS provider but not installed",
                context={"field": "tefas.enabled", "value": True},
            ) from e

        self._async_playwright = async_playwright
        self._headless = headless
        self._fund_type = fund_type
        self._base_url = base_url
        self._challenge_wait = challenge_wait
        self._navigation_timeout = navigation_timeout
        self._lock = asyncio.Lock()

        self._playwright: Any = None
        self._browser: Any = None
        self._context: Any = None
        self._page: Any = None

    @property
    def is_ready(self) -> bool:
        return self._browser is not None and self._page is not None

    async def start(self) -> None:
        async with self._lock:
            if self.is_ready:
                return
            logger.info("Starting TEFAS browser session (headless=%s)", self._headless)
            try:
                await self._launch()
            except BaseException:
                await self._teardown()
                raise
            logger.info("TEFAS browser session started")

    async def _launch(self) -> None:
        self._playwright = await self._async_playwright().start()

        args = list(_LAUNCH_ARGS)
        if self._headless:
            args.extend(_HEADLESS_ARGS)
        self._browser = await self._playwright.chromium.launch(
            headless=self._headless, args=args
        )
        self._context = await self._browser.new_context(
            user_agent=USER_AGENT,
            viewport=VIEWPORT,
            locale=LOCALE,
            extra_http_headers={"Accept-Language": "tr-TR,tr;q=0.9,en;q=0.8"},
        )
        await self._context.add_init_script(_HIDE_WEBDRIVER)
        page = await self._context.new_page()

        await page.goto(
            f"{self._base_url}{_HISTORY_PAGE}",
            wait_until="domcontentloaded",
            timeout=self._navigation_timeout * 1000,
        )
        # Let any JavaScript challenge finish before the first API call
        await asyncio.sleep(self._challenge_wait)
        self._page = page

    async def fetch_rows(self, day: date) -> list[FundRow]:
        async with self._lock:
            if self._page is None:
                raise ProviderError(
                    "TEFAS session not started", context={"provider": "tefas"}
                )
            try:
                payload = await self._page.evaluate(
                    _FETCH_HISTORY_JS,
                    [self._fund_type, format_tefas_date(day), list(_WAF_MARKERS)],
                )
            except Exception as e:
                blocked = "WAF_BLOCKED" in str(e)
                raise ProviderError(
                    "TEFAS request blocked by WAF" if blocked else f"TEFAS API call failed: {e}",
                    context={"provider": "tefas", "date": day.isoformat(), "waf_blocked": blocked},
                ) from e
        return parse_fund_rows(payload)

    async def close(self) -> None:
        async with self._lock:
            if self._playwright is None and self._browser is None:
                return
            logger.info("Closing TEFAS browser session")
            await self._teardown()

    async def _teardown(self) -> None:
        page, context, browser, playwright = (
            self._page,
            self._context,
            self._browser,
            self._playwright,
        )
        self._page = self._context = self._browser = self._playwright = None
        for label, resource, method in (
            ("page", page, "close"),
            ("context", context, "close"),
            ("browser", browser, "close"),
            ("playwright", playwright, "stop"),
        ):
            if resource is None:
                continue
            try:
                await getattr(resource, method)()
            except Exception as e:
                logger.warning("Error closing TEFAS %s: %s", label, e)
