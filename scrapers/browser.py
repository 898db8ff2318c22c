from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from playwright.async_api import Browser, Page, async_playwright

from core.errors import BrowserUnavailableError
from scrapers.base import BROWSER_HEADERS, pick_user_agent

log = logging.getLogger(__name__)

CHROMIUM_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--no-zygote",
    "--disable-gpu",
]


class BrowserPool:
    """One shared headless Chromium, handing out isolated sessions.

    Each ``session()`` gets its own context (cookies, storage, user agent)
    and is closed on every exit path.  At most ``max_sessions`` are open at
    once.  The browser is launched on first use.
    """

    def __init__(
        self,
        *,
        headless: bool = True,
        max_sessions: int = 3,
        navigation_timeout_ms: float = 30_000,
        launcher=None,
    ) -> None:
        self._headless = headless
        self._timeout_ms = navigation_timeout_ms
        self._sessions = asyncio.Semaphore(max_sessions)
        self._launch_lock = asyncio.Lock()
        self._launcher = launcher or self._launch_chromium
        self._playwright = None
        self._browser: Browser | None = None

    async def _launch_chromium(self) -> Browser:
        self._playwright = await async_playwright().start()
        return await self._playwright.chromium.launch(
            headless=self._headless, args=CHROMIUM_ARGS
        )

    async def _ensure_browser(self) -> Browser:
        async with self._launch_lock:
            if self._browser is None:
                try:
                    self._browser = await self._launcher()
                except Exception as e:
                    await self._stop_playwright()
                    raise BrowserUnavailableError(f"browser launch failed: {e}") from e
                log.info("Headless browser started (headless=%s)", self._headless)
            return self._browser

    @asynccontextmanager
    async def session(self) -> AsyncIterator[Page]:
        async with self._sessions:
            browser = await self._ensure_browser()
            context = await browser.new_context(
                user_agent=pick_user_agent(),
                viewport={"width": 1920, "height": 1080},
                extra_http_headers=BROWSER_HEADERS,
                ignore_https_errors=True,
            )
            try:
                page = await context.new_page()
                page.set_default_timeout(self._timeout_ms)
                yield page
            finally:
                await context.close()

    async def close(self) -> None:
        async with self._launch_lock:
            if self._browser is not None:
                await self._browser.close()
                self._browser = None
                log.info("Headless browser stopped")
            await self._stop_playwright()

    async def _stop_playwright(self) -> None:
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
