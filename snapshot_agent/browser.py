"""
Lifecycle of the single shared Chromium instance.

The browser is expensive to start, so it is launched lazily on the first
screenshot and then reused by every request. Requests never close it; only
``shutdown()`` does, when the server stops.
"""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from playwright.async_api import async_playwright

from .errors import BrowserLaunchError

if TYPE_CHECKING:
    from playwright.async_api import Browser, Playwright

logger = logging.getLogger(__name__)

# Sandboxing has to be off inside containers without user namespaces.
CHROMIUM_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
]


class BrowserSessionManager:
    """Owns one Playwright driver and one Chromium browser per process."""

    def __init__(self, *, headless: bool = True, playwright_factory=async_playwright):
        self._headless = headless
        self._playwright_factory = playwright_factory
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._lock = asyncio.Lock()
        self.launch_count = 0

    @property
    def is_ready(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    async def ensure_ready(self) -> Browser:
        """Return the shared browser, launching it on first use.

        Concurrent first callers are serialized on a lock so exactly one
        launch happens. A browser that has lost its connection (crashed) is
        discarded and replaced.
        """
        if self.is_ready:
            return self._browser

        async with self._lock:
            if self.is_ready:
                return self._browser

            if self._browser is not None:
                logger.warning("Chromium browser disconnected; relaunching")
                await self._teardown()

            logger.info("Initializing Chromium browser...")
            try:
                playwright = await self._playwright_factory().start()
            except Exception as e:
                raise BrowserLaunchError(f"Playwright driver failed to start: {e}") from e
            try:
                browser = await playwright.chromium.launch(headless=self._headless, args=CHROMIUM_ARGS)
            except Exception as e:
                await playwright.stop()
                raise BrowserLaunchError(f"Chromium failed to launch: {e}") from e

            self._playwright = playwright
            self._browser = browser
            self.launch_count += 1
            logger.info("Browser initialized successfully")
            return browser

    async def shutdown(self) -> None:
        async with self._lock:
            if self._browser is None and self._playwright is None:
                return
            logger.info("Closing Chromium browser...")
            await self._teardown()

    async def _teardown(self) -> None:
        browser, playwright = self._browser, self._playwright
        self._browser = None
        self._playwright = None
        # Best effort: the browser may already be gone.
        if browser is not None:
            try:
                await browser.close()
            except Exception:
                logger.exception("Error while closing browser")
        if playwright is not None:
            try:
                await playwright.stop()
            except Exception:
                logger.exception("Error while stopping Playwright")
