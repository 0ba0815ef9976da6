from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator

from .browser import BrowserSessionManager
from .config import Settings
from .errors import ErrorKind, ScreenshotError, classify
from .models import ScreenshotFailure, ScreenshotOutcome, ScreenshotSuccess

if TYPE_CHECKING:
    from playwright.async_api import Browser, Page

logger = logging.getLogger(__name__)

BUSY_MESSAGE = "Service busy (too many concurrent screenshots). Please retry."


class ScreenshotService:
    """Per-request capture workflow on top of the shared browser."""

    def __init__(self, sessions: BrowserSessionManager, settings: Settings | None = None):
        self.sessions = sessions
        self.settings = settings or Settings()
        self._slots = asyncio.Semaphore(self.settings.max_concurrent_pages)

    @asynccontextmanager
    async def _page_slot(self) -> AsyncIterator[None]:
        try:
            await asyncio.wait_for(self._slots.acquire(), timeout=self.settings.page_acquire_timeout_s)
        except asyncio.TimeoutError:
            logger.warning("No free page slot after %.1fs, rejecting request", self.settings.page_acquire_timeout_s)
            raise ScreenshotError(
                ErrorKind.RENDERING_FAILURE,
                503,
                BUSY_MESSAGE,
                headers={"Retry-After": "2"},
            )
        try:
            yield
        finally:
            self._slots.release()

    @asynccontextmanager
    async def _page_session(self, browser: Browser) -> AsyncIterator[Page]:
        # A fresh context per request keeps cookies, storage and cache isolated.
        context = await browser.new_context(
            viewport={"width": self.settings.viewport_width, "height": self.settings.viewport_height},
            user_agent=self.settings.user_agent,
        )
        try:
            page = await context.new_page()
            page.set_default_timeout(self.settings.timeout_ms)
            page.set_default_navigation_timeout(self.settings.timeout_ms)
            yield page
        finally:
            try:
                await context.close()
            except Exception:
                logger.exception("Failed to close page context")

    async def render(self, url: str) -> ScreenshotOutcome:
        """Capture a full-page PNG of ``url``.

        ``url`` must already have passed ``validate_url``. Engine errors come
        back as a ``ScreenshotFailure``; a browser that cannot be launched at
        all raises ``BrowserLaunchError``.
        """
        async with self._page_slot():
            browser = await self.sessions.ensure_ready()
            logger.info("Taking screenshot of: %s", url)
            try:
                async with self._page_session(browser) as page:
                    await page.goto(url, wait_until="networkidle")
                    data = await page.screenshot(type="png", full_page=True)
            except Exception as e:
                c = classify(e)
                if c.kind is ErrorKind.RENDERING_FAILURE:
                    logger.error("Screenshot error for %s: %s", url, e)
                else:
                    logger.warning("Screenshot of %s failed (%s): %s", url, c.kind.value, e)
                return ScreenshotFailure(kind=c.kind, status_code=c.status_code, message=c.message)

        logger.info("Screenshot successful for: %s (%d bytes)", url, len(data))
        return ScreenshotSuccess(image=data)
