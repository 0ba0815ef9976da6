"""
Tests for the per-request capture workflow.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from snapshot_agent.browser import BrowserSessionManager
from snapshot_agent.config import Settings
from snapshot_agent.errors import BrowserLaunchError, ErrorKind, ScreenshotError
from snapshot_agent.models import ScreenshotFailure, ScreenshotSuccess
from snapshot_agent.screenshot import BUSY_MESSAGE, ScreenshotService

from tests.fakes import PNG_BYTES, FakePlaywright, make_browser, make_page


def service_for(page, settings=None):
    browser = make_browser(page=page)
    fake = FakePlaywright(browser=browser)
    sessions = BrowserSessionManager(playwright_factory=fake)
    return ScreenshotService(sessions, settings or Settings()), browser, fake


class TestRender:
    @pytest.mark.asyncio
    async def test_success_returns_full_page_png(self):
        page = make_page()
        service, browser, _ = service_for(page)

        outcome = await service.render("https://example.com")

        assert isinstance(outcome, ScreenshotSuccess)
        assert outcome.image == PNG_BYTES
        assert outcome.mime == "image/png"
        page.goto.assert_awaited_once_with("https://example.com", wait_until="networkidle")
        page.screenshot.assert_awaited_once_with(type="png", full_page=True)

    @pytest.mark.asyncio
    async def test_timeouts_are_set_on_every_page(self):
        page = make_page()
        service, _, _ = service_for(page)

        await service.render("https://example.com")

        page.set_default_timeout.assert_called_once_with(30000)
        page.set_default_navigation_timeout.assert_called_once_with(30000)

    @pytest.mark.asyncio
    async def test_each_request_gets_its_own_context(self):
        service, browser, _ = service_for(make_page())

        await service.render("https://example.com")
        await service.render("https://example.org")

        assert browser.new_context.await_count == 2
        first, second = browser.contexts_created
        assert first is not second
        first.close.assert_awaited_once()
        second.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_browser_reused_across_requests(self):
        service, _, fake = service_for(make_page())

        for _ in range(3):
            await service.render("https://example.com")

        assert service.sessions.launch_count == 1
        assert fake.launch.await_count == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error, kind, status",
        [
            (Exception("net::ERR_NAME_NOT_RESOLVED at https://nope.invalid/"), ErrorKind.DNS_RESOLUTION_FAILED, 400),
            (PlaywrightTimeoutError("Timeout 30000ms exceeded."), ErrorKind.NAVIGATION_TIMEOUT, 504),
            (Exception("net::ERR_CONNECTION_REFUSED at http://example.com/"), ErrorKind.CONNECTION_REFUSED, 400),
            (Exception("something odd"), ErrorKind.RENDERING_FAILURE, 500),
        ],
    )
    async def test_navigation_errors_are_classified_and_context_closed(self, error, kind, status):
        page = make_page()
        page.goto.side_effect = error
        service, browser, _ = service_for(page)

        outcome = await service.render("https://example.com")

        assert isinstance(outcome, ScreenshotFailure)
        assert outcome.kind is kind
        assert outcome.status_code == status
        browser.contexts_created[0].close.assert_awaited_once()
        page.screenshot.assert_not_awaited()
        browser.close.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_capture_error_still_closes_context(self):
        page = make_page()
        page.screenshot.side_effect = RuntimeError("Target closed")
        service, browser, _ = service_for(page)

        outcome = await service.render("https://example.com")

        assert outcome.kind is ErrorKind.RENDERING_FAILURE
        assert outcome.message == "Failed to take screenshot: Target closed"
        browser.contexts_created[0].close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_request_leaves_browser_usable(self):
        page = make_page()
        page.goto.side_effect = [Exception("net::ERR_CONNECTION_REFUSED"), None]
        service, browser, fake = service_for(page)

        failed = await service.render("http://example.com:81")
        ok = await service.render("https://example.com")

        assert isinstance(failed, ScreenshotFailure)
        assert isinstance(ok, ScreenshotSuccess)
        assert fake.launch.await_count == 1

    @pytest.mark.asyncio
    async def test_launch_failure_propagates(self):
        fake = FakePlaywright(launch_error=RuntimeError("no chromium"))
        service = ScreenshotService(BrowserSessionManager(playwright_factory=fake))

        with pytest.raises(BrowserLaunchError):
            await service.render("https://example.com")

    @pytest.mark.asyncio
    async def test_concurrent_requests_are_isolated(self):
        browser = make_browser()
        pages = []

        async def new_context(**kwargs):
            # Each page renders whatever URL it was sent to.
            page = make_page()

            async def goto(url, **kw):
                await asyncio.sleep(0.01)
                page.screenshot.return_value = url.encode()

            page.goto.side_effect = goto
            context = MagicMock()
            context.new_page = AsyncMock(return_value=page)
            context.close = AsyncMock()
            pages.append(page)
            return context

        browser.new_context.side_effect = new_context
        service = ScreenshotService(BrowserSessionManager(playwright_factory=FakePlaywright(browser=browser)))
        urls = [f"https://site{i}.example.com" for i in range(4)]

        outcomes = await asyncio.gather(*(service.render(u) for u in urls))

        assert [o.image for o in outcomes] == [u.encode() for u in urls]
        assert len(pages) == 4


class TestConcurrencyBound:
    @pytest.mark.asyncio
    async def test_requests_beyond_the_limit_are_refused_when_no_slot_frees(self):
        release = asyncio.Event()
        page = make_page()

        async def slow_goto(url, **kwargs):
            await release.wait()

        page.goto.side_effect = slow_goto
        settings = Settings(max_concurrent_pages=1, page_acquire_timeout_s=0.05)
        service, _, _ = service_for(page, settings)

        first = asyncio.create_task(service.render("https://example.com"))
        await asyncio.sleep(0.01)

        with pytest.raises(ScreenshotError) as exc_info:
            await service.render("https://example.org")

        assert exc_info.value.status_code == 503
        assert exc_info.value.message == BUSY_MESSAGE
        assert exc_info.value.headers == {"Retry-After": "2"}

        release.set()
        assert isinstance(await first, ScreenshotSuccess)

    @pytest.mark.asyncio
    async def test_waiting_request_runs_once_a_slot_frees(self):
        settings = Settings(max_concurrent_pages=1, page_acquire_timeout_s=1.0)
        service, browser, _ = service_for(make_page(), settings)

        outcomes = await asyncio.gather(
            service.render("https://example.com"),
            service.render("https://example.org"),
        )

        assert all(isinstance(o, ScreenshotSuccess) for o in outcomes)
        assert browser.new_context.await_count == 2
