"""
Shared fixtures built on the fake Playwright driver in tests/fakes.py.
"""

import pytest

from snapshot_agent.browser import BrowserSessionManager
from snapshot_agent.config import Settings
from tests.fakes import FakePlaywright


@pytest.fixture
def settings():
    return Settings(timeout_ms=30000, max_concurrent_pages=4, page_acquire_timeout_s=1.0)


@pytest.fixture
def fake_playwright():
    return FakePlaywright()


@pytest.fixture
def sessions(fake_playwright):
    return BrowserSessionManager(playwright_factory=fake_playwright)
