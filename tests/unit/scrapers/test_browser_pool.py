"""Unit tests for the shared browser session pool."""

from __future__ import annotations

import asyncio

import pytest

from core.errors import BrowserUnavailableError
from scrapers.browser import BrowserPool


class FakePage:
    def __init__(self):
        self.default_timeout = None

    def set_default_timeout(self, timeout):
        self.default_timeout = timeout


class FakeContext:
    def __init__(self, options):
        self.options = options
        self.closed = False

    async def new_page(self):
        return FakePage()

    async def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self):
        self.contexts: list[FakeContext] = []
        self.closed = False

    async def new_context(self, **options):
        context = FakeContext(options)
        self.contexts.append(context)
        return context

    async def close(self):
        self.closed = True


def test_session_opens_isolated_context_and_closes_it() -> None:
    """Each session should get its own context, closed after use."""
    browser = FakeBrowser()
    launches = []

    async def launcher():
        launches.append(1)
        return browser

    async def scenario() -> FakePage:
        pool = BrowserPool(navigation_timeout_ms=1234, launcher=launcher)
        async with pool.session() as page:
            seen = page
        async with pool.session():
            pass
        await pool.close()
        return seen

    page = asyncio.run(scenario())

    assert len(launches) == 1
    assert len(browser.contexts) == 2
    assert all(c.closed for c in browser.contexts)
    assert browser.closed is True
    assert page.default_timeout == 1234
    assert browser.contexts[0].options["viewport"] == {"width": 1920, "height": 1080}


def test_session_context_closed_when_body_raises() -> None:
    """A failing navigation should still release the context."""
    browser = FakeBrowser()

    async def launcher():
        return browser

    async def scenario() -> None:
        pool = BrowserPool(launcher=launcher)
        async with pool.session():
            raise RuntimeError("navigation failed")

    with pytest.raises(RuntimeError):
        asyncio.run(scenario())

    assert browser.contexts[0].closed is True


def test_launch_failure_raises_browser_unavailable() -> None:
    """Launch errors should surface as BrowserUnavailableError."""

    async def launcher():
        raise OSError("chromium not installed")

    async def scenario() -> None:
        async with BrowserPool(launcher=launcher).session():
            pass

    with pytest.raises(BrowserUnavailableError, match="chromium not installed"):
        asyncio.run(scenario())
