"""Unit tests for BrowserPool."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from webinventory.browser_config import BrowserConfig
from webinventory.infrastructure.browser_pool import (
    BrowserHealth,
    BrowserPool,
    ContextMetrics,
)
from webinventory.infrastructure.browser_session import PlaywrightBrowserSession


def make_context():
    page = MagicMock()
    page.url = "about:blank"
    page.close = AsyncMock()
    context = MagicMock()
    context.new_page = AsyncMock(return_value=page)
    context.close = AsyncMock()
    return context


def started_pool(**kwargs) -> BrowserPool:
    """A pool whose browser is a mock, bypassing the real launch."""
    pool = BrowserPool(**kwargs)
    pool._browser = MagicMock()
    pool._browser.new_context = AsyncMock(side_effect=lambda **_: make_context())
    pool._started = True
    return pool


class TestContextMetrics:
    """Tests for ContextMetrics."""

    def test_healthy_by_default(self):
        metrics = ContextMetrics()
        assert metrics.error_rate == 0.0
        assert metrics.health == BrowserHealth.HEALTHY

    def test_degraded(self):
        metrics = ContextMetrics()
        for _ in range(7):
            metrics.record_success()
        for _ in range(3):
            metrics.record_error()
        assert metrics.error_rate == 0.3
        assert metrics.health == BrowserHealth.DEGRADED

    def test_unhealthy(self):
        metrics = ContextMetrics()
        metrics.record_success()
        metrics.record_error()
        metrics.record_error()
        assert metrics.health == BrowserHealth.UNHEALTHY
        assert metrics.last_used is not None


class TestBrowserPool:
    """Tests for BrowserPool."""

    def test_pool_initialization(self):
        """Test pool initializes with correct defaults."""
        pool = BrowserPool()
        assert pool.max_size == 3
        assert pool.in_use == 0
        assert not pool.is_started
        assert pool.config.browser_type == "chromium"

    @pytest.mark.asyncio
    async def test_acquire_before_start(self):
        pool = BrowserPool()
        with pytest.raises(RuntimeError, match="not started"):
            async with pool.acquire():
                pass

    @pytest.mark.asyncio
    async def test_acquire_creates_fresh_context(self):
        """Test every acquisition gets its own context, closed afterwards."""
        pool = started_pool()

        async with pool.acquire() as first:
            assert isinstance(first, PlaywrightBrowserSession)
            assert pool.in_use == 1
        async with pool.acquire() as second:
            assert second is not first

        assert pool._browser.new_context.await_count == 2
        assert pool.in_use == 0
        assert pool.get_status().total_sessions == 2

    @pytest.mark.asyncio
    async def test_context_options(self):
        config = BrowserConfig(viewport_width=1280, viewport_height=720, user_agent="inventory-bot")
        pool = started_pool(config=config)

        async with pool.acquire():
            pass

        options = pool._browser.new_context.call_args.kwargs
        assert options["viewport"] == {"width": 1280, "height": 720}
        assert options["user_agent"] == "inventory-bot"
        assert "storage_state" not in options

    @pytest.mark.asyncio
    async def test_storage_state_seeded(self):
        """Test a saved login is applied to every new context."""
        state = {"cookies": [{"name": "sid", "value": "1"}], "origins": []}
        pool = started_pool()
        pool.set_storage_state(state)

        async with pool.session_factory():
            pass

        assert pool._browser.new_context.call_args.kwargs["storage_state"] == state

    @pytest.mark.asyncio
    async def test_error_recorded_and_context_closed(self):
        pool = started_pool()
        contexts = []
        pool._browser.new_context = AsyncMock(side_effect=lambda **_: contexts.append(make_context()) or contexts[-1])

        with pytest.raises(ValueError):
            async with pool.acquire():
                raise ValueError("task failed")

        contexts[0].close.assert_awaited_once()
        status = pool.get_status()
        assert status.total_errors == 1
        assert status.in_use == 0

    @pytest.mark.asyncio
    async def test_stop_closes_browser(self):
        pool = started_pool()
        browser = pool._browser
        browser.close = AsyncMock()
        pool._playwright = MagicMock()
        pool._playwright.stop = AsyncMock()

        await pool.stop()

        browser.close.assert_awaited_once()
        assert not pool.is_started
