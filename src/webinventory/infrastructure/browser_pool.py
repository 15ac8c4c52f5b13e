"""
Browser Pool Management.

Hands out one freshly created, isolated BrowserContext per crawl attempt so
that no cookies, storage or listeners leak between tasks. A saved login
session is injected into every new context as its storage state.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, AsyncIterator, Optional

from playwright.async_api import async_playwright

from webinventory.browser_config import BrowserConfig
from webinventory.infrastructure.browser_session import PlaywrightBrowserSession

logger = logging.getLogger(__name__)


class BrowserHealth(Enum):
    """Browser health status."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class PoolStatus:
    """Current status of the browser pool."""
    max_size: int
    in_use: int
    total_sessions: int
    total_errors: int
    health: BrowserHealth
    uptime_seconds: float


@dataclass
class ContextMetrics:
    """Counters across every context the pool created."""
    sessions: int = 0
    errors: int = 0
    last_used: datetime | None = None

    @property
    def error_rate(self) -> float:
        if self.sessions == 0:
            return 0.0
        return self.errors / self.sessions

    @property
    def health(self) -> BrowserHealth:
        if self.error_rate > 0.5:
            return BrowserHealth.UNHEALTHY
        if self.error_rate > 0.2:
            return BrowserHealth.DEGRADED
        return BrowserHealth.HEALTHY

    def record_success(self) -> None:
        self.sessions += 1
        self.last_used = datetime.now()

    def record_error(self) -> None:
        self.sessions += 1
        self.errors += 1
        self.last_used = datetime.now()


class BrowserPool:
    """
    Manages one browser and the isolated contexts created from it.

    Features:
    - Async session acquisition with automatic teardown
    - Full isolation: a new BrowserContext per acquisition
    - Login state seeding through Playwright storage state
    - Error-rate health reporting
    - Graceful shutdown
    """

    def __init__(
        self,
        max_size: int = 3,
        config: Optional[BrowserConfig] = None,
        storage_state: Optional[dict] = None,
    ):
        """
        Initialize browser pool.

        Args:
            max_size: Maximum number of contexts open at once
            config: Browser launch and context settings
            storage_state: Playwright storage state applied to every new context
        """
        self.max_size = max_size
        self.config = config or BrowserConfig()
        self.storage_state = storage_state

        self._playwright = None
        self._browser = None
        self._slots = asyncio.Semaphore(max_size)
        self._metrics = ContextMetrics()
        self._in_use = 0
        self._started = False
        self._start_time: datetime | None = None

    async def __aenter__(self) -> "BrowserPool":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def start(self) -> None:
        """Launch the browser."""
        if self._started:
            return

        self._playwright = await async_playwright().start()
        launcher = getattr(self._playwright, self.config.browser_type)
        self._browser = await launcher.launch(
            headless=self.config.headless,
            args=self.config.launch_args,
        )
        self._start_time = datetime.now()
        self._started = True
        logger.info(
            f"Browser pool started ({self.config.browser_type}, "
            f"headless={self.config.headless}, max_size={self.max_size})"
        )

    async def stop(self) -> None:
        """
        Shutdown browser pool gracefully.

        Closes the browser instance and stops Playwright.
        """
        if not self._started:
            return

        if self._browser:
            try:
                await self._browser.close()
            except Exception as e:
                logger.warning(f"Error closing browser: {e}")
            self._browser = None

        if self._playwright:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.warning(f"Error stopping playwright: {e}")
            self._playwright = None

        self._started = False
        logger.info("Browser pool stopped")

    def set_storage_state(self, storage_state: Optional[dict]) -> None:
        """Use this login state for every context created from now on."""
        self.storage_state = storage_state

    async def _create_context(self) -> Any:
        context_options: dict[str, Any] = {
            "ignore_https_errors": self.config.ignore_https_errors,
            "viewport": {
                "width": self.config.viewport_width,
                "height": self.config.viewport_height,
            },
        }
        if self.config.user_agent:
            context_options["user_agent"] = self.config.user_agent
        if self.storage_state:
            context_options["storage_state"] = self.storage_state

        context = await self._browser.new_context(**context_options)
        context.set_default_timeout(self.config.timeout)
        return context

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[PlaywrightBrowserSession]:
        """
        Acquire an isolated browser session.

        Usage:
            async with pool.acquire() as session:
                await session.goto(url, timeout_ms)

        Yields:
            PlaywrightBrowserSession on a new page of a new context
        """
        if not self._started:
            raise RuntimeError("Browser pool not started. Call start() first.")

        async with self._slots:
            context = await self._create_context()
            self._in_use += 1
            session = None
            try:
                page = await context.new_page()
                session = PlaywrightBrowserSession(page, self.config)
                try:
                    yield session
                    self._metrics.record_success()
                except Exception:
                    self._metrics.record_error()
                    raise
            finally:
                self._in_use -= 1
                if session is not None:
                    await session.close()
                try:
                    await context.close()
                except Exception as e:
                    logger.warning(f"Error closing browser context: {e}")

    def session_factory(self):
        """Callable suitable for ``TaskScheduler(session_factory=...)``."""
        return self.acquire()

    def get_status(self) -> PoolStatus:
        """Get current pool status."""
        uptime = 0.0
        if self._start_time:
            uptime = (datetime.now() - self._start_time).total_seconds()

        return PoolStatus(
            max_size=self.max_size,
            in_use=self._in_use,
            total_sessions=self._metrics.sessions,
            total_errors=self._metrics.errors,
            health=self._metrics.health,
            uptime_seconds=uptime,
        )

    @property
    def in_use(self) -> int:
        return self._in_use

    @property
    def is_started(self) -> bool:
        """Whether pool has been started."""
        return self._started
