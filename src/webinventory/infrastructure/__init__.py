"""
Infrastructure Package.

Provides the Playwright browser pool and the isolated sessions it hands out.
"""

from .browser_pool import (
    BrowserPool,
    BrowserHealth,
    PoolStatus,
    ContextMetrics,
)
from .browser_session import (
    PlaywrightBrowserSession,
    parse_inventory,
)

__all__ = [
    # Browser Pool
    "BrowserPool",
    "BrowserHealth",
    "PoolStatus",
    "ContextMetrics",
    # Browser Session
    "PlaywrightBrowserSession",
    "parse_inventory",
]
