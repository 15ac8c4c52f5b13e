"""
Browser configuration for Playwright-backed sessions.

This module provides a validated Pydantic configuration model for the browser
pool and the sessions it hands out.
"""
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from webinventory.constants import (
    API_RESOURCE_TYPES,
    DEFAULT_NAVIGATION_TIMEOUT_MS,
    DESKTOP_VIEWPORT_HEIGHT,
    DESKTOP_VIEWPORT_WIDTH,
)


DEFAULT_LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    f"--window-size={DESKTOP_VIEWPORT_WIDTH},{DESKTOP_VIEWPORT_HEIGHT}",
]


class BrowserConfig(BaseModel):
    """
    Configuration for the Playwright browser pool.

    All fields are validated by Pydantic to ensure type safety and valid values.
    """

    model_config = ConfigDict(validate_assignment=True)

    headless: bool = Field(
        default=True,
        description="Run browser in headless mode (no visible UI)"
    )

    browser_type: Literal["chromium", "firefox", "webkit"] = Field(
        default="chromium",
        description="Browser engine to use for crawling"
    )

    timeout: int = Field(
        default=DEFAULT_NAVIGATION_TIMEOUT_MS,
        description="Default operation timeout in milliseconds",
        ge=1000,
        le=300000
    )

    wait_until: Literal["load", "domcontentloaded", "networkidle", "commit"] = Field(
        default="networkidle",
        description="When to consider navigation complete"
    )

    viewport_width: int = Field(default=DESKTOP_VIEWPORT_WIDTH, ge=320)
    viewport_height: int = Field(default=DESKTOP_VIEWPORT_HEIGHT, ge=240)

    full_page_screenshots: bool = Field(
        default=True,
        description="Capture the whole scrollable page rather than the viewport"
    )

    api_resource_types: List[str] = Field(
        default_factory=lambda: list(API_RESOURCE_TYPES),
        description="Resource types recorded as API traffic"
    )

    api_scope: Optional[str] = Field(
        default=None,
        description="Only record API calls whose URL starts with this prefix. "
                    "None means the origin of the page being crawled."
    )

    launch_args: List[str] = Field(
        default_factory=lambda: list(DEFAULT_LAUNCH_ARGS),
        description="Additional browser launch arguments"
    )

    user_agent: Optional[str] = Field(
        default=None,
        description="Custom user agent. None keeps the browser default."
    )

    ignore_https_errors: bool = Field(
        default=True,
        description="Accept self-signed certificates on internal test pages"
    )
