"""
Playwright-backed BrowserSession.

Wraps one Page of an isolated BrowserContext and translates Playwright
failures into classified crawl errors at the boundary.
"""

import asyncio
import logging
from typing import Any, Optional
from urllib.parse import urlparse

from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from webinventory.browser_config import BrowserConfig
from webinventory.constants import INVENTORY_SELECTORS
from webinventory.exceptions import (
    CaptureError,
    ExtractionError,
    MalformedUrlError,
    NavigationError,
    ScreenshotError,
)
from webinventory.models import ApiCallRecord, ElementRecord
from webinventory.protocols import ButtonRef, Extraction
from webinventory.url_utils import is_well_formed

logger = logging.getLogger(__name__)


def _attr_value(value: Any) -> str:
    # BeautifulSoup returns multi-valued attributes (class, rel) as lists
    if isinstance(value, (list, tuple)):
        return " ".join(value)
    return str(value)


def parse_inventory(html: str) -> Extraction:
    """Build the element inventory, links and clickable buttons from page HTML.

    Args:
        html: Rendered page HTML

    Returns:
        Extraction with elements in document order
    """
    soup = BeautifulSoup(html, "html.parser")
    title_tag = soup.find("title")
    title = title_tag.get_text(strip=True) if title_tag else None

    elements = []
    for el in soup.find_all(list(INVENTORY_SELECTORS)):
        classes = list(dict.fromkeys(el.get("class") or []))
        elements.append(ElementRecord(
            tag_name=el.name.lower(),
            id=el.get("id") or None,
            classes=classes,
            attributes={name: _attr_value(value) for name, value in el.attrs.items()},
        ))

    links = [a["href"] for a in soup.find_all("a", href=True) if a["href"].strip()]

    buttons = [
        ButtonRef(selector=f"button >> nth={index}", text=button.get_text(strip=True))
        for index, button in enumerate(soup.find_all("button"))
    ]

    return Extraction(title=title, elements=elements, links=links, buttons=buttons)


class PlaywrightBrowserSession:
    """
    A single isolated Playwright page.

    Network traffic is recorded from the moment of navigation. Each call to
    ``capture_network_activity`` returns and clears what was recorded since the
    previous call.
    """

    def __init__(self, page, config: Optional[BrowserConfig] = None):
        """
        Initialize the session.

        Args:
            page: Playwright Page, already created in its own context
            config: Browser settings (wait condition, capture scope, screenshot mode)
        """
        self.page = page
        self.config = config or BrowserConfig()
        self._scope: Optional[str] = self.config.api_scope
        self._buffer: list[ApiCallRecord] = []
        self._listening = False
        self._attach()

    def _attach(self) -> None:
        if self._listening:
            return
        self.page.on("request", self._on_request)
        self.page.on("response", self._on_response)
        self._listening = True

    def _detach(self) -> None:
        if not self._listening:
            return
        self.page.remove_listener("request", self._on_request)
        self.page.remove_listener("response", self._on_response)
        self._listening = False

    def _in_scope(self, resource_type: str, url: str) -> bool:
        if resource_type not in self.config.api_resource_types:
            return False
        return self._scope is None or url.startswith(self._scope)

    def _on_request(self, request) -> None:
        if not self._in_scope(request.resource_type, request.url):
            return
        self._buffer.append(ApiCallRecord(
            type="request",
            url=request.url,
            method=request.method,
            headers=dict(request.headers),
            resource_type=request.resource_type,
        ))

    def _on_response(self, response) -> None:
        request = response.request
        if not self._in_scope(request.resource_type, response.url):
            return
        self._buffer.append(ApiCallRecord(
            type="response",
            url=response.url,
            method=request.method,
            status=response.status,
            resource_type=request.resource_type,
        ))

    async def goto(self, url: str, timeout_ms: int) -> None:
        """Navigate and wait for the configured load state.

        Raises:
            MalformedUrlError: URL is not an absolute http(s) URL
            NavigationError: Timeout or network failure
        """
        if not is_well_formed(url):
            raise MalformedUrlError(f"Malformed URL: {url!r}", url=url)

        if self.config.api_scope is None:
            parsed = urlparse(url)
            self._scope = f"{parsed.scheme}://{parsed.netloc}"
        self._buffer.clear()

        try:
            response = await self.page.goto(url, wait_until=self.config.wait_until, timeout=timeout_ms)
        except PlaywrightTimeoutError as e:
            raise NavigationError(f"Timeout after {timeout_ms}ms", url=url, original=e) from e
        except PlaywrightError as e:
            raise NavigationError(str(e).splitlines()[0] if str(e) else "Navigation failed",
                                  url=url, original=e) from e

        if response is not None:
            logger.debug(f"Loaded {url} with status {response.status}")

    async def extract_elements(self) -> Extraction:
        try:
            html = await self.page.content()
        except PlaywrightError as e:
            raise ExtractionError(f"Could not read page content: {e}", url=self.page.url, original=e) from e
        return parse_inventory(html)

    async def capture_network_activity(
        self,
        trigger_selector: Optional[str] = None,
        window_ms: int = 5000,
    ) -> list[ApiCallRecord]:
        """Return API traffic recorded since the last capture.

        With a trigger selector the element is clicked first and traffic is
        observed for ``window_ms``.

        Raises:
            CaptureError: The trigger could not be clicked
        """
        self._attach()
        if trigger_selector:
            try:
                await self.page.click(trigger_selector, timeout=self.config.timeout)
            except (PlaywrightTimeoutError, PlaywrightError) as e:
                raise CaptureError(
                    f"Could not click trigger {trigger_selector!r}: {e}",
                    url=self.page.url,
                    original=e,
                ) from e
            await asyncio.sleep(window_ms / 1000)

        captured, self._buffer = self._buffer, []
        logger.debug(f"Captured {len(captured)} API call record(s) on {self.page.url}")
        return captured

    async def screenshot(self) -> bytes:
        try:
            return await self.page.screenshot(full_page=self.config.full_page_screenshots)
        except (PlaywrightTimeoutError, PlaywrightError) as e:
            raise ScreenshotError(f"Screenshot failed: {e}", url=self.page.url, original=e) from e

    @property
    def current_url(self) -> str:
        return self.page.url

    # --- Form helpers used by the login flow ---

    async def fill(self, selector: str, value: str) -> None:
        await self.page.fill(selector, value)

    async def wait_for(self, selector: str, timeout_ms: int) -> None:
        await self.page.wait_for_selector(selector, timeout=timeout_ms)

    async def is_visible(self, selector: str) -> bool:
        return await self.page.is_visible(selector)

    async def close(self) -> None:
        self._detach()
        try:
            await self.page.close()
        except PlaywrightError as e:
            logger.debug(f"Error closing page: {e}")
