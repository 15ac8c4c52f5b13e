"""Shared fixtures: a scripted fake browser and an in-memory output store."""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from webinventory.exceptions import MalformedUrlError, PersistenceError
from webinventory.models import ApiCallRecord, ElementRecord
from webinventory.protocols import ButtonRef, Extraction
from webinventory.url_utils import is_well_formed


@dataclass
class FakePage:
    """What the fake browser serves for one URL."""
    title: str = "Page"
    elements: List[ElementRecord] = field(default_factory=list)
    links: List[str] = field(default_factory=list)
    buttons: List[ButtonRef] = field(default_factory=list)
    api_calls: List[ApiCallRecord] = field(default_factory=list)
    # selector -> API calls recorded when it is clicked
    click_calls: Dict[str, List[ApiCallRecord]] = field(default_factory=dict)
    # selector -> URL the page navigates to when it is clicked
    click_navigates: Dict[str, str] = field(default_factory=dict)


class FakeBrowser:
    """Serves FakePages and hands out one FakeBrowserSession per acquisition.

    Failures are scripted per URL and phase and consumed in order, so
    ``fail("https://a", NavigationError("x"), NavigationError("y"))`` makes the
    first two navigations to that URL fail.
    """

    def __init__(self, pages: Optional[Dict[str, FakePage]] = None, goto_delay: float = 0.0):
        self.pages = pages or {}
        self.goto_delay = goto_delay
        self.errors: Dict[str, Dict[str, List[BaseException]]] = {
            "goto": {}, "extract": {}, "capture": {}, "screenshot": {},
        }
        self.visits: List[str] = []
        self.clicks: List[str] = []
        self.active = 0
        self.peak_active = 0
        self.sessions_opened = 0
        self.sessions_closed = 0
        self.on_goto = None

    def fail(self, url: str, *errors: BaseException, phase: str = "goto") -> None:
        self.errors[phase].setdefault(url, []).extend(errors)

    def pop_error(self, phase: str, url: str) -> Optional[BaseException]:
        pending = self.errors[phase].get(url)
        if pending:
            return pending.pop(0)
        return None

    def page(self, url: str) -> FakePage:
        return self.pages.get(url, FakePage())

    @asynccontextmanager
    async def session_factory(self):
        session = FakeBrowserSession(self)
        self.sessions_opened += 1
        self.active += 1
        self.peak_active = max(self.peak_active, self.active)
        try:
            yield session
        finally:
            self.active -= 1
            self.sessions_closed += 1


class FakeBrowserSession:
    """BrowserSession backed by a FakeBrowser."""

    def __init__(self, browser: FakeBrowser):
        self.browser = browser
        self._url = "about:blank"

    async def goto(self, url: str, timeout_ms: int) -> None:
        self.browser.visits.append(url)
        if self.browser.on_goto is not None:
            self.browser.on_goto(url)
        if self.browser.goto_delay:
            await asyncio.sleep(self.browser.goto_delay)
        error = self.browser.pop_error("goto", url)
        if error is not None:
            raise error
        if not is_well_formed(url):
            raise MalformedUrlError(f"Malformed URL: {url!r}", url=url)
        self._url = url

    async def extract_elements(self) -> Extraction:
        error = self.browser.pop_error("extract", self._url)
        if error is not None:
            raise error
        page = self.browser.page(self._url)
        return Extraction(
            title=page.title,
            elements=list(page.elements),
            links=list(page.links),
            buttons=list(page.buttons),
        )

    async def capture_network_activity(self, trigger_selector=None, window_ms=5000):
        error = self.browser.pop_error("capture", self._url)
        if error is not None:
            raise error
        page = self.browser.page(self._url)
        if trigger_selector is None:
            return list(page.api_calls)
        self.browser.clicks.append(trigger_selector)
        calls = list(page.click_calls.get(trigger_selector, []))
        if trigger_selector in page.click_navigates:
            self._url = page.click_navigates[trigger_selector]
        return calls

    async def screenshot(self) -> bytes:
        error = self.browser.pop_error("screenshot", self._url)
        if error is not None:
            raise error
        return b"\x89PNG\r\n\x1a\nfake"

    @property
    def current_url(self) -> str:
        return self._url


class InMemoryOutputStore:
    """OutputStore keeping every artifact in a dict."""

    def __init__(self):
        self.files: Dict[str, Any] = {}
        self.dirs: List[str] = []
        self.fail_on: List[str] = []

    def _check(self, path) -> str:
        key = str(path)
        for fragment in self.fail_on:
            if fragment in key:
                raise PersistenceError(f"disk full while writing {key}")
        return key

    def write_json(self, path, value) -> Path:
        key = self._check(path)
        self.files[key] = value
        return Path(key)

    def write_binary(self, path, data: bytes) -> Path:
        key = self._check(path)
        self.files[key] = data
        return Path(key)

    def ensure_dir(self, path) -> Path:
        self.dirs.append(str(path))
        return Path(path)

    def paths_ending(self, suffix: str) -> List[str]:
        return sorted(k for k in self.files if k.endswith(suffix))


def element(tag: str, id: Optional[str] = None, classes=None, attributes=None) -> ElementRecord:
    return ElementRecord(
        tag_name=tag,
        id=id,
        classes=list(classes or []),
        attributes=dict(attributes or {}),
    )


def api_call(url: str, method: str = "GET", type: str = "request", status: Optional[int] = None) -> ApiCallRecord:
    return ApiCallRecord(type=type, url=url, method=method, status=status, resource_type="xhr")


@pytest.fixture
def fake_browser():
    return FakeBrowser()


@pytest.fixture
def memory_store():
    return InMemoryOutputStore()
