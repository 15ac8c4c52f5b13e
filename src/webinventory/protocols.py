"""Protocol (interface) definitions for the collaborators the orchestrator calls.

Only the methods the core needs are declared, so fakes in tests and the
Playwright-backed implementations both satisfy them.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, AsyncContextManager, Callable, Optional, Protocol, Union

from webinventory.models import AnalyticsSnapshot, ApiCallRecord, ElementRecord


@dataclass
class ButtonRef:
    """A clickable element found during extraction."""
    selector: str
    text: str = ""


@dataclass
class Extraction:
    """What the extract phase reads from a loaded page."""
    title: Optional[str] = None
    elements: list[ElementRecord] = field(default_factory=list)
    links: list[str] = field(default_factory=list)
    buttons: list[ButtonRef] = field(default_factory=list)


class AuthState(Enum):
    ALREADY_AUTHENTICATED = "already-authenticated"
    FRESHLY_AUTHENTICATED = "freshly-authenticated"


class BrowserSession(Protocol):
    """A single isolated browser page, owned by one task attempt."""

    async def goto(self, url: str, timeout_ms: int) -> None:
        """Navigate; raises NavigationError or MalformedUrlError."""
        ...

    async def extract_elements(self) -> Extraction:
        """Read the element inventory; raises ExtractionError."""
        ...

    async def capture_network_activity(
        self, trigger_selector: Optional[str] = None, window_ms: int = 5000
    ) -> list[ApiCallRecord]:
        """Return API traffic; raises CaptureError."""
        ...

    async def screenshot(self) -> bytes:
        """Full-page PNG; raises ScreenshotError."""
        ...

    @property
    def current_url(self) -> str:
        ...


class Authenticator(Protocol):
    """Login capability."""

    async def login(self, session: BrowserSession) -> Any:
        """Log in once ahead of crawling; raises AuthenticationError."""
        ...

    async def ensure_session(self, session: BrowserSession) -> AuthState:
        """Check the post-login marker, logging in again if it is missing."""
        ...


class OutputStore(Protocol):
    """Artifact persistence."""

    def write_json(self, path: Union[str, Path], value: Any) -> Path:
        ...

    def write_binary(self, path: Union[str, Path], data: bytes) -> Path:
        ...

    def ensure_dir(self, path: Union[str, Path]) -> Path:
        ...


class ReportRenderer(Protocol):
    """Turns finalized analytics into charts and documents."""

    async def render(self, snapshot: AnalyticsSnapshot) -> dict[str, dict[str, str]]:
        ...


SessionFactory = Callable[[], AsyncContextManager[BrowserSession]]
