"""Exception hierarchy for the web inventory crawler.

Every error raised at a capability boundary is classified as either
transient (worth retrying) or permanent (no retry can resolve it).
"""

from enum import Enum
from typing import Optional


class ErrorClass(Enum):
    """Retry classification of a failure."""
    TRANSIENT = "transient"
    PERMANENT = "permanent"


class CrawlError(Exception):
    """Base class for classified crawl failures."""

    error_class: ErrorClass = ErrorClass.TRANSIENT

    def __init__(self, message: str, url: Optional[str] = None, original: Optional[Exception] = None):
        self.message = message
        self.url = url
        self.original = original
        super().__init__(message)

    @property
    def is_transient(self) -> bool:
        return self.error_class is ErrorClass.TRANSIENT


class ConfigurationError(CrawlError):
    """Raised when a required setting is missing or invalid."""
    error_class = ErrorClass.PERMANENT


class MalformedUrlError(CrawlError):
    """Raised when a URL cannot be navigated to because it is not well formed."""
    error_class = ErrorClass.PERMANENT


class AuthenticationError(CrawlError):
    """Raised when login fails or the post-login marker never appears."""
    error_class = ErrorClass.PERMANENT


class NavigationError(CrawlError):
    """Raised when page navigation times out or the network fails."""


class ExtractionError(CrawlError):
    """Raised when the element inventory cannot be read from the page."""


class CaptureError(CrawlError):
    """Raised when network capture cannot be set up or the trigger click fails."""


class ScreenshotError(CrawlError):
    """Raised when a screenshot cannot be taken. Never fails a task."""


class PersistenceError(CrawlError):
    """Raised when an artifact cannot be written. Never fails a task."""
    error_class = ErrorClass.PERMANENT


class RunCancelledError(Exception):
    """Raised inside the pipeline when the abort signal is observed between phases."""
