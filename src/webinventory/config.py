from dotenv import load_dotenv
from dataclasses import dataclass, field, fields, replace
from typing import List, Optional
from pathlib import Path
import os

import yaml

from webinventory.constants import (
    DEFAULT_CAPTURE_WINDOW_MS,
    DEFAULT_CONCURRENCY_LIMIT,
    DEFAULT_LOGGED_IN_MARKER,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_INTERACTIONS,
    DEFAULT_MAX_PAGES_TO_CRAWL,
    DEFAULT_NAVIGATION_TIMEOUT_MS,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_PASSWORD_SELECTOR,
    DEFAULT_RETRY_DELAY_MS,
    DEFAULT_SUBMIT_SELECTOR,
    DEFAULT_URLS_FILE,
    DEFAULT_USERNAME_SELECTOR,
)
from webinventory.exceptions import ConfigurationError
from webinventory.url_utils import is_well_formed

load_dotenv()  # Loads variables from .env file


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from e


@dataclass
class CrawlConfig:
    """Configuration for one inventory run."""
    urls_file: str = DEFAULT_URLS_FILE
    urls: List[str] = field(default_factory=list)
    base_url: Optional[str] = None
    output_dir: str = DEFAULT_OUTPUT_DIR

    # Scheduling
    concurrency_limit: int = DEFAULT_CONCURRENCY_LIMIT
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    retry_delay_ms: int = DEFAULT_RETRY_DELAY_MS

    # Recursive scan
    recursive: bool = False
    max_pages: int = DEFAULT_MAX_PAGES_TO_CRAWL
    max_depth: Optional[int] = None
    same_domain_only: bool = True

    # Browser
    headless: bool = True
    navigation_timeout_ms: int = DEFAULT_NAVIGATION_TIMEOUT_MS
    capture_window_ms: int = DEFAULT_CAPTURE_WINDOW_MS
    trigger_selector: Optional[str] = None
    click_buttons: bool = False
    max_interactions: int = DEFAULT_MAX_INTERACTIONS

    # Login
    login_required: bool = False
    login_url: Optional[str] = None
    login_username: Optional[str] = None
    login_password: Optional[str] = None
    username_selector: str = DEFAULT_USERNAME_SELECTOR
    password_selector: str = DEFAULT_PASSWORD_SELECTOR
    submit_selector: str = DEFAULT_SUBMIT_SELECTOR
    logged_in_marker: str = DEFAULT_LOGGED_IN_MARKER
    session_dir: str = "~/.webinventory/sessions"

    # Reporting
    render_pdf: bool = True
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls) -> "CrawlConfig":
        """Load configuration from environment variables.

        Returns:
            CrawlConfig: Configuration instance with values from environment

        Raises:
            ConfigurationError: If a numeric variable cannot be parsed
        """
        recursive = _env_bool("RECURSIVE", False)
        return cls(
            urls_file=os.getenv("URLS_FILE", DEFAULT_URLS_FILE),
            base_url=os.getenv("BASE_URL") or None,
            output_dir=os.getenv("OUTPUT_DIR", DEFAULT_OUTPUT_DIR),
            concurrency_limit=_env_int("CONCURRENCY_LIMIT", DEFAULT_CONCURRENCY_LIMIT),
            max_attempts=_env_int("MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS),
            retry_delay_ms=_env_int("RETRY_DELAY_MS", DEFAULT_RETRY_DELAY_MS),
            recursive=recursive,
            max_pages=_env_int("MAX_PAGES", DEFAULT_MAX_PAGES_TO_CRAWL),
            max_depth=_env_int("MAX_DEPTH", None),
            headless=_env_bool("HEADLESS", True),
            navigation_timeout_ms=_env_int("NAVIGATION_TIMEOUT_MS", DEFAULT_NAVIGATION_TIMEOUT_MS),
            capture_window_ms=_env_int("CAPTURE_WINDOW_MS", DEFAULT_CAPTURE_WINDOW_MS),
            trigger_selector=os.getenv("TRIGGER_SELECTOR") or None,
            click_buttons=_env_bool("CLICK_BUTTONS", recursive),
            login_required=_env_bool("LOGIN_REQUIRED", False),
            login_url=os.getenv("LOGIN_URL") or None,
            login_username=os.getenv("LOGIN_USER") or None,
            login_password=os.getenv("LOGIN_PASSWORD") or None,
            render_pdf=_env_bool("RENDER_PDF", True),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_file=os.getenv("LOG_FILE") or None,
        )

    @classmethod
    def from_file(cls, path: str, base: Optional["CrawlConfig"] = None) -> "CrawlConfig":
        """Load configuration from a YAML file.

        Keys in the file override ``base`` (or the defaults). Unknown keys are
        rejected so that typos do not silently fall back to defaults.

        Args:
            path: Path to YAML configuration file
            base: Configuration to start from

        Returns:
            CrawlConfig with values from file
        """
        file_path = Path(path)
        if not file_path.exists():
            raise ConfigurationError(f"Config file not found: {path}")

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")

        # Allow the settings to be nested under a top-level "crawl" key
        data = data.get("crawl", data)

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown config key(s) in {path}: {', '.join(unknown)}")

        config = base.copy() if base else cls()
        for key, value in data.items():
            setattr(config, key, value)
        return config

    def copy(self) -> "CrawlConfig":
        return replace(self, urls=list(self.urls))

    def to_dict(self) -> dict:
        """Convert configuration to dictionary.

        Returns:
            Dictionary of all configuration values
        """
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def safe_dict(self) -> dict:
        """Like to_dict() but with the password masked, for logging."""
        data = self.to_dict()
        if data.get("login_password"):
            data["login_password"] = "***"
        return data

    def validate(self) -> "CrawlConfig":
        """Check values that would otherwise fail deep inside a run.

        Raises:
            ConfigurationError: On the first invalid value
        """
        if self.concurrency_limit < 1:
            raise ConfigurationError("concurrency_limit must be at least 1")
        if self.max_attempts < 1:
            raise ConfigurationError("max_attempts must be at least 1")
        if self.retry_delay_ms < 0:
            raise ConfigurationError("retry_delay_ms must not be negative")
        if self.navigation_timeout_ms <= 0 or self.capture_window_ms < 0:
            raise ConfigurationError("timeouts must be positive")
        if self.max_pages < 1:
            raise ConfigurationError("max_pages must be at least 1")
        if self.max_depth is not None and self.max_depth < 0:
            raise ConfigurationError("max_depth must not be negative")
        if self.base_url and not is_well_formed(self.base_url):
            raise ConfigurationError(f"base_url is not a valid http(s) URL: {self.base_url}")

        if self.login_required:
            missing = [
                name for name, value in (
                    ("LOGIN_URL", self.login_url or self.base_url),
                    ("LOGIN_USER", self.login_username),
                    ("LOGIN_PASSWORD", self.login_password),
                )
                if not value
            ]
            if missing:
                raise ConfigurationError(f"Login required but missing: {', '.join(missing)}")
        return self

    def seed_urls(self) -> List[str]:
        """URLs to crawl: explicit ``urls`` first, else the URL file.

        In recursive mode with no URL list, ``base_url`` is the single seed.
        """
        if self.urls:
            return list(self.urls)
        if self.recursive and self.base_url and not Path(self.urls_file).exists():
            return [self.base_url]
        return load_urls(self.urls_file)


def load_urls(path: str) -> List[str]:
    """Read a newline-delimited URL list.

    Blank lines and lines starting with ``#`` are skipped.

    Raises:
        ConfigurationError: If the file is missing or lists no URLs
    """
    file_path = Path(path)
    try:
        text = file_path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ConfigurationError(f"URLs file not found: {path}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read URLs file {path}: {e}") from e

    urls = []
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        urls.append(line)

    if not urls:
        raise ConfigurationError(f"No URLs found in {path}")
    return urls
