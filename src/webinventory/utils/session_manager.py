"""
Session persistence for authenticated crawls.

The login flow runs once per run; the resulting cookies and localStorage are
saved here and handed to every isolated browser context the pool creates, so
each task starts already logged in.

Usage:
    from webinventory.utils.session_manager import SessionManager

    # Save session after login
    session_mgr = SessionManager(storage_dir="~/.webinventory/sessions")
    await session_mgr.save_session(page, "app_example_com")

    # Seed new contexts with it
    state = session_mgr.load_storage_state("app_example_com")
    context = await browser.new_context(storage_state=state)
"""
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)


@dataclass
class SessionData:
    """Stored login state for one site."""

    site: str
    cookies: List[Dict[str, Any]] = field(default_factory=list)
    origins: List[Dict[str, Any]] = field(default_factory=list)
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    login_url: Optional[str] = None

    def __post_init__(self):
        if self.created_at is None:
            self.created_at = datetime.now()

    def is_expired(self, ttl_hours: int = 24) -> bool:
        """Check if session has expired."""
        if self.expires_at:
            return datetime.now() > self.expires_at
        if self.created_at:
            expiry = self.created_at + timedelta(hours=ttl_hours)
            return datetime.now() > expiry
        return True

    @property
    def local_storage_count(self) -> int:
        return sum(len(origin.get("localStorage", [])) for origin in self.origins)

    def to_storage_state(self) -> Dict[str, Any]:
        """Playwright ``storage_state`` mapping for ``browser.new_context``."""
        return {"cookies": list(self.cookies), "origins": list(self.origins)}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "site": self.site,
            "cookies": self.cookies,
            "origins": self.origins,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "login_url": self.login_url,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionData":
        created_at = None
        expires_at = None
        if data.get("created_at"):
            created_at = datetime.fromisoformat(data["created_at"])
        if data.get("expires_at"):
            expires_at = datetime.fromisoformat(data["expires_at"])

        return cls(
            site=data["site"],
            cookies=data.get("cookies", []),
            origins=data.get("origins", []),
            created_at=created_at,
            expires_at=expires_at,
            login_url=data.get("login_url"),
        )


class SessionManager:
    """
    Manages login session persistence.

    Features:
    - Save cookies and localStorage after a successful login
    - Seed new browser contexts with the saved state
    - TTL-based session expiration
    - Site-specific session isolation
    """

    def __init__(
        self,
        storage_dir: Optional[Union[str, Path]] = None,
        ttl_hours: int = 24,
    ):
        """
        Initialize session manager.

        Args:
            storage_dir: Directory to store sessions (default: ~/.webinventory/sessions)
            ttl_hours: Session TTL in hours (default: 24)
        """
        if storage_dir is None:
            storage_dir = Path.home() / ".webinventory" / "sessions"
        self.storage_dir = Path(storage_dir).expanduser()
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        self.ttl_hours = ttl_hours
        self._current: Dict[str, SessionData] = {}

        logger.debug(f"SessionManager initialized with storage at {self.storage_dir}")

    def _get_session_path(self, site: str) -> Path:
        safe_site = site.replace(":", "_").replace("/", "_").replace(".", "_")
        return self.storage_dir / f"{safe_site}.json"

    async def save_session(
        self,
        page,
        site: str,
        login_url: Optional[str] = None,
    ) -> SessionData:
        """
        Save the login state of the page's browser context.

        Args:
            page: Playwright Page instance
            site: Site identifier for session storage
            login_url: URL where login was performed (for reference)

        Returns:
            SessionData that was saved
        """
        state = await page.context.storage_state()

        session = SessionData(
            site=site,
            cookies=state.get("cookies", []),
            origins=state.get("origins", []),
            login_url=login_url,
        )
        self._current[site] = session

        session_path = self._get_session_path(site)
        try:
            with open(session_path, "w") as f:
                json.dump(session.to_dict(), f, indent=2)
        except OSError as e:
            # The in-memory copy still serves this run.
            logger.warning(f"Could not write session file {session_path}: {e}")

        logger.info(
            f"Session saved for {site}: {len(session.cookies)} cookies, "
            f"{session.local_storage_count} localStorage items"
        )
        return session

    def load_session(self, site: str) -> Optional[SessionData]:
        """Return the current or stored session for a site, if still valid."""
        session = self._current.get(site)
        if session is not None and not session.is_expired(self.ttl_hours):
            return session

        session_path = self._get_session_path(site)
        if not session_path.exists():
            logger.debug(f"No saved session found for {site}")
            return None

        try:
            with open(session_path) as f:
                session = SessionData.from_dict(json.load(f))
        except (OSError, ValueError, KeyError) as e:
            logger.warning(f"Failed to load session for {site}: {e}")
            return None

        if session.is_expired(self.ttl_hours):
            logger.info(f"Session for {site} has expired, not restoring")
            session_path.unlink(missing_ok=True)
            return None

        self._current[site] = session
        return session

    def load_storage_state(self, site: str) -> Optional[Dict[str, Any]]:
        session = self.load_session(site)
        return session.to_storage_state() if session else None

    def has_session(self, site: str) -> bool:
        return self.load_session(site) is not None

    def delete_session(self, site: str) -> bool:
        """Delete a saved session."""
        self._current.pop(site, None)
        session_path = self._get_session_path(site)
        if session_path.exists():
            session_path.unlink()
            logger.info(f"Session deleted for {site}")
            return True
        return False
