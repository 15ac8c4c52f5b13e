"""Form-based login for sites that require authentication."""

import logging
from typing import Optional

from webinventory.constants import (
    DEFAULT_CAPTURE_WINDOW_MS,
    DEFAULT_LOGGED_IN_MARKER,
    DEFAULT_NAVIGATION_TIMEOUT_MS,
    DEFAULT_PASSWORD_SELECTOR,
    DEFAULT_SUBMIT_SELECTOR,
    DEFAULT_USERNAME_SELECTOR,
    LOGIN_CONFIRMATION_TIMEOUT_MS,
)
from webinventory.exceptions import AuthenticationError, ConfigurationError, CrawlError
from webinventory.models import ApiCallRecord
from webinventory.protocols import AuthState
from webinventory.url_utils import site_key
from webinventory.utils.session_manager import SessionManager

logger = logging.getLogger(__name__)


class FormAuthenticator:
    """
    Logs in through a username/password form.

    The login runs once before crawling. Its cookies and localStorage are
    saved through the SessionManager and seeded into every task's context;
    ``ensure_session`` then only confirms the state and logs in again when a
    page lands on the login form.
    """

    def __init__(
        self,
        login_url: str,
        username: Optional[str],
        password: Optional[str],
        session_manager: Optional[SessionManager] = None,
        username_selector: str = DEFAULT_USERNAME_SELECTOR,
        password_selector: str = DEFAULT_PASSWORD_SELECTOR,
        submit_selector: str = DEFAULT_SUBMIT_SELECTOR,
        logged_in_marker: str = DEFAULT_LOGGED_IN_MARKER,
        capture_window_ms: int = DEFAULT_CAPTURE_WINDOW_MS,
        confirmation_timeout_ms: int = LOGIN_CONFIRMATION_TIMEOUT_MS,
        navigation_timeout_ms: int = DEFAULT_NAVIGATION_TIMEOUT_MS,
    ):
        self.login_url = login_url
        self.username = username
        self.password = password
        self.session_manager = session_manager
        self.username_selector = username_selector
        self.password_selector = password_selector
        self.submit_selector = submit_selector
        self.logged_in_marker = logged_in_marker
        self.capture_window_ms = capture_window_ms
        self.confirmation_timeout_ms = confirmation_timeout_ms
        self.navigation_timeout_ms = navigation_timeout_ms

        self.site = site_key(login_url)
        self.login_api_calls: list[ApiCallRecord] = []

    async def login(self, session) -> list[ApiCallRecord]:
        """Navigate to the login page, submit credentials and wait for the marker.

        Args:
            session: A PlaywrightBrowserSession (or anything with goto/fill/wait_for)

        Returns:
            API calls captured while the form was submitted

        Raises:
            ConfigurationError: Credentials are missing
            AuthenticationError: The logged-in marker never appeared
        """
        if not self.username or not self.password:
            raise ConfigurationError("LOGIN_USER or LOGIN_PASSWORD is not defined")

        if session.current_url != self.login_url:
            await session.goto(self.login_url, self.navigation_timeout_ms)

        api_calls = await self._submit(session)

        if self.session_manager is not None and hasattr(session, "page"):
            await self.session_manager.save_session(session.page, self.site, login_url=self.login_url)
        self.login_api_calls = api_calls
        return api_calls

    async def _submit(self, session) -> list[ApiCallRecord]:
        logger.info("Filling login form...")
        try:
            await session.fill(self.username_selector, self.username)
            await session.fill(self.password_selector, self.password)
        except Exception as e:
            raise AuthenticationError(f"Login form not found: {e}", url=session.current_url, original=e) from e

        logger.info("Submitting login form while monitoring API calls...")
        try:
            api_calls = await session.capture_network_activity(self.submit_selector, self.capture_window_ms)
        except CrawlError as e:
            raise AuthenticationError(f"Could not submit login form: {e}", url=session.current_url, original=e) from e
        logger.debug(f"Captured {len(api_calls)} API call(s) during login")

        logger.info("Waiting for login confirmation...")
        try:
            await session.wait_for(self.logged_in_marker, self.confirmation_timeout_ms)
        except Exception as e:
            raise AuthenticationError(
                f"Login failed: {self.logged_in_marker} did not appear within "
                f"{self.confirmation_timeout_ms}ms",
                url=session.current_url,
                original=e,
            ) from e

        logger.info("Login successful!")
        return list(api_calls)

    async def ensure_session(self, session) -> AuthState:
        """Confirm the page is viewed logged in.

        A page that shows the login form gets the credentials submitted again
        and is then reloaded at its original URL. Any other page counts as
        already authenticated.

        Raises:
            AuthenticationError: Re-login failed
        """
        if await session.is_visible(self.logged_in_marker):
            return AuthState.ALREADY_AUTHENTICATED
        if not await session.is_visible(self.username_selector):
            return AuthState.ALREADY_AUTHENTICATED

        target = session.current_url
        logger.warning(f"Session missing on {target}; logging in again")
        await self._submit(session)
        if session.current_url != target:
            await session.goto(target, self.navigation_timeout_ms)
        return AuthState.FRESHLY_AUTHENTICATED
