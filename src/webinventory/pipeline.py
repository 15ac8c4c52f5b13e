"""Per-URL execution pipeline.

Runs the fixed phase sequence for one task attempt:

    navigate -> extract elements -> monitor API calls -> screenshot -> persist

Failures in the first three phases abort the attempt and propagate as a
classified CrawlError. Screenshot and persistence failures only add warnings
to the result.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from typing import Optional

from webinventory.constants import (
    DEFAULT_CAPTURE_WINDOW_MS,
    DEFAULT_MAX_INTERACTIONS,
    DEFAULT_NAVIGATION_TIMEOUT_MS,
    MAX_ERROR_MESSAGE_LENGTH,
)
from webinventory.exceptions import (
    AuthenticationError,
    CaptureError,
    CrawlError,
    ExtractionError,
    NavigationError,
    PersistenceError,
    RunCancelledError,
)
from webinventory.models import (
    ApiCallRecord,
    ChangeType,
    CrawlTask,
    InteractionRecord,
    PageResult,
)
from webinventory.protocols import Authenticator, BrowserSession, Extraction, OutputStore
from webinventory.url_utils import site_key, url_to_slug

logger = logging.getLogger(__name__)


@dataclass
class PhaseTimings:
    """Wall-clock time spent in each phase of one attempt."""
    url: str = ""
    navigate: float = 0.0
    extract: float = 0.0
    monitor: float = 0.0
    screenshot: float = 0.0
    persist: float = 0.0

    @property
    def total(self) -> float:
        return self.navigate + self.extract + self.monitor + self.screenshot + self.persist

    def log_summary(self) -> None:
        logger.debug(
            f"Timing for {self.url}: nav={self.navigate * 1000:.0f}ms, "
            f"extract={self.extract * 1000:.0f}ms, monitor={self.monitor * 1000:.0f}ms, "
            f"screenshot={self.screenshot * 1000:.0f}ms, persist={self.persist * 1000:.0f}ms"
        )


def page_artifact_path(site: str, url: str, name: str) -> str:
    """Relative path of a per-page artifact inside the output directory."""
    return f"{site}/pages/{url_to_slug(url)}/{name}"


class PipelineExecutor:
    """Executes the five phases for a single CrawlTask with injected capabilities."""

    def __init__(
        self,
        output_store: OutputStore,
        navigation_timeout_ms: int = DEFAULT_NAVIGATION_TIMEOUT_MS,
        capture_window_ms: int = DEFAULT_CAPTURE_WINDOW_MS,
        trigger_selector: Optional[str] = None,
        click_buttons: bool = False,
        max_interactions: int = DEFAULT_MAX_INTERACTIONS,
        authenticator: Optional[Authenticator] = None,
        include_path: bool = False,
        abort_event: Optional[asyncio.Event] = None,
    ):
        """
        Initialize the executor.

        Args:
            output_store: Where page artifacts are written
            navigation_timeout_ms: Timeout handed to BrowserSession.goto
            capture_window_ms: Observation window after a trigger click
            trigger_selector: Element clicked during the monitor phase
            click_buttons: Exercise every discovered button (recursive scans)
            max_interactions: Upper bound on buttons clicked per page
            authenticator: Checks the login state after navigation
            include_path: Key the result's site by host and path
            abort_event: Run-wide abort signal checked between phases
        """
        self.output_store = output_store
        self.navigation_timeout_ms = navigation_timeout_ms
        self.capture_window_ms = capture_window_ms
        self.trigger_selector = trigger_selector
        self.click_buttons = click_buttons
        self.max_interactions = max_interactions
        self.authenticator = authenticator
        self.include_path = include_path
        self.abort_event = abort_event

    async def execute(self, task: CrawlTask, session: BrowserSession) -> PageResult:
        """Run every phase for one attempt.

        Returns:
            The persisted PageResult

        Raises:
            CrawlError: classified phase 1-3 failure
            RunCancelledError: the abort signal was seen between phases
        """
        timings = PhaseTimings(url=task.url)
        site = site_key(task.url, self.include_path)

        start = time.monotonic()
        await self._navigate(task, session)
        timings.navigate = time.monotonic() - start
        self._checkpoint(task)

        start = time.monotonic()
        extraction = await self._extract(task, session)
        timings.extract = time.monotonic() - start
        self._checkpoint(task)

        start = time.monotonic()
        api_calls = await self._monitor(task, session)
        interactions: list[InteractionRecord] = []
        if self.click_buttons and extraction.buttons:
            interactions = await self._interact(task, session, extraction)
        timings.monitor = time.monotonic() - start
        self._checkpoint(task)

        result = PageResult(
            url=task.url,
            title=extraction.title,
            elements=tuple(extraction.elements),
            api_calls=tuple(api_calls),
            links=tuple(extraction.links),
            interactions=tuple(interactions),
            attempts=task.attempt,
            site=site,
            parent_path=task.parent_path,
        )

        start = time.monotonic()
        result = await self._screenshot(result, session)
        timings.screenshot = time.monotonic() - start

        start = time.monotonic()
        result = self.persist(result)
        timings.persist = time.monotonic() - start

        timings.log_summary()
        return result

    def _checkpoint(self, task: CrawlTask) -> None:
        if self.abort_event is not None and self.abort_event.is_set():
            raise RunCancelledError(f"Run aborted while processing {task.url}")

    async def _navigate(self, task: CrawlTask, session: BrowserSession) -> None:
        logger.info(f"Navigating to {task.url} (attempt {task.attempt})")
        try:
            await session.goto(task.url, self.navigation_timeout_ms)
        except CrawlError:
            raise
        except Exception as e:
            raise NavigationError(f"Navigation failed: {e}", url=task.url, original=e) from e

        if self.authenticator is None:
            return
        try:
            state = await self.authenticator.ensure_session(session)
        except CrawlError:
            raise
        except Exception as e:
            raise AuthenticationError(f"Session check failed: {e}", url=task.url, original=e) from e
        logger.debug(f"Session state for {task.url}: {state.value}")

    async def _extract(self, task: CrawlTask, session: BrowserSession) -> Extraction:
        logger.info(f"Scraping web elements for: {task.url}")
        try:
            extraction = await session.extract_elements()
        except CrawlError:
            raise
        except Exception as e:
            raise ExtractionError(f"Element extraction failed: {e}", url=task.url, original=e) from e

        if not extraction.elements:
            logger.warning(f"No elements found on the page: {task.url}")
        return extraction

    async def _monitor(self, task: CrawlTask, session: BrowserSession) -> list[ApiCallRecord]:
        logger.info(f"Monitoring API calls for: {task.url}")
        try:
            return list(
                await session.capture_network_activity(self.trigger_selector, self.capture_window_ms)
            )
        except CrawlError:
            raise
        except Exception as e:
            raise CaptureError(f"Network capture failed: {e}", url=task.url, original=e) from e

    async def _interact(
        self, task: CrawlTask, session: BrowserSession, extraction: Extraction
    ) -> list[InteractionRecord]:
        """Click each discovered button and record what it triggered."""
        records: list[InteractionRecord] = []

        for button in extraction.buttons[: self.max_interactions]:
            if self.abort_event is not None and self.abort_event.is_set():
                break
            record = InteractionRecord(selector=button.selector, text=button.text)
            initial_url = session.current_url
            try:
                record.api_calls = list(
                    await session.capture_network_activity(button.selector, self.capture_window_ms)
                )
            except Exception as e:
                logger.warning(f"Error clicking button: {button.text or button.selector}")
                record.error = str(e)[:MAX_ERROR_MESSAGE_LENGTH]
                records.append(record)
                continue

            new_url = session.current_url
            if new_url != initial_url:
                record.change_type = ChangeType.FULL_PAGE_NAVIGATION
                record.new_url = new_url
                records.append(record)
                try:
                    await session.goto(task.url, self.navigation_timeout_ms)
                except Exception as e:
                    logger.warning(f"Could not return to {task.url} after interaction: {e}")
                    break
            else:
                record.change_type = ChangeType.AJAX
                records.append(record)

        return records

    async def _screenshot(self, result: PageResult, session: BrowserSession) -> PageResult:
        try:
            data = await session.screenshot()
        except Exception as e:
            logger.warning(f"Screenshot failed for {result.url}: {e}")
            return result.with_warning(f"screenshot: {str(e)[:MAX_ERROR_MESSAGE_LENGTH]}")

        try:
            path = self.output_store.write_binary(
                page_artifact_path(result.site, result.url, "screenshot.png"), data
            )
        except Exception as e:
            logger.warning(f"Could not save screenshot for {result.url}: {e}")
            return result.with_warning(f"screenshot: {str(e)[:MAX_ERROR_MESSAGE_LENGTH]}")

        logger.info(f"Screenshot saved for {result.url}: {path}")
        return replace(result, screenshot_path=str(path))

    def persist(self, result: PageResult) -> PageResult:
        """Write a result's artifacts. Failures degrade the result, never fail it."""
        try:
            self._write_artifacts(result)
        except PersistenceError as e:
            logger.error(f"Failed to persist results for {result.url}: {e}")
            return result.with_warning(f"persist: {e.message}")
        logger.info(f"Results saved for: {result.url}")
        return result

    def _write_artifacts(self, result: PageResult) -> None:
        try:
            self.output_store.write_json(
                page_artifact_path(result.site, result.url, "page.json"), result.to_dict()
            )
            if result.error is not None:
                return
            self.output_store.write_json(
                page_artifact_path(result.site, result.url, "elements.json"),
                [el.to_dict() for el in result.elements],
            )
            self.output_store.write_json(
                page_artifact_path(result.site, result.url, "api_calls.json"),
                [call.to_dict() for call in result.api_calls],
            )
            if result.interactions:
                self.output_store.write_json(
                    page_artifact_path(result.site, result.url, "interactions.json"),
                    [i.to_dict() for i in result.interactions],
                )
        except PersistenceError:
            raise
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(str(e), url=result.url, original=e) from e
