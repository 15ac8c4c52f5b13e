"""End-to-end wiring of one inventory run."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from webinventory.aggregator import ResultAggregator
from webinventory.authenticator import FormAuthenticator
from webinventory.browser_config import BrowserConfig
from webinventory.config import CrawlConfig
from webinventory.infrastructure.browser_pool import BrowserPool
from webinventory.models import AnalyticsSnapshot, CrawlReport
from webinventory.output_manager import OutputManager
from webinventory.pipeline import PipelineExecutor
from webinventory.protocols import ReportRenderer, SessionFactory
from webinventory.report_generator import ReportGenerator
from webinventory.retry_policy import RetryPolicy
from webinventory.scheduler import TaskScheduler
from webinventory.utils.session_manager import SessionManager

logger = logging.getLogger(__name__)


@dataclass
class InventoryRun:
    """Everything a run produced."""
    report: Optional[CrawlReport]
    snapshot: AnalyticsSnapshot
    artifacts: Dict[str, Dict[str, str]] = field(default_factory=dict)


def build_browser_config(config: CrawlConfig) -> BrowserConfig:
    return BrowserConfig(
        headless=config.headless,
        timeout=config.navigation_timeout_ms,
    )


def build_authenticator(config: CrawlConfig) -> Optional[FormAuthenticator]:
    if not config.login_required:
        return None
    return FormAuthenticator(
        login_url=config.login_url or config.base_url,
        username=config.login_username,
        password=config.login_password,
        session_manager=SessionManager(config.session_dir),
        username_selector=config.username_selector,
        password_selector=config.password_selector,
        submit_selector=config.submit_selector,
        logged_in_marker=config.logged_in_marker,
        capture_window_ms=config.capture_window_ms,
        navigation_timeout_ms=config.navigation_timeout_ms,
    )


async def _login(
    authenticator: FormAuthenticator,
    session_factory: SessionFactory,
    pool: Optional[BrowserPool],
) -> None:
    """Log in once before crawling and seed the pool with the resulting state.

    Raises:
        AuthenticationError: Login failed; the run must not start
    """
    manager = authenticator.session_manager
    if pool is not None and manager is not None:
        saved = manager.load_storage_state(authenticator.site)
        if saved:
            logger.info(f"Reusing saved session for {authenticator.site}")
            pool.set_storage_state(saved)
            return

    async with session_factory() as session:
        await authenticator.login(session)

    if pool is not None and manager is not None:
        pool.set_storage_state(manager.load_storage_state(authenticator.site))


async def finish_run(
    aggregator: ResultAggregator,
    output: OutputManager,
    renderer: ReportRenderer,
) -> tuple:
    """Finalize analytics, write them and render the reports."""
    snapshot = aggregator.finalize()
    output.save_analytics(snapshot)
    artifacts = await renderer.render(snapshot)
    return snapshot, artifacts


async def run_inventory(
    config: CrawlConfig,
    abort_event: Optional[asyncio.Event] = None,
    session_factory: Optional[SessionFactory] = None,
    renderer: Optional[ReportRenderer] = None,
) -> InventoryRun:
    """Crawl every seed URL, aggregate the results and render the reports.

    Args:
        config: Validated run configuration
        abort_event: Set it to stop the run gracefully
        session_factory: Source of isolated BrowserSessions (default: a Playwright BrowserPool)
        renderer: Report renderer (default: ReportGenerator)

    Returns:
        InventoryRun with the crawl report, the analytics snapshot and rendered artifacts

    Raises:
        ConfigurationError: Invalid settings or no URLs to crawl
        AuthenticationError: The up-front login failed
    """
    config.validate()
    seeds = config.seed_urls()
    abort_event = abort_event or asyncio.Event()
    output = OutputManager(config.output_dir)
    renderer = renderer or ReportGenerator(output.base_output_dir, render_pdf=config.render_pdf)

    logger.info(f"Reading URLs: {len(seeds)} seed(s), output to {output.base_output_dir}")
    logger.debug(f"Run configuration: {config.safe_dict()}")

    pool: Optional[BrowserPool] = None
    if session_factory is None:
        pool = BrowserPool(max_size=config.concurrency_limit, config=build_browser_config(config))
        await pool.start()
        session_factory = pool.session_factory

    aggregator = ResultAggregator(include_path=config.recursive)
    try:
        authenticator = build_authenticator(config)
        if authenticator is not None:
            await _login(authenticator, session_factory, pool)

        executor = PipelineExecutor(
            output_store=output,
            navigation_timeout_ms=config.navigation_timeout_ms,
            capture_window_ms=config.capture_window_ms,
            trigger_selector=config.trigger_selector,
            click_buttons=config.click_buttons,
            max_interactions=config.max_interactions,
            authenticator=authenticator,
            include_path=config.recursive,
            abort_event=abort_event,
        )
        scheduler = TaskScheduler(
            executor=executor,
            session_factory=session_factory,
            retry_policy=RetryPolicy(config.max_attempts, config.retry_delay_ms),
            aggregator=aggregator,
            recursive=config.recursive,
            same_domain_only=config.same_domain_only,
            max_depth=config.max_depth,
            max_pages=config.max_pages,
            abort_event=abort_event,
        )
        report = await scheduler.run(seeds, concurrency_limit=config.concurrency_limit)
    finally:
        if pool is not None:
            status = pool.get_status()
            logger.info(
                f"Browser pool: {status.total_sessions} session(s), {status.total_errors} error(s), "
                f"health={status.health.value}"
            )
            await pool.stop()

    output.save_run_report(report)
    if config.recursive:
        output.save_discovered_urls(report.discovered_urls)

    snapshot, artifacts = await finish_run(aggregator, output, renderer)
    logger.info("Web inventory automation completed.")
    return InventoryRun(report=report, snapshot=snapshot, artifacts=artifacts)


async def regenerate_reports(
    config: CrawlConfig,
    renderer: Optional[ReportRenderer] = None,
) -> InventoryRun:
    """Rebuild analytics and reports from page.json files of an earlier run."""
    output = OutputManager(config.output_dir)
    renderer = renderer or ReportGenerator(output.base_output_dir, render_pdf=config.render_pdf)

    aggregator = ResultAggregator(include_path=config.recursive)
    for result in output.load_page_results():
        aggregator.ingest(result)
    aggregator.mark_drained()

    snapshot, artifacts = await finish_run(aggregator, output, renderer)
    return InventoryRun(report=None, snapshot=snapshot, artifacts=artifacts)
