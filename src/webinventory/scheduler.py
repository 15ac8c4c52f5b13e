"""Bounded-concurrency task scheduler.

A fixed pool of ``concurrency_limit`` worker coroutines pulls tasks from the
CrawlFrontier and drives each one through the PipelineExecutor. A worker holds
its slot for exactly one attempt: retries wait out their delay in a parked
coroutine that occupies no slot, then go back to the front of the queue.
"""

import asyncio
import logging
from datetime import datetime
from typing import Iterable, Optional, Set

from webinventory.aggregator import ResultAggregator
from webinventory.constants import DEFAULT_CONCURRENCY_LIMIT, MAX_ERROR_MESSAGE_LENGTH
from webinventory.exceptions import RunCancelledError
from webinventory.frontier import CrawlFrontier
from webinventory.models import (
    CrawlReport,
    CrawlTask,
    ErrorInfo,
    PageResult,
    RunStatus,
    TaskOutcome,
)
from webinventory.pipeline import PipelineExecutor
from webinventory.protocols import SessionFactory
from webinventory.retry_policy import GiveUp, Retry, RetryPolicy, classify
from webinventory.url_utils import filter_links, normalize_seed, site_key

logger = logging.getLogger(__name__)


class TaskScheduler:
    """
    Dispatches crawl tasks with a hard concurrency cap.

    Features:
    - At most ``concurrency_limit`` pipeline executions at any time
    - Fixed-delay retries that do not occupy a worker slot
    - Recursive mode: discovered links are forwarded to the frontier
    - Global abort: running attempts finish their current phase, nothing new starts
    - Exactly one aggregator ingest per settled task
    """

    def __init__(
        self,
        executor: PipelineExecutor,
        session_factory: SessionFactory,
        retry_policy: Optional[RetryPolicy] = None,
        aggregator: Optional[ResultAggregator] = None,
        recursive: bool = False,
        same_domain_only: bool = True,
        max_depth: Optional[int] = None,
        max_pages: Optional[int] = None,
        abort_event: Optional[asyncio.Event] = None,
    ):
        """
        Initialize the scheduler.

        Args:
            executor: Runs the phases of one attempt
            session_factory: Returns an async context manager yielding an isolated BrowserSession
            retry_policy: Decides between retry and give-up after a failure
            aggregator: Receives one PageResult per settled task
            recursive: Forward links discovered on each page to the frontier
            same_domain_only: In recursive mode, only follow links on the page's host
            max_depth: In recursive mode, maximum link depth from a seed (None = unlimited)
            max_pages: In recursive mode, maximum URLs claimed (None = unlimited)
            abort_event: Run-wide abort signal
        """
        self.executor = executor
        self.session_factory = session_factory
        self.retry_policy = retry_policy or RetryPolicy()
        self.aggregator = aggregator or ResultAggregator(include_path=recursive)
        self.recursive = recursive
        self.same_domain_only = same_domain_only
        self.max_depth = max_depth
        self.max_pages = max_pages
        self.abort_event = abort_event or executor.abort_event or asyncio.Event()
        if executor.abort_event is None:
            executor.abort_event = self.abort_event

        self.frontier: Optional[CrawlFrontier] = None
        self._report = CrawlReport()
        self._parked: Set[asyncio.Task] = set()
        self._executing = 0

    def abort(self) -> None:
        """Request a graceful stop of the current run."""
        if not self.abort_event.is_set():
            logger.warning("Abort requested; finishing in-flight phases and admitting no new work")
        self.abort_event.set()

    @property
    def active_tasks(self) -> int:
        return self._executing

    async def run(
        self,
        seed_urls: Iterable[str],
        concurrency_limit: int = DEFAULT_CONCURRENCY_LIMIT,
    ) -> CrawlReport:
        """Crawl until the frontier drains or the run is aborted.

        Args:
            seed_urls: Initial URLs
            concurrency_limit: Maximum concurrently executing tasks

        Returns:
            CrawlReport with per-URL outcomes
        """
        if concurrency_limit < 1:
            raise ValueError("concurrency_limit must be at least 1")

        self.frontier = CrawlFrontier(max_pages=self.max_pages if self.recursive else None)
        self._report = CrawlReport(started_at=datetime.now())
        self._parked = set()
        self._executing = 0

        seeds = [normalize_seed(url) for url in seed_urls]
        await self.frontier.enqueue(seeds)
        logger.info(
            f"Starting crawl of {len(seeds)} seed URL(s) with concurrency limit {concurrency_limit}"
            + (" (recursive)" if self.recursive else "")
        )

        watcher = asyncio.create_task(self._watch_abort())
        workers = [
            asyncio.create_task(self._worker(worker_id))
            for worker_id in range(concurrency_limit)
        ]
        try:
            await asyncio.gather(*workers)
            if self._parked:
                await asyncio.gather(*list(self._parked))
        finally:
            watcher.cancel()
            for worker in workers:
                if not worker.done():
                    worker.cancel()

        self._cancel_dropped()

        report = self._report
        report.finished_at = datetime.now()
        report.discovered_urls = self.frontier.discovered_urls()

        if self.abort_event.is_set():
            report.status = RunStatus.CANCELLED
        else:
            self.aggregator.mark_drained()
            report.status = RunStatus.PARTIAL_FAILURE if report.failed else RunStatus.COMPLETE

        logger.info(
            f"Crawl {report.status.value}: {report.attempted} attempted, "
            f"{report.succeeded} succeeded ({report.retried_then_succeeded} after retry), "
            f"{report.failed} failed, {report.cancelled} cancelled"
        )
        return report

    async def _watch_abort(self) -> None:
        await self.abort_event.wait()
        await self.frontier.close()

    async def _worker(self, worker_id: int) -> None:
        while True:
            task = await self.frontier.get()
            if task is None:
                logger.debug(f"Worker {worker_id} exiting")
                return

            if task.attempt == 1:
                if not await self.frontier.try_claim(task.url):
                    logger.debug(f"Skipping already claimed URL: {task.url}")
                    await self.frontier.settle()
                    continue
                self._report.attempted += 1

            await self._run_attempt(task)

    async def _run_attempt(self, task: CrawlTask) -> None:
        self._executing += 1
        self._report.total_attempts += 1
        self._report.peak_concurrency = max(self._report.peak_concurrency, self._executing)
        logger.info(f"Starting task for: {task.url} | Active tasks: {self._executing}")

        result: Optional[PageResult] = None
        error: Optional[BaseException] = None
        try:
            async with self.session_factory() as session:
                result = await self.executor.execute(task, session)
        except RunCancelledError as e:
            error = e
        except Exception as e:
            logger.error(f"Error processing URL {task.url}: {e}")
            error = e
        finally:
            self._executing -= 1
            logger.info(f"Completed task for: {task.url} | Active tasks: {self._executing}")

        if isinstance(error, RunCancelledError):
            await self._cancel(task)
        elif error is not None:
            await self._handle_failure(task, error)
        else:
            await self._complete(task, result)

    async def _complete(self, task: CrawlTask, result: PageResult) -> None:
        if self.recursive and result.links:
            await self._forward_links(task, result.links)

        outcome = TaskOutcome.SUCCESS if task.attempt == 1 else TaskOutcome.RETRIED_THEN_SUCCEEDED
        self._emit(task, result, outcome)
        await self.frontier.settle()

    async def _forward_links(self, task: CrawlTask, links) -> None:
        if self.max_depth is not None and task.depth + 1 > self.max_depth:
            return
        in_scope = filter_links(links, task.url, same_domain_only=self.same_domain_only)
        if in_scope:
            count = await self.frontier.enqueue(in_scope, parent=task)
            logger.info(f"  -> Queued {count} discovered link(s) from {task.url}")

    async def _handle_failure(self, task: CrawlTask, error: BaseException) -> None:
        error_class = classify(error)
        decision = self.retry_policy.decide(task.attempt, error_class)

        if isinstance(decision, Retry):
            if self.abort_event.is_set():
                await self._cancel(task)
                return
            logger.info(
                f"  Will retry ({task.attempt + 1}/{self.retry_policy.max_attempts}) "
                f"after {decision.delay:.1f}s: {task.url}"
            )
            parked = asyncio.create_task(self._park(task.next_attempt(), decision.delay))
            self._parked.add(parked)
            parked.add_done_callback(self._parked.discard)
            return

        if isinstance(decision, GiveUp):
            logger.warning(
                f"  Permanently failed after {task.attempt} attempt(s) "
                f"({decision.reason}): {task.url}"
            )
        info = ErrorInfo(
            error_type=type(error).__name__,
            message=str(error)[:MAX_ERROR_MESSAGE_LENGTH],
            error_class=error_class.value,
            attempts=task.attempt,
        )
        result = PageResult.failed(task, info, site=site_key(task.url, self.recursive))
        result = self.executor.persist(result)
        self._emit(task, result, TaskOutcome.TERMINALLY_FAILED)
        await self.frontier.settle()

    async def _park(self, task: CrawlTask, delay: float) -> None:
        """Wait out a retry delay without holding a worker slot."""
        try:
            await asyncio.wait_for(self.abort_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            if not self.abort_event.is_set():
                if not await self.frontier.requeue(task):
                    # Frontier closed while waiting for it; requeue settled the task.
                    self._record_cancelled(task)
                return
        await self._cancel(task)

    async def _cancel(self, task: CrawlTask) -> None:
        self._record_cancelled(task)
        await self.frontier.settle()

    def _record_cancelled(self, task: CrawlTask) -> None:
        logger.info(f"Cancelled: {task.url}")
        self._report.outcomes[task.url] = TaskOutcome.CANCELLED
        self._report.cancelled += 1

    def _cancel_dropped(self) -> None:
        # Everything still queued at abort time, seeds and retries alike.
        for task in self.frontier.dropped_tasks():
            if task.url not in self._report.outcomes:
                self._record_cancelled(task)

    def _emit(self, task: CrawlTask, result: PageResult, outcome: TaskOutcome) -> None:
        self.aggregator.ingest(result)

        report = self._report
        report.outcomes[task.url] = outcome
        if outcome is TaskOutcome.TERMINALLY_FAILED:
            report.failed += 1
            if result.error is not None:
                report.errors[task.url] = result.error
        else:
            report.succeeded += 1
            if outcome is TaskOutcome.RETRIED_THEN_SUCCEEDED:
                report.retried_then_succeeded += 1
