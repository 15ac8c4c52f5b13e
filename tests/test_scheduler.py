"""Tests for TaskScheduler."""

import asyncio
from unittest.mock import patch

import pytest

from conftest import FakeBrowser, FakePage, InMemoryOutputStore, element

from webinventory.aggregator import ResultAggregator
from webinventory.exceptions import NavigationError
from webinventory.frontier import CrawlFrontier
from webinventory.models import RunStatus, TaskOutcome
from webinventory.pipeline import PipelineExecutor
from webinventory.retry_policy import GiveUp, Retry, RetryPolicy
from webinventory.scheduler import TaskScheduler

A = "https://example.com/a"
B = "https://example.com/b"


class SpyPolicy(RetryPolicy):
    """RetryPolicy that records every decision."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.decisions = []

    def decide(self, attempt, error_class):
        decision = super().decide(attempt, error_class)
        self.decisions.append(decision)
        return decision


def make_scheduler(browser, store=None, policy=None, **kwargs):
    store = store or InMemoryOutputStore()
    abort_event = kwargs.pop("abort_event", None) or asyncio.Event()
    executor = PipelineExecutor(store, abort_event=abort_event)
    return TaskScheduler(
        executor,
        browser.session_factory,
        retry_policy=policy or RetryPolicy(max_attempts=3, retry_delay_ms=0),
        abort_event=abort_event,
        **kwargs,
    )


class TestRun:
    """Test cases for plain list crawls."""

    @pytest.mark.asyncio
    async def test_sequential_crawl(self):
        """Test two URLs with concurrency 1 both succeed."""
        browser = FakeBrowser({A: FakePage(elements=[element("a")]), B: FakePage(elements=[element("a")])})
        scheduler = make_scheduler(browser)

        report = await scheduler.run([A, B], concurrency_limit=1)

        assert report.status is RunStatus.COMPLETE
        assert report.attempted == 2
        assert report.succeeded == 2
        assert report.failed == 0
        assert browser.visits == [A, B]
        assert browser.peak_active == 1
        assert report.outcomes == {A: TaskOutcome.SUCCESS, B: TaskOutcome.SUCCESS}

    @pytest.mark.asyncio
    async def test_one_session_per_attempt(self):
        """Test every attempt gets a fresh session that is always closed."""
        browser = FakeBrowser()
        browser.fail(A, NavigationError("flaky"))
        scheduler = make_scheduler(browser)

        await scheduler.run([A, B], concurrency_limit=2)

        assert browser.sessions_opened == 3
        assert browser.sessions_closed == 3

    @pytest.mark.asyncio
    async def test_concurrency_cap(self):
        """Test no more than the limit execute at once."""
        urls = [f"https://example.com/{i}" for i in range(8)]
        browser = FakeBrowser(goto_delay=0.02)
        scheduler = make_scheduler(browser)

        report = await scheduler.run(urls, concurrency_limit=3)

        assert report.succeeded == 8
        assert browser.peak_active == 3
        assert report.peak_concurrency == 3
        assert scheduler.active_tasks == 0

    @pytest.mark.asyncio
    async def test_duplicate_seeds_claimed_once(self):
        browser = FakeBrowser()
        scheduler = make_scheduler(browser)
        report = await scheduler.run([A, A, B], concurrency_limit=2)
        assert report.attempted == 2
        assert sorted(browser.visits) == [A, B]

    @pytest.mark.asyncio
    async def test_invalid_concurrency(self):
        with pytest.raises(ValueError):
            await make_scheduler(FakeBrowser()).run([A], concurrency_limit=0)

    @pytest.mark.asyncio
    async def test_empty_seed_list(self):
        report = await make_scheduler(FakeBrowser()).run([], concurrency_limit=2)
        assert report.status is RunStatus.COMPLETE
        assert report.attempted == 0


class TestRetries:
    """Test cases for retry handling."""

    @pytest.mark.asyncio
    async def test_retried_then_succeeded(self):
        """Test two transient failures followed by a success."""
        browser = FakeBrowser()
        browser.fail(A, NavigationError("timeout 1"), NavigationError("timeout 2"))
        policy = SpyPolicy(max_attempts=3, retry_delay_ms=0)
        scheduler = make_scheduler(browser, policy=policy)

        report = await scheduler.run([A], concurrency_limit=1)

        assert report.outcomes[A] is TaskOutcome.RETRIED_THEN_SUCCEEDED
        assert report.succeeded == 1
        assert report.retried_then_succeeded == 1
        assert report.total_attempts == 3
        assert policy.decisions == [Retry(0.0), Retry(0.0)]
        assert browser.visits == [A, A, A]

    @pytest.mark.asyncio
    async def test_exhausted_retries(self):
        """Test a task failing every attempt is terminally failed."""
        browser = FakeBrowser()
        browser.fail(A, *[NavigationError(f"timeout {i}") for i in range(3)])
        store = InMemoryOutputStore()
        policy = SpyPolicy(max_attempts=3, retry_delay_ms=0)
        scheduler = make_scheduler(browser, store=store, policy=policy)

        report = await scheduler.run([A, B], concurrency_limit=2)

        assert report.status is RunStatus.PARTIAL_FAILURE
        assert report.outcomes[A] is TaskOutcome.TERMINALLY_FAILED
        assert report.outcomes[B] is TaskOutcome.SUCCESS
        assert report.errors[A].error_type == "NavigationError"
        assert report.errors[A].attempts == 3
        assert [type(d) for d in policy.decisions] == [Retry, Retry, GiveUp]

        # the failed result was still written, with empty data fields
        failed_pages = [v for k, v in store.files.items() if k.endswith("page.json") and v["url"] == A]
        assert failed_pages[0]["error"]["errorType"] == "NavigationError"
        assert failed_pages[0]["elements"] == []

    @pytest.mark.asyncio
    async def test_permanent_error_not_retried(self):
        browser = FakeBrowser()
        policy = SpyPolicy(max_attempts=3, retry_delay_ms=0)
        scheduler = make_scheduler(browser, policy=policy)

        report = await scheduler.run(["not a url"], concurrency_limit=1)

        assert report.failed == 1
        assert report.total_attempts == 1
        assert report.errors["not a url"].error_class == "permanent"
        assert len(policy.decisions) == 1

    @pytest.mark.asyncio
    async def test_retry_does_not_hold_a_slot(self):
        """Test other work proceeds while a retry waits out its delay."""
        browser = FakeBrowser()
        browser.fail(A, NavigationError("timeout"))
        scheduler = make_scheduler(browser, policy=RetryPolicy(max_attempts=2, retry_delay_ms=50))

        await scheduler.run([A, B], concurrency_limit=1)

        assert browser.visits == [A, B, A]


class TestAggregation:
    """Test cases for the scheduler/aggregator contract."""

    @pytest.mark.asyncio
    async def test_one_ingest_per_task(self):
        browser = FakeBrowser({A: FakePage(elements=[element("a"), element("button")])})
        browser.fail(A, NavigationError("timeout"))
        browser.fail(B, *[NavigationError("down")] * 3)
        aggregator = ResultAggregator()
        scheduler = make_scheduler(browser, aggregator=aggregator)

        with patch.object(aggregator, "ingest", wraps=aggregator.ingest) as ingest:
            await scheduler.run([A, B], concurrency_limit=2)

        assert ingest.call_count == 2
        acc = aggregator.get("example_com")
        assert acc.tag_counts == {"a": 1, "button": 1}
        assert acc.pages_failed == 1
        assert aggregator.finalize().complete is True


class TestRecursive:
    """Test cases for link discovery."""

    @pytest.mark.asyncio
    async def test_duplicate_link_claimed_once(self):
        """Test two pages linking the same URL lead to a single visit."""
        root = "https://example.com/"
        browser = FakeBrowser({
            root: FakePage(links=["/a", "/b"]),
            A: FakePage(links=["/c"]),
            B: FakePage(links=["/c", "https://other.org/x"]),
        })
        scheduler = make_scheduler(browser, recursive=True)

        report = await scheduler.run([root], concurrency_limit=2)

        assert browser.visits.count("https://example.com/c") == 1
        assert report.attempted == 4
        assert len(report.discovered_urls) == len(set(report.discovered_urls))
        assert "https://other.org/x" not in report.discovered_urls

    @pytest.mark.asyncio
    async def test_link_back_to_bare_host_seed(self):
        """Test a seed without a path and a link to "/" are the same page."""
        home = "https://a.test/"
        docs = "https://a.test/docs"
        browser = FakeBrowser({
            home: FakePage(elements=[element("a")], links=["/", "/docs/"]),
            docs: FakePage(elements=[element("button")], links=["/"]),
        })
        aggregator = ResultAggregator()
        scheduler = make_scheduler(browser, aggregator=aggregator, recursive=True)

        report = await scheduler.run(["https://a.test"], concurrency_limit=1)

        assert browser.visits == [home, docs]
        assert report.attempted == 2
        assert set(report.outcomes) == {home, docs}
        assert aggregator.get("a_test").tag_counts == {"a": 1, "button": 1}

    @pytest.mark.asyncio
    async def test_seed_with_trailing_slash(self):
        docs = "https://a.test/docs"
        browser = FakeBrowser({docs: FakePage(links=["/docs/", "/docs#top"])})
        scheduler = make_scheduler(browser, recursive=True)

        report = await scheduler.run(["https://a.test/docs/"], concurrency_limit=2)

        assert browser.visits == [docs]
        assert report.attempted == 1

    @pytest.mark.asyncio
    async def test_max_depth(self):
        root = "https://example.com/"
        browser = FakeBrowser({root: FakePage(links=["/a"]), A: FakePage(links=["/deeper"])})
        scheduler = make_scheduler(browser, recursive=True, max_depth=1)

        await scheduler.run([root], concurrency_limit=1)

        assert browser.visits == [root, A]

    @pytest.mark.asyncio
    async def test_max_pages(self):
        root = "https://example.com/"
        browser = FakeBrowser({root: FakePage(links=[f"/{i}" for i in range(10)])})
        scheduler = make_scheduler(browser, recursive=True, max_pages=3)

        report = await scheduler.run([root], concurrency_limit=2)

        assert report.attempted == 3

    @pytest.mark.asyncio
    async def test_cross_domain_allowed(self):
        root = "https://example.com/"
        browser = FakeBrowser({root: FakePage(links=["https://other.org/"])})
        scheduler = make_scheduler(browser, recursive=True, same_domain_only=False)

        await scheduler.run([root], concurrency_limit=1)

        assert "https://other.org/" in browser.visits

    @pytest.mark.asyncio
    async def test_links_ignored_when_not_recursive(self):
        root = "https://example.com/"
        browser = FakeBrowser({root: FakePage(links=["/a"])})
        report = await make_scheduler(browser).run([root], concurrency_limit=1)
        assert browser.visits == [root]
        assert report.discovered_urls == []


class TestCancellation:
    """Test cases for a global abort."""

    @pytest.mark.asyncio
    async def test_abort_mid_run(self):
        """Test the in-flight task is cancelled and queued work never starts."""
        urls = [f"https://example.com/{i}" for i in range(5)]
        abort = asyncio.Event()
        browser = FakeBrowser()
        browser.on_goto = lambda url: abort.set() if url == urls[1] else None
        aggregator = ResultAggregator()
        scheduler = make_scheduler(browser, aggregator=aggregator, abort_event=abort)

        report = await scheduler.run(urls, concurrency_limit=1)

        assert report.status is RunStatus.CANCELLED
        assert report.outcomes[urls[0]] is TaskOutcome.SUCCESS
        assert report.outcomes[urls[1]] is TaskOutcome.CANCELLED
        assert browser.visits == urls[:2]
        assert aggregator.ingested_count == 1
        assert aggregator.finalize().complete is False

        # seeds that never started are still listed
        assert set(report.outcomes) == set(urls)
        for url in urls[2:]:
            assert report.outcomes[url] is TaskOutcome.CANCELLED
        assert report.cancelled == 4

    @pytest.mark.asyncio
    async def test_parked_retry_is_cancelled(self):
        """Test a retry waiting out its delay becomes cancelled on abort."""
        abort = asyncio.Event()
        browser = FakeBrowser()
        browser.fail(A, NavigationError("timeout"))
        scheduler = make_scheduler(
            browser, policy=RetryPolicy(max_attempts=3, retry_delay_ms=10_000), abort_event=abort
        )

        async def abort_soon():
            await asyncio.sleep(0.05)
            scheduler.abort()

        asyncio.get_running_loop().create_task(abort_soon())
        report = await asyncio.wait_for(scheduler.run([A], concurrency_limit=1), timeout=5)

        assert report.status is RunStatus.CANCELLED
        assert report.outcomes[A] is TaskOutcome.CANCELLED
        assert report.failed == 0
        assert browser.visits == [A]

    @pytest.mark.asyncio
    async def test_abort_before_run(self):
        abort = asyncio.Event()
        abort.set()
        browser = FakeBrowser()
        report = await make_scheduler(browser, abort_event=abort).run([A, B], concurrency_limit=2)

        assert report.status is RunStatus.CANCELLED
        assert report.succeeded == 0
        assert report.outcomes == {A: TaskOutcome.CANCELLED, B: TaskOutcome.CANCELLED}

    @pytest.mark.asyncio
    async def test_abort_reaches_executor_without_shared_event(self):
        """Test scheduler.abort() stops the executor between phases."""
        browser = FakeBrowser()
        executor = PipelineExecutor(InMemoryOutputStore())
        scheduler = TaskScheduler(executor, browser.session_factory)
        assert executor.abort_event is scheduler.abort_event

        browser.on_goto = lambda url: scheduler.abort()
        report = await scheduler.run([A], concurrency_limit=1)

        assert report.outcomes[A] is TaskOutcome.CANCELLED
        assert report.succeeded == 0

    @pytest.mark.asyncio
    async def test_retry_requeued_after_close_is_cancelled(self):
        """Test a retry that finds the frontier closed still gets an outcome."""
        scheduler = make_scheduler(FakeBrowser())
        scheduler.frontier = CrawlFrontier()
        await scheduler.frontier.enqueue([A])
        task = await scheduler.frontier.get()
        await scheduler.frontier.close()

        await scheduler._park(task.next_attempt(), 0)

        assert scheduler._report.outcomes[A] is TaskOutcome.CANCELLED
        assert scheduler._report.cancelled == 1
        assert scheduler.frontier.outstanding_count == 0
