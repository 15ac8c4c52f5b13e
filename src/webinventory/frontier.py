"""Crawl frontier: the visited set plus the queue of pending tasks.

One instance per run. All mutations happen under a single asyncio lock so
that claim, enqueue and pop are indivisible with respect to each other.
"""

import asyncio
import logging
from collections import deque
from typing import Deque, Iterable, Optional, Set

from webinventory.models import CrawlTask

logger = logging.getLogger(__name__)


class CrawlFrontier:
    """Owns visited URLs and pending tasks, and detects when the crawl drained.

    A task is *outstanding* from the moment a worker pops it until it settles
    (success or give-up) or goes back to the queue for a retry. The frontier is
    drained when nothing is pending and nothing is outstanding, because an
    outstanding task may still enqueue more work.
    """

    def __init__(self, max_pages: Optional[int] = None):
        """
        Initialize the frontier.

        Args:
            max_pages: Maximum number of URLs that may be claimed (None = unlimited)
        """
        self.max_pages = max_pages
        self._visited: Set[str] = set()
        self._pending: Deque[CrawlTask] = deque()
        self._discovered: dict[str, None] = {}
        self._outstanding = 0
        self._closed = False
        self._lock = asyncio.Lock()
        self._changed = asyncio.Condition(self._lock)

    async def try_claim(self, url: str) -> bool:
        """Atomically admit ``url`` for processing.

        Returns:
            True the first time a URL is claimed, False afterwards or once the
            claim budget is spent
        """
        async with self._lock:
            if url in self._visited:
                return False
            if self.max_pages is not None and len(self._visited) >= self.max_pages:
                return False
            self._visited.add(url)
            return True

    async def enqueue(self, urls: Iterable[str], parent: Optional[CrawlTask] = None) -> int:
        """Add newly found URLs to the pending queue.

        No visited check happens here; duplicates are rejected at claim time.

        Args:
            urls: URLs to add
            parent: Task whose page the URLs were discovered on (None for seeds)

        Returns:
            Number of tasks queued
        """
        async with self._changed:
            count = 0
            for url in urls:
                task = parent.child(url) if parent else CrawlTask(url=url)
                self._pending.append(task)
                if parent is not None:
                    self._discovered.setdefault(url, None)
                count += 1
            if count:
                self._changed.notify_all()
            return count

    async def next(self) -> Optional[CrawlTask]:
        """Pop the next pending task without waiting.

        Returns:
            The task, or None if nothing is pending
        """
        async with self._lock:
            if self._closed or not self._pending:
                return None
            self._outstanding += 1
            return self._pending.popleft()

    async def get(self) -> Optional[CrawlTask]:
        """Wait for the next pending task.

        Returns:
            The task, or None once the frontier is drained or closed
        """
        async with self._changed:
            while True:
                if self._closed:
                    return None
                if self._pending:
                    self._outstanding += 1
                    return self._pending.popleft()
                if self._outstanding == 0:
                    # Wake the other waiters so every worker sees the drain.
                    self._changed.notify_all()
                    return None
                await self._changed.wait()

    async def requeue(self, task: CrawlTask) -> bool:
        """Put a retry attempt back at the front of the queue.

        The attempt was already claimed, so it bypasses ``try_claim``.

        Returns:
            False if the frontier was closed and the task was settled instead
        """
        async with self._changed:
            self._outstanding -= 1
            if self._closed:
                self._changed.notify_all()
                return False
            self._pending.appendleft(task)
            self._changed.notify_all()
            return True

    async def settle(self) -> None:
        """Mark an outstanding task as finished for good."""
        async with self._changed:
            self._outstanding -= 1
            self._changed.notify_all()

    async def close(self) -> None:
        """Stop handing out work. Pending tasks are dropped."""
        async with self._changed:
            self._closed = True
            self._changed.notify_all()

    def discovered_urls(self) -> list[str]:
        """Unique URLs discovered during the run, in discovery order."""
        return list(self._discovered)

    def dropped_tasks(self) -> list[CrawlTask]:
        """Tasks still pending, e.g. after the frontier was closed."""
        return list(self._pending)

    @property
    def visited_count(self) -> int:
        return len(self._visited)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def outstanding_count(self) -> int:
        return self._outstanding

    @property
    def is_drained(self) -> bool:
        return not self._pending and self._outstanding == 0

    @property
    def is_closed(self) -> bool:
        return self._closed

    def is_visited(self, url: str) -> bool:
        return url in self._visited
