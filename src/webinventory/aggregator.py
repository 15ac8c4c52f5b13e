"""Fold completed page results into per-site analytics."""

import copy
import logging
import threading
from typing import Optional

from webinventory.models import AnalyticsAccumulator, AnalyticsSnapshot, PageResult
from webinventory.url_utils import site_key

logger = logging.getLogger(__name__)


class ResultAggregator:
    """
    Reducer over PageResults.

    Features:
    - One accumulator per site, keyed by host (and path in recursive mode)
    - Pure accumulation: ingesting the same result twice counts it twice
    - Error-bearing results add no counts but are tracked for failure rates
    - Snapshots taken before the crawl drained are marked incomplete
    """

    def __init__(self, include_path: bool = False):
        """
        Initialize aggregator.

        Args:
            include_path: Key sites by host and path (recursive mode)
        """
        self.include_path = include_path
        self._sites: dict[str, AnalyticsAccumulator] = {}
        self._lock = threading.Lock()
        self._drained = False
        self._ingested = 0

    def site_for(self, result: PageResult) -> str:
        return result.site or site_key(result.url, self.include_path)

    def ingest(self, result: PageResult) -> None:
        """Fold one result into its site's accumulator."""
        try:
            site = self.site_for(result)
        except (AttributeError, TypeError, ValueError) as e:
            logger.warning(f"Skipping unreadable page result: {e}")
            return

        with self._lock:
            acc = self._sites.get(site)
            if acc is None:
                acc = AnalyticsAccumulator(site=site)
                self._sites[site] = acc

            self._ingested += 1
            acc.pages_total += 1
            acc.urls.append(result.url)

            if result.error is not None:
                acc.pages_failed += 1
                acc.failed_urls.append(result.url)
                return

            try:
                self._fold(acc, result)
            except (AttributeError, TypeError) as e:
                logger.warning(f"Malformed page result for {result.url}: {e}")
                acc.pages_failed += 1
                acc.failed_urls.append(result.url)

    @staticmethod
    def _fold(acc: AnalyticsAccumulator, result: PageResult) -> None:
        # Validate before mutating so a bad record leaves the accumulator untouched.
        tags = [el.tag_name for el in result.elements]
        methods = [call.method for call in result.api_calls]
        endpoints = [call.url for call in result.api_calls]

        acc.element_total += len(tags)
        for tag in tags:
            acc.tag_counts[tag] = acc.tag_counts.get(tag, 0) + 1
        for el in result.elements:
            acc.unique_classes.update(c for c in el.classes if c)
            if not el.id and not el.classes and not el.attributes:
                acc.empty_attribute_elements += 1
            if el.attributes and "style" in el.attributes:
                acc.inline_style_elements += 1

        acc.api_call_total += len(methods)
        for method in methods:
            acc.method_counts[method] = acc.method_counts.get(method, 0) + 1
        for endpoint in endpoints:
            acc.endpoint_counts[endpoint] = acc.endpoint_counts.get(endpoint, 0) + 1

    def mark_drained(self) -> None:
        """Called once every task of the run has settled."""
        self._drained = True

    def finalize(self) -> AnalyticsSnapshot:
        """Return a read-only copy of every site's analytics.

        Before ``mark_drained()`` the snapshot is partial and ``complete`` is
        False.
        """
        with self._lock:
            sites = copy.deepcopy(self._sites)
        if not self._drained:
            logger.warning("Analytics finalized before the crawl drained; snapshot is incomplete")
        return AnalyticsSnapshot(sites=sites, complete=self._drained)

    def reset(self) -> None:
        with self._lock:
            self._sites.clear()
            self._drained = False
            self._ingested = 0

    def get(self, site: str) -> Optional[AnalyticsAccumulator]:
        return self._sites.get(site)

    @property
    def ingested_count(self) -> int:
        return self._ingested

    @property
    def sites(self) -> list[str]:
        return list(self._sites)
