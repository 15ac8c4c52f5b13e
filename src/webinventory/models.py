"""Data models for the web inventory crawler."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from webinventory.url_utils import url_to_slug


@dataclass(frozen=True)
class CrawlTask:
    """A unit of work: one URL, executed up to ``max_attempts`` times."""

    url: str
    parent_path: str = ""
    attempt: int = 1
    depth: int = 0

    def next_attempt(self) -> "CrawlTask":
        """Return the same task for its next attempt."""
        return replace(self, attempt=self.attempt + 1)

    def child(self, url: str) -> "CrawlTask":
        """Build the task for a link discovered on this task's page."""
        own = url_to_slug(self.url)
        parent_path = f"{self.parent_path}_{own}" if self.parent_path else own
        return CrawlTask(url=url, parent_path=parent_path, attempt=1, depth=self.depth + 1)


@dataclass
class ElementRecord:
    """An interactive element found on a page."""

    tag_name: str
    id: Optional[str] = None
    classes: list[str] = field(default_factory=list)
    attributes: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "tagName": self.tag_name,
            "id": self.id,
            "classes": list(self.classes),
            "attributes": dict(self.attributes),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ElementRecord":
        return cls(
            tag_name=data.get("tagName") or data.get("tag_name") or "",
            id=data.get("id"),
            classes=list(data.get("classes") or []),
            attributes=dict(data.get("attributes") or {}),
        )


@dataclass
class ApiCallRecord:
    """A captured XHR/fetch request or its response."""

    type: str  # "request" or "response"
    url: str
    method: str
    status: Optional[int] = None
    headers: Optional[dict[str, str]] = None
    resource_type: Optional[str] = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"type": self.type, "url": self.url, "method": self.method}
        if self.status is not None:
            data["status"] = self.status
        if self.headers is not None:
            data["headers"] = dict(self.headers)
        if self.resource_type is not None:
            data["resourceType"] = self.resource_type
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ApiCallRecord":
        return cls(
            type=data.get("type", "request"),
            url=data.get("url", ""),
            method=data.get("method", "GET"),
            status=data.get("status"),
            headers=data.get("headers"),
            resource_type=data.get("resourceType"),
        )


class ChangeType(str, Enum):
    """What clicking an element did to the page."""
    FULL_PAGE_NAVIGATION = "fullPageNavigation"
    AJAX = "ajax"


@dataclass
class InteractionRecord:
    """Outcome of clicking one element while capturing network traffic."""

    selector: str
    text: str = ""
    api_calls: list[ApiCallRecord] = field(default_factory=list)
    change_type: Optional[ChangeType] = None
    new_url: Optional[str] = None
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "selector": self.selector,
            "text": self.text,
            "apiCalls": [call.to_dict() for call in self.api_calls],
            "triggeredChange": {
                "type": self.change_type.value if self.change_type else None,
                "newUrl": self.new_url,
            },
            "error": self.error,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "InteractionRecord":
        change = data.get("triggeredChange") or {}
        change_type = change.get("type")
        timestamp = data.get("timestamp")
        return cls(
            selector=data.get("selector", ""),
            text=data.get("text", ""),
            api_calls=[ApiCallRecord.from_dict(c) for c in data.get("apiCalls", [])],
            change_type=ChangeType(change_type) if change_type else None,
            new_url=change.get("newUrl"),
            error=data.get("error"),
            timestamp=datetime.fromisoformat(timestamp) if timestamp else datetime.now(),
        )


@dataclass(frozen=True)
class ErrorInfo:
    """Why a task terminally failed."""

    error_type: str
    message: str
    error_class: str = "transient"
    attempts: int = 1

    def to_dict(self) -> dict:
        return {
            "errorType": self.error_type,
            "message": self.message,
            "errorClass": self.error_class,
            "attempts": self.attempts,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ErrorInfo":
        return cls(
            error_type=data.get("errorType", "Exception"),
            message=data.get("message", ""),
            error_class=data.get("errorClass", "transient"),
            attempts=data.get("attempts", 1),
        )


@dataclass(frozen=True)
class PageResult:
    """Everything captured for one page. Immutable once built."""

    url: str
    title: Optional[str] = None
    elements: tuple[ElementRecord, ...] = ()
    api_calls: tuple[ApiCallRecord, ...] = ()
    links: tuple[str, ...] = ()
    screenshot_path: Optional[str] = None
    error: Optional[ErrorInfo] = None
    interactions: tuple[InteractionRecord, ...] = ()
    warnings: tuple[str, ...] = ()
    attempts: int = 1
    site: str = ""
    parent_path: str = ""
    crawled_at: datetime = field(default_factory=datetime.now)

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def degraded(self) -> bool:
        return self.succeeded and bool(self.warnings)

    def with_warning(self, warning: str) -> "PageResult":
        """Return a copy carrying one more field-level warning."""
        return replace(self, warnings=self.warnings + (warning,))

    @classmethod
    def failed(cls, task: CrawlTask, error: ErrorInfo, site: str = "") -> "PageResult":
        """Terminal-failure shape: populated error, empty data fields."""
        return cls(
            url=task.url,
            error=error,
            attempts=task.attempt,
            site=site,
            parent_path=task.parent_path,
        )

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "site": self.site,
            "title": self.title,
            "elements": [el.to_dict() for el in self.elements],
            "apiCalls": [call.to_dict() for call in self.api_calls],
            "links": list(self.links),
            "screenshotPath": self.screenshot_path,
            "interactions": [i.to_dict() for i in self.interactions],
            "warnings": list(self.warnings),
            "attempts": self.attempts,
            "parentPath": self.parent_path,
            "crawledAt": self.crawled_at.isoformat(),
            "error": self.error.to_dict() if self.error else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PageResult":
        crawled_at = data.get("crawledAt")
        error = data.get("error")
        return cls(
            url=data["url"],
            title=data.get("title"),
            elements=tuple(ElementRecord.from_dict(e) for e in data.get("elements", [])),
            api_calls=tuple(ApiCallRecord.from_dict(c) for c in data.get("apiCalls", [])),
            links=tuple(data.get("links", [])),
            screenshot_path=data.get("screenshotPath"),
            error=ErrorInfo.from_dict(error) if error else None,
            interactions=tuple(InteractionRecord.from_dict(i) for i in data.get("interactions", [])),
            warnings=tuple(data.get("warnings", [])),
            attempts=data.get("attempts", 1),
            site=data.get("site", ""),
            parent_path=data.get("parentPath", ""),
            crawled_at=datetime.fromisoformat(crawled_at) if crawled_at else datetime.now(),
        )


@dataclass
class AnalyticsAccumulator:
    """Incrementally built analytics for one site."""

    site: str
    element_total: int = 0
    tag_counts: dict[str, int] = field(default_factory=dict)
    unique_classes: set[str] = field(default_factory=set)
    api_call_total: int = 0
    method_counts: dict[str, int] = field(default_factory=dict)
    endpoint_counts: dict[str, int] = field(default_factory=dict)
    empty_attribute_elements: int = 0
    inline_style_elements: int = 0
    pages_total: int = 0
    pages_failed: int = 0
    urls: list[str] = field(default_factory=list)
    failed_urls: list[str] = field(default_factory=list)

    @property
    def failure_rate(self) -> float:
        if self.pages_total == 0:
            return 0.0
        return self.pages_failed / self.pages_total

    def to_dict(self) -> dict:
        return {
            "site": self.site,
            "urls": list(self.urls),
            "elements": {
                "total": self.element_total,
                "tags": dict(sorted(self.tag_counts.items(), key=lambda kv: -kv[1])),
                "uniqueClasses": sorted(self.unique_classes),
                "emptyAttributes": self.empty_attribute_elements,
                "inlineStyles": self.inline_style_elements,
            },
            "apiCalls": {
                "total": self.api_call_total,
                "methods": dict(self.method_counts),
                "endpoints": dict(sorted(self.endpoint_counts.items(), key=lambda kv: -kv[1])),
            },
            "pages": {
                "total": self.pages_total,
                "failed": self.pages_failed,
                "failedUrls": list(self.failed_urls),
                "failureRate": round(self.failure_rate, 4),
            },
        }


@dataclass
class AnalyticsSnapshot:
    """Result of ``ResultAggregator.finalize()``."""

    sites: dict[str, AnalyticsAccumulator]
    complete: bool = True
    generated_at: datetime = field(default_factory=datetime.now)

    def global_totals(self) -> dict:
        """Cross-site totals."""
        tags: dict[str, int] = {}
        methods: dict[str, int] = {}
        classes: set[str] = set()
        for acc in self.sites.values():
            for tag, count in acc.tag_counts.items():
                tags[tag] = tags.get(tag, 0) + count
            for method, count in acc.method_counts.items():
                methods[method] = methods.get(method, 0) + count
            classes |= acc.unique_classes

        pages_total = sum(acc.pages_total for acc in self.sites.values())
        pages_failed = sum(acc.pages_failed for acc in self.sites.values())
        return {
            "sites": len(self.sites),
            "pages_total": pages_total,
            "pages_failed": pages_failed,
            "element_total": sum(acc.element_total for acc in self.sites.values()),
            "api_call_total": sum(acc.api_call_total for acc in self.sites.values()),
            "tag_counts": tags,
            "method_counts": methods,
            "unique_classes": len(classes),
            "failure_rate": (pages_failed / pages_total) if pages_total else 0.0,
        }

    def to_dict(self) -> dict:
        return {
            "complete": self.complete,
            "generatedAt": self.generated_at.isoformat(),
            "global": self.global_totals(),
            "sites": {site: acc.to_dict() for site, acc in self.sites.items()},
        }


class TaskOutcome(str, Enum):
    """Final per-URL outcome listed in the run report."""
    SUCCESS = "success"
    RETRIED_THEN_SUCCEEDED = "retried_then_succeeded"
    TERMINALLY_FAILED = "terminally_failed"
    CANCELLED = "cancelled"


class RunStatus(str, Enum):
    COMPLETE = "complete"
    PARTIAL_FAILURE = "partial_failure"
    CANCELLED = "cancelled"


@dataclass
class CrawlReport:
    """Summary returned by ``TaskScheduler.run``."""

    status: RunStatus = RunStatus.COMPLETE
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    retried_then_succeeded: int = 0
    cancelled: int = 0
    total_attempts: int = 0
    peak_concurrency: int = 0
    outcomes: dict[str, TaskOutcome] = field(default_factory=dict)
    errors: dict[str, ErrorInfo] = field(default_factory=dict)
    discovered_urls: list[str] = field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> float:
        if not self.started_at or not self.finished_at:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "retriedThenSucceeded": self.retried_then_succeeded,
            "cancelled": self.cancelled,
            "totalAttempts": self.total_attempts,
            "peakConcurrency": self.peak_concurrency,
            "outcomes": {url: outcome.value for url, outcome in self.outcomes.items()},
            "errors": {url: err.to_dict() for url, err in self.errors.items()},
            "discoveredUrls": list(self.discovered_urls),
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
            "durationSeconds": round(self.duration_seconds, 3),
        }
