"""Web inventory crawler: interactive elements and API calls, aggregated per site."""

__version__ = "0.1.0"

from webinventory.aggregator import ResultAggregator
from webinventory.config import CrawlConfig, load_urls
from webinventory.exceptions import (
    AuthenticationError,
    CaptureError,
    ConfigurationError,
    CrawlError,
    ErrorClass,
    ExtractionError,
    MalformedUrlError,
    NavigationError,
    PersistenceError,
    RunCancelledError,
    ScreenshotError,
)
from webinventory.frontier import CrawlFrontier
from webinventory.models import (
    AnalyticsAccumulator,
    AnalyticsSnapshot,
    ApiCallRecord,
    CrawlReport,
    CrawlTask,
    ElementRecord,
    ErrorInfo,
    InteractionRecord,
    PageResult,
    RunStatus,
    TaskOutcome,
)
from webinventory.pipeline import PipelineExecutor
from webinventory.retry_policy import GiveUp, Retry, RetryPolicy, classify
from webinventory.scheduler import TaskScheduler

__all__ = [
    # Orchestration
    "CrawlFrontier",
    "PipelineExecutor",
    "RetryPolicy",
    "Retry",
    "GiveUp",
    "classify",
    "TaskScheduler",
    "ResultAggregator",
    # Configuration
    "CrawlConfig",
    "load_urls",
    # Models
    "AnalyticsAccumulator",
    "AnalyticsSnapshot",
    "ApiCallRecord",
    "CrawlReport",
    "CrawlTask",
    "ElementRecord",
    "ErrorInfo",
    "InteractionRecord",
    "PageResult",
    "RunStatus",
    "TaskOutcome",
    # Errors
    "ErrorClass",
    "CrawlError",
    "ConfigurationError",
    "MalformedUrlError",
    "AuthenticationError",
    "NavigationError",
    "ExtractionError",
    "CaptureError",
    "ScreenshotError",
    "PersistenceError",
    "RunCancelledError",
]
