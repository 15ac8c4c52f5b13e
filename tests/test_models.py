"""Tests for data models and URL helpers."""

from datetime import datetime

import pytest

from webinventory.models import (
    ApiCallRecord,
    ChangeType,
    CrawlReport,
    CrawlTask,
    ElementRecord,
    ErrorInfo,
    InteractionRecord,
    PageResult,
    RunStatus,
    TaskOutcome,
)
from webinventory.url_utils import (
    filter_links,
    is_well_formed,
    normalize_seed,
    normalize_url,
    site_key,
    url_to_slug,
)


class TestUrlUtils:
    """Test cases for URL helpers."""

    @pytest.mark.parametrize("url,expected", [
        ("https://example.com", "example_com_index"),
        ("https://example.com/", "example_com_index"),
        ("https://example.com/about", "example_com_about"),
        ("https://example.com/blog/post-1?p=2", "example_com_blog_post-1_p_2"),
        ("http://localhost:8080/app", "localhost_8080_app"),
    ])
    def test_url_to_slug(self, url, expected):
        assert url_to_slug(url) == expected

    def test_slug_is_bounded(self):
        assert len(url_to_slug("https://example.com/" + "x" * 500)) == 120

    def test_site_key(self):
        assert site_key("https://www.example.com/some/page") == "www_example_com"
        assert site_key("https://www.example.com/some/page", include_path=True) == "www_example_com_some_page"
        assert site_key("https://www.example.com/", include_path=True) == "www_example_com"

    @pytest.mark.parametrize("url,expected", [
        ("https://example.com/page#section", "https://example.com/page"),
        ("https://example.com/page/", "https://example.com/page"),
        ("https://example.com/", "https://example.com/"),
        ("https://example.com", "https://example.com/"),
        ("https://example.com?q=1", "https://example.com/?q=1"),
        ("https://example.com/search?q=1", "https://example.com/search?q=1"),
    ])
    def test_normalize_url(self, url, expected):
        assert normalize_url(url) == expected

    def test_normalize_seed(self):
        assert normalize_seed(" https://example.com ") == "https://example.com/"
        assert normalize_seed("https://example.com/docs/") == "https://example.com/docs"
        assert normalize_seed("not a url") == "not a url"

    @pytest.mark.parametrize("url,valid", [
        ("https://example.com", True),
        ("http://example.com/a", True),
        ("ftp://example.com", False),
        ("example.com", False),
        ("not a url", False),
        ("", False),
    ])
    def test_is_well_formed(self, url, valid):
        assert is_well_formed(url) is valid

    def test_filter_links(self):
        """Test links are resolved, scoped and deduplicated in order."""
        links = [
            "/about",
            "contact#form",
            "https://example.com/about/",
            "https://other.org/",
            "mailto:someone@example.com",
            "javascript:void(0)",
        ]
        assert filter_links(links, "https://example.com/") == [
            "https://example.com/about",
            "https://example.com/contact",
        ]

    def test_filter_links_cross_domain(self):
        result = filter_links(["https://other.org/x"], "https://example.com/", same_domain_only=False)
        assert result == ["https://other.org/x"]


class TestCrawlTask:
    """Test cases for CrawlTask."""

    def test_next_attempt(self):
        task = CrawlTask(url="https://example.com/", depth=2, parent_path="p")
        retry = task.next_attempt()
        assert retry.attempt == 2
        assert retry.url == task.url
        assert retry.depth == 2
        assert task.attempt == 1

    def test_child_chains_parent_path(self):
        root = CrawlTask(url="https://example.com/")
        child = root.child("https://example.com/a")
        grandchild = child.child("https://example.com/a/b")
        assert child.parent_path == "example_com_index"
        assert grandchild.parent_path == "example_com_index_example_com_a"
        assert grandchild.depth == 2
        assert grandchild.attempt == 1


class TestPageResult:
    """Test cases for PageResult serialization."""

    def test_failed_shape(self):
        """Test a terminal failure carries the error and no data."""
        task = CrawlTask(url="https://example.com/x", attempt=3, parent_path="root")
        result = PageResult.failed(task, ErrorInfo("NavigationError", "timeout", attempts=3), site="example_com")
        assert not result.succeeded
        assert result.elements == ()
        assert result.api_calls == ()
        assert result.attempts == 3
        assert result.parent_path == "root"

    def test_with_warning_returns_copy(self):
        result = PageResult(url="https://example.com/")
        degraded = result.with_warning("screenshot: crashed")
        assert result.warnings == ()
        assert degraded.warnings == ("screenshot: crashed",)
        assert degraded.degraded

    def test_dict_round_trip(self):
        result = PageResult(
            url="https://example.com/",
            title="Home",
            elements=(ElementRecord("a", id="home", classes=["nav"], attributes={"href": "/"}),),
            api_calls=(ApiCallRecord("response", "https://example.com/api", "GET", status=200, resource_type="fetch"),),
            links=("https://example.com/a",),
            interactions=(InteractionRecord("#go", "Go", change_type=ChangeType.AJAX),),
            warnings=("persist: disk full",),
            attempts=2,
            site="example_com",
            crawled_at=datetime(2024, 1, 2, 3, 4, 5),
        )
        data = result.to_dict()
        assert data["elements"][0]["tagName"] == "a"
        assert data["apiCalls"][0]["resourceType"] == "fetch"
        assert data["interactions"][0]["triggeredChange"]["type"] == "ajax"

        restored = PageResult.from_dict(data)
        assert restored.elements == result.elements
        assert restored.api_calls == result.api_calls
        assert restored.interactions[0].change_type is ChangeType.AJAX
        assert restored.crawled_at == result.crawled_at
        assert restored.warnings == result.warnings

    def test_error_round_trip(self):
        result = PageResult(url="https://example.com/", error=ErrorInfo("CaptureError", "boom", "transient", 3))
        assert PageResult.from_dict(result.to_dict()).error == result.error

    def test_api_call_omits_unset_fields(self):
        assert ApiCallRecord("request", "https://e.com/api", "POST").to_dict() == {
            "type": "request", "url": "https://e.com/api", "method": "POST",
        }


class TestCrawlReport:
    def test_to_dict(self):
        report = CrawlReport(
            status=RunStatus.PARTIAL_FAILURE,
            attempted=2,
            succeeded=1,
            failed=1,
            outcomes={"https://a": TaskOutcome.SUCCESS, "https://b": TaskOutcome.TERMINALLY_FAILED},
            errors={"https://b": ErrorInfo("NavigationError", "timeout")},
            started_at=datetime(2024, 1, 1, 0, 0, 0),
            finished_at=datetime(2024, 1, 1, 0, 0, 30),
        )
        data = report.to_dict()
        assert data["status"] == "partial_failure"
        assert data["outcomes"]["https://b"] == "terminally_failed"
        assert data["errors"]["https://b"]["errorType"] == "NavigationError"
        assert data["durationSeconds"] == 30.0
