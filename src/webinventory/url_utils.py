"""URL helpers shared by the frontier, the aggregator and the output layout."""

from typing import Iterable, Optional
from urllib.parse import urljoin, urlparse

from webinventory.constants import MAX_SLUG_LENGTH


def is_well_formed(url: str) -> bool:
    """Return True if the URL is an absolute http(s) URL with a host."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def normalize_url(url: str) -> str:
    """Normalize URL by removing fragments and trailing slashes.

    A bare host gets the root path, so ``https://a.test`` and
    ``https://a.test/`` normalize to the same URL.

    Args:
        url: URL to normalize

    Returns:
        Normalized URL
    """
    parsed = urlparse(url)
    path = parsed.path or "/"
    normalized = f"{parsed.scheme}://{parsed.netloc}{path}"
    if parsed.query:
        normalized += f"?{parsed.query}"
    if normalized.endswith("/") and len(path) > 1:
        normalized = normalized[:-1]
    return normalized


def normalize_seed(url: str) -> str:
    """Normalize a seed URL the way discovered links are; malformed seeds pass through."""
    url = url.strip()
    return normalize_url(url) if is_well_formed(url) else url


def _safe(text: str) -> str:
    return "".join(c if c.isalnum() or c in "_-" else "_" for c in text)


def url_to_slug(url: str) -> str:
    """Convert URL to a filesystem-safe slug.

    Examples:
        https://example.com -> example_com_index
        https://example.com/about -> example_com_about
        https://example.com/blog/post-1?p=2 -> example_com_blog_post-1_p_2
    """
    parsed = urlparse(url)
    domain = parsed.netloc.replace(":", "_").replace(".", "_")
    path = parsed.path.strip("/").replace("/", "_").replace(".", "_")
    if not path:
        path = "index"
    slug = f"{domain}_{path}"
    if parsed.query:
        slug += f"_{parsed.query}"
    return _safe(slug)[:MAX_SLUG_LENGTH]


def site_key(url: str, include_path: bool = False) -> str:
    """Derive the site identifier used to group analytics.

    The host with dots replaced by underscores (``www.example.com`` ->
    ``www_example_com``). With ``include_path`` the sanitized path is appended,
    which is how recursive scans key their per-page results.
    """
    parsed = urlparse(url)
    host = (parsed.hostname or "unknown").replace(".", "_")
    if not include_path:
        return _safe(host)
    path = parsed.path.strip("/").replace("/", "_")
    key = f"{host}_{path}" if path else host
    return _safe(key)[:MAX_SLUG_LENGTH]


def filter_links(
    links: Iterable[str],
    current_url: str,
    same_domain_only: bool = True,
) -> list[str]:
    """Resolve, normalize and scope links discovered on a page.

    Args:
        links: Raw hrefs found on the page
        current_url: The page the links were found on
        same_domain_only: Keep only links on the current page's host

    Returns:
        Unique in-scope http(s) URLs in discovery order
    """
    base_host: Optional[str] = urlparse(current_url).netloc
    seen: dict[str, None] = {}

    for link in links:
        try:
            absolute_url = urljoin(current_url, link)
        except ValueError:
            continue
        if not is_well_formed(absolute_url):
            continue
        normalized_url = normalize_url(absolute_url)
        if same_domain_only and urlparse(normalized_url).netloc != base_host:
            continue
        seen.setdefault(normalized_url, None)

    return list(seen)
