"""Output manager for organizing inventory artifacts on disk."""

import json
import logging
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Iterator, List, Union

from webinventory.exceptions import PersistenceError
from webinventory.models import AnalyticsSnapshot, CrawlReport, PageResult
from webinventory.url_utils import site_key, url_to_slug

logger = logging.getLogger(__name__)


class DateTimeEncoder(json.JSONEncoder):
    """JSON encoder that handles datetime, enum and set values."""

    def default(self, obj):
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, (set, frozenset)):
            return sorted(obj)
        return super().default(obj)


class OutputManager:
    """Filesystem OutputStore rooted at one output directory.

    Example structure:
        output/
        ├── run_report.json
        ├── discovered_urls.json
        ├── index.html
        └── www_example_com/
            ├── analytics.json
            ├── report.html
            ├── summary.pdf
            └── pages/
                └── www_example_com_index/
                    ├── page.json
                    ├── elements.json
                    ├── api_calls.json
                    └── screenshot.png
    """

    def __init__(self, base_output_dir: Union[str, Path] = "output"):
        """Initialize output manager.

        Args:
            base_output_dir: Base directory for all artifacts
        """
        self.base_output_dir = Path(base_output_dir).resolve()
        self.base_output_dir.mkdir(parents=True, exist_ok=True)

    def resolve(self, path: Union[str, Path]) -> Path:
        """Resolve a path relative to the output directory."""
        path = Path(path)
        if path.is_absolute():
            return path
        return self.base_output_dir / path

    def ensure_dir(self, path: Union[str, Path]) -> Path:
        target = self.resolve(path)
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Cannot create directory {target}: {e}", original=e) from e
        return target

    def write_json(self, path: Union[str, Path], value: Any) -> Path:
        """Save data as formatted JSON.

        Args:
            path: Target file, relative to the output directory or absolute
            value: JSON-serializable data

        Returns:
            Absolute path written
        """
        target = self.resolve(path)
        self.ensure_dir(target.parent)
        try:
            with open(target, "w", encoding="utf-8") as f:
                json.dump(value, f, indent=2, ensure_ascii=False, cls=DateTimeEncoder)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"Cannot write {target}: {e}", original=e) from e
        return target

    def write_binary(self, path: Union[str, Path], data: bytes) -> Path:
        target = self.resolve(path)
        self.ensure_dir(target.parent)
        try:
            target.write_bytes(data)
        except OSError as e:
            raise PersistenceError(f"Cannot write {target}: {e}", original=e) from e
        return target

    def page_dir(self, site: str, url: str) -> Path:
        """Directory holding one page's artifacts."""
        return self.ensure_dir(f"{site}/pages/{url_to_slug(url)}")

    def save_page_result(self, result: PageResult) -> Path:
        """Write the full PageResult as page.json."""
        site = result.site or site_key(result.url)
        return self.write_json(self.page_dir(site, result.url) / "page.json", result.to_dict())

    def save_run_report(self, report: CrawlReport) -> Path:
        path = self.write_json("run_report.json", report.to_dict())
        logger.info(f"Run report saved to: {path}")
        return path

    def save_discovered_urls(self, urls: List[str]) -> Path:
        path = self.write_json("discovered_urls.json", list(urls))
        logger.info(f"Discovered URLs saved to: {path}")
        return path

    def save_analytics(self, snapshot: AnalyticsSnapshot) -> dict[str, Path]:
        """Write one analytics.json per site plus the cross-site summary.

        Returns:
            Site -> analytics.json path
        """
        paths = {}
        for site, acc in snapshot.sites.items():
            data = acc.to_dict()
            data["complete"] = snapshot.complete
            paths[site] = self.write_json(f"{site}/analytics.json", data)
            logger.info(f"Analytics generated for: {site}")
        self.write_json("analytics_summary.json", snapshot.to_dict())
        return paths

    def iter_page_files(self) -> Iterator[Path]:
        """Yield every persisted page.json under the output directory."""
        yield from sorted(self.base_output_dir.glob("*/pages/*/page.json"))

    def load_page_results(self) -> List[PageResult]:
        """Load previously persisted page results, skipping unreadable files."""
        results = []
        for page_file in self.iter_page_files():
            try:
                results.append(PageResult.from_dict(self._load_json(page_file)))
            except (OSError, json.JSONDecodeError, KeyError, ValueError) as e:
                logger.warning(f"Skipping unreadable page file {page_file}: {e}")
        logger.info(f"Loaded {len(results)} page result(s) from {self.base_output_dir}")
        return results

    def _load_json(self, filepath: Path) -> Any:
        """Load JSON file.

        Args:
            filepath: Path to JSON file

        Returns:
            Loaded data
        """
        with open(filepath, "r", encoding="utf-8") as f:
            return json.load(f)
