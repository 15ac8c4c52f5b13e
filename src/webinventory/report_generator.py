"""HTML/PDF report generator using Jinja2 templates and matplotlib charts."""

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional, Union

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
from jinja2 import Environment, FileSystemLoader, TemplateError, select_autoescape  # noqa: E402
from playwright.async_api import Error as PlaywrightError  # noqa: E402
from playwright.async_api import async_playwright  # noqa: E402

from webinventory.constants import REPORT_TOP_N  # noqa: E402
from webinventory.models import AnalyticsAccumulator, AnalyticsSnapshot  # noqa: E402

logger = logging.getLogger(__name__)

CHART_BACKGROUND = "#f3f4f6"
CHART_TITLE_COLOR = "#1a1d37"
CHART_PALETTE = ["#3b95cb", "#22c55e", "#f1c40f", "#e67e22", "#e74c3c", "#8e44ad", "#16a085", "#7f8c8d"]

SUMMARY_KEY = "_summary"


class ReportGenerator:
    """Renders finalized analytics into per-site reports and a cross-site index.

    Per site: ``top_tags_chart.png``, ``api_methods_chart.png``,
    ``report.html`` and (optionally) ``summary.pdf``. Across sites:
    ``index.html`` in the output root.
    """

    def __init__(
        self,
        output_dir: Union[str, Path],
        template_dir: Optional[Union[str, Path]] = None,
        render_pdf: bool = True,
        top_n: int = REPORT_TOP_N,
    ):
        """Initialize report generator.

        Args:
            output_dir: Output root containing one directory per site
            template_dir: Directory containing Jinja2 templates (default: packaged templates)
            render_pdf: Print each site report to PDF with Chromium
            top_n: Rows shown in ranked tables and bars in the tag chart
        """
        self.output_dir = Path(output_dir)
        self.render_pdf = render_pdf
        self.top_n = top_n

        template_path = Path(template_dir) if template_dir else Path(__file__).parent / "templates"
        self.env = Environment(
            loader=FileSystemLoader(str(template_path)),
            autoescape=select_autoescape(["html", "j2"]),
        )
        self.env.filters['format_number'] = self._format_number

    def _format_number(self, value):
        """Format number with thousand separators."""
        try:
            return "{:,}".format(int(value))
        except (ValueError, TypeError):
            return value

    async def render(self, snapshot: AnalyticsSnapshot) -> Dict[str, Dict[str, str]]:
        """Render every site and the cross-site index.

        Rendering problems are logged and leave the affected artifact out of
        the returned mapping; they never raise.

        Returns:
            Site -> artifact name -> path. The index is under ``"_summary"``.
        """
        artifacts: Dict[str, Dict[str, str]] = {}

        for site, acc in sorted(snapshot.sites.items()):
            site_dir = self.output_dir / site
            try:
                site_dir.mkdir(parents=True, exist_ok=True)
                charts = await asyncio.to_thread(self.generate_charts, acc, site_dir)
                site_artifacts = {name: str(path) for name, path in charts.items()}
                html_path = self.write_site_report(acc, site_dir, charts, snapshot)
            except (OSError, ValueError, TemplateError) as e:
                logger.error(f"Report generation failed for {site}: {e}")
                continue
            site_artifacts["html"] = str(html_path)
            artifacts[site] = site_artifacts

        if self.render_pdf and artifacts:
            pdfs = await self._print_pdfs(
                {site: Path(paths["html"]) for site, paths in artifacts.items()}
            )
            for site, pdf_path in pdfs.items():
                artifacts[site]["pdf"] = str(pdf_path)

        try:
            index_path = self.write_index(snapshot, artifacts)
        except (OSError, TemplateError) as e:
            logger.error(f"Index generation failed: {e}")
            return artifacts
        artifacts[SUMMARY_KEY] = {"html": str(index_path)}
        logger.info(f"Reports generated for {len(snapshot.sites)} site(s): {index_path}")
        return artifacts

    # --- Charts ---

    def generate_charts(self, acc: AnalyticsAccumulator, site_dir: Path) -> Dict[str, Path]:
        """Draw the tag frequency bar chart and the API method pie chart."""
        charts: Dict[str, Path] = {}

        if acc.tag_counts:
            charts["tags_chart"] = self._bar_chart(
                self._top(acc.tag_counts),
                "Top HTML Tags",
                site_dir / "top_tags_chart.png",
            )
            logger.info(f"Generated tag frequency bar chart: {charts['tags_chart']}")

        if acc.method_counts:
            charts["methods_chart"] = self._pie_chart(
                acc.method_counts,
                "API Call Methods",
                site_dir / "api_methods_chart.png",
            )
            logger.info(f"Generated API method pie chart: {charts['methods_chart']}")

        return charts

    def _bar_chart(self, data: Dict[str, int], title: str, path: Path) -> Path:
        fig, ax = plt.subplots(figsize=(10, 5.6), dpi=120)
        try:
            fig.patch.set_facecolor(CHART_BACKGROUND)
            ax.set_facecolor(CHART_BACKGROUND)
            labels = list(data)
            values = list(data.values())
            colors = [CHART_PALETTE[i % len(CHART_PALETTE)] for i in range(len(labels))]
            ax.bar(labels, values, color=colors, edgecolor=CHART_BACKGROUND)
            ax.set_ylabel("Count", fontsize=12, color="#4b5563")
            ax.set_title(title, fontsize=18, weight="bold", color=CHART_TITLE_COLOR, pad=14)
            for spine in ("top", "right"):
                ax.spines[spine].set_visible(False)
            for idx, value in enumerate(values):
                ax.text(idx, value, str(value), ha="center", va="bottom", fontsize=10, color=CHART_TITLE_COLOR)
            fig.savefig(path, bbox_inches="tight", facecolor=fig.get_facecolor())
        finally:
            plt.close(fig)
        return path

    def _pie_chart(self, data: Dict[str, int], title: str, path: Path) -> Path:
        fig, ax = plt.subplots(figsize=(6.2, 6.2), dpi=120)
        try:
            fig.patch.set_facecolor(CHART_BACKGROUND)
            ax.set_facecolor(CHART_BACKGROUND)
            labels = [f"{method}: {count}" for method, count in data.items()]
            ax.pie(
                list(data.values()),
                labels=labels,
                autopct=lambda p: f"{int(round(p))}%",
                colors=CHART_PALETTE[: len(data)] if len(data) <= len(CHART_PALETTE) else None,
                startangle=90,
                counterclock=False,
                wedgeprops={"edgecolor": CHART_BACKGROUND, "linewidth": 2},
            )
            ax.set_title(title, fontsize=18, weight="bold", color=CHART_TITLE_COLOR, pad=14)
            fig.savefig(path, bbox_inches="tight", facecolor=fig.get_facecolor())
        finally:
            plt.close(fig)
        return path

    # --- HTML ---

    def _top(self, counts: Dict[str, int]) -> Dict[str, int]:
        ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
        return dict(ranked[: self.top_n])

    def write_site_report(
        self,
        acc: AnalyticsAccumulator,
        site_dir: Path,
        charts: Dict[str, Path],
        snapshot: AnalyticsSnapshot,
    ) -> Path:
        template = self.env.get_template("report.html.j2")
        html = template.render(
            site=acc.site,
            acc=acc,
            top_tags=self._top(acc.tag_counts),
            top_endpoints=self._top(acc.endpoint_counts),
            unique_classes=sorted(acc.unique_classes),
            charts={name: path.name for name, path in charts.items()},
            complete=snapshot.complete,
            generated_at=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        )
        path = site_dir / "report.html"
        path.write_text(html, encoding="utf-8")
        logger.info(f"HTML report saved: {path}")
        return path

    def write_index(self, snapshot: AnalyticsSnapshot, artifacts: Dict[str, Dict[str, str]]) -> Path:
        template = self.env.get_template("index.html.j2")
        self.output_dir.mkdir(parents=True, exist_ok=True)
        sites = []
        for site, acc in sorted(snapshot.sites.items()):
            site_artifacts = artifacts.get(site, {})
            sites.append({
                "name": site,
                "acc": acc,
                "report": f"{site}/report.html" if "html" in site_artifacts else None,
                "pdf": f"{site}/summary.pdf" if "pdf" in site_artifacts else None,
            })
        html = template.render(
            sites=sites,
            totals=snapshot.global_totals(),
            complete=snapshot.complete,
            generated_at=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        )
        path = self.output_dir / "index.html"
        path.write_text(html, encoding="utf-8")
        return path

    # --- PDF ---

    async def _print_pdfs(self, reports: Dict[str, Path]) -> Dict[str, Path]:
        """Print each HTML report to ``summary.pdf`` beside it."""
        printed: Dict[str, Path] = {}
        try:
            async with async_playwright() as p:
                browser = await p.chromium.launch(headless=True)
                try:
                    page = await browser.new_page()
                    for site, html_path in reports.items():
                        pdf_path = html_path.parent / "summary.pdf"
                        try:
                            await page.goto(html_path.resolve().as_uri(), wait_until="load")
                            await page.pdf(
                                path=str(pdf_path),
                                format="A4",
                                landscape=True,
                                print_background=True,
                                margin={"top": "10mm", "right": "10mm", "bottom": "12mm", "left": "10mm"},
                            )
                        except PlaywrightError as e:
                            logger.warning(f"PDF render failed for {site}: {e}")
                            continue
                        printed[site] = pdf_path
                        logger.info(f"Summary saved as PDF: {pdf_path}")
                finally:
                    await browser.close()
        except PlaywrightError as e:
            logger.warning(f"PDF rendering skipped, browser unavailable: {e}")
        return printed
