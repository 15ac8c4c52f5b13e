"""Command-line interface for the web inventory crawler."""

import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from webinventory.config import CrawlConfig
from webinventory.exceptions import CrawlError
from webinventory.logging_config import default_log_file, setup_logging
from webinventory.models import CrawlReport, RunStatus
from webinventory.runner import InventoryRun, regenerate_reports, run_inventory

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_PARTIAL_FAILURE = 2
EXIT_CANCELLED = 130

_EXIT_CODES = {
    RunStatus.COMPLETE: EXIT_OK,
    RunStatus.PARTIAL_FAILURE: EXIT_PARTIAL_FAILURE,
    RunStatus.CANCELLED: EXIT_CANCELLED,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="webinventory",
        description="Crawl pages, inventory their interactive elements and API calls, and report on them",
    )
    parser.add_argument("urls", nargs="*", help="URLs to crawl (overrides --urls-file)")
    parser.add_argument("--urls-file", help="Newline-delimited URL list (default: ./urls.txt)")
    parser.add_argument("--output-dir", help="Output directory (default: ./output)")
    parser.add_argument("--config", metavar="PATH", help="YAML configuration file")
    parser.add_argument(
        "--concurrency", type=int, dest="concurrency_limit",
        help="Maximum pages processed at once (default: 3)"
    )
    parser.add_argument(
        "--headless", action=argparse.BooleanOptionalAction, default=None,
        help="Run the browser without a visible window (default: on)"
    )
    parser.add_argument("--recursive", action="store_true", default=None,
                        help="Follow same-site links discovered on each page")
    parser.add_argument("--base-url", help="Start URL for a recursive scan and default login page")
    parser.add_argument("--max-pages", type=int, help="Maximum pages claimed in recursive mode (default: 50)")
    parser.add_argument("--max-depth", type=int, help="Maximum link depth in recursive mode (default: unlimited)")
    parser.add_argument("--max-attempts", type=int, help="Attempts per page, first included (default: 3)")
    parser.add_argument("--trigger", dest="trigger_selector", metavar="SELECTOR",
                        help="Element clicked on each page while API calls are recorded")
    parser.add_argument("--click-buttons", action="store_true", default=None,
                        help="Click every button on each page and record what it triggers")
    parser.add_argument("--login", dest="login_required", action="store_true", default=None,
                        help="Log in with LOGIN_URL/LOGIN_USER/LOGIN_PASSWORD before crawling")
    parser.add_argument("--no-pdf", dest="render_pdf", action="store_false", default=None,
                        help="Skip PDF summaries")
    parser.add_argument("--report-only", action="store_true",
                        help="Skip crawling, rebuild analytics and reports from the output directory")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Log level")
    parser.add_argument("--log-file", help="Log file path (default: logs/app-<timestamp>.log)")
    return parser


def build_config(args: argparse.Namespace) -> CrawlConfig:
    """Environment first, then the YAML file, then command-line flags."""
    config = CrawlConfig.from_env()
    if args.config:
        config = CrawlConfig.from_file(args.config, base=config)

    overrides = {
        "urls_file": args.urls_file,
        "output_dir": args.output_dir,
        "concurrency_limit": args.concurrency_limit,
        "headless": args.headless,
        "recursive": args.recursive,
        "base_url": args.base_url,
        "max_pages": args.max_pages,
        "max_depth": args.max_depth,
        "max_attempts": args.max_attempts,
        "trigger_selector": args.trigger_selector,
        "click_buttons": args.click_buttons,
        "login_required": args.login_required,
        "render_pdf": args.render_pdf,
        "log_level": args.log_level,
        "log_file": args.log_file,
    }
    for key, value in overrides.items():
        if value is not None:
            setattr(config, key, value)
    if args.urls:
        config.urls = list(args.urls)
    return config


def print_summary(run: InventoryRun) -> None:
    """Print the run outcome in a formatted way."""
    report: Optional[CrawlReport] = run.report
    print(f"\n{'=' * 60}")
    if report is not None:
        print(f"Crawl {report.status.value}")
        print(f"{'=' * 60}")
        print(f"  • Attempted: {report.attempted}")
        print(f"  • Succeeded: {report.succeeded} ({report.retried_then_succeeded} after retry)")
        print(f"  • Failed: {report.failed}")
        print(f"  • Cancelled: {report.cancelled}")
        print(f"  • Duration: {report.duration_seconds:.1f}s")
        for url, error in report.errors.items():
            print(f"    ✗ {url}: {error.error_type}: {error.message}")
    else:
        print("Reports regenerated")
        print(f"{'=' * 60}")

    totals = run.snapshot.global_totals()
    print(f"\n  Sites: {totals['sites']}, elements: {totals['element_total']}, "
          f"API calls: {totals['api_call_total']}")
    summary = run.artifacts.get("_summary", {}).get("html")
    if summary:
        print(f"  Report: {summary}")
    print(f"{'=' * 60}\n")


async def _main_async(config: CrawlConfig, report_only: bool) -> InventoryRun:
    if report_only:
        return await regenerate_reports(config)

    abort_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def request_abort() -> None:
        if not abort_event.is_set():
            print("\n\n⚠️  Crawl interrupted by user. Finishing in-flight pages...")
        abort_event.set()

    try:
        loop.add_signal_handler(signal.SIGINT, request_abort)
    except (NotImplementedError, RuntimeError):
        # Windows event loops do not support signal handlers
        signal.signal(signal.SIGINT, lambda signum, frame: loop.call_soon_threadsafe(request_abort))

    try:
        return await run_inventory(config, abort_event=abort_event)
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            signal.signal(signal.SIGINT, signal.default_int_handler)


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the ``webinventory`` console script."""
    args = build_parser().parse_args(argv)

    try:
        config = build_config(args)
    except CrawlError as e:
        setup_logging("INFO")
        logger.error(f"Configuration error: {e}")
        return EXIT_ERROR

    setup_logging(config.log_level, config.log_file or default_log_file())

    try:
        run = asyncio.run(_main_async(config, args.report_only))
    except CrawlError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return EXIT_ERROR

    print_summary(run)
    if run.report is None:
        return EXIT_OK
    return _EXIT_CODES[run.report.status]


if __name__ == "__main__":
    sys.exit(main())
