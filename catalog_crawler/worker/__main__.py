"""
CLI entry point for running the catalog crawler.

This module provides a command-line interface for a full crawl, a
reconciliation-only pass, ledger inspection and ledger table setup.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, Optional

from pydantic import ValidationError

from ..config.settings import CrawlerSettings, load_settings
from ..core.exceptions import LedgerError
from ..state import configure_ledger_model, create_ledger, create_table_if_not_exists
from ..utils.logging import setup_crawler_logger
from .crawler_worker import CatalogCrawlerWorker

logger = logging.getLogger(__name__)


def _load(environment: Optional[str], config_overrides: Dict[str, Any]) -> CrawlerSettings:
    settings = load_settings(environment=environment, **config_overrides)
    setup_crawler_logger("catalog_crawler", level=settings.log_level, json_logs=settings.json_logs)
    return settings


async def run_crawl(settings: CrawlerSettings, retry_only: bool = False) -> int:
    """
    Run a crawl (or only the reconciliation pass) and return the exit code.

    A LedgerError is fatal: nothing can be recorded without the ledger.
    """
    worker = None
    try:
        worker = CatalogCrawlerWorker(settings)
        result = await (worker.retry_only() if retry_only else worker.run())
        print(json.dumps(result, indent=2, default=str))
        return 0

    except LedgerError as e:
        logger.error(f"Ledger unavailable, aborting: {e}", exc_info=True)
        return 1
    finally:
        if worker is not None:
            await worker.shutdown()


def show_summary(settings: CrawlerSettings) -> int:
    try:
        summary = create_ledger(settings).summary()
    except LedgerError as e:
        print(f"Ledger unavailable: {e}")
        return 1

    print("Ledger summary:")
    for level, counts in summary.items():
        print(
            f"  {level}: completed={counts['completed']} failed={counts['failed']} "
            f"(retryable={counts['retryable']}, exhausted={counts['exhausted']})"
        )
    return 0


def init_table(settings: CrawlerSettings) -> int:
    if settings.ledger_backend != "dynamodb":
        print("Local ledger needs no table setup")
        return 0

    configure_ledger_model(settings)
    created = create_table_if_not_exists()
    print("Ledger table created" if created else "Ledger table already exists")
    return 0


def main():
    """Main CLI entry point"""
    parser = argparse.ArgumentParser(
        description="Hierarchical catalog crawler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m catalog_crawler.worker run --environment dev
  python -m catalog_crawler.worker retry --environment prod
  python -m catalog_crawler.worker summary
  python -m catalog_crawler.worker run --max-concurrent 8 --log-level DEBUG
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    for name, help_text in (
        ("run", "Crawl the catalog, then retry what failed"),
        ("retry", "Only retry failed ledger entries"),
    ):
        command_parser = subparsers.add_parser(name, help=help_text)
        command_parser.add_argument("--environment", "-e", help="Environment (dev/devlocal/staging/prod)")
        command_parser.add_argument(
            "--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Override logging level"
        )
        command_parser.add_argument("--max-concurrent", type=int, help="Override request gate permits")
        command_parser.add_argument("--base-url", help="Override catalog root page")

    summary_parser = subparsers.add_parser("summary", help="Show ledger entry counts")
    summary_parser.add_argument("--environment", "-e", help="Environment")

    table_parser = subparsers.add_parser("init-table", help="Create the DynamoDB ledger table")
    table_parser.add_argument("--environment", "-e", help="Environment")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    config_overrides: Dict[str, Any] = {}
    if getattr(args, "log_level", None):
        config_overrides["log_level"] = args.log_level
    if getattr(args, "max_concurrent", None):
        config_overrides["max_concurrent_requests"] = args.max_concurrent
    if getattr(args, "base_url", None):
        config_overrides["base_url"] = args.base_url

    try:
        settings = _load(args.environment, config_overrides)
    except (ValidationError, ValueError, FileNotFoundError) as e:
        print(f"Invalid configuration: {e}")
        sys.exit(1)

    try:
        if args.command == "run":
            exit_code = asyncio.run(run_crawl(settings))
        elif args.command == "retry":
            exit_code = asyncio.run(run_crawl(settings, retry_only=True))
        elif args.command == "summary":
            exit_code = show_summary(settings)
        elif args.command == "init-table":
            exit_code = init_table(settings)
        else:
            print(f"Unknown command: {args.command}")
            exit_code = 1
    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        exit_code = 0

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
