# main.py

"""Entry point for the pricewatch command-line interface."""

import argparse
import asyncio
import logging
import sys

from pricewatch.config.logging_config import setup_logging
from pricewatch.config.settings import Settings

logger = logging.getLogger("pricewatch.main")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    valid_ids = ", ".join(Settings.MAJOR_MARKETPLACES)

    parser = argparse.ArgumentParser(
        prog="pricewatch",
        description="Multi-marketplace price discovery and tracking.",
        epilog=f"Available marketplaces: {valid_ids}",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    search = sub.add_parser("search", help="Search marketplaces for a product.")
    search.add_argument("query", help="Product name to search for.")
    search.add_argument(
        "-m",
        "--marketplaces",
        default=None,
        help="Comma-separated marketplace ids (default: all).",
    )
    search.add_argument(
        "-n",
        "--max-results",
        type=int,
        default=Settings.DEFAULT_MAX_RESULTS,
        dest="max_results",
        help="Results per marketplace.",
    )
    search.add_argument(
        "--no-cache",
        action="store_false",
        dest="use_cache",
        help="Bypass the search result cache.",
    )
    search.add_argument(
        "-f",
        "--format",
        choices=["json", "table"],
        default="json",
        dest="output_format",
        help="Output format (default: json).",
    )

    add = sub.add_parser("add", help="Track a product against a target price.")
    add.add_argument("name", help="Product name.")
    add.add_argument("target_price", type=float, help="Target price.")
    add.add_argument("-u", "--url", default=None, help="Product page URL.")
    add.add_argument(
        "-o", "--owner", default=None, help="Notification recipient.",
    )
    add.add_argument(
        "--auto-update",
        action="store_true",
        default=False,
        dest="auto_update",
        help="Include in auto-update runs.",
    )

    update = sub.add_parser("update", help="Refresh one product's price.")
    update.add_argument("product_id", type=int)

    sub.add_parser(
        "auto-update", help="Refresh every auto-update-enabled product.",
    )

    history = sub.add_parser("history", help="Show a product's price history.")
    history.add_argument("product_id", type=int)

    sub.add_parser("sweep-cache", help="Evict expired search cache entries.")

    metadata = sub.add_parser(
        "metadata", help="Read name, image and price from a product URL.",
    )
    metadata.add_argument("url")
    return parser


def _dispatch(args: argparse.Namespace) -> int:
    """Run the selected command and return its exit code."""
    from pricewatch.cli import runner

    if args.command == "search":
        return asyncio.run(
            runner.cli_search(
                query=args.query,
                marketplace_csv=args.marketplaces,
                max_results=args.max_results,
                use_cache=args.use_cache,
                output_format=args.output_format,
            )
        )
    if args.command == "add":
        return runner.run_add(
            args.name,
            args.target_price,
            args.url,
            args.owner,
            args.auto_update,
        )
    if args.command == "update":
        return asyncio.run(runner.run_update(args.product_id))
    if args.command == "auto-update":
        return asyncio.run(runner.run_auto_updates())
    if args.command == "history":
        return runner.run_history(args.product_id)
    if args.command == "sweep-cache":
        return runner.run_sweep_cache()
    return runner.run_metadata(args.url)


def main() -> None:
    """Parse arguments and route to a CLI command."""
    log_file = setup_logging()
    logger.info("pricewatch starting, log file: %s", log_file)

    parser = _build_parser()
    args = parser.parse_args()
    try:
        exit_code = _dispatch(args)
    except Exception:
        logger.critical("Fatal error during CLI run", exc_info=True)
        raise
    finally:
        logger.info("pricewatch shutting down")
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
