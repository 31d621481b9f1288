"""Command-line interface for the session pool.

Usage:
    python -m sessionpool.cli status
    python -m sessionpool.cli replenish --origin co.uk --force
    python -m sessionpool.cli search --origin co.uk --query "nike joggers"
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from sessionpool.infrastructure.scraper.utils import validate_url
from sessionpool.infrastructure.scraper.vinted_api import VintedApiClient, create_api_client
from sessionpool.utils import get_config, get_logger, log_execution_time, set_log_level
from sessionpool.utils.exceptions import AppException

logger = get_logger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(
        description="Manage and use the Vinted session token pool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Show pool health for every origin
  python -m sessionpool.cli status

  # Refill the co.uk pool even if it is healthy
  python -m sessionpool.cli replenish --origin co.uk --force

  # Search two catalog pages with debug logging
  python -m sessionpool.cli --log-level DEBUG search --origin co.uk --query "nike joggers" --max-pages 2

  # Fetch one listing
  python -m sessionpool.cli item https://www.vinted.co.uk/items/5731915289-nike-joggers
        """
    )

    parser.add_argument(
        '--config',
        type=Path,
        default=None,
        help='Path to configuration file (default: auto-detect)'
    )
    parser.add_argument(
        '--log-level',
        type=str,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default=None,
        help='Override log level'
    )

    subparsers = parser.add_subparsers(dest='command', required=True)

    status = subparsers.add_parser('status', help='Show valid/total tokens per origin')
    status.add_argument('--origin', type=str, default=None, help='Only this origin')

    replenish = subparsers.add_parser('replenish', help='Top up the pool for an origin')
    replenish.add_argument('--origin', type=str, default=None, help='Origin key, e.g. co.uk')
    replenish.add_argument('--force', action='store_true', help='Replenish even if healthy')

    invalidate = subparsers.add_parser('invalidate', help='Drop one token from the pool')
    invalidate.add_argument('--origin', type=str, default=None, help='Origin key')
    invalidate.add_argument('token', type=str, help='Token to remove')

    search = subparsers.add_parser('search', help='Search the catalog')
    search.add_argument('--origin', type=str, default=None, help='Origin key')
    search.add_argument('--query', type=str, required=True, help='Search text')
    search.add_argument('--max-pages', type=int, default=1, help='Pages to fetch (default: 1)')

    item = subparsers.add_parser('item', help='Fetch one listing by URL')
    item.add_argument('url', type=str, help='Listing URL')

    return parser.parse_args(argv)


def _apply_log_level(level: str) -> None:
    """Apply a log level to every sessionpool logger created so far."""
    for name in list(logging.root.manager.loggerDict):
        if name == 'sessionpool' or name.startswith('sessionpool.'):
            set_log_level(logging.getLogger(name), level)


def _print_status(api: VintedApiClient, origins: Sequence[str]) -> None:
    print("\n" + "=" * 60)
    print("SESSION POOL STATUS")
    print("=" * 60)
    for origin in origins:
        stats = api.pool.stats(origin)
        expiry = stats["next_expiry_seconds"]
        expiry_text = f"{expiry:.0f}s" if expiry is not None else "-"
        print(
            f"  vinted.{origin:<8} valid {stats['valid']:>3} / {stats['total']:<3} "
            f"next expiry: {expiry_text}"
        )
    print("=" * 60)


async def run(args: argparse.Namespace) -> int:
    """Execute one CLI command.

    Returns:
        Exit code
    """
    config = get_config(args.config)
    if not args.log_level and config.log_level != 'INFO':
        _apply_log_level(config.log_level)
    origin = getattr(args, 'origin', None) or config.api.default_origin

    async with create_api_client(config) as api:
        if args.command == 'status':
            origins = [args.origin] if args.origin else sorted(set(config.origins) | set(api.pool.origins()))
            _print_status(api, origins)

        elif args.command == 'replenish':
            with log_execution_time(logger, f"replenish {origin}"):
                credentials = await api.pool.acquire(origin, force=args.force)
            print(f"vinted.{origin}: {len(credentials)} valid tokens")

        elif args.command == 'invalidate':
            remaining = api.pool.invalidate(origin, args.token)
            print(f"vinted.{origin}: {len(remaining)} valid tokens")

        elif args.command == 'search':
            count = 0
            try:
                async for item in api.iter_catalog(origin, args.query, max_pages=args.max_pages):
                    count += 1
                    print(f"  {item.get('id')}: {item.get('title')}")
            except AppException as e:
                logger.error(f"Search stopped after {count} items: {e}")
                return 1
            print(f"\n{count} items")

        elif args.command == 'item':
            if not validate_url(args.url):
                logger.error(f"Not a Vinted URL: {args.url}")
                return 1
            item = await api.fetch_item_from_url(args.url)
            print(json.dumps(item, indent=2, ensure_ascii=False))

    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    args = parse_args(argv)

    if args.log_level:
        _apply_log_level(args.log_level)

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 1
    except AppException as e:
        logger.error(f"Command '{args.command}' failed: {e}")
        return 1
    except Exception as e:
        logger.error(f"Command '{args.command}' failed: {e}", exc_info=True)
        return 1


if __name__ == '__main__':
    sys.exit(main())
