from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
from dataclasses import asdict, replace
from typing import Iterable, Optional

from marketsync.config import DEFAULT_VENUES, AppConfig, load_config
from marketsync.context import AppContext, build_context
from marketsync.models import SyncOptions

logger = logging.getLogger(__name__)


def _print_json(payload) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True, default=str))


async def run_service(context: AppContext) -> None:
    scheduler = context.scheduler
    stop_event = asyncio.Event()

    def _handle_signal(*_):
        logger.info("Shutdown signal received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _handle_signal)
        except NotImplementedError:
            signal.signal(sig, lambda *_: _handle_signal())

    await scheduler.start()
    await stop_event.wait()
    scheduler.stop()
    await scheduler.wait_idle()


async def sync_markets_once(context: AppContext, args: argparse.Namespace) -> int:
    options = SyncOptions(
        batch_size=args.batch_size,
        max_pages=args.max_pages,
        active_only=not args.include_inactive,
    )
    venues = [args.venue] if args.venue else None
    result = await context.scheduler.run_market_sync(options, venues=venues)
    _print_json(result.to_dict() if result else {"skipped": True})
    return 0 if result and result.success else 1


async def sync_prices_once(context: AppContext, args: argparse.Namespace) -> int:
    venues = [args.venue] if args.venue else None
    result = await context.scheduler.run_price_sync(venues=venues)
    _print_json(result.to_dict() if result else {"skipped": True})
    return 0 if result and result.success else 1


async def show_status(context: AppContext) -> int:
    health = await context.scheduler.get_health()
    _print_json(
        {
            "state": context.scheduler.get_state().to_dict(),
            "health": health,
            "recent_syncs": context.ledger.recent(limit=10),
        }
    )
    return 0


async def scan_wallet(context: AppContext, args: argparse.Namespace) -> int:
    from marketsync.positions import load_positions

    descriptors = load_positions(args.positions)
    min_balance = args.min_balance
    if min_balance is None:
        min_balance = context.config.min_position_balance
    result = await context.scanner.scan_positions(args.wallet, descriptors, min_balance=min_balance)
    _print_json(
        {
            "wallet": result.wallet,
            "scanned_at": result.scanned_at.isoformat(),
            "total_value": result.total_value,
            "positions": [asdict(position) for position in result.positions],
            "errors": result.errors,
        }
    )
    return 0 if not result.errors else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="marketsync")
    parser.add_argument("--db", help="Override MARKETSYNC_DB_PATH")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("run", help="Run the sync scheduler until interrupted")

    markets_cmd = sub.add_parser("sync-markets", help="Run one market sync and print the result")
    markets_cmd.add_argument("--venue", choices=DEFAULT_VENUES, help="Only sync this venue")
    markets_cmd.add_argument("--batch-size", type=int, default=None, help="Markets per page")
    markets_cmd.add_argument("--max-pages", type=int, default=None, help="Maximum pages to fetch")
    markets_cmd.add_argument(
        "--include-inactive",
        action="store_true",
        help="Also fetch closed and resolved markets",
    )

    prices_cmd = sub.add_parser("sync-prices", help="Run one price sync and print the result")
    prices_cmd.add_argument("--venue", choices=DEFAULT_VENUES, help="Only sync this venue")

    sub.add_parser("status", help="Print scheduler state and venue health")

    scan_cmd = sub.add_parser("scan-wallet", help="Read on-chain position balances for a wallet")
    scan_cmd.add_argument("--wallet", required=True, help="Wallet address")
    scan_cmd.add_argument(
        "--positions",
        required=True,
        help="YAML or JSON file with a 'positions' list",
    )
    scan_cmd.add_argument(
        "--min-balance",
        type=float,
        default=None,
        help="Drop positions below this formatted balance",
    )

    return parser


def _load(args: argparse.Namespace) -> AppConfig:
    config = load_config()
    if args.db:
        config = replace(config, db_path=args.db)
    return config


def main(argv: Optional[Iterable[str]] = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    context = build_context(_load(args))

    if args.command == "run":
        asyncio.run(run_service(context))
        return 0
    if args.command == "sync-markets":
        return asyncio.run(sync_markets_once(context, args))
    if args.command == "sync-prices":
        return asyncio.run(sync_prices_once(context, args))
    if args.command == "status":
        return asyncio.run(show_status(context))
    if args.command == "scan-wallet":
        return asyncio.run(scan_wallet(context, args))

    parser.error(f"Unknown command: {args.command}")
    return 2
