from __future__ import annotations

from dataclasses import dataclass

from marketsync.balances import BalanceScanner
from marketsync.config import AppConfig
from marketsync.ledger import SyncLedger
from marketsync.scheduler import SchedulerConfig, SyncScheduler
from marketsync.storage import init_db
from marketsync.sync import SourceSyncAdapter
from marketsync.venues import build_clients


@dataclass
class AppContext:
    config: AppConfig
    ledger: SyncLedger
    adapters: list[SourceSyncAdapter]
    scheduler: SyncScheduler
    scanner: BalanceScanner


def build_context(config: AppConfig) -> AppContext:
    """Wire the store, venue adapters, scheduler and balance scanner once per process."""
    init_db(config.db_path)
    ledger = SyncLedger(config.db_path)
    adapters = [
        SourceSyncAdapter(profile, client, config.db_path, ledger)
        for profile, client in build_clients(config)
    ]
    scheduler = SyncScheduler(
        adapters,
        SchedulerConfig(
            market_sync_interval=config.market_sync_interval_seconds,
            price_sync_interval=config.price_sync_interval_seconds,
            sync_on_startup=config.sync_on_startup,
        ),
    )
    scanner = BalanceScanner(
        {137: config.polygon_rpc_url, 8453: config.base_rpc_url},
        timeout_seconds=config.rpc_timeout_seconds,
    )
    return AppContext(
        config=config,
        ledger=ledger,
        adapters=adapters,
        scheduler=scheduler,
        scanner=scanner,
    )
