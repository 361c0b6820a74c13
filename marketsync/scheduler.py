from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable, Optional, Sequence

from marketsync.models import SchedulerError, SchedulerState, SyncKind, SyncOptions, SyncResult
from marketsync.sync import SourceSyncAdapter

logger = logging.getLogger(__name__)

MIN_MARKET_SYNC_INTERVAL_SECONDS = 10.0
MIN_PRICE_SYNC_INTERVAL_SECONDS = 5.0
MAX_STORED_ERRORS = 50


@dataclass(frozen=True)
class SchedulerConfig:
    market_sync_interval: float = 300.0
    price_sync_interval: float = 30.0
    sync_on_startup: bool = True


def _valid_interval(value: object, minimum: float) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return value >= minimum


class SyncScheduler:
    """Runs market and price sync for every adapter on two independent timers.

    Each job is single-flight: a run requested while the same job is in
    flight returns ``None`` without touching any adapter. Adapters run one
    after another in the order given, and a failure in one venue never stops
    the rest.
    """

    def __init__(
        self,
        adapters: Sequence[SourceSyncAdapter],
        config: Optional[SchedulerConfig] = None,
        on_sync_complete: Optional[Callable[[str, SyncResult], None]] = None,
        on_sync_error: Optional[Callable[[str, Exception], None]] = None,
    ) -> None:
        self.adapters = list(adapters)
        self.config = config or SchedulerConfig()
        self.on_sync_complete = on_sync_complete
        self.on_sync_error = on_sync_error
        self._state = SchedulerState()
        self._market_lock = asyncio.Lock()
        self._price_lock = asyncio.Lock()
        self._timers: list[asyncio.Task] = []
        self._jobs: set[asyncio.Task] = set()
        self._triggered: dict[str, asyncio.Task] = {}

    @property
    def is_running(self) -> bool:
        return self._state.is_running

    async def start(self) -> None:
        if self._state.is_running:
            logger.info("Scheduler already running")
            return
        self._state.is_running = True
        logger.info("Starting sync scheduler")
        if self.config.sync_on_startup:
            logger.info("Running initial market sync")
            await self.run_market_sync()
            if not self._state.is_running:
                logger.info("Scheduler stopped during initial market sync")
                return
        self._start_timers()

    def stop(self) -> None:
        if not self._state.is_running:
            return
        for task in self._timers:
            task.cancel()
        self._timers = []
        self._state.is_running = False
        logger.info("Scheduler stopped")

    async def wait_idle(self) -> None:
        """Wait for spawned jobs to finish."""
        if self._jobs:
            await asyncio.gather(*list(self._jobs), return_exceptions=True)

    def _start_timers(self) -> None:
        for task in self._timers:
            task.cancel()
        self._timers = [
            asyncio.create_task(
                self._every(self.config.market_sync_interval, self.run_market_sync),
                name="market-sync-timer",
            ),
            asyncio.create_task(
                self._every(self.config.price_sync_interval, self.run_price_sync),
                name="price-sync-timer",
            ),
        ]
        logger.info(
            "Scheduler started: markets every %.0fs, prices every %.0fs",
            self.config.market_sync_interval,
            self.config.price_sync_interval,
        )

    async def _every(self, interval: float, job: Callable[[], Awaitable[object]]) -> None:
        while True:
            await asyncio.sleep(interval)
            self._spawn(job())

    def _spawn(self, coro: Awaitable[object]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._jobs.add(task)
        task.add_done_callback(self._jobs.discard)
        return task

    async def run_market_sync(
        self,
        options: Optional[SyncOptions] = None,
        venues: Optional[Iterable[str]] = None,
    ) -> Optional[SyncResult]:
        if self._market_lock.locked():
            logger.info("Market sync already in progress, skipping")
            return None
        async with self._market_lock:
            self._state.market_sync_running = True
            try:
                result = await self._run_job(
                    SyncKind.MARKETS, lambda adapter: adapter.sync_markets(options), venues
                )
            finally:
                self._state.market_sync_running = False
        self._state.last_market_sync = result.synced_at
        self._state.market_sync_count += 1
        if result.success:
            logger.info(
                "Market sync complete: created=%d updated=%d duration=%dms",
                result.markets_created,
                result.markets_updated,
                result.duration,
            )
        else:
            logger.warning("Market sync finished with %d error(s)", len(result.errors))
        self._finish(SyncKind.MARKETS, result)
        return result

    async def run_price_sync(self, venues: Optional[Iterable[str]] = None) -> Optional[SyncResult]:
        if self._price_lock.locked():
            logger.debug("Price sync already in progress, skipping")
            return None
        async with self._price_lock:
            self._state.price_sync_running = True
            try:
                result = await self._run_job(
                    SyncKind.PRICES, lambda adapter: adapter.sync_prices(), venues
                )
            finally:
                self._state.price_sync_running = False
        self._state.last_price_sync = result.synced_at
        self._state.price_sync_count += 1
        self._finish(SyncKind.PRICES, result)
        return result

    def trigger_market_sync(self, options: Optional[SyncOptions] = None) -> bool:
        return self._trigger(SyncKind.MARKETS, self._market_lock, lambda: self.run_market_sync(options))

    def trigger_price_sync(self) -> bool:
        return self._trigger(SyncKind.PRICES, self._price_lock, self.run_price_sync)

    def _trigger(
        self, kind: str, lock: asyncio.Lock, job: Callable[[], Awaitable[object]]
    ) -> bool:
        pending = self._triggered.get(kind)
        if lock.locked() or (pending is not None and not pending.done()):
            return False
        self._triggered[kind] = self._spawn(job())
        return True

    async def _run_job(
        self,
        kind: str,
        call: Callable[[SourceSyncAdapter], Awaitable[SyncResult]],
        venues: Optional[Iterable[str]],
    ) -> SyncResult:
        selected = set(venues) if venues is not None else None
        started = time.monotonic()
        created = 0
        updated = 0
        prices = 0
        errors: list[str] = []

        for adapter in self.adapters:
            if selected is not None and adapter.venue not in selected:
                continue
            try:
                result = await call(adapter)
            except Exception as exc:
                logger.exception("%s %s sync raised", adapter.venue, kind)
                errors.append(f"{adapter.venue}: {exc}")
                if self.on_sync_error:
                    self.on_sync_error(kind, exc)
                continue
            created += result.markets_created
            updated += result.markets_updated
            prices += result.prices_updated
            errors.extend(result.errors)

        return SyncResult(
            success=not errors,
            synced_at=datetime.now(timezone.utc),
            duration=int((time.monotonic() - started) * 1000),
            markets_created=created,
            markets_updated=updated,
            prices_updated=prices,
            errors=errors,
        )

    def _finish(self, kind: str, result: SyncResult) -> None:
        if result.errors:
            self._add_error(kind, result.errors[0])
        if self.on_sync_complete:
            self.on_sync_complete(kind, result)

    def _add_error(self, kind: str, message: str) -> None:
        self._state.errors.insert(
            0, SchedulerError(kind=kind, message=message, timestamp=datetime.now(timezone.utc))
        )
        del self._state.errors[MAX_STORED_ERRORS:]

    def get_state(self) -> SchedulerState:
        return replace(self._state, errors=list(self._state.errors))

    async def get_health(self) -> dict:
        checks = await asyncio.gather(*(adapter.health_check() for adapter in self.adapters))
        venues = {}
        for adapter, check in zip(self.adapters, checks):
            venues[adapter.venue] = {
                "healthy": check["healthy"],
                "details": check["details"],
                "stats": adapter.get_stats(),
            }
        return {"scheduler": self._state.is_running, "venues": venues}

    def update_config(
        self,
        market_sync_interval: object = None,
        price_sync_interval: object = None,
        sync_on_startup: object = None,
    ) -> SchedulerConfig:
        """Merge new settings; invalid or below-minimum values are dropped.

        A running scheduler restarts its timers so new intervals apply at once.
        The restart does not repeat the startup market sync.
        """
        changes = {}
        if _valid_interval(market_sync_interval, MIN_MARKET_SYNC_INTERVAL_SECONDS):
            changes["market_sync_interval"] = float(market_sync_interval)
        if _valid_interval(price_sync_interval, MIN_PRICE_SYNC_INTERVAL_SECONDS):
            changes["price_sync_interval"] = float(price_sync_interval)
        if isinstance(sync_on_startup, bool):
            changes["sync_on_startup"] = sync_on_startup

        self.config = replace(self.config, **changes)
        # During the initial market sync no timers exist yet; start() picks up the new config.
        if self._state.is_running and self._timers:
            self._start_timers()
        return self.config
