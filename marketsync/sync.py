from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Optional

from marketsync.canonical import to_float
from marketsync.ledger import SyncLedger
from marketsync.models import HealthStatus, SyncKind, SyncOptions, SyncResult
from marketsync.reconciler import MarketReconciler
from marketsync.storage import (
    count_venue_markets,
    create_venue_config,
    get_venue_config,
    insert_price_snapshot,
    list_price_candidates,
    ping,
    update_venue_health,
    update_venue_market,
    utc_now,
)
from marketsync.venues.base import PriceErrorAction, VenueClient, VenueError, VenueProfile

logger = logging.getLogger(__name__)


class SourceSyncAdapter:
    """Pulls one venue's markets and prices into the local store.

    All per-venue behaviour comes from the ``VenueProfile`` (page sizes, delays,
    price-sync caps, error classification) and the ``VenueClient`` it wraps.
    """

    def __init__(
        self,
        profile: VenueProfile,
        client: VenueClient,
        db_path: str,
        ledger: Optional[SyncLedger] = None,
    ) -> None:
        self.profile = profile
        self.client = client
        self.db_path = db_path
        self.ledger = ledger or SyncLedger(db_path)
        self.reconciler = MarketReconciler(
            db_path, profile.slug, promotes_best_price=profile.promotes_best_price
        )
        self._venue_config_id: Optional[int] = None

    @property
    def venue(self) -> str:
        return self.profile.slug

    def ensure_venue_config(self) -> int:
        if self._venue_config_id is not None:
            return self._venue_config_id
        row = get_venue_config(self.db_path, self.profile.slug)
        if row:
            self._venue_config_id = int(row["id"])
        else:
            self._venue_config_id = create_venue_config(
                self.db_path,
                self.profile.slug,
                self.profile.display_name,
                self.profile.base_url,
                self.profile.chain_id,
            )
            logger.info("Registered venue %s (id=%d)", self.venue, self._venue_config_id)
        return self._venue_config_id

    async def sync_markets(self, options: Optional[SyncOptions] = None) -> SyncResult:
        started = time.monotonic()
        try:
            return await self._sync_markets(options or SyncOptions(), started)
        except Exception as exc:
            logger.exception("%s market sync failed", self.venue)
            return self._failed(started, f"{self.venue}: {exc}")

    async def sync_prices(self) -> SyncResult:
        started = time.monotonic()
        try:
            return await self._sync_prices(started)
        except Exception as exc:
            logger.exception("%s price sync failed", self.venue)
            return self._failed(started, f"{self.venue}: {exc}")

    async def _sync_markets(self, options: SyncOptions, started: float) -> SyncResult:
        batch_size = options.batch_size or self.profile.batch_size
        max_pages = options.max_pages or self.profile.max_pages
        if self.profile.max_page_size:
            batch_size = min(batch_size, self.profile.max_page_size)
        created = 0
        updated = 0
        prices_updated = 0
        errors: list[str] = []

        venue_config_id = self.ensure_venue_config()
        entry_id = self.ledger.open(self.venue, SyncKind.MARKETS)

        for page in range(max_pages):
            if page > 0:
                await asyncio.sleep(self.profile.page_delay_seconds)
            try:
                markets = await self.client.list_markets(
                    limit=batch_size,
                    offset=page * batch_size,
                    active_only=options.active_only,
                )
            except Exception as exc:
                errors.append(f"{self.venue}: failed to fetch markets page {page + 1}: {exc}")
                logger.warning("%s page %d fetch failed: %s", self.venue, page + 1, exc)
                break

            for market in markets:
                try:
                    outcome = self.reconciler.upsert(market, venue_config_id)
                except Exception as exc:
                    errors.append(f"{self.venue}: failed to sync market {market.external_id}: {exc}")
                    continue
                if outcome.created:
                    created += 1
                else:
                    updated += 1
                # Each upsert also writes the row's prices.
                prices_updated += 1

            if len(markets) < batch_size:
                break

        duration = _elapsed_ms(started)
        self.ledger.close(
            entry_id,
            errors,
            duration,
            markets_updated=created + updated,
            prices_updated=prices_updated,
        )
        health = HealthStatus.HEALTHY if not errors else HealthStatus.DEGRADED
        update_venue_health(self.db_path, venue_config_id, health)
        if errors:
            logger.warning(
                "%s market sync finished with %d error(s): created=%d updated=%d",
                self.venue,
                len(errors),
                created,
                updated,
            )
        else:
            logger.info("%s market sync: created=%d updated=%d in %dms", self.venue, created, updated, duration)
        return SyncResult(
            success=not errors,
            synced_at=datetime.now(timezone.utc),
            duration=duration,
            markets_created=created,
            markets_updated=updated,
            prices_updated=prices_updated,
            errors=errors,
        )

    async def _sync_prices(self, started: float) -> SyncResult:
        errors: list[str] = []
        updated = 0

        venue_config_id = self.ensure_venue_config()
        entry_id = self.ledger.open(self.venue, SyncKind.PRICES)
        rows = list_price_candidates(
            self.db_path,
            venue_config_id,
            limit=self.profile.price_sync_cap,
            open_only=self.profile.skip_closed,
        )

        step = max(self.profile.price_concurrency, 1)
        for start in range(0, len(rows), step):
            if start > 0:
                await asyncio.sleep(self.profile.price_delay_seconds)
            batch = rows[start:start + step]
            outcomes = await asyncio.gather(*(self._refresh_price(row) for row in batch))
            for refreshed, error in outcomes:
                if refreshed:
                    updated += 1
                if error:
                    errors.append(error)

        duration = _elapsed_ms(started)
        self.ledger.close(entry_id, errors, duration, prices_updated=updated)
        logger.info(
            "%s price sync: %d/%d updated, %d error(s) in %dms",
            self.venue,
            updated,
            len(rows),
            len(errors),
            duration,
        )
        return SyncResult(
            success=not errors,
            synced_at=datetime.now(timezone.utc),
            duration=duration,
            prices_updated=updated,
            errors=errors,
        )

    async def _refresh_price(self, row: dict) -> tuple[bool, Optional[str]]:
        external_id = row["external_id"]
        try:
            quote = await self.client.get_prices(row)
        except VenueError as exc:
            action = self.profile.classify_price_error(exc)
            if action == PriceErrorAction.DELIST:
                update_venue_market(self.db_path, row["id"], {"active": False})
                logger.info("%s market %s delisted", self.venue, external_id)
                return False, None
            if action == PriceErrorAction.IGNORE:
                return False, None
            return False, f"{self.venue}: failed to update price for market {external_id}: {exc}"
        except Exception as exc:
            return False, f"{self.venue}: failed to update price for market {external_id}: {exc}"

        if quote is None:
            return False, None
        yes_price = to_float(quote.yes_price)
        no_price = to_float(quote.no_price)
        if yes_price is None or no_price is None:
            return False, None
        try:
            update_venue_market(
                self.db_path,
                row["id"],
                {
                    "yes_price": yes_price,
                    "no_price": no_price,
                    "last_price": yes_price,
                    "spread": to_float(quote.spread),
                    "synced_at": utc_now(),
                },
            )
            insert_price_snapshot(self.db_path, row["id"], yes_price, no_price)
        except Exception as exc:
            return False, f"{self.venue}: failed to update price for market {external_id}: {exc}"
        return True, None

    async def health_check(self) -> dict:
        try:
            venue_ok = await self.client.health_check()
        except Exception as exc:
            logger.warning("%s health check raised: %s", self.venue, exc)
            venue_ok = False
        storage_ok = ping(self.db_path)
        return {
            "healthy": bool(venue_ok and storage_ok),
            "details": {"api": bool(venue_ok), "storage": storage_ok},
        }

    def get_stats(self) -> dict:
        venue_config_id = self.ensure_venue_config()
        last_sync = self.ledger.last_success(self.venue)
        return {
            "total_markets": count_venue_markets(self.db_path, venue_config_id),
            "active_markets": count_venue_markets(self.db_path, venue_config_id, active_only=True),
            "last_sync": last_sync.isoformat() if last_sync else None,
            "recent_errors": self.ledger.recent_failures(self.venue, hours=24),
        }

    @staticmethod
    def _failed(started: float, message: str) -> SyncResult:
        return SyncResult(
            success=False,
            synced_at=datetime.now(timezone.utc),
            duration=_elapsed_ms(started),
            errors=[message],
        )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
