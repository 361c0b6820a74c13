from __future__ import annotations

import logging
from typing import Optional

from marketsync.canonical import is_better_price, market_slug, to_float
from marketsync.models import NormalizedMarket, UpsertOutcome
from marketsync.storage import (
    create_canonical_market,
    create_venue_market,
    find_canonical_market,
    find_venue_market,
    insert_price_snapshot,
    update_canonical_market,
    update_venue_market,
    utc_now,
)

logger = logging.getLogger(__name__)


class MarketReconciler:
    """Upserts venue-scoped markets and links them to canonical markets by slug.

    ``promotes_best_price`` decides what happens when a new venue market lands on
    an existing canonical market: if false the canonical record is left as the
    first venue wrote it; if true each side (YES/NO) is taken over when the new
    venue quotes a strictly higher price.
    """

    def __init__(self, db_path: str, venue: str, promotes_best_price: bool = False) -> None:
        self.db_path = db_path
        self.venue = venue
        self.promotes_best_price = promotes_best_price

    def upsert(self, market: NormalizedMarket, venue_config_id: int) -> UpsertOutcome:
        existing = find_venue_market(self.db_path, venue_config_id, market.external_id)
        fields = self._market_fields(market)

        if existing:
            update_venue_market(self.db_path, existing["id"], fields)
            self._snapshot(existing["id"], market)
            return UpsertOutcome(
                venue_market_id=existing["id"],
                created=False,
                canonical_market_id=existing.get("canonical_market_id"),
            )

        venue_market_id = create_venue_market(
            self.db_path, venue_config_id, market.external_id, fields
        )
        self._snapshot(venue_market_id, market)
        canonical_market_id = self.link(venue_market_id, market)
        return UpsertOutcome(
            venue_market_id=venue_market_id,
            created=True,
            canonical_market_id=canonical_market_id,
        )

    def link(self, venue_market_id: int, market: NormalizedMarket) -> int:
        slug = market_slug(market.question)
        yes_price = to_float(market.yes_price)
        no_price = to_float(market.no_price)
        volume = to_float(market.volume) or 0.0
        liquidity = to_float(market.liquidity) or 0.0

        canonical = find_canonical_market(self.db_path, slug)
        if canonical is None:
            canonical_id = create_canonical_market(
                self.db_path,
                slug,
                {
                    "question": market.question,
                    "description": market.description,
                    "category": market.category,
                    "best_yes_price": yes_price,
                    "best_no_price": no_price,
                    "best_yes_venue": self.venue,
                    "best_no_venue": self.venue,
                    "total_volume": volume,
                    "total_liquidity": liquidity,
                    "active": market.is_active,
                    "resolution_date": market.closes_at,
                    "updated_at": utc_now(),
                },
            )
            logger.debug("Created canonical market %s for %s", slug, self.venue)
        else:
            canonical_id = canonical["id"]
            updates = {
                "total_volume": (canonical.get("total_volume") or 0.0) + volume,
                "total_liquidity": (canonical.get("total_liquidity") or 0.0) + liquidity,
            }
            if self.promotes_best_price:
                updates.update(self._price_promotions(canonical, yes_price, no_price))
            updates["updated_at"] = utc_now()
            update_canonical_market(self.db_path, canonical_id, updates)

        update_venue_market(self.db_path, venue_market_id, {"canonical_market_id": canonical_id})
        return canonical_id

    def _price_promotions(
        self, canonical: dict, yes_price: Optional[float], no_price: Optional[float]
    ) -> dict:
        updates = {}
        if is_better_price(yes_price, canonical.get("best_yes_price")):
            updates["best_yes_price"] = yes_price
            updates["best_yes_venue"] = self.venue
        if is_better_price(no_price, canonical.get("best_no_price")):
            updates["best_no_price"] = no_price
            updates["best_no_venue"] = self.venue
        return updates

    def _snapshot(self, venue_market_id: int, market: NormalizedMarket) -> None:
        yes_price = to_float(market.yes_price)
        no_price = to_float(market.no_price)
        if yes_price is None or no_price is None:
            return
        insert_price_snapshot(
            self.db_path,
            venue_market_id,
            yes_price,
            no_price,
            volume=to_float(market.volume) or 0.0,
            liquidity=to_float(market.liquidity) or 0.0,
            best_bid=to_float(market.best_bid),
            best_ask=to_float(market.best_ask),
        )

    @staticmethod
    def _market_fields(market: NormalizedMarket) -> dict:
        return {
            "question": market.question,
            "description": market.description,
            "url": market.url,
            "yes_price": to_float(market.yes_price),
            "no_price": to_float(market.no_price),
            "last_price": to_float(market.last_price),
            "volume": to_float(market.volume) or 0.0,
            "liquidity": to_float(market.liquidity) or 0.0,
            "best_bid": to_float(market.best_bid),
            "best_ask": to_float(market.best_ask),
            "spread": to_float(market.spread),
            "active": market.is_active,
            "closes_at": market.closes_at,
            "resolved_at": market.resolved_at,
            "resolution": market.resolution,
            "category": market.category,
            "platform_data": market.platform_data or {},
            "synced_at": utc_now(),
        }
