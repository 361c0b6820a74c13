import logging
from datetime import datetime, timezone
from typing import List, Optional

from marketsync.canonical import to_float
from marketsync.models import MarketStatus, NormalizedMarket, PriceQuote
from marketsync.venues.base import (
    VenueClient,
    VenueError,
    VenueProfile,
    epoch_ms_to_iso,
    price_pair,
)

logger = logging.getLogger(__name__)

PROFILE = VenueProfile(
    slug="manifold",
    display_name="Manifold Markets",
    base_url="https://api.manifold.markets",
    chain_id=None,
    batch_size=100,
    max_pages=5,
    page_delay_seconds=0.2,
    price_sync_cap=100,
    price_concurrency=1,
    price_delay_seconds=0.05,
)


class ManifoldClient(VenueClient):
    """Manifold public API. Play-money venue, binary markets only."""

    venue = "manifold"

    async def list_markets(
        self, limit: int, offset: int, active_only: bool = True
    ) -> List[NormalizedMarket]:
        data = await self._get(
            "/v0/search-markets",
            params={
                "filter": "open" if active_only else "all",
                "sort": "score",
                "contractType": "BINARY",
                "limit": limit,
                "offset": offset,
            },
        )
        if not isinstance(data, list):
            raise VenueError("manifold markets response has unexpected shape")
        return [self.normalize(item) for item in data if isinstance(item, dict) and item.get("id")]

    async def get_market(self, external_id: str) -> Optional[NormalizedMarket]:
        try:
            data = await self._get(f"/v0/market/{external_id}")
        except VenueError as exc:
            if exc.status_code == 404:
                return None
            raise
        if not isinstance(data, dict) or not data.get("id"):
            return None
        return self.normalize(data)

    async def get_prices(self, row: dict) -> Optional[PriceQuote]:
        # CPMM markets have no order book; the pool probability is the price.
        market = await self.get_market(row["external_id"])
        if market is None or market.yes_price is None or market.no_price is None:
            return None
        return PriceQuote(
            yes_price=market.yes_price,
            no_price=market.no_price,
            spread=0.0,
            mid_price=market.yes_price,
        )

    async def health_check(self) -> bool:
        return await self._ping("/v0/markets", params={"limit": 1})

    @staticmethod
    def normalize(item: dict, now: Optional[datetime] = None) -> NormalizedMarket:
        probability = to_float(item.get("probability"))
        if probability is None:
            probability = to_float(item.get("p"))
        yes_price, no_price = price_pair(probability, None)

        now = now or datetime.now(timezone.utc)
        close_time = to_float(item.get("closeTime"))
        if item.get("isResolved"):
            status = MarketStatus.CANCELLED if item.get("resolution") == "CANCEL" else MarketStatus.RESOLVED
        elif close_time is not None and close_time < now.timestamp() * 1000:
            status = MarketStatus.CLOSED
        else:
            status = MarketStatus.ACTIVE

        liquidity = to_float(item.get("totalLiquidity"))
        if not liquidity and isinstance(item.get("pool"), dict):
            liquidity = sum(to_float(value) or 0.0 for value in item["pool"].values())

        slug = item.get("slug")
        url = item.get("url")
        if not url and slug and item.get("creatorUsername"):
            url = f"https://manifold.markets/{item['creatorUsername']}/{slug}"
        groups = item.get("groupSlugs") or []
        return NormalizedMarket(
            external_id=str(item["id"]),
            question=str(item.get("question") or ""),
            description=item.get("textDescription"),
            url=url,
            yes_price=yes_price,
            no_price=no_price,
            last_price=yes_price,
            volume=to_float(item.get("volume")) or 0.0,
            liquidity=liquidity or 0.0,
            spread=0.0 if yes_price is not None else None,
            status=status,
            closes_at=epoch_ms_to_iso(item.get("closeTime")),
            resolved_at=epoch_ms_to_iso(item.get("resolutionTime")),
            resolution=item.get("resolution"),
            category=groups[0] if groups else None,
            platform_data={
                "slug": slug,
                "mechanism": item.get("mechanism"),
                "outcome_type": item.get("outcomeType"),
                "volume_24h": to_float(item.get("volume24Hours")),
            },
        )
