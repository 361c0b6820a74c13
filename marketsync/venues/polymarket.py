import asyncio
import logging
from typing import List, Optional

from marketsync.canonical import to_float
from marketsync.models import MarketStatus, NormalizedMarket, PriceQuote
from marketsync.venues.base import (
    VenueClient,
    VenueError,
    VenueProfile,
    parse_json_list,
    price_pair,
)

logger = logging.getLogger(__name__)

PROFILE = VenueProfile(
    slug="polymarket",
    display_name="Polymarket",
    base_url="https://gamma-api.polymarket.com",
    chain_id=137,
    batch_size=100,
    max_pages=20,
    page_delay_seconds=0.1,
    price_sync_cap=500,
    price_concurrency=20,
    price_delay_seconds=0.05,
)


class PolymarketClient(VenueClient):
    """Gamma API for listings, CLOB API for live prices."""

    venue = "polymarket"

    def __init__(self, gamma_url: str, clob_url: str, timeout_seconds: float = 10.0) -> None:
        super().__init__(gamma_url, timeout_seconds)
        self.clob_url = clob_url.rstrip("/")

    async def list_markets(
        self, limit: int, offset: int, active_only: bool = True
    ) -> List[NormalizedMarket]:
        params = {
            "limit": limit,
            "offset": offset,
            "order": "volume",
            "ascending": "false",
        }
        if active_only:
            params["active"] = "true"
            params["closed"] = "false"
        data = await self._get("/markets", params=params)
        batch = data.get("markets") if isinstance(data, dict) else data
        if not isinstance(batch, list):
            raise VenueError("polymarket markets response has unexpected shape")
        return [self.normalize(item) for item in batch if isinstance(item, dict)]

    async def get_market(self, external_id: str) -> Optional[NormalizedMarket]:
        try:
            data = await self._get(f"/markets/{external_id}")
        except VenueError as exc:
            if exc.status_code == 404:
                return None
            raise
        if not isinstance(data, dict) or not data:
            return None
        return self.normalize(data)

    async def get_prices(self, row: dict) -> Optional[PriceQuote]:
        token_ids = (row.get("platform_data") or {}).get("clob_token_ids") or []
        if len(token_ids) < 2:
            market = await self.get_market(row["external_id"])
            if market is None or market.yes_price is None or market.no_price is None:
                return None
            return PriceQuote(
                yes_price=market.yes_price,
                no_price=market.no_price,
                spread=market.spread,
            )

        yes_price, no_price = await asyncio.gather(
            self._clob_price(str(token_ids[0])),
            self._clob_price(str(token_ids[1])),
        )
        mid = (yes_price + (1.0 - no_price)) / 2
        return PriceQuote(
            yes_price=yes_price,
            no_price=no_price,
            spread=abs(yes_price + no_price - 1.0),
            mid_price=mid,
        )

    async def health_check(self) -> bool:
        gamma_ok, clob_ok = await asyncio.gather(
            self._ping("/markets", params={"limit": 1}),
            self._clob_ping(),
        )
        return gamma_ok and clob_ok

    async def _clob_price(self, token_id: str) -> float:
        data = await self._get_clob("/price", params={"token_id": token_id, "side": "buy"})
        price = to_float((data or {}).get("price"))
        if price is None:
            raise VenueError(f"polymarket CLOB returned no price for token {token_id}")
        return price

    async def _get_clob(self, path: str, params: Optional[dict] = None):
        return await self._get(path, params=params, base_url=self.clob_url)

    async def _clob_ping(self) -> bool:
        try:
            await self._get_clob("/")
        except VenueError as exc:
            logger.warning("polymarket CLOB health check failed: %s", exc)
            return False
        return True

    @staticmethod
    def normalize(item: dict) -> NormalizedMarket:
        prices = [to_float(value) for value in parse_json_list(item.get("outcomePrices"))]
        yes_price = prices[0] if len(prices) >= 1 else None
        no_price = prices[1] if len(prices) >= 2 else None
        yes_price, no_price = price_pair(yes_price, no_price)
        token_ids = [str(token) for token in parse_json_list(item.get("clobTokenIds"))]

        if item.get("closed"):
            status = MarketStatus.RESOLVED if item.get("umaResolutionStatus") == "resolved" else MarketStatus.CLOSED
        elif item.get("active") is False:
            status = MarketStatus.CLOSED
        else:
            status = MarketStatus.ACTIVE

        slug = item.get("slug")
        external_id = str(item.get("id") or item.get("conditionId") or "")
        if not external_id:
            raise ValueError("polymarket market without id")
        return NormalizedMarket(
            external_id=external_id,
            question=str(item.get("question") or item.get("title") or ""),
            description=item.get("description"),
            url=f"https://polymarket.com/market/{slug}" if slug else None,
            yes_price=yes_price,
            no_price=no_price,
            last_price=to_float(item.get("lastTradePrice")) or yes_price,
            volume=to_float(item.get("volumeNum") or item.get("volume")) or 0.0,
            liquidity=to_float(item.get("liquidityNum") or item.get("liquidity")) or 0.0,
            best_bid=to_float(item.get("bestBid")),
            best_ask=to_float(item.get("bestAsk")),
            spread=to_float(item.get("spread")),
            status=status,
            closes_at=item.get("endDate"),
            resolved_at=item.get("closedTime") if status == MarketStatus.RESOLVED else None,
            category=item.get("category"),
            platform_data={
                "slug": slug,
                "condition_id": item.get("conditionId"),
                "clob_token_ids": token_ids,
            },
        )
