import logging
from typing import List, Optional

from marketsync.canonical import to_float
from marketsync.models import MarketStatus, NormalizedMarket, PriceQuote
from marketsync.venues.base import (
    PriceErrorAction,
    VenueClient,
    VenueError,
    VenueProfile,
    epoch_ms_to_iso,
    price_pair,
)

logger = logging.getLogger(__name__)

PROFILE = VenueProfile(
    slug="limitless",
    display_name="Limitless",
    base_url="https://api.limitless.exchange",
    chain_id=8453,
    batch_size=25,
    max_pages=20,
    page_delay_seconds=0.25,
    price_sync_cap=500,
    price_concurrency=1,
    price_delay_seconds=0.1,
    skip_closed=True,
    promotes_best_price=True,
    price_errors={404: PriceErrorAction.DELIST, 400: PriceErrorAction.IGNORE},
)

COLLATERAL_DECIMALS = 6

_STATUS_MAP = {
    "FUNDED": MarketStatus.ACTIVE,
    "ACTIVE": MarketStatus.ACTIVE,
    "TRADING": MarketStatus.ACTIVE,
    "CLOSED": MarketStatus.CLOSED,
    "ENDED": MarketStatus.CLOSED,
    "RESOLVED": MarketStatus.RESOLVED,
    "SETTLED": MarketStatus.RESOLVED,
    "CANCELLED": MarketStatus.CANCELLED,
    "VOIDED": MarketStatus.CANCELLED,
}


class LimitlessClient(VenueClient):
    """Limitless Exchange REST API. Markets are addressed by slug."""

    venue = "limitless"

    async def list_markets(
        self, limit: int, offset: int, active_only: bool = True
    ) -> List[NormalizedMarket]:
        # The active listing pages server-side in fixed pages and rejects a limit param.
        page = offset // max(limit, 1) + 1
        data = await self._get("/markets/active", params={"page": page})
        if isinstance(data, dict):
            batch = data.get("data") or data.get("markets") or []
        elif isinstance(data, list):
            batch = data
        else:
            raise VenueError("limitless markets response has unexpected shape")
        markets = [self.normalize(item) for item in batch if isinstance(item, dict) and item.get("slug")]
        if active_only:
            markets = [market for market in markets if market.is_active]
        return markets

    async def get_market(self, external_id: str) -> Optional[NormalizedMarket]:
        try:
            data = await self._get(f"/markets/{external_id}")
        except VenueError as exc:
            if exc.status_code == 404:
                return None
            raise
        if not isinstance(data, dict) or not data.get("slug"):
            return None
        return self.normalize(data)

    async def get_prices(self, row: dict) -> Optional[PriceQuote]:
        slug = (row.get("platform_data") or {}).get("slug") or row["external_id"]
        book = await self._get(f"/markets/{slug}/orderbook")
        if not isinstance(book, dict):
            return None

        best_bid = _best_level(book.get("bids"), highest=True)
        best_ask = _best_level(book.get("asks"), highest=False)
        mid = to_float(book.get("adjustedMidpoint"))
        if mid is None and best_bid is not None and best_ask is not None:
            mid = (best_bid + best_ask) / 2
        if mid is None:
            mid = to_float(book.get("lastTradePrice"))
        if mid is None:
            return None

        spread = best_ask - best_bid if best_bid is not None and best_ask is not None else None
        return PriceQuote(
            yes_price=mid,
            no_price=round(1.0 - mid, 6),
            spread=spread,
            mid_price=mid,
        )

    async def health_check(self) -> bool:
        return await self._ping("/markets/categories/count")

    @staticmethod
    def normalize(item: dict) -> NormalizedMarket:
        yes_price = None
        no_price = None
        prices = item.get("prices")
        if isinstance(prices, list) and len(prices) >= 2:
            yes_price = to_float(prices[0])
            no_price = to_float(prices[1])
        yes_price, no_price = price_pair(yes_price, no_price)

        raw_status = str(item.get("status") or "").upper()
        status = _STATUS_MAP.get(raw_status)
        if status is None:
            status = MarketStatus.CLOSED if item.get("expired") else MarketStatus.ACTIVE

        collateral = item.get("collateralToken") or {}
        decimals = collateral.get("decimals") or COLLATERAL_DECIMALS
        if item.get("expirationTimestamp"):
            closes_at = epoch_ms_to_iso(item.get("expirationTimestamp"))
        else:
            closes_at = item.get("expirationDate") or item.get("deadline")

        categories = item.get("categories") or []
        tokens = item.get("tokens") or {}
        slug = item["slug"]
        return NormalizedMarket(
            external_id=slug,
            question=str(item.get("title") or ""),
            description=item.get("description"),
            url=f"https://limitless.exchange/markets/{slug}",
            yes_price=yes_price,
            no_price=no_price,
            last_price=yes_price,
            volume=from_base_units(item.get("volume"), decimals),
            liquidity=from_base_units(item.get("liquidity"), decimals),
            status=status,
            closes_at=closes_at,
            resolved_at=item.get("resolutionDate") if status == MarketStatus.RESOLVED else None,
            category=categories[0] if categories else item.get("category"),
            platform_data={
                "slug": slug,
                "address": item.get("address"),
                "trade_type": item.get("tradeType"),
                "yes_token_id": tokens.get("yes") or item.get("yesTokenId"),
                "no_token_id": tokens.get("no") or item.get("noTokenId"),
            },
        )


def from_base_units(value: object, decimals: int = COLLATERAL_DECIMALS) -> float:
    """Convert a raw collateral amount (micro-USDC by default) to whole units."""
    amount = to_float(value)
    if amount is None:
        return 0.0
    return amount / (10 ** decimals)


def _best_level(levels: object, highest: bool) -> Optional[float]:
    if not isinstance(levels, list):
        return None
    prices = [to_float(level.get("price")) for level in levels if isinstance(level, dict)]
    prices = [price for price in prices if price is not None]
    if not prices:
        return None
    return max(prices) if highest else min(prices)
