import asyncio
import logging
from typing import Any, List, Optional

from marketsync.canonical import to_float
from marketsync.models import MarketStatus, NormalizedMarket, PriceQuote
from marketsync.venues.base import VenueClient, VenueError, VenueProfile, price_pair

logger = logging.getLogger(__name__)

# The listing endpoint caps page size at 20.
MAX_PAGE_SIZE = 20

PROFILE = VenueProfile(
    slug="opinion",
    display_name="Opinion",
    base_url="https://proxy.opinion.trade:8443/openapi",
    chain_id=56,
    batch_size=20,
    max_pages=10,
    page_delay_seconds=0.3,
    price_sync_cap=500,
    price_concurrency=1,
    price_delay_seconds=0.1,
    max_page_size=MAX_PAGE_SIZE,
)

_STATUS_MAP = {
    "ACTIVE": MarketStatus.ACTIVE,
    "TRADING": MarketStatus.ACTIVE,
    "PAUSED": MarketStatus.CLOSED,
    "CLOSED": MarketStatus.CLOSED,
    "RESOLVED": MarketStatus.RESOLVED,
    "SETTLED": MarketStatus.RESOLVED,
    "CANCELLED": MarketStatus.CANCELLED,
    "VOIDED": MarketStatus.CANCELLED,
}


class OpinionClient(VenueClient):
    """Opinion open API on BNB Chain.

    Every response is wrapped as ``{"code", "msg", "result"}``; a non-zero code
    is raised as :class:`VenueError`.
    """

    venue = "opinion"

    def __init__(self, base_url: str, timeout_seconds: float = 10.0, api_key: str = "") -> None:
        super().__init__(base_url, timeout_seconds)
        self.api_key = api_key

    def _headers(self) -> dict:
        headers = super()._headers()
        if self.api_key:
            headers["apikey"] = self.api_key
        return headers

    async def _get(
        self, path: str, params: Optional[dict] = None, base_url: Optional[str] = None
    ) -> Any:
        envelope = await super()._get(path, params=params, base_url=base_url)
        if not isinstance(envelope, dict) or "code" not in envelope:
            raise VenueError(f"opinion API returned an unexpected body for {path}")
        if envelope.get("code") != 0:
            raise VenueError(f"opinion API error: {envelope.get('msg') or 'Unknown error'}")
        return envelope.get("result")

    async def list_markets(
        self, limit: int, offset: int, active_only: bool = True
    ) -> List[NormalizedMarket]:
        page_size = min(max(limit, 1), MAX_PAGE_SIZE)
        params = {"page": offset // page_size + 1, "limit": page_size}
        if active_only:
            params["status"] = "ACTIVE"
        result = await self._get("/market", params=params)
        batch = result.get("list") if isinstance(result, dict) else result
        if not isinstance(batch, list):
            raise VenueError("opinion markets response has unexpected shape")
        return [self.normalize(item) for item in batch if isinstance(item, dict) and item.get("marketId")]

    async def get_market(self, external_id: str) -> Optional[NormalizedMarket]:
        try:
            result = await self._get(f"/market/{external_id}")
        except VenueError as exc:
            if exc.status_code == 404:
                return None
            raise
        if not isinstance(result, dict) or not result.get("marketId"):
            return None
        return self.normalize(result)

    async def get_prices(self, row: dict) -> Optional[PriceQuote]:
        token_ids = (row.get("platform_data") or {}).get("token_ids") or []
        if len(token_ids) < 2:
            market = await self.get_market(row["external_id"])
            if market is None or market.yes_price is None or market.no_price is None:
                return None
            return PriceQuote(yes_price=market.yes_price, no_price=market.no_price)

        yes_price, no_price = await asyncio.gather(
            self._latest_price(str(token_ids[0])),
            self._latest_price(str(token_ids[1])),
        )
        yes_price, no_price = price_pair(yes_price, no_price)
        if yes_price is None or no_price is None:
            return None
        return PriceQuote(
            yes_price=yes_price,
            no_price=no_price,
            spread=abs(yes_price + no_price - 1.0),
            mid_price=(yes_price + (1.0 - no_price)) / 2,
        )

    async def health_check(self) -> bool:
        return await self._ping("/market", params={"limit": 1})

    async def _latest_price(self, token_id: str) -> Optional[float]:
        result = await self._get("/token/latest-price", params={"tokenId": token_id})
        if not isinstance(result, dict):
            return None
        return to_float(result.get("price"))

    @staticmethod
    def normalize(item: dict) -> NormalizedMarket:
        outcomes = [outcome for outcome in item.get("outcomes") or [] if isinstance(outcome, dict)]
        yes_price = to_float(outcomes[0].get("price")) if len(outcomes) >= 1 else None
        no_price = to_float(outcomes[1].get("price")) if len(outcomes) >= 2 else None
        yes_price, no_price = price_pair(yes_price, no_price)

        status = _STATUS_MAP.get(str(item.get("status") or "ACTIVE").upper(), MarketStatus.ACTIVE)
        market_id = str(item["marketId"])
        return NormalizedMarket(
            external_id=market_id,
            question=str(item.get("title") or ""),
            description=item.get("description"),
            url=f"https://opinion.trade/market/{market_id}",
            yes_price=yes_price,
            no_price=no_price,
            last_price=yes_price,
            volume=to_float(item.get("volume")) or 0.0,
            liquidity=to_float(item.get("liquidity")) or 0.0,
            status=status,
            closes_at=item.get("expirationTime"),
            resolved_at=item.get("resolutionTime"),
            resolution=item.get("winningOutcome"),
            category=item.get("category"),
            platform_data={
                "market_id": market_id,
                "quote_token": item.get("quoteToken"),
                "token_ids": [str(outcome.get("tokenId")) for outcome in outcomes if outcome.get("tokenId")],
            },
        )
