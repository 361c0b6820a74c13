from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from marketsync.http_client import get_json
from marketsync.models import NormalizedMarket, PriceQuote

logger = logging.getLogger(__name__)


class VenueError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PriceErrorAction:
    DELIST = "DELIST"
    IGNORE = "IGNORE"


@dataclass(frozen=True)
class VenueProfile:
    slug: str
    display_name: str
    base_url: str
    chain_id: Optional[int] = None
    batch_size: int = 100
    max_pages: int = 20
    page_delay_seconds: float = 0.1
    price_sync_cap: int = 500
    price_concurrency: int = 1
    price_delay_seconds: float = 0.05
    skip_closed: bool = False
    promotes_best_price: bool = False
    # Largest page the listing endpoint returns; larger batch sizes are clamped.
    max_page_size: Optional[int] = None
    # Status code -> PriceErrorAction for failures during price sync. Codes that
    # are not listed are reported as errors.
    price_errors: Dict[int, str] = field(default_factory=dict)

    def classify_price_error(self, exc: Exception) -> Optional[str]:
        status = getattr(exc, "status_code", None)
        if status is None:
            return None
        return self.price_errors.get(status)


class VenueClient:
    """Read-only client for one venue.

    Subclasses implement the capability contract the sync adapter consumes:
    ``list_markets``, ``get_market``, ``get_prices`` and ``health_check``.
    """

    venue = ""

    def __init__(self, base_url: str, timeout_seconds: float = 10.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds

    async def list_markets(
        self, limit: int, offset: int, active_only: bool = True
    ) -> List[NormalizedMarket]:
        raise NotImplementedError

    async def get_market(self, external_id: str) -> Optional[NormalizedMarket]:
        raise NotImplementedError

    async def get_prices(self, row: dict) -> Optional[PriceQuote]:
        """Current price pair for a stored market row (``external_id``, ``platform_data``)."""
        raise NotImplementedError

    async def health_check(self) -> bool:
        raise NotImplementedError

    def _headers(self) -> dict:
        return {"User-Agent": "marketsync"}

    async def _get(
        self, path: str, params: Optional[dict] = None, base_url: Optional[str] = None
    ) -> Any:
        url = f"{base_url or self.base_url}{path}"

        def _fetch():
            return get_json(
                url, params=params, headers=self._headers(), timeout=self.timeout_seconds
            )

        data, status = await asyncio.to_thread(_fetch)
        if status is None:
            raise VenueError(f"{self.venue} request failed: {url}")
        if status != 200:
            raise VenueError(f"{self.venue} API error: {status} for {path}", status_code=status)
        return data

    async def _ping(self, path: str, params: Optional[dict] = None) -> bool:
        try:
            await self._get(path, params=params)
        except VenueError as exc:
            logger.warning("%s health check failed: %s", self.venue, exc)
            return False
        return True


def parse_json_list(value: object) -> List[Any]:
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            return []
        if isinstance(parsed, list):
            return parsed
    return []


def price_pair(yes_price: Optional[float], no_price: Optional[float]) -> tuple[Optional[float], Optional[float]]:
    if yes_price is not None and no_price is None:
        no_price = round(1.0 - yes_price, 6)
    if no_price is not None and yes_price is None:
        yes_price = round(1.0 - no_price, 6)
    return yes_price, no_price


def epoch_ms_to_iso(value: object) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    try:
        seconds = float(value) / 1000.0
    except (TypeError, ValueError):
        return None
    return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()
