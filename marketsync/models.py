from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


class HealthStatus:
    UNKNOWN = "UNKNOWN"
    HEALTHY = "HEALTHY"
    DEGRADED = "DEGRADED"


class SyncKind:
    MARKETS = "MARKETS"
    PRICES = "PRICES"


class SyncStatus:
    IN_PROGRESS = "IN_PROGRESS"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class MarketStatus:
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"
    RESOLVED = "RESOLVED"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class NormalizedMarket:
    external_id: str
    question: str
    status: str = MarketStatus.ACTIVE
    description: Optional[str] = None
    url: Optional[str] = None
    yes_price: Optional[float] = None
    no_price: Optional[float] = None
    last_price: Optional[float] = None
    volume: float = 0.0
    liquidity: float = 0.0
    best_bid: Optional[float] = None
    best_ask: Optional[float] = None
    spread: Optional[float] = None
    closes_at: Optional[str] = None
    resolved_at: Optional[str] = None
    resolution: Optional[str] = None
    category: Optional[str] = None
    platform_data: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.status == MarketStatus.ACTIVE


@dataclass(frozen=True)
class PriceQuote:
    yes_price: float
    no_price: float
    spread: Optional[float] = None
    mid_price: Optional[float] = None


@dataclass(frozen=True)
class UpsertOutcome:
    venue_market_id: int
    created: bool
    canonical_market_id: Optional[int] = None


@dataclass
class SyncResult:
    success: bool
    synced_at: datetime
    duration: int
    markets_created: int = 0
    markets_updated: int = 0
    prices_updated: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "synced_at": self.synced_at.isoformat(),
            "duration": self.duration,
            "markets_created": self.markets_created,
            "markets_updated": self.markets_updated,
            "prices_updated": self.prices_updated,
            "errors": list(self.errors),
        }


@dataclass(frozen=True)
class SyncOptions:
    batch_size: Optional[int] = None
    max_pages: Optional[int] = None
    active_only: bool = True


@dataclass(frozen=True)
class SchedulerError:
    kind: str
    message: str
    timestamp: datetime


@dataclass
class SchedulerState:
    is_running: bool = False
    market_sync_running: bool = False
    price_sync_running: bool = False
    last_market_sync: Optional[datetime] = None
    last_price_sync: Optional[datetime] = None
    market_sync_count: int = 0
    price_sync_count: int = 0
    errors: List[SchedulerError] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "is_running": self.is_running,
            "market_sync_running": self.market_sync_running,
            "price_sync_running": self.price_sync_running,
            "last_market_sync": _iso(self.last_market_sync),
            "last_price_sync": _iso(self.last_price_sync),
            "market_sync_count": self.market_sync_count,
            "price_sync_count": self.price_sync_count,
            "errors": [
                {"kind": err.kind, "message": err.message, "timestamp": err.timestamp.isoformat()}
                for err in self.errors
            ],
        }


@dataclass(frozen=True)
class PositionDescriptor:
    market_id: str
    market_slug: str
    venue: str
    outcome: str
    contract_address: str
    token_id: int
    chain_id: int
    decimals: int = 18
    question: str = ""
    current_price: Optional[float] = None


@dataclass(frozen=True)
class TokenBalance:
    contract_address: str
    token_id: int
    balance: int
    balance_formatted: float
    decimals: int


@dataclass(frozen=True)
class ScannedPosition:
    market_id: str
    market_slug: str
    venue: str
    outcome: str
    question: str
    contract_address: str
    token_id: int
    chain_id: int
    balance: int
    balance_formatted: float
    current_price: Optional[float] = None
    current_value: Optional[float] = None


@dataclass
class WalletScanResult:
    wallet: str
    positions: List[ScannedPosition]
    total_value: float
    scanned_at: datetime
    errors: List[str] = field(default_factory=list)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
