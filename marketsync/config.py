import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

DEFAULT_VENUES = ("polymarket", "limitless", "manifold", "opinion")


@dataclass(frozen=True)
class AppConfig:
    db_path: str
    http_timeout_seconds: float

    market_sync_interval_seconds: float
    price_sync_interval_seconds: float
    sync_on_startup: bool
    enabled_venues: tuple[str, ...]

    polymarket_gamma_url: str
    polymarket_clob_url: str
    limitless_base_url: str
    manifold_base_url: str
    opinion_base_url: str
    opinion_api_key: Optional[str]

    polygon_rpc_url: str
    base_rpc_url: str
    rpc_timeout_seconds: float
    min_position_balance: float


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid float for {name}: {raw}") from exc


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid bool for {name}: {raw}")


def _get_venues(name: str) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return DEFAULT_VENUES
    venues = tuple(item.strip().lower() for item in raw.split(",") if item.strip())
    unknown = [venue for venue in venues if venue not in DEFAULT_VENUES]
    if unknown:
        raise ValueError(f"Unknown venue(s) in {name}: {', '.join(unknown)}")
    return venues


def _get_interval(name: str, default: float, minimum: float) -> float:
    value = _get_float(name, default)
    if value < minimum:
        raise ValueError(f"{name} must be at least {minimum:g} seconds, got {value:g}")
    return value


def load_config() -> AppConfig:
    load_dotenv()

    return AppConfig(
        db_path=os.getenv("MARKETSYNC_DB_PATH", "marketsync.db"),
        http_timeout_seconds=_get_float("HTTP_TIMEOUT_SECONDS", 10.0),
        market_sync_interval_seconds=_get_interval("MARKET_SYNC_INTERVAL_SECONDS", 300.0, 10.0),
        price_sync_interval_seconds=_get_interval("PRICE_SYNC_INTERVAL_SECONDS", 30.0, 5.0),
        sync_on_startup=_get_bool("SYNC_ON_STARTUP", True),
        enabled_venues=_get_venues("ENABLED_VENUES"),
        polymarket_gamma_url=os.getenv(
            "POLYMARKET_GAMMA_URL", "https://gamma-api.polymarket.com"
        ),
        polymarket_clob_url=os.getenv("POLYMARKET_CLOB_URL", "https://clob.polymarket.com"),
        limitless_base_url=os.getenv("LIMITLESS_BASE_URL", "https://api.limitless.exchange"),
        manifold_base_url=os.getenv("MANIFOLD_BASE_URL", "https://api.manifold.markets"),
        opinion_base_url=os.getenv(
            "OPINION_BASE_URL", "https://proxy.opinion.trade:8443/openapi"
        ),
        opinion_api_key=os.getenv("OPINION_API_KEY"),
        polygon_rpc_url=os.getenv("POLYGON_RPC_URL", "https://polygon-rpc.com"),
        base_rpc_url=os.getenv("BASE_RPC_URL", "https://mainnet.base.org"),
        rpc_timeout_seconds=_get_float("RPC_TIMEOUT_SECONDS", 10.0),
        min_position_balance=_get_float("MIN_POSITION_BALANCE", 0.0001),
    )
