from dataclasses import replace

from marketsync.config import AppConfig
from marketsync.venues import limitless, manifold, opinion, polymarket
from marketsync.venues.base import VenueClient, VenueError, VenueProfile
from marketsync.venues.limitless import LimitlessClient
from marketsync.venues.manifold import ManifoldClient
from marketsync.venues.opinion import OpinionClient
from marketsync.venues.polymarket import PolymarketClient

PROFILES = {
    "polymarket": polymarket.PROFILE,
    "limitless": limitless.PROFILE,
    "manifold": manifold.PROFILE,
    "opinion": opinion.PROFILE,
}


def build_client(slug: str, config: AppConfig) -> tuple[VenueProfile, VenueClient]:
    timeout = config.http_timeout_seconds
    if slug == "polymarket":
        client = PolymarketClient(config.polymarket_gamma_url, config.polymarket_clob_url, timeout)
        base_url = config.polymarket_gamma_url
    elif slug == "limitless":
        client = LimitlessClient(config.limitless_base_url, timeout)
        base_url = config.limitless_base_url
    elif slug == "manifold":
        client = ManifoldClient(config.manifold_base_url, timeout)
        base_url = config.manifold_base_url
    elif slug == "opinion":
        client = OpinionClient(config.opinion_base_url, timeout, api_key=config.opinion_api_key or "")
        base_url = config.opinion_base_url
    else:
        raise ValueError(f"Unknown venue: {slug}")
    return replace(PROFILES[slug], base_url=base_url), client


def build_clients(config: AppConfig) -> list[tuple[VenueProfile, VenueClient]]:
    return [build_client(slug, config) for slug in config.enabled_venues]


__all__ = [
    "LimitlessClient",
    "ManifoldClient",
    "OpinionClient",
    "PROFILES",
    "PolymarketClient",
    "VenueClient",
    "VenueError",
    "VenueProfile",
    "build_client",
    "build_clients",
]
