from __future__ import annotations

import logging
from typing import Iterable

import yaml

from marketsync.balances import SUPPORTED_CHAINS
from marketsync.models import PositionDescriptor

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("market_id", "venue", "outcome", "contract_address", "token_id", "chain_id")


def _optional_float(value):
    if value is None:
        return None
    return float(value)


def _parse_token_id(value) -> int:
    # Outcome token ids exceed 2**64, so YAML files usually quote them.
    if isinstance(value, str):
        return int(value, 0)
    return int(value)


def _parse_position(raw: dict) -> PositionDescriptor:
    missing = [name for name in REQUIRED_FIELDS if raw.get(name) in (None, "")]
    if missing:
        raise ValueError(f"Position is missing {', '.join(missing)}: {raw}")
    return PositionDescriptor(
        market_id=str(raw["market_id"]),
        market_slug=str(raw.get("market_slug") or raw["market_id"]),
        venue=str(raw["venue"]),
        outcome=str(raw["outcome"]),
        contract_address=str(raw["contract_address"]),
        token_id=_parse_token_id(raw["token_id"]),
        chain_id=int(raw["chain_id"]),
        decimals=int(raw.get("decimals", 18)),
        question=str(raw.get("question") or ""),
        current_price=_optional_float(raw.get("current_price")),
    )


def load_positions(path: str) -> list[PositionDescriptor]:
    """Load position descriptors from a YAML (or JSON) file with a top-level ``positions`` list."""
    with open(path, "r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle)

    if isinstance(raw, dict):
        raw = raw.get("positions")
    if not isinstance(raw, list):
        raise ValueError("positions file must contain a 'positions' list")

    positions = [_parse_position(item) for item in raw if isinstance(item, dict)]
    _warn_unsupported(positions)
    return positions


def unsupported_chains(positions: Iterable[PositionDescriptor]) -> set[int]:
    return {position.chain_id for position in positions if position.chain_id not in SUPPORTED_CHAINS}


def _warn_unsupported(positions: list[PositionDescriptor]) -> None:
    chains = unsupported_chains(positions)
    if chains:
        logger.warning(
            "Positions reference unsupported chain(s): %s", ", ".join(str(c) for c in sorted(chains))
        )
