# Cross-venue identity is a text heuristic: two different questions that normalize
# to the same slug will share one canonical market.
import re
from typing import Optional

SLUG_MAX_LENGTH = 100

_DISALLOWED = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_HYPHENS = re.compile(r"-+")


def market_slug(question: str) -> str:
    text = (question or "").lower()
    text = _DISALLOWED.sub("", text)
    text = _WHITESPACE.sub("-", text)
    text = _HYPHENS.sub("-", text)
    return text[:SLUG_MAX_LENGTH]


def is_better_price(candidate: Optional[float], current: Optional[float]) -> bool:
    if candidate is None:
        return False
    if current is None:
        return True
    return candidate > current


def to_float(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number:
        return None
    return number
