from __future__ import annotations

import time
from typing import Any, Optional

import requests


def get_json(
    url: str,
    params: Optional[dict] = None,
    headers: Optional[dict] = None,
    timeout: float = 10.0,
    retries: int = 3,
    backoff: float = 0.5,
) -> tuple[Optional[Any], Optional[int]]:
    """GET a JSON document.

    Returns ``(payload, status)``. Server errors and transport failures are
    retried with exponential backoff; a transport failure on the last attempt
    yields ``(None, None)``. Non-JSON bodies yield ``(None, status)``.
    """
    for attempt in range(retries):
        try:
            resp = requests.get(url, params=params, headers=headers, timeout=timeout)
        except requests.RequestException:
            if attempt < retries - 1:
                time.sleep(backoff * (2 ** attempt))
                continue
            return None, None
        if (resp.status_code >= 500 or resp.status_code == 429) and attempt < retries - 1:
            time.sleep(backoff * (2 ** attempt))
            continue
        try:
            return resp.json(), resp.status_code
        except ValueError:
            return None, resp.status_code
    return None, None
