# chatrelay/common/http_client.py
from __future__ import annotations

import os

import requests
from requests.adapters import HTTPAdapter

USER_AGENT = "chatrelay/1.0"

_SESSION: requests.Session | None = None


def get_session() -> requests.Session:
    """Shared requests session (one per warm Lambda runtime).

    Retries are disabled at the adapter level: the relay never retries a
    send, and the completion provider does its own retrying.
    """
    global _SESSION
    if _SESSION is not None:
        return _SESSION

    s = requests.Session()

    pool_conn = int(os.getenv("HTTP_POOL_CONN", "32"))
    pool_max = int(os.getenv("HTTP_POOL_MAX", "32"))

    adapter = HTTPAdapter(
        pool_connections=pool_conn,
        pool_maxsize=pool_max,
        max_retries=0,
    )
    s.mount("https://", adapter)
    s.mount("http://", adapter)
    s.headers.update({"User-Agent": USER_AGENT})

    _SESSION = s
    return s


def parse_json_body(resp: requests.Response) -> dict:
    """Best-effort JSON decoding of a provider response."""
    if not resp.content:
        return {}
    try:
        payload = resp.json()
    except ValueError:
        return {"raw": resp.text}
    return payload if isinstance(payload, dict) else {"raw": payload}
