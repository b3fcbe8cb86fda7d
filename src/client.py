"""HTTP client factories for flagscope.

The Roblox client carries the account cookie; the verifier client never
does. Both are plain httpx.AsyncClient instances whose lifecycle is owned
by the caller (``async with``), so it is obvious when connections close.
"""

from __future__ import annotations

import logging
import os

import httpx
from dotenv import load_dotenv

DEFAULT_USER_AGENT = "flagscope/0.1"


def _limits(max_connections: int) -> httpx.Limits:
    return httpx.Limits(
        max_connections=max_connections,
        max_keepalive_connections=max(1, max_connections // 2),
        keepalive_expiry=20,
    )


def build_verifier_client(
    user_agent: str = DEFAULT_USER_AGENT,
    timeout_s: float = 30.0,
    max_connections: int = 100,
) -> httpx.AsyncClient:
    """Create the client used for batch lookups."""

    return httpx.AsyncClient(
        headers={"Content-Type": "application/json", "User-Agent": user_agent},
        timeout=timeout_s,
        limits=_limits(max_connections),
    )


def build_roblox_client(
    user_agent: str = DEFAULT_USER_AGENT,
    timeout_s: float = 30.0,
    max_connections: int = 20,
) -> httpx.AsyncClient:
    """Create the Roblox API client from environment variables.

    We read COOKIE (the .ROBLOSECURITY value) via python-dotenv to keep the
    secret out of the repo and the config file.
    """

    load_dotenv()

    cookie = os.getenv("COOKIE")
    if not cookie:
        raise RuntimeError("COOKIE environment variable (.ROBLOSECURITY) is missing")

    logging.getLogger(__name__).info("Initializing Roblox HTTP client")

    return httpx.AsyncClient(
        headers={"User-Agent": user_agent, "Cookie": f".ROBLOSECURITY={cookie}"},
        timeout=timeout_s,
        limits=_limits(max_connections),
    )
