"""Batch lookup adapter for a Rotector-style verification API.

Implements the core VerifierPort over an httpx.AsyncClient. Every request,
including retries, passes through the run's RateGate first.
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Any, Mapping, Optional, Sequence

import httpx

from core.backoff import retry_delay_ms
from core.config import BackoffConfig, RateLimitConfig
from core.errors import ClassificationError, RetriesExhaustedError, ServiceLogicalError
from core.models import VerificationResult
from core.rate_gate import RateGate, Sleep

LOGGER = logging.getLogger(__name__)

DEFAULT_LOOKUP_URL = "https://roscoe.rotector.com/v1/lookup/roblox/user"


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Return Retry-After in seconds, or None when absent, not numeric or not finite."""

    if value is None:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    if not math.isfinite(seconds) or seconds <= 0:
        return None
    return seconds


def parse_lookup_data(data: Mapping[str, Any]) -> dict[int, VerificationResult]:
    """Convert the response ``data`` mapping into results keyed by int id.

    Entries with an unknown flag level (or otherwise malformed) are dropped
    and logged so the identifier stays unresolved instead of misclassified.
    """

    results: dict[int, VerificationResult] = {}
    for key, entry in data.items():
        try:
            result = VerificationResult.from_payload(entry)
        except (ClassificationError, AttributeError, KeyError, TypeError, ValueError) as exc:
            LOGGER.warning("Dropping lookup entry %s: %s", key, exc)
            continue
        results[result.id] = result
    return results


class HttpVerifier:
    """Resolves batches with retries, backoff and the shared rate gate."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        gate: RateGate,
        url: str = DEFAULT_LOOKUP_URL,
        backoff: BackoffConfig = BackoffConfig(),
        rate_limit: RateLimitConfig = RateLimitConfig(),
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._client = client
        self._gate = gate
        self._url = url
        self._backoff = backoff
        self._rate_limit = rate_limit
        self._sleep = sleep

    def _cooldown_ms(self, response: httpx.Response) -> int:
        retry_after = parse_retry_after(response.headers.get("Retry-After"))
        if retry_after is None:
            retry_after = self._rate_limit.default_retry_after_s
        return int(retry_after * 1000) + self._rate_limit.safety_margin_ms

    async def _fail(self, batch: Sequence[int], failures: int, reason: str) -> None:
        """Back off after a transient failure, or give up past the ceiling."""

        if failures > self._backoff.max_retries:
            raise RetriesExhaustedError(f"{reason} after {failures} attempt(s)", batch)
        wait_ms = retry_delay_ms(failures, self._backoff)
        LOGGER.warning(
            "%s, retrying batch in %ss (attempt %s)",
            reason,
            round(wait_ms / 1000),
            failures,
        )
        await self._sleep(wait_ms / 1000)

    async def verify_batch(self, batch: Sequence[int]) -> dict[int, VerificationResult]:
        """Look up ``batch``; raises a BatchVerificationError subclass on failure."""

        ids = list(batch)
        failures = 0

        while True:
            await self._gate.wait()

            try:
                response = await self._client.post(self._url, json={"ids": ids})
            except httpx.RequestError as exc:
                failures += 1
                await self._fail(ids, failures, f"Network error contacting verifier ({exc})")
                continue

            if response.status_code == 429:
                # Rate limits never count toward the retry ceiling.
                failures = 0
                await self._gate.trip(self._cooldown_ms(response))
                continue

            if not response.is_success:
                failures += 1
                await self._fail(ids, failures, f"HTTP {response.status_code} from verifier")
                continue

            return self._parse_success(ids, response)

    def _parse_success(self, ids: list[int], response: httpx.Response) -> dict[int, VerificationResult]:
        try:
            body = response.json()
        except ValueError as exc:
            raise ServiceLogicalError(f"Verifier returned invalid JSON: {exc}", ids) from exc

        if not isinstance(body, dict) or not body.get("success") or body.get("data") is None:
            error = body.get("error") if isinstance(body, dict) else None
            raise ServiceLogicalError(error or "Failed to fetch users data", ids)

        data = body["data"]
        if not isinstance(data, Mapping):
            raise ServiceLogicalError(f"Verifier data is not an object: {type(data).__name__}", ids)
        return parse_lookup_data(data)
