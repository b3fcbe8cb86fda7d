"""Capped exponential backoff (core domain)."""

from __future__ import annotations

from core.config import BackoffConfig

DEFAULT_BACKOFF = BackoffConfig()


def retry_delay_ms(attempt: int, config: BackoffConfig = DEFAULT_BACKOFF) -> int:
    """Return the delay before retry number ``attempt``.

    Attempts count retries, starting at 1, so the first retry waits exactly
    ``base_delay_ms`` and each later one doubles up to ``max_delay_ms``.
    """

    if attempt < 0:
        raise ValueError(f"attempt must be non-negative, got {attempt}")
    exponent = max(attempt, 1) - 1
    # Cap the exponent so huge attempt counts never build giant integers.
    if exponent >= 64:
        return config.max_delay_ms
    return min(config.max_delay_ms, config.base_delay_ms * 2 ** exponent)
