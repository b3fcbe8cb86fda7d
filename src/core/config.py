"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class BackoffConfig:
    """Retry ceiling and capped exponential backoff for transient failures."""

    base_delay_ms: int = 1000
    max_delay_ms: int = 30_000
    max_retries: int = 5


@dataclass(frozen=True)
class RateLimitConfig:
    """Cooldown applied when the verifier answers with a rate-limit signal."""

    default_retry_after_s: float = 10.0
    safety_margin_ms: int = 2500


@dataclass(frozen=True)
class BatchConfig:
    """Batch sizing and dispatch stagger for the accumulator."""

    batch_size: int = 50
    stagger_every: int = 25
    stagger_delay_ms: int = 150

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if self.stagger_every < 1:
            raise ValueError("stagger_every must be at least 1")
