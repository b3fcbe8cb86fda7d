"""Static configuration for flagscope.

All tunables (verifier endpoint, retry policy, batching, logging) live in a
single JSON file for quick edits without touching Python. Secrets such as
the Roblox cookie stay in the environment (.env).
"""

import json
import os

from core.config import BackoffConfig, BatchConfig, RateLimitConfig
from core.errors import ConfigError

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# FLAGSCOPE_CONFIG lets a run point at an alternative config file.
CONFIG_PATH = os.getenv("FLAGSCOPE_CONFIG", os.path.join(PROJECT_ROOT, "config.json"))


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Verification service endpoint and client identity.
_verifier = _CONFIG.get("verifier", {})
VERIFIER_URL = _verifier.get("url", "https://roscoe.rotector.com/v1/lookup/roblox/user")
USER_AGENT = _verifier.get("user_agent", "flagscope/0.1")
HTTP_TIMEOUT_S = float(_verifier.get("timeout_s", 30))

# Retry policy shared by the verifier and the paginated collection reads.
# - MAX_RETRIES: consecutive transient failures before a batch is abandoned
# - BASE/MAX_DELAY_MS: capped exponential backoff between retries
MAX_RETRIES = int(_verifier.get("max_retries", 5))
BASE_DELAY_MS = int(_verifier.get("base_delay_ms", 1000))
MAX_DELAY_MS = int(_verifier.get("max_delay_ms", 30_000))

# Rate-limit cooldown: Retry-After (or the default) plus a safety margin.
DEFAULT_RETRY_AFTER_S = float(_verifier.get("default_retry_after_s", 10))
RATE_LIMIT_MARGIN_MS = int(_verifier.get("safety_margin_ms", 2500))

# Batch dispatch shaping.
_dispatch = _CONFIG.get("dispatch", {})
BATCH_SIZE = int(_dispatch.get("batch_size", 50))
STAGGER_EVERY = int(_dispatch.get("stagger_every", 25))
STAGGER_DELAY_MS = int(_dispatch.get("stagger_delay_ms", 150))

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})


def backoff_config() -> BackoffConfig:
    return BackoffConfig(
        base_delay_ms=BASE_DELAY_MS,
        max_delay_ms=MAX_DELAY_MS,
        max_retries=MAX_RETRIES,
    )


def rate_limit_config() -> RateLimitConfig:
    return RateLimitConfig(
        default_retry_after_s=DEFAULT_RETRY_AFTER_S,
        safety_margin_ms=RATE_LIMIT_MARGIN_MS,
    )


def batch_config() -> BatchConfig:
    try:
        return BatchConfig(
            batch_size=BATCH_SIZE,
            stagger_every=STAGGER_EVERY,
            stagger_delay_ms=STAGGER_DELAY_MS,
        )
    except ValueError as exc:
        raise ConfigError(f"Invalid dispatch settings in {CONFIG_PATH}: {exc}") from exc
