"""Configuration helpers for the strategy_flow backend."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Mapping

from dotenv import load_dotenv

ENV_PREFIX = "STRATEGY_FLOW_"

DEFAULT_CACHE_TTL_DAYS = 30
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

load_dotenv(override=False)


@dataclass(frozen=True)
class StrategySettings:
    """Settings container for the strategy cache and converters.

    A missing storage directory means the cache lives in memory only, which
    is what the test-suite and short-lived processes want.
    """

    cache_ttl_days: int = DEFAULT_CACHE_TTL_DAYS
    storage_dir: str | None = None
    # Seed for synthesized suitability / market-fit scores.
    score_seed: int | None = None
    log_level: str = DEFAULT_LOG_LEVEL
    allowed_origins: List[str] = field(default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS))

    @property
    def cache_ttl_ms(self) -> int:
        """Return the cache time-to-live in milliseconds."""

        return self.cache_ttl_days * 24 * 60 * 60 * 1000

    @property
    def is_persistent(self) -> bool:
        """True when entries are mirrored to a storage directory."""

        return bool(self.storage_dir)


def _int_from_env(environ: Mapping[str, str], name: str, default: int | None) -> int | None:
    """Parse an integer variable, falling back to *default* on bad input."""

    raw = environ.get(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _origins_from_env(environ: Mapping[str, str]) -> List[str]:
    raw = environ.get(ENV_PREFIX + "ALLOWED_ORIGINS")
    if raw:
        return [origin.strip() for origin in raw.split(",") if origin.strip()]
    return list(DEFAULT_ALLOWED_ORIGINS)


@lru_cache(maxsize=1)
def get_settings() -> StrategySettings:
    """Read environment variables and return cached settings."""

    environ = os.environ
    ttl_days = _int_from_env(environ, "CACHE_TTL_DAYS", DEFAULT_CACHE_TTL_DAYS)
    if ttl_days is None or ttl_days <= 0:
        ttl_days = DEFAULT_CACHE_TTL_DAYS
    return StrategySettings(
        cache_ttl_days=ttl_days,
        storage_dir=environ.get(ENV_PREFIX + "STORAGE_DIR") or None,
        score_seed=_int_from_env(environ, "SCORE_SEED", None),
        log_level=(environ.get(ENV_PREFIX + "LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper(),
        allowed_origins=_origins_from_env(environ),
    )
