"""Centralized configuration via pydantic-settings, loaded from .env."""

from __future__ import annotations

import functools
import json
import math
from datetime import date
from typing import Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CACHE_TTL_SECONDS = 24 * 60 * 60
DEFAULT_MAX_SYMBOLS_PER_BATCH = 8
DEFAULT_BATCH_DELAY_SECONDS = 70

DEFAULT_SYMBOLS = (
    "DC",
    "GOOG",
    "IBM",
    "SOFI",
    "NVDA",
    "AMZN",
    "LLY",
    "TTWO",
    "PLTR",
    "GOOGL",
    "AVGO",
    "MSFT",
    "AZO",
    "VZ",
    "HD",
)

_TUNABLE_DEFAULTS = {
    "cache_ttl_seconds": DEFAULT_CACHE_TTL_SECONDS,
    "max_symbols_per_batch": DEFAULT_MAX_SYMBOLS_PER_BATCH,
    "batch_delay_seconds": DEFAULT_BATCH_DELAY_SECONDS,
}


def positive_int(value: Any, default: int) -> int:
    """Coerce *value* to a positive int, falling back to *default*."""
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(parsed) or parsed <= 0:
        return default
    return max(1, int(parsed))


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Upstream provider ──────────────────────────────────────────────
    twelve_data_api_key: str = ""
    upstream_base_url: str = "https://api.twelvedata.com"
    upstream_timeout_seconds: float = 15.0
    upstream_output_size: int = 5000

    # ── League ─────────────────────────────────────────────────────────
    league_symbols: str = ",".join(DEFAULT_SYMBOLS)
    season_start_date: date = date(2026, 1, 1)

    # ── Cache / batching tunables ──────────────────────────────────────
    cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS
    max_symbols_per_batch: int = DEFAULT_MAX_SYMBOLS_PER_BATCH
    batch_delay_seconds: int = DEFAULT_BATCH_DELAY_SECONDS

    # ── Infrastructure ─────────────────────────────────────────────────
    redis_url: str = "redis://localhost:6379/0"
    shared_cache_enabled: bool = True

    # ── API Server ────────────────────────────────────────────────────
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"

    @field_validator("cache_ttl_seconds", "max_symbols_per_batch", "batch_delay_seconds", mode="before")
    @classmethod
    def _fallback_to_default(cls, value: Any, info) -> int:  # noqa: ANN001
        return positive_int(value, _TUNABLE_DEFAULTS[info.field_name])

    # ── Computed helpers ───────────────────────────────────────────────
    @property
    def roster(self) -> tuple[str, ...]:
        """League symbols in configured order, upper-cased and de-duplicated.

        Accepts a comma-separated list or a JSON array of strings.
        """
        raw_value = self.league_symbols.strip()
        items: list[Any] = raw_value.split(",")
        if raw_value.startswith("["):
            try:
                parsed = json.loads(raw_value)
            except ValueError:
                parsed = None
            if isinstance(parsed, list):
                items = parsed
        seen: dict[str, None] = {}
        for raw in items:
            symbol = str(raw).strip().upper() if raw is not None else ""
            if symbol:
                seen.setdefault(symbol, None)
        return tuple(seen)

    @property
    def has_api_key(self) -> bool:
        return bool(self.twelve_data_api_key.strip())


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton accessor for the global settings."""
    return Settings()
