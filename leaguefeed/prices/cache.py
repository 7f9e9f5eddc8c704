"""Cache tiers and the freshness rule shared by all of them.

Two tiers are used, consulted in order:

- ``FastTierCache``: one slot in process memory, cheap but private to the
  instance.
- ``RedisTierCache``: shared by every instance, keyed by request identity,
  expiry handled by Redis.

``FreshnessResolver`` applies one predicate to whatever the tiers hold so an
instance never keeps serving a stale partial snapshot just because it is local.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Protocol, Sequence
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import redis.asyncio as aioredis

from leaguefeed.prices.cycle import is_cooling_down, is_resumable
from leaguefeed.prices.models import CycleState
from leaguefeed.utils import parse_optional_iso, utc_now

logger = logging.getLogger(__name__)

_KEY_PREFIX = "leaguefeed:league:"


@dataclass(frozen=True)
class CacheEntry:
    payload: dict[str, Any]
    expires_at: datetime


class CacheTier(Protocol):
    name: str

    async def get(self, key: str) -> CacheEntry | None: ...

    async def put(self, key: str, payload: dict[str, Any], ttl_seconds: int) -> None: ...


def canonical_request_key(method: str, url: str) -> str:
    """Stable identity for a request: method plus a normalized URL."""
    parts = urlsplit(url)
    query = urlencode(sorted(parse_qsl(parts.query, keep_blank_values=True)))
    path = parts.path or "/"
    normalized = urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, query, ""))
    return f"{method.upper()} {normalized}"


class FastTierCache:
    """Single-slot in-process store with an absolute expiry."""

    name = "fast"

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock
        self._payload: dict[str, Any] | None = None
        self._expires_at: datetime | None = None

    @property
    def expires_at(self) -> datetime | None:
        return self._expires_at

    async def get(self, key: str) -> CacheEntry | None:
        if self._payload is None or self._expires_at is None:
            return None
        return CacheEntry(payload=self._payload, expires_at=self._expires_at)

    async def put(self, key: str, payload: dict[str, Any], ttl_seconds: int) -> None:
        self._payload = payload
        expires_at = parse_optional_iso(payload.get("cacheExpiresAt"))
        self._expires_at = expires_at or self._clock() + timedelta(seconds=ttl_seconds)

    def clear(self) -> None:
        self._payload = None
        self._expires_at = None


class RedisTierCache:
    """Shared tier on Redis; entries vanish on their own when the TTL lapses."""

    name = "shared"

    def __init__(self, redis_client: aioredis.Redis, prefix: str = _KEY_PREFIX) -> None:
        self._redis = redis_client
        self._prefix = prefix

    @classmethod
    def from_url(cls, redis_url: str) -> RedisTierCache:
        return cls(aioredis.from_url(redis_url, decode_responses=True))

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get(self, key: str) -> CacheEntry | None:
        try:
            raw = await self._redis.get(self._key(key))
        except Exception as exc:
            logger.warning("Shared cache read failed: %s", exc)
            return None
        if not raw:
            return None
        try:
            payload = json.loads(raw)
        except ValueError:
            logger.warning("Shared cache entry is not valid JSON; ignoring")
            return None
        if not isinstance(payload, dict):
            return None
        expires_at = parse_optional_iso(payload.get("cacheExpiresAt"))
        if expires_at is None:
            return None
        return CacheEntry(payload=payload, expires_at=expires_at)

    async def put(self, key: str, payload: dict[str, Any], ttl_seconds: int) -> None:
        await self._redis.setex(self._key(key), max(1, int(ttl_seconds)), json.dumps(payload, default=str))

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except Exception:
            return False

    async def close(self) -> None:
        try:
            await self._redis.aclose()
        except Exception as exc:
            logger.debug("Redis close failed: %s", exc)


@dataclass(frozen=True)
class Resolution:
    """Outcome of a cache lookup.

    ``payload`` set: serve it as-is. ``base`` set: resume that cycle.
    Neither: start a new cycle.
    """

    payload: dict[str, Any] | None = None
    expires_at: datetime | None = None
    base: CycleState | None = None
    source: str | None = None


def is_servable(state: CycleState, expires_at: datetime, now: datetime) -> bool:
    if now >= expires_at:
        return False
    return not state.partial or is_cooling_down(state, now)


class FreshnessResolver:
    def __init__(self, tiers: Sequence[CacheTier]) -> None:
        self._tiers = list(tiers)

    @property
    def tiers(self) -> list[CacheTier]:
        return list(self._tiers)

    async def resolve(self, key: str, now: datetime) -> Resolution:
        for tier in self._tiers:
            entry = await tier.get(key)
            if entry is None:
                continue
            try:
                state = CycleState.from_payload(entry.payload)
            except (ValueError, TypeError, KeyError, AttributeError) as exc:
                logger.warning("Discarding unreadable %s cache entry: %s", tier.name, exc)
                continue

            if is_servable(state, entry.expires_at, now):
                logger.debug("Serving league payload from %s tier", tier.name)
                return Resolution(payload=entry.payload, expires_at=entry.expires_at, source=tier.name)
            if is_resumable(state, now):
                logger.debug("Resuming cycle started %s from %s tier", state.cycle_started_at, tier.name)
                return Resolution(base=state, source=tier.name)
            logger.debug("Skipping stale %s cache entry", tier.name)
        return Resolution()
