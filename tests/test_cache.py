from __future__ import annotations

import json
from datetime import date, datetime, timedelta, timezone

import pytest

from leaguefeed.prices.cache import (
    CacheEntry,
    FastTierCache,
    FreshnessResolver,
    RedisTierCache,
    Resolution,
    canonical_request_key,
)
from leaguefeed.prices.cycle import fold, new_cycle
from leaguefeed.prices.models import PricePoint, SeriesResult
from leaguefeed.prices.response import assemble_payload

NOW = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)
ROSTER = ("A", "B", "C")


class FakeRedis:
    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    async def get(self, key):  # noqa: ANN001
        return self.store.get(key)

    async def setex(self, key, ttl, value):  # noqa: ANN001
        self.store[key] = value
        self.ttls[key] = ttl


class BrokenRedis:
    async def get(self, key):  # noqa: ANN001
        raise ConnectionError("redis down")


class CountingTier:
    def __init__(self, name: str, entry: CacheEntry | None) -> None:
        self.name = name
        self.entry = entry
        self.gets = 0

    async def get(self, key):  # noqa: ANN001
        self.gets += 1
        return self.entry

    async def put(self, key, payload, ttl_seconds):  # noqa: ANN001
        self.entry = CacheEntry(payload, NOW + timedelta(seconds=ttl_seconds))


def _payload(*, partial: bool, ttl: int, at: datetime = NOW) -> dict:
    state = new_cycle(ROSTER, at)
    ok = [SeriesResult(s, (PricePoint("2026-03-02", 1.0),)) for s in (("A",) if partial else ROSTER)]
    state = fold(state, ok, now=at, batch_delay_seconds=70)
    return assemble_payload(state, now=at, ttl_seconds=ttl, start_date=date(2026, 1, 1), batch_size=2)


def _entry(payload: dict) -> CacheEntry:
    return CacheEntry(payload, NOW + timedelta(seconds=payload["cacheTtlSeconds"]))


def test_canonical_request_key_normalizes_url() -> None:
    a = canonical_request_key("get", "HTTPS://Example.COM/api/league?b=2&a=1#frag")
    b = canonical_request_key("GET", "https://example.com/api/league?a=1&b=2")
    assert a == b == "GET https://example.com/api/league?a=1&b=2"
    assert canonical_request_key("GET", "https://example.com") == "GET https://example.com/"


@pytest.mark.asyncio
async def test_fast_tier_holds_one_payload_with_absolute_expiry() -> None:
    clock = [NOW]
    fast = FastTierCache(clock=lambda: clock[0])
    assert await fast.get("k") is None

    await fast.put("k", {"v": 1}, 120)
    await fast.put("other", {"v": 2}, 30)
    entry = await fast.get("anything")
    assert entry.payload == {"v": 2}
    assert fast.expires_at == NOW + timedelta(seconds=30)

    fast.clear()
    assert await fast.get("k") is None


@pytest.mark.asyncio
async def test_redis_tier_round_trips_payload_with_ttl() -> None:
    redis = FakeRedis()
    tier = RedisTierCache(redis, prefix="t:")
    payload = _payload(partial=False, ttl=600)

    await tier.put("GET https://x/api/league", payload, 600)
    assert redis.ttls["t:GET https://x/api/league"] == 600

    entry = await tier.get("GET https://x/api/league")
    assert entry.payload == json.loads(json.dumps(payload))
    assert entry.expires_at == NOW + timedelta(seconds=600)


@pytest.mark.asyncio
async def test_redis_tier_read_errors_are_misses() -> None:
    assert await RedisTierCache(BrokenRedis()).get("k") is None

    redis = FakeRedis()
    redis.store["leaguefeed:league:k"] = "{not json"
    assert await RedisTierCache(redis).get("k") is None


@pytest.mark.asyncio
async def test_resolver_serves_fresh_complete_payload_from_fast_tier() -> None:
    fast = CountingTier("fast", _entry(_payload(partial=False, ttl=86400)))
    shared = CountingTier("shared", None)

    res = await FreshnessResolver([fast, shared]).resolve("k", NOW + timedelta(hours=1))

    assert res.source == "fast"
    assert res.payload is fast.entry.payload
    assert res.base is None
    assert shared.gets == 0


@pytest.mark.asyncio
async def test_resolver_serves_partial_payload_during_cooldown() -> None:
    fast = CountingTier("fast", _entry(_payload(partial=True, ttl=70)))
    res = await FreshnessResolver([fast]).resolve("k", NOW + timedelta(seconds=30))
    assert res.payload is not None
    assert res.base is None


@pytest.mark.asyncio
async def test_resolver_resumes_partial_payload_after_cooldown_without_shared_lookup() -> None:
    fast = CountingTier("fast", _entry(_payload(partial=True, ttl=70)))
    shared = CountingTier("shared", _entry(_payload(partial=False, ttl=86400)))

    res = await FreshnessResolver([fast, shared]).resolve("k", NOW + timedelta(seconds=71))

    assert res.payload is None
    assert res.base is not None
    assert res.base.remaining_symbols == ("B", "C")
    assert res.source == "fast"
    assert shared.gets == 0


@pytest.mark.asyncio
async def test_resolver_falls_through_expired_complete_entry_to_shared_tier() -> None:
    fast = CountingTier("fast", _entry(_payload(partial=False, ttl=60)))
    shared_payload = _payload(partial=False, ttl=86400)
    shared = CountingTier("shared", _entry(shared_payload))

    res = await FreshnessResolver([fast, shared]).resolve("k", NOW + timedelta(minutes=5))

    assert res.source == "shared"
    assert res.payload is shared_payload


@pytest.mark.asyncio
async def test_resolver_ignores_partial_cycle_from_previous_day() -> None:
    fast = CountingTier("fast", _entry(_payload(partial=True, ttl=70)))
    res = await FreshnessResolver([fast]).resolve("k", NOW + timedelta(days=1))
    assert res.payload is None
    assert res.base is None


@pytest.mark.asyncio
async def test_resolver_skips_unreadable_entries() -> None:
    junk = CountingTier("fast", CacheEntry({"hello": "world"}, NOW + timedelta(hours=1)))
    shared_payload = _payload(partial=False, ttl=86400)
    shared = CountingTier("shared", _entry(shared_payload))

    res = await FreshnessResolver([junk, shared]).resolve("k", NOW)
    assert res.payload is shared_payload


@pytest.mark.asyncio
async def test_resolver_skips_entry_with_malformed_series() -> None:
    broken = _payload(partial=False, ttl=86400)
    broken = {**broken, "series": [["A", 1.0]]}
    fast = CountingTier("fast", _entry(broken))
    shared_payload = _payload(partial=False, ttl=86400)
    shared = CountingTier("shared", _entry(shared_payload))

    res = await FreshnessResolver([fast, shared]).resolve("k", NOW)
    assert res.source == "shared"
    assert res.payload is shared_payload

    alone = await FreshnessResolver([CountingTier("fast", _entry(broken))]).resolve("k", NOW)
    assert alone == Resolution()


@pytest.mark.asyncio
async def test_fast_tier_expiry_follows_payload_not_clock() -> None:
    skewed = NOW + timedelta(minutes=10)
    fast = FastTierCache(clock=lambda: skewed)
    payload = _payload(partial=False, ttl=600)

    await fast.put("k", payload, 600)
    entry = await fast.get("k")
    assert entry.expires_at == NOW + timedelta(seconds=600)

    await fast.put("k", {"v": 1}, 30)
    assert fast.expires_at == skewed + timedelta(seconds=30)
