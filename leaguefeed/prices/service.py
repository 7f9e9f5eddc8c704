"""League price service: one call per inbound request.

Flow: resolve the cache tiers, and if nothing is servable fetch the next batch
of the current (or a new) cycle, fold it in, then write the new snapshot back
to the fast tier before returning and to the shared tier in the background.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Sequence

from leaguefeed.config import Settings
from leaguefeed.prices.batching import next_batch, resolve_batch_size
from leaguefeed.prices.cache import (
    CacheTier,
    FastTierCache,
    FreshnessResolver,
    RedisTierCache,
    Resolution,
)
from leaguefeed.prices.client import TwelveDataClient
from leaguefeed.prices.cycle import fold, is_season_started, new_cycle, not_started, resume
from leaguefeed.prices.models import CycleState
from leaguefeed.prices.response import assemble_payload, compute_ttl, remaining_ttl
from leaguefeed.utils import utc_now

logger = logging.getLogger(__name__)


class LeagueFeedError(RuntimeError):
    """Base error for failures surfaced to API callers."""

    def __init__(self, message: str, details: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ConfigurationError(LeagueFeedError):
    """Raised when a required setting (such as the API key) is missing."""


@dataclass(frozen=True)
class LeagueResponse:
    payload: dict[str, Any]
    ttl_seconds: int
    cache_source: str


class LeaguePriceService:
    def __init__(
        self,
        *,
        client: TwelveDataClient | None,
        roster: Sequence[str],
        season_start: date,
        cache_ttl_seconds: int,
        batch_size: int,
        batch_delay_seconds: int,
        fast_tier: FastTierCache | None = None,
        shared_tier: CacheTier | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._client = client
        self._roster = tuple(roster)
        self._season_start = season_start
        self._cache_ttl_seconds = cache_ttl_seconds
        self._batch_size = resolve_batch_size(batch_size)
        self._batch_delay_seconds = batch_delay_seconds
        self._clock = clock
        self._fast_tier = fast_tier or FastTierCache(clock=clock)
        self._shared_tier = shared_tier
        tiers: list[CacheTier] = [self._fast_tier]
        if shared_tier is not None:
            tiers.append(shared_tier)
        self._resolver = FreshnessResolver(tiers)
        self._pending: set[asyncio.Task] = set()
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        fast_tier: FastTierCache | None = None,
        shared_tier: CacheTier | None = None,
    ) -> LeaguePriceService:
        client = None
        if settings.has_api_key:
            client = TwelveDataClient(
                settings.twelve_data_api_key.strip(),
                start_date=settings.season_start_date,
                base_url=settings.upstream_base_url,
                timeout=settings.upstream_timeout_seconds,
                output_size=settings.upstream_output_size,
            )
        if shared_tier is None and settings.shared_cache_enabled:
            shared_tier = RedisTierCache.from_url(settings.redis_url)
        return cls(
            client=client,
            roster=settings.roster,
            season_start=settings.season_start_date,
            cache_ttl_seconds=settings.cache_ttl_seconds,
            batch_size=settings.max_symbols_per_batch,
            batch_delay_seconds=settings.batch_delay_seconds,
            fast_tier=fast_tier,
            shared_tier=shared_tier,
        )

    @property
    def roster(self) -> tuple[str, ...]:
        return self._roster

    @property
    def fast_tier(self) -> FastTierCache:
        return self._fast_tier

    @property
    def shared_tier(self) -> CacheTier | None:
        return self._shared_tier

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    async def get_league(self, request_key: str, now: datetime | None = None) -> LeagueResponse:
        if self._client is None:
            raise ConfigurationError(
                "Missing TWELVE_DATA_API_KEY.",
                details="Set TWELVE_DATA_API_KEY in the environment or .env file and restart the service.",
            )

        served = await self._serve_cached(request_key, now or self._clock())
        if isinstance(served, LeagueResponse):
            return served

        # One cycle advance per instance at a time; waiters re-check the cache.
        async with self._lock:
            at = now or self._clock()
            resolution = await self._serve_cached(request_key, at)
            if isinstance(resolution, LeagueResponse):
                return resolution

            state = await self._advance(self._starting_state(resolution, at), at)
            ttl = compute_ttl(
                state,
                now=at,
                full_ttl_seconds=self._cache_ttl_seconds,
                season_start=self._season_start,
            )
            payload = assemble_payload(
                state,
                now=at,
                ttl_seconds=ttl,
                start_date=self._season_start,
                batch_size=self._batch_size,
            )
            await self._store(request_key, payload, ttl)
        return LeagueResponse(payload=payload, ttl_seconds=ttl, cache_source="miss")

    async def _serve_cached(self, request_key: str, now: datetime) -> LeagueResponse | Resolution:
        resolution = await self._resolver.resolve(request_key, now)
        if resolution.payload is not None and resolution.expires_at is not None:
            return LeagueResponse(
                payload=resolution.payload,
                ttl_seconds=remaining_ttl(resolution.expires_at, now),
                cache_source=resolution.source or "fast",
            )
        return resolution

    def _starting_state(self, resolution: Resolution, now: datetime) -> CycleState:
        if not is_season_started(now.date(), self._season_start):
            return not_started(self._roster, now, self._season_start)
        if resolution.base is not None:
            return resume(resolution.base, self._roster)
        logger.info("Starting new price cycle for %s (%d symbols)", now.date(), len(self._roster))
        return new_cycle(self._roster, now)

    async def _advance(self, state: CycleState, now: datetime) -> CycleState:
        if not state.partial:
            return state
        batch = next_batch(state.remaining_symbols, self._batch_size)
        results = await self._client.fetch_many(batch, state.end_date)
        state = fold(state, results, now=now, batch_delay_seconds=self._batch_delay_seconds)
        logger.info(
            "Fetched %d symbols (%d ok, %d failed); %d remaining",
            len(batch),
            sum(1 for s in batch if s in state.series),
            sum(1 for s in batch if s in state.errors),
            len(state.remaining_symbols),
        )
        return state

    async def _store(self, key: str, payload: dict[str, Any], ttl: int) -> None:
        try:
            await self._fast_tier.put(key, payload, ttl)
        except Exception as exc:
            logger.warning("Fast cache write failed: %s", exc)

        if self._shared_tier is None:
            return
        # Partial snapshots must outlive their TTL so other instances can resume them.
        retention = max(ttl, self._cache_ttl_seconds) if payload.get("partial") else ttl
        task = asyncio.create_task(self._put_shared(key, payload, retention), name="league-shared-cache-put")
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _put_shared(self, key: str, payload: dict[str, Any], ttl: int) -> None:
        try:
            await self._shared_tier.put(key, payload, ttl)
        except Exception as exc:
            logger.warning("Shared cache write failed: %s", exc)

    async def drain(self) -> None:
        """Wait for background shared-tier writes to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()
        close = getattr(self._shared_tier, "close", None)
        if close is not None:
            await close()
