"""System endpoints — health and effective config."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from leaguefeed import __version__
from leaguefeed.api.app import get_league_service, get_uptime
from leaguefeed.config import get_settings
from leaguefeed.prices import LeaguePriceService

router = APIRouter(tags=["system"])


@router.get("/health")
async def health(service: LeaguePriceService = Depends(get_league_service)):
    redis_ok = None
    shared = service.shared_tier
    ping = getattr(shared, "ping", None)
    if ping is not None:
        redis_ok = await ping()

    return {
        "status": "ok" if service.is_configured else "degraded",
        "version": __version__,
        "uptime_seconds": round(get_uptime(), 1),
        "components": {
            "redis": redis_ok,
            "upstream_configured": service.is_configured,
        },
    }


@router.get("/config")
async def config():
    s = get_settings()
    return {
        "symbols": list(s.roster),
        "season_start_date": s.season_start_date.isoformat(),
        "cache_ttl_seconds": s.cache_ttl_seconds,
        "max_symbols_per_batch": s.max_symbols_per_batch,
        "batch_delay_seconds": s.batch_delay_seconds,
        "shared_cache_enabled": s.shared_cache_enabled,
        "log_level": s.log_level,
    }
