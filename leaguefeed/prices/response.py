"""Response TTL and cache metadata."""

from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta
from typing import Any

from leaguefeed.prices.client import INTERVAL, PROVIDER
from leaguefeed.prices.cycle import is_season_started
from leaguefeed.prices.models import CycleState
from leaguefeed.utils import format_iso

SHORT_TTL_SECONDS = 60


def _seconds_until(target: datetime, now: datetime) -> int:
    return math.ceil((target - now).total_seconds())


def is_total_failure(state: CycleState) -> bool:
    return bool(state.symbols) and all(s in state.errors for s in state.symbols)


def compute_ttl(
    state: CycleState,
    *,
    now: datetime,
    full_ttl_seconds: int,
    season_start: date | None = None,
) -> int:
    if is_total_failure(state):
        return SHORT_TTL_SECONDS
    if state.partial:
        if state.next_fetch_after is None:
            return SHORT_TTL_SECONDS
        return max(SHORT_TTL_SECONDS, _seconds_until(state.next_fetch_after, now))
    if season_start is not None and not is_season_started(state.end_date, season_start):
        midnight = datetime.combine(now.date() + timedelta(days=1), time.min, tzinfo=now.tzinfo)
        return min(full_ttl_seconds, max(SHORT_TTL_SECONDS, _seconds_until(midnight, now)))
    return full_ttl_seconds


def remaining_ttl(expires_at: datetime, now: datetime) -> int:
    return max(0, _seconds_until(expires_at, now))


def assemble_payload(
    state: CycleState,
    *,
    now: datetime,
    ttl_seconds: int,
    start_date: date,
    batch_size: int,
) -> dict[str, Any]:
    snapshot = state.to_payload()
    payload: dict[str, Any] = {
        "fetchedAt": format_iso(now),
        "cycleStartedAt": snapshot["cycleStartedAt"],
        "startDate": start_date.isoformat(),
        "endDate": snapshot["endDate"],
        "interval": INTERVAL,
        "provider": PROVIDER,
        "symbols": snapshot["symbols"],
        "fetchedSymbols": snapshot["fetchedSymbols"],
        "remainingSymbols": snapshot["remainingSymbols"],
        "partial": snapshot["partial"],
        "nextFetchAfter": snapshot["nextFetchAfter"],
        "batchSize": batch_size,
        "series": snapshot["series"],
        "errors": snapshot["errors"],
    }
    if state.notice:
        payload["notice"] = state.notice
    payload["cacheTtlSeconds"] = ttl_seconds
    payload["cacheExpiresAt"] = format_iso(now + timedelta(seconds=ttl_seconds))
    return payload


def error_payload(error: str, details: str | None = None) -> dict[str, Any]:
    out: dict[str, Any] = {"error": error}
    if details:
        out["details"] = details
    return out


def cache_control_header(ttl_seconds: int) -> str:
    return f"public, max-age=0, s-maxage={int(ttl_seconds)}"
