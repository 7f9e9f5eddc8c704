"""Fetch-cycle state machine.

States:
- not started: the as-of date precedes the season start; nothing is fetched.
- in progress: ``partial`` is true and some roster symbols are still unfetched.
- complete: every roster symbol ended up in ``series`` or ``errors``.

``fold`` is the only transition out of "in progress" and is a pure function of
its inputs.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Sequence

from leaguefeed.prices.models import CycleState, FetchFailure, PricePoint, SeriesResult, SymbolResult

logger = logging.getLogger(__name__)

NO_DATA_IN_RANGE = "No data is available on the specified dates"

NO_DATA_NOTICE = (
    "The provider has no prices for the requested dates yet "
    "(weekend, holiday, or before the market opened). Showing what is available."
)


def season_notice(season_start: date) -> str:
    return f"The season starts on {season_start.isoformat()}; prices appear once trading begins."


def new_cycle(roster: Sequence[str], now: datetime) -> CycleState:
    """Empty in-progress cycle covering the whole roster for today's date."""
    symbols = tuple(roster)
    return CycleState(
        symbols=symbols,
        cycle_started_at=now,
        end_date=now.date(),
        remaining_symbols=symbols,
        partial=bool(symbols),
    )


def not_started(roster: Sequence[str], now: datetime, season_start: date) -> CycleState:
    symbols = tuple(roster)
    return CycleState(
        symbols=symbols,
        cycle_started_at=now,
        end_date=now.date(),
        remaining_symbols=symbols,
        partial=False,
        notice=season_notice(season_start),
    )


def is_season_started(end_date: date, season_start: date) -> bool:
    return end_date >= season_start


def remaining_for(roster: Sequence[str], state: CycleState) -> tuple[str, ...]:
    return tuple(s for s in roster if s not in state.series and s not in state.errors)


def resume(state: CycleState, roster: Sequence[str]) -> CycleState:
    """Re-key a cached in-progress snapshot onto the current roster."""
    symbols = tuple(roster)
    if symbols == state.symbols:
        return state
    remaining = remaining_for(symbols, state)
    return replace(state, symbols=symbols, remaining_symbols=remaining, partial=bool(remaining))


def is_complete(state: CycleState) -> bool:
    return not state.partial


def is_resumable(state: CycleState, now: datetime) -> bool:
    """An in-progress cycle for today whose cool-down has elapsed."""
    if not state.partial:
        return False
    if state.end_date != now.date():
        return False
    return state.next_fetch_after is None or now >= state.next_fetch_after


def is_cooling_down(state: CycleState, now: datetime) -> bool:
    return state.partial and state.next_fetch_after is not None and now < state.next_fetch_after


def _is_no_data_batch(results: Sequence[SymbolResult]) -> bool:
    return bool(results) and all(
        isinstance(r, FetchFailure) and NO_DATA_IN_RANGE in r.message for r in results
    )


def fold(
    state: CycleState,
    results: Sequence[SymbolResult],
    *,
    now: datetime,
    batch_delay_seconds: int,
) -> CycleState:
    """Fold one batch of results into *state* and return the next snapshot."""
    series: dict[str, tuple[PricePoint, ...]] = dict(state.series)
    errors: dict[str, FetchFailure] = dict(state.errors)
    for result in results:
        if isinstance(result, SeriesResult):
            series[result.symbol] = result.points
            errors.pop(result.symbol, None)
        else:
            errors[result.symbol] = result
            series.pop(result.symbol, None)

    remaining = tuple(s for s in state.symbols if s not in series and s not in errors)
    notice = state.notice

    if _is_no_data_batch(results):
        # Market has nothing for this range yet; retrying on cadence only burns quota.
        logger.info("Batch of %d symbols reported no data in range; closing cycle", len(results))
        errors = {}
        remaining = ()
        notice = NO_DATA_NOTICE

    partial = bool(remaining)
    next_fetch_after = now + timedelta(seconds=batch_delay_seconds) if partial else None

    return replace(
        state,
        fetched_symbols=tuple(r.symbol for r in results),
        series=series,
        errors=errors,
        remaining_symbols=remaining,
        partial=partial,
        next_fetch_after=next_fetch_after,
        notice=notice,
    )
