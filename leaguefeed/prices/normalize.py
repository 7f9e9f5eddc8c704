"""Turn raw provider records into a clean daily close series."""

from __future__ import annotations

import math
from typing import Any, Iterable

from leaguefeed.prices.models import PricePoint


def _safe_close(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        close = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(close):
        return None
    return close


def normalize_series(records: Iterable[Any]) -> list[PricePoint]:
    """Return points sorted by date with one point per date.

    Records without a date or with a close that is not a finite number are
    dropped. When a date repeats, the last record for it wins.
    """
    by_date: dict[str, float] = {}
    for item in records or []:
        if not isinstance(item, dict):
            continue
        raw_date = item.get("datetime") or item.get("date")
        close = _safe_close(item.get("close"))
        if not raw_date or close is None:
            continue
        by_date[str(raw_date)[:10]] = close
    return [PricePoint(date=day, close=by_date[day]) for day in sorted(by_date)]
