"""Batch selection.

The batch size is the only thing bounding how many upstream calls a single
request makes; the rest of the roster waits for later requests.
"""

from __future__ import annotations

from typing import Any, Sequence

from leaguefeed.config import DEFAULT_MAX_SYMBOLS_PER_BATCH, positive_int


def resolve_batch_size(value: Any, default: int = DEFAULT_MAX_SYMBOLS_PER_BATCH) -> int:
    return positive_int(value, default)


def next_batch(remaining: Sequence[str], batch_size: int) -> list[str]:
    """First *batch_size* symbols of *remaining*, in roster order."""
    return list(remaining[: resolve_batch_size(batch_size)])
