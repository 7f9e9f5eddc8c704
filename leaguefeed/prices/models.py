"""Value types shared by the league price pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Mapping, Union

from leaguefeed.utils import format_iso, parse_iso, parse_optional_iso


@dataclass(frozen=True)
class PricePoint:
    date: str
    close: float

    def to_dict(self) -> dict[str, Any]:
        return {"date": self.date, "close": self.close}


@dataclass(frozen=True)
class SeriesResult:
    symbol: str
    points: tuple[PricePoint, ...]


@dataclass(frozen=True)
class FetchFailure:
    symbol: str
    message: str
    code: int | str | None = None
    status: int | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"message": self.message}
        if self.code is not None:
            out["code"] = self.code
        if self.status is not None:
            out["status"] = self.status
        return out


SymbolResult = Union[SeriesResult, FetchFailure]


@dataclass(frozen=True)
class CycleState:
    """Snapshot of one fetch cycle.

    A cycle is one attempt to populate every roster symbol for ``end_date``.
    Instances are never mutated; ``leaguefeed.prices.cycle.fold`` returns a
    new snapshot for each batch.
    """

    symbols: tuple[str, ...]
    cycle_started_at: datetime
    end_date: date
    fetched_symbols: tuple[str, ...] = ()
    series: Mapping[str, tuple[PricePoint, ...]] = field(default_factory=dict)
    errors: Mapping[str, FetchFailure] = field(default_factory=dict)
    remaining_symbols: tuple[str, ...] = ()
    partial: bool = False
    next_fetch_after: datetime | None = None
    notice: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "cycleStartedAt": format_iso(self.cycle_started_at),
            "endDate": self.end_date.isoformat(),
            "symbols": list(self.symbols),
            "fetchedSymbols": list(self.fetched_symbols),
            "remainingSymbols": list(self.remaining_symbols),
            "partial": self.partial,
            "nextFetchAfter": format_iso(self.next_fetch_after) if self.next_fetch_after else None,
            "series": {
                symbol: [p.to_dict() for p in points]
                for symbol, points in self.series.items()
            },
            "errors": {symbol: failure.to_dict() for symbol, failure in self.errors.items()},
            "notice": self.notice,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> CycleState:
        """Rebuild a snapshot from a cached payload.

        Raises ``ValueError`` when the payload is missing the cycle fields.
        """
        if not isinstance(payload, Mapping):
            raise ValueError("cached payload is not an object")
        started = payload.get("cycleStartedAt")
        end = payload.get("endDate")
        if not started or not end:
            raise ValueError("cached payload has no cycle identity")

        series: dict[str, tuple[PricePoint, ...]] = {}
        for symbol, points in (payload.get("series") or {}).items():
            series[symbol] = tuple(
                PricePoint(date=str(p["date"]), close=float(p["close"]))
                for p in points or []
            )

        errors: dict[str, FetchFailure] = {}
        for symbol, err in (payload.get("errors") or {}).items():
            err = err or {}
            errors[symbol] = FetchFailure(
                symbol=symbol,
                message=str(err.get("message") or "Request failed"),
                code=err.get("code"),
                status=err.get("status"),
            )

        return cls(
            symbols=tuple(payload.get("symbols") or ()),
            cycle_started_at=parse_iso(str(started)),
            end_date=date.fromisoformat(str(end)[:10]),
            fetched_symbols=tuple(payload.get("fetchedSymbols") or ()),
            series=series,
            errors=errors,
            remaining_symbols=tuple(payload.get("remainingSymbols") or ()),
            partial=bool(payload.get("partial")),
            next_fetch_after=parse_optional_iso(payload.get("nextFetchAfter")),
            notice=payload.get("notice"),
        )
