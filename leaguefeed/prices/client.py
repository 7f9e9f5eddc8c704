"""Twelve Data ``time_series`` client.

One request per symbol. Every outcome, including transport errors, comes back
as a ``SymbolResult`` so one bad symbol never aborts the rest of a batch.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Any, Sequence

import httpx

from leaguefeed.prices.models import FetchFailure, SeriesResult, SymbolResult
from leaguefeed.prices.normalize import normalize_series

logger = logging.getLogger(__name__)

PROVIDER = "twelvedata"
INTERVAL = "1day"
NO_DATA_MESSAGE = "No data returned"

_DEFAULT_BASE_URL = "https://api.twelvedata.com"


class TwelveDataClient:
    """Fetch daily closes for single symbols from Twelve Data."""

    def __init__(
        self,
        api_key: str,
        *,
        start_date: date,
        base_url: str = _DEFAULT_BASE_URL,
        timeout: float = 15.0,
        output_size: int = 5000,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._start_date = start_date
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._output_size = max(1, int(output_size))
        self._http_client = http_client

    @property
    def start_date(self) -> date:
        return self._start_date

    def _params(self, symbol: str, end_date: date) -> dict[str, Any]:
        return {
            "symbol": symbol,
            "interval": INTERVAL,
            "start_date": self._start_date.isoformat(),
            "end_date": end_date.isoformat(),
            "outputsize": self._output_size,
            "format": "JSON",
            "apikey": self._api_key,
        }

    async def fetch_many(self, symbols: Sequence[str], end_date: date) -> list[SymbolResult]:
        """Fetch every symbol concurrently; results keep the order of *symbols*."""
        if not symbols:
            return []
        if self._http_client is not None:
            return await self._gather(self._http_client, symbols, end_date)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await self._gather(client, symbols, end_date)

    async def _gather(
        self,
        client: httpx.AsyncClient,
        symbols: Sequence[str],
        end_date: date,
    ) -> list[SymbolResult]:
        return list(await asyncio.gather(*[self.fetch(s, end_date, client=client) for s in symbols]))

    async def fetch(
        self,
        symbol: str,
        end_date: date,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> SymbolResult:
        if client is None and self._http_client is None:
            async with httpx.AsyncClient(timeout=self._timeout) as own:
                return await self._fetch(own, symbol, end_date)
        return await self._fetch(client or self._http_client, symbol, end_date)

    async def _fetch(self, client: httpx.AsyncClient, symbol: str, end_date: date) -> SymbolResult:
        try:
            resp = await client.get(
                f"{self._base_url}/time_series",
                params=self._params(symbol, end_date),
                timeout=self._timeout,
            )
            payload = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Twelve Data request failed for %s: %s", symbol, exc)
            return FetchFailure(symbol=symbol, message=str(exc) or "Request failed", status=500)

        if not isinstance(payload, dict):
            logger.warning("Twelve Data returned a non-object payload for %s", symbol)
            return FetchFailure(symbol=symbol, message="Unexpected payload format", status=500)

        if not resp.is_success:
            failure = FetchFailure(
                symbol=symbol,
                message=str(payload.get("message") or f"HTTP {resp.status_code}"),
                code=payload.get("code"),
                status=resp.status_code,
            )
            logger.warning("Twelve Data HTTP %s for %s: %s", resp.status_code, symbol, failure.message)
            return failure

        if payload.get("status") == "error":
            failure = FetchFailure(
                symbol=symbol,
                message=str(payload.get("message") or "Request failed"),
                code=payload.get("code"),
                status=resp.status_code,
            )
            logger.warning("Twelve Data error for %s: %s", symbol, failure.message)
            return failure

        values = payload.get("values")
        points = normalize_series(values) if isinstance(values, list) else []
        if not points:
            logger.info("Twelve Data returned no usable rows for %s", symbol)
            return FetchFailure(symbol=symbol, message=NO_DATA_MESSAGE)

        return SeriesResult(symbol=symbol, points=tuple(points))
