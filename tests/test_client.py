from __future__ import annotations

import asyncio
from datetime import date

import httpx
import pytest

from leaguefeed.prices.client import NO_DATA_MESSAGE, TwelveDataClient
from leaguefeed.prices.models import FetchFailure, PricePoint, SeriesResult

END = date(2026, 3, 2)


def _client(http: httpx.AsyncClient) -> TwelveDataClient:
    return TwelveDataClient(
        "test-key",
        start_date=date(2026, 1, 1),
        base_url="https://upstream.test",
        output_size=500,
        http_client=http,
    )


@pytest.mark.asyncio
async def test_success_builds_expected_request_and_normalizes() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "meta": {"symbol": "IBM"},
                "values": [
                    {"datetime": "2026-01-05", "close": "251.10"},
                    {"datetime": "2026-01-02", "close": "249.00"},
                ],
                "status": "ok",
            },
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        result = await _client(http).fetch("IBM", END)

    assert result == SeriesResult(
        symbol="IBM",
        points=(PricePoint("2026-01-02", 249.0), PricePoint("2026-01-05", 251.1)),
    )
    params = seen[0].url.params
    assert seen[0].url.path == "/time_series"
    assert params["symbol"] == "IBM"
    assert params["interval"] == "1day"
    assert params["start_date"] == "2026-01-01"
    assert params["end_date"] == "2026-03-02"
    assert params["outputsize"] == "500"
    assert params["format"] == "JSON"
    assert params["apikey"] == "test-key"


@pytest.mark.asyncio
async def test_transport_error_becomes_status_500_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        result = await _client(http).fetch("IBM", END)

    assert isinstance(result, FetchFailure)
    assert result.status == 500
    assert result.code is None
    assert "connection refused" in result.message


@pytest.mark.asyncio
async def test_unparseable_body_becomes_status_500_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="<html>bad gateway</html>")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        result = await _client(http).fetch("IBM", END)

    assert isinstance(result, FetchFailure)
    assert result.status == 500


@pytest.mark.asyncio
async def test_rate_limited_response_keeps_http_status_and_message() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"status": "error", "message": "rate limit"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        result = await _client(http).fetch("A", END)

    assert result == FetchFailure(symbol="A", message="rate limit", status=429)
    assert result.to_dict() == {"message": "rate limit", "status": 429}


@pytest.mark.asyncio
async def test_http_error_without_message_uses_status_text() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        result = await _client(http).fetch("A", END)

    assert result == FetchFailure(symbol="A", message="HTTP 503", status=503)


@pytest.mark.asyncio
async def test_error_flag_in_ok_response_carries_code() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "status": "error",
                "code": 400,
                "message": "No data is available on the specified dates. Try setting different start/end dates.",
            },
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        result = await _client(http).fetch("DC", END)

    assert isinstance(result, FetchFailure)
    assert result.code == 400
    assert result.status == 200
    assert result.message.startswith("No data is available on the specified dates")


@pytest.mark.asyncio
async def test_empty_or_unusable_values_are_no_data_failures() -> None:
    bodies = iter(
        [
            {"status": "ok", "values": []},
            {"status": "ok"},
            {"status": "ok", "values": [{"datetime": "2026-01-02", "close": "x"}]},
        ]
    )

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=next(bodies))

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        client = _client(http)
        for _ in range(3):
            result = await client.fetch("VZ", END)
            assert result == FetchFailure(symbol="VZ", message=NO_DATA_MESSAGE)


@pytest.mark.asyncio
async def test_fetch_many_runs_concurrently_and_keeps_order() -> None:
    in_flight = 0
    peak = 0

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        symbol = request.url.params["symbol"]
        if symbol == "B":
            return httpx.Response(500, json={"message": "upstream exploded"})
        return httpx.Response(200, json={"values": [{"datetime": "2026-01-02", "close": "1"}]})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        results = await _client(http).fetch_many(["A", "B", "C"], END)

    assert [r.symbol for r in results] == ["A", "B", "C"]
    assert isinstance(results[0], SeriesResult)
    assert results[1] == FetchFailure(symbol="B", message="upstream exploded", status=500)
    assert isinstance(results[2], SeriesResult)
    assert peak == 3


@pytest.mark.asyncio
async def test_fetch_many_with_no_symbols_makes_no_calls() -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - must not be called
        raise AssertionError("unexpected request")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        assert await _client(http).fetch_many([], END) == []
