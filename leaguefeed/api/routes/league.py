"""League endpoint — the aggregated closing-price payload."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from leaguefeed.api.app import get_league_service
from leaguefeed.prices import LeagueFeedError, LeaguePriceService, canonical_request_key
from leaguefeed.prices.response import SHORT_TTL_SECONDS, cache_control_header, error_payload

logger = logging.getLogger(__name__)

router = APIRouter(tags=["league"])


def _json(payload: dict[str, Any], *, ttl: int, status_code: int = 200, cache_source: str | None = None) -> JSONResponse:
    headers = {"Cache-Control": cache_control_header(ttl)}
    if cache_source:
        headers["X-League-Cache"] = cache_source
    return JSONResponse(payload, status_code=status_code, headers=headers)


@router.get("/league")
async def league(request: Request, service: LeaguePriceService = Depends(get_league_service)):
    key = canonical_request_key(request.method, str(request.url))
    try:
        result = await service.get_league(key)
    except LeagueFeedError as exc:
        logger.error("League request rejected: %s", exc.message)
        return _json(error_payload(exc.message, exc.details), ttl=SHORT_TTL_SECONDS, status_code=500)
    except Exception as exc:
        logger.exception("League request failed")
        return _json(error_payload("Internal error", str(exc)), ttl=SHORT_TTL_SECONDS, status_code=500)

    return _json(result.payload, ttl=result.ttl_seconds, cache_source=result.cache_source)
