"""CLI: print a summary of the shared-tier league payload."""

from __future__ import annotations

import argparse
import asyncio
import json

from leaguefeed.config import get_settings
from leaguefeed.prices import RedisTierCache, canonical_request_key
from leaguefeed.utils import utc_now


def summarize(payload: dict | None, expires_at=None) -> dict:  # noqa: ANN001
    if payload is None:
        return {"cached": False}
    now = utc_now()
    return {
        "cached": True,
        "endDate": payload.get("endDate"),
        "partial": payload.get("partial"),
        "series": len(payload.get("series") or {}),
        "errors": sorted((payload.get("errors") or {}).keys()),
        "remainingSymbols": payload.get("remainingSymbols") or [],
        "nextFetchAfter": payload.get("nextFetchAfter"),
        "notice": payload.get("notice"),
        "expiresInSeconds": round((expires_at - now).total_seconds(), 1) if expires_at else None,
    }


async def _amain(url: str) -> None:
    settings = get_settings()
    tier = RedisTierCache.from_url(settings.redis_url)
    try:
        entry = await tier.get(canonical_request_key("GET", url))
        out = summarize(entry.payload if entry else None, entry.expires_at if entry else None)
        print(json.dumps(out, indent=2, default=str))
    finally:
        await tier.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Show the cached league payload in Redis")
    parser.add_argument("url", help="Public URL of the league endpoint, e.g. https://example.com/api/league")
    asyncio.run(_amain(parser.parse_args().url))
