"""leaguefeed — CLI entrypoint.

Run the API server or a single fetch pass::

    python -m leaguefeed.main --server     # default
    python -m leaguefeed.main --once       # one batch, print the payload
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from leaguefeed import __version__
from leaguefeed.config import get_settings
from leaguefeed.prices import LeagueFeedError, LeaguePriceService, canonical_request_key
from leaguefeed.utils import setup_logging

logger = logging.getLogger("leaguefeed")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="leaguefeed",
        description="leaguefeed — batched daily closes for the league roster",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--server", action="store_true", help="Run FastAPI server")
    mode.add_argument("--once", action="store_true", help="Run one fetch pass and print the payload")
    parser.add_argument(
        "--no-shared-cache",
        action="store_true",
        help="Skip the Redis tier (only meaningful with --once)",
    )
    parser.add_argument("--version", action="version", version=f"leaguefeed {__version__}")
    return parser


async def _run_once(args: argparse.Namespace) -> int:
    settings = get_settings()
    if args.no_shared_cache:
        settings.__dict__["shared_cache_enabled"] = False

    service = LeaguePriceService.from_settings(settings)
    key = canonical_request_key("GET", f"http://{settings.api_host}:{settings.api_port}/api/league")
    try:
        result = await service.get_league(key)
    except LeagueFeedError as exc:
        logger.error("%s %s", exc.message, exc.details or "")
        return 1
    finally:
        await service.aclose()

    payload = result.payload
    logger.info(
        "Cycle %s: %d series, %d errors, %d remaining (ttl %ss, source %s)",
        "partial" if payload.get("partial") else "complete",
        len(payload.get("series") or {}),
        len(payload.get("errors") or {}),
        len(payload.get("remainingSymbols") or []),
        result.ttl_seconds,
        result.cache_source,
    )
    print(json.dumps(payload, indent=2))
    return 0


async def _serve() -> None:
    import uvicorn
    from leaguefeed.api.app import create_app

    settings = get_settings()
    app = create_app()
    config = uvicorn.Config(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )
    server = uvicorn.Server(config)
    await server.serve()


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()

    settings = get_settings()
    setup_logging(settings.log_level)

    try:
        if args.once:
            sys.exit(asyncio.run(_run_once(args)))
        asyncio.run(_serve())
    except KeyboardInterrupt:
        logger.info("Interrupted — shutting down")


if __name__ == "__main__":
    main()
