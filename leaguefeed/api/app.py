"""FastAPI application factory with lifespan, CORS, and routers."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from leaguefeed import __version__
from leaguefeed.config import get_settings
from leaguefeed.prices import LeaguePriceService

logger = logging.getLogger(__name__)

_start_time: float = 0.0


def get_uptime() -> float:
    return time.time() - _start_time if _start_time else 0.0


def get_league_service(request: Request) -> LeaguePriceService:
    return request.app.state.league_service


@asynccontextmanager
async def _lifespan(app: FastAPI):
    global _start_time
    _start_time = time.time()

    owns_service = app.state.league_service is None
    if owns_service:
        settings = get_settings()
        app.state.league_service = LeaguePriceService.from_settings(settings)
        if not settings.has_api_key:
            logger.warning("TWELVE_DATA_API_KEY is not set; /api/league will return 500")

    logger.info("leaguefeed API v%s starting", __version__)
    yield
    logger.info("leaguefeed API shutting down")
    if owns_service:
        await app.state.league_service.aclose()
        app.state.league_service = None


def create_app(service: LeaguePriceService | None = None) -> FastAPI:
    """Build and return the fully-configured FastAPI application."""
    app = FastAPI(
        title="leaguefeed",
        description="Daily closing prices for the league roster, batched under provider rate limits",
        version=__version__,
        lifespan=_lifespan,
    )
    app.state.league_service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    from leaguefeed.api.routes import league, system
    app.include_router(league.router, prefix="/api")
    app.include_router(system.router, prefix="/api")

    return app
