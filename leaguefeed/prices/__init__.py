"""League price pipeline: upstream client, cycle state, cache tiers, service."""

from .cache import FastTierCache, FreshnessResolver, RedisTierCache, canonical_request_key
from .client import TwelveDataClient
from .models import CycleState, FetchFailure, PricePoint, SeriesResult
from .service import ConfigurationError, LeagueFeedError, LeaguePriceService, LeagueResponse

__all__ = [
    "ConfigurationError",
    "CycleState",
    "FastTierCache",
    "FetchFailure",
    "FreshnessResolver",
    "LeagueFeedError",
    "LeaguePriceService",
    "LeagueResponse",
    "PricePoint",
    "RedisTierCache",
    "SeriesResult",
    "TwelveDataClient",
    "canonical_request_key",
]
