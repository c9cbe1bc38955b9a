from .cache import MarketDataCache, MarketDataFetcher
from .errors import FetchFailed, MarketDataError, NoHistoricalData, UpstreamUnavailable
from .models import CacheEntry, CacheStats, MarketSnapshot, PriceSeries, RefreshSummary, TechnicalIndicators
from .symbols import KNOWN_COINGECKO_IDS, SYMBOL_TO_COINGECKO_ID, resolve_asset_id

__all__ = [
    "MarketDataCache",
    "MarketDataFetcher",
    "FetchFailed",
    "MarketDataError",
    "NoHistoricalData",
    "UpstreamUnavailable",
    "CacheEntry",
    "CacheStats",
    "MarketSnapshot",
    "PriceSeries",
    "RefreshSummary",
    "TechnicalIndicators",
    "KNOWN_COINGECKO_IDS",
    "SYMBOL_TO_COINGECKO_ID",
    "resolve_asset_id",
]
