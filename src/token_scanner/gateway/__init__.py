"""Gateway module - rate-limited, cached access to market-data providers."""

from token_scanner.gateway.gateway import (
    CATEGORY_SPECS,
    DataGateway,
    GatewayStats,
    make_cache_key,
    ttls_from_settings,
)
from token_scanner.gateway.models import (
    Candle,
    FetchCategory,
    FetchFailed,
    FetchOk,
    FetchResult,
    LaunchedToken,
    ListingStatus,
    MarketSnapshot,
    Reply,
    TradeEvent,
)
from token_scanner.gateway.providers import (
    DEXSCREENER_PROVIDER,
    PUMP_PROVIDER,
    ProviderClient,
    QuotaTracker,
)

__all__ = [
    "CATEGORY_SPECS",
    "DEXSCREENER_PROVIDER",
    "PUMP_PROVIDER",
    "Candle",
    "DataGateway",
    "FetchCategory",
    "FetchFailed",
    "FetchOk",
    "FetchResult",
    "GatewayStats",
    "LaunchedToken",
    "ListingStatus",
    "MarketSnapshot",
    "ProviderClient",
    "QuotaTracker",
    "Reply",
    "TradeEvent",
    "make_cache_key",
    "ttls_from_settings",
]
