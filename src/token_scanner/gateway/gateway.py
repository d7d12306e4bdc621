"""Cache-first, quota-limited access to external market data.

Every lookup goes through ``DataGateway.fetch``. Raw provider payloads are
cached in Redis under a per-category TTL and decoded into typed values on
the way out. Provider failures are never cached; they degrade to the
category's neutral default.
"""

from __future__ import annotations

import json
import logging
import string
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from redis.asyncio import Redis

from token_scanner.config import CacheSettings, ProviderSettings
from token_scanner.errors import ProviderUnavailable
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
    to_datetime,
    to_float,
)
from token_scanner.gateway.providers import (
    DEXSCREENER_PROVIDER,
    PUMP_PROVIDER,
    ProviderClient,
    QuotaTracker,
)

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_KEY_PREFIX = "scanner:cache:"
DEFAULT_CHAIN_ID = "solana"
DEFAULT_SCAN_COUNT = 500

_formatter = string.Formatter()


def _decode_list(item_cls: Any) -> Callable[[Any], list[Any]]:
    def decode(payload: Any) -> list[Any]:
        if isinstance(payload, dict):
            # Some endpoints wrap the list in an envelope.
            for envelope in ("replies", "data", "items"):
                if isinstance(payload.get(envelope), list):
                    payload = payload[envelope]
                    break
        if not isinstance(payload, list):
            raise ValueError(f"expected a list payload, got {type(payload).__name__}")
        items = []
        for raw in payload:
            try:
                items.append(item_cls.from_dict(raw))
            except (ValueError, TypeError, AttributeError) as e:
                logger.debug("Skipping malformed %s item: %s", item_cls.__name__, e)
        return items

    return decode


def _decode_sol_price(payload: Any) -> float | None:
    if isinstance(payload, dict):
        return to_float(payload.get("solPrice", payload.get("price")))
    return to_float(payload)


def _first_pair(payload: Any) -> dict[str, Any] | None:
    if isinstance(payload, list):
        pairs = payload
    elif isinstance(payload, dict):
        pairs = payload.get("pairs") or []
    else:
        raise ValueError("unexpected pair payload")
    if not pairs:
        return None
    # Most liquid pair first.
    return max(pairs, key=lambda p: to_float((p.get("liquidity") or {}).get("usd")) or 0.0)


def _decode_spot_price(payload: Any) -> float | None:
    pair = _first_pair(payload)
    if pair is None:
        return None
    return to_float(pair.get("priceUsd"))


def _decode_snapshot(payload: Any, params: Mapping[str, Any]) -> MarketSnapshot | None:
    pair = _first_pair(payload)
    if pair is None:
        return None
    return MarketSnapshot.from_pair(str(params.get("address", "")), pair)


def _decode_listing(payload: Any, params: Mapping[str, Any]) -> ListingStatus:
    orders = payload if isinstance(payload, list) else (payload or {}).get("orders", [])
    if not isinstance(orders, list):
        raise ValueError("unexpected listing payload")
    address = str(params.get("address", ""))
    for order in orders:
        if order.get("status") == "approved":
            return ListingStatus(
                token_address=address,
                paid=True,
                status="approved",
                order_type=str(order.get("type") or ""),
                paid_at=to_datetime(order.get("paymentTimestamp")),
            )
    status = str(orders[0].get("status") or "") if orders else ""
    return ListingStatus(token_address=address, paid=False, status=status)


@dataclass(frozen=True)
class CategorySpec:
    """How one fetch category maps onto a provider endpoint."""

    provider: str
    path: str
    default_factory: Callable[[], Any]
    decoder: Callable[[Any, Mapping[str, Any]], Any]
    fallback_path: str | None = None


def _list_spec(provider: str, path: str, item_cls: Any, fallback_path: str | None = None) -> CategorySpec:
    decode = _decode_list(item_cls)
    return CategorySpec(
        provider=provider,
        path=path,
        default_factory=list,
        decoder=lambda payload, _params: decode(payload),
        fallback_path=fallback_path,
    )


CATEGORY_SPECS: dict[FetchCategory, CategorySpec] = {
    FetchCategory.TOKEN_LIST: _list_spec(PUMP_PROVIDER, "/coins", LaunchedToken),
    FetchCategory.TRADE_LIST: _list_spec(PUMP_PROVIDER, "/trades/latest", TradeEvent),
    FetchCategory.TOKEN_TRADES: _list_spec(PUMP_PROVIDER, "/trades/all/{address}", TradeEvent),
    FetchCategory.REPLY_THREAD: _list_spec(
        PUMP_PROVIDER, "/replies/{address}", Reply, fallback_path="/replies"
    ),
    FetchCategory.USER_TOKENS: _list_spec(
        PUMP_PROVIDER, "/coins/user-created-coins/{address}", LaunchedToken
    ),
    FetchCategory.WALLET_TRADES: _list_spec(PUMP_PROVIDER, "/trades/user/{address}", TradeEvent),
    FetchCategory.SOL_PRICE: CategorySpec(
        provider=PUMP_PROVIDER,
        path="/sol-price",
        default_factory=lambda: None,
        decoder=lambda payload, _params: _decode_sol_price(payload),
    ),
    FetchCategory.PRICE_HISTORY: _list_spec(PUMP_PROVIDER, "/candlesticks/{address}", Candle),
    FetchCategory.SPOT_PRICE: CategorySpec(
        provider=DEXSCREENER_PROVIDER,
        path="/latest/dex/tokens/{address}",
        default_factory=lambda: None,
        decoder=lambda payload, _params: _decode_spot_price(payload),
    ),
    FetchCategory.MARKET_SNAPSHOT: CategorySpec(
        provider=DEXSCREENER_PROVIDER,
        path="/latest/dex/tokens/{address}",
        default_factory=lambda: None,
        decoder=_decode_snapshot,
    ),
    FetchCategory.LISTING_STATUS: CategorySpec(
        provider=DEXSCREENER_PROVIDER,
        path="/orders/v1/{chain}/{address}",
        default_factory=lambda: None,
        decoder=_decode_listing,
    ),
}


def ttls_from_settings(cache: CacheSettings) -> dict[FetchCategory, int]:
    """Map cache settings onto per-category TTLs."""
    return {
        FetchCategory.TOKEN_LIST: cache.tokens_ttl_seconds,
        FetchCategory.TRADE_LIST: cache.trades_ttl_seconds,
        FetchCategory.TOKEN_TRADES: cache.trades_ttl_seconds,
        FetchCategory.REPLY_THREAD: cache.replies_ttl_seconds,
        FetchCategory.USER_TOKENS: cache.tokens_ttl_seconds,
        FetchCategory.WALLET_TRADES: cache.trades_ttl_seconds,
        FetchCategory.SOL_PRICE: cache.price_ttl_seconds,
        FetchCategory.PRICE_HISTORY: cache.history_ttl_seconds,
        FetchCategory.SPOT_PRICE: cache.price_ttl_seconds,
        FetchCategory.MARKET_SNAPSHOT: cache.price_ttl_seconds,
        FetchCategory.LISTING_STATUS: cache.listing_ttl_seconds,
    }


DEFAULT_TTLS: dict[FetchCategory, int] = {
    FetchCategory.TOKEN_LIST: 60,
    FetchCategory.TRADE_LIST: 30,
    FetchCategory.TOKEN_TRADES: 30,
    FetchCategory.REPLY_THREAD: 300,
    FetchCategory.USER_TOKENS: 60,
    FetchCategory.WALLET_TRADES: 30,
    FetchCategory.SOL_PRICE: 60,
    FetchCategory.PRICE_HISTORY: 300,
    FetchCategory.SPOT_PRICE: 60,
    FetchCategory.MARKET_SNAPSHOT: 60,
    FetchCategory.LISTING_STATUS: 300,
}


def make_cache_key(
    category: FetchCategory,
    params: Mapping[str, Any] | None = None,
    *,
    prefix: str = DEFAULT_KEY_PREFIX,
) -> str:
    """Build a deterministic cache key from a category and its params.

    Example:
        >>> make_cache_key(FetchCategory.SPOT_PRICE, {"address": "Abc"})
        'scanner:cache:spot-price:address=Abc'
    """
    if not params:
        return f"{prefix}{category.value}:all"
    parts = "&".join(f"{name}={params[name]}" for name in sorted(params))
    return f"{prefix}{category.value}:{parts}"


@dataclass
class GatewayStats:
    """Counters for gateway traffic."""

    cache_hits: int = 0
    cache_misses: int = 0
    provider_failures: int = 0
    corrupt_entries: int = 0


class DataGateway:
    """Rate-limited, TTL-cached access to the launchpad and DEX aggregator.

    Example:
        ```python
        gateway = DataGateway.from_settings(redis, settings)
        result = await gateway.fetch(FetchCategory.SPOT_PRICE, {"address": mint})
        price = result.value  # None when the provider is unavailable
        await gateway.close()
        ```
    """

    def __init__(
        self,
        redis: Redis,
        providers: Mapping[str, ProviderClient],
        *,
        ttls: Mapping[FetchCategory, int] | None = None,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        chain_id: str = DEFAULT_CHAIN_ID,
    ) -> None:
        """Initialize the gateway.

        Args:
            redis: Redis async client used as the cache.
            providers: Provider clients keyed by provider name.
            ttls: Per-category TTL overrides (seconds).
            key_prefix: Prefix for every cache key written by the gateway.
            chain_id: Chain identifier substituted into DEX aggregator paths.
        """
        self._redis = redis
        self._providers = dict(providers)
        self._ttls = {**DEFAULT_TTLS, **(ttls or {})}
        self._key_prefix = key_prefix
        self._chain_id = chain_id
        self._stats = GatewayStats()

    @classmethod
    def from_settings(
        cls,
        redis: Redis,
        providers: ProviderSettings,
        cache: CacheSettings,
    ) -> DataGateway:
        """Build a gateway and its provider clients from settings."""
        pump_headers = {}
        if providers.pump_cookie is not None:
            pump_headers["Cookie"] = providers.pump_cookie.get_secret_value()
        clients = {
            PUMP_PROVIDER: ProviderClient(
                PUMP_PROVIDER,
                providers.pump_api_url,
                QuotaTracker(providers.pump_max_requests, providers.pump_window_ms),
                timeout=providers.request_timeout_seconds,
                user_agent=providers.user_agent,
                headers=pump_headers,
            ),
            DEXSCREENER_PROVIDER: ProviderClient(
                DEXSCREENER_PROVIDER,
                providers.dexscreener_api_url,
                QuotaTracker(providers.dexscreener_max_requests, providers.dexscreener_window_ms),
                timeout=providers.request_timeout_seconds,
                user_agent=providers.user_agent,
            ),
        }
        return cls(
            redis,
            clients,
            ttls=ttls_from_settings(cache),
            key_prefix=cache.key_prefix,
            chain_id=providers.chain_id,
        )

    @property
    def stats(self) -> GatewayStats:
        """Current gateway statistics."""
        return self._stats

    def provider(self, name: str) -> ProviderClient:
        """Return the client registered for a provider name."""
        return self._providers[name]

    def ttl_for(self, category: FetchCategory) -> int:
        return self._ttls[category]

    async def fetch(
        self,
        category: FetchCategory,
        params: Mapping[str, Any] | None = None,
        *,
        key: str | None = None,
    ) -> FetchResult[Any]:
        """Fetch a category, serving from cache when fresh.

        Args:
            category: What to fetch.
            params: Path and query parameters (``address`` fills path slots).
            key: Explicit cache key overriding the derived one.

        Returns:
            FetchOk with the decoded value, or FetchFailed carrying the
            category's neutral default and the provider error.
        """
        spec = CATEGORY_SPECS[category]
        params = dict(params or {})
        cache_key = key or make_cache_key(category, params, prefix=self._key_prefix)

        cached = await self._redis.get(cache_key)
        if cached is not None:
            try:
                if isinstance(cached, bytes):
                    cached = cached.decode()
                value = spec.decoder(json.loads(cached), params)
                self._stats.cache_hits += 1
                return FetchOk(category=category, key=cache_key, value=value, from_cache=True)
            except (ValueError, TypeError, KeyError, AttributeError) as e:
                self._stats.corrupt_entries += 1
                logger.warning("Discarding corrupt cache entry %s: %s", cache_key, e)
                await self._redis.delete(cache_key)

        self._stats.cache_misses += 1
        try:
            payload = await self._request(spec, params)
            value = spec.decoder(payload, params)
        except ProviderUnavailable as e:
            return self._failed(category, cache_key, spec, e)
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            error = ProviderUnavailable(
                f"{spec.provider} payload for {category.value} rejected: {e}",
                provider=spec.provider,
            )
            return self._failed(category, cache_key, spec, error)

        await self._redis.setex(cache_key, self._ttls[category], json.dumps(payload))
        return FetchOk(category=category, key=cache_key, value=value)

    def _failed(
        self,
        category: FetchCategory,
        cache_key: str,
        spec: CategorySpec,
        error: ProviderUnavailable,
    ) -> FetchFailed[Any]:
        self._stats.provider_failures += 1
        logger.warning("Fetch %s failed, using default: %s", cache_key, error)
        return FetchFailed(
            category=category,
            key=cache_key,
            value=spec.default_factory(),
            error=error,
        )

    async def _request(self, spec: CategorySpec, params: dict[str, Any]) -> Any:
        slots = {"chain": self._chain_id, **params}
        path = spec.path
        fields = {name for _, name, _, _ in _formatter.parse(path) if name}
        if not fields <= slots.keys():
            if spec.fallback_path is None:
                missing = ", ".join(sorted(fields - slots.keys()))
                raise ValueError(f"missing path parameter(s): {missing}")
            path = spec.fallback_path
            fields = set()
        query = {name: value for name, value in params.items() if name not in fields}
        client = self._providers[spec.provider]
        return await client.get_json(path.format(**slots), params=query or None)

    async def clear_cache(self) -> int:
        """Delete every cached entry under the gateway prefix.

        Returns:
            Number of keys deleted.
        """
        deleted = 0
        cursor = 0
        while True:
            cursor, keys = await self._redis.scan(
                cursor=cursor,
                match=f"{self._key_prefix}*",
                count=DEFAULT_SCAN_COUNT,
            )
            if keys:
                deleted += await self._redis.delete(*keys)
            if not cursor:
                break
        logger.info("Cleared %d cached provider entries", deleted)
        return deleted

    # Typed conveniences over fetch()

    async def spot_price(self, address: str) -> float | None:
        result = await self.fetch(FetchCategory.SPOT_PRICE, {"address": address})
        return result.value

    async def price_history(
        self,
        address: str,
        *,
        timeframe_minutes: int = 60,
        limit: int = 168,
    ) -> list[Candle]:
        result = await self.fetch(
            FetchCategory.PRICE_HISTORY,
            {"address": address, "timeframe": timeframe_minutes, "limit": limit, "offset": 0},
        )
        return result.value

    async def close(self) -> None:
        """Close every provider client."""
        for client in self._providers.values():
            await client.close()
