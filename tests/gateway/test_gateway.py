"""Tests for the cache-first data gateway."""

from __future__ import annotations

import json
from datetime import UTC, datetime

import httpx
import pytest

from token_scanner.gateway.gateway import DataGateway, make_cache_key
from token_scanner.gateway.models import (
    Candle,
    FetchCategory,
    FetchFailed,
    FetchOk,
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

MINT = "7GCihgDB8fe6KNjn2MYtkzZcRjQy3t9GHdC8uHYmW2hr"

PAIRS_PAYLOAD = {
    "pairs": [
        {"priceUsd": "0.5", "liquidity": {"usd": 100}, "volume": {"h24": 10}},
        {
            "priceUsd": "0.7",
            "liquidity": {"usd": 5000},
            "volume": {"h24": 1200},
            "marketCap": 70000,
            "priceChange": {"h24": -3.5},
        },
    ]
}


# ============================================================================
# Fixtures
# ============================================================================


class FakeProvider:
    """Routes requests to canned responses and records them."""

    def __init__(self) -> None:
        self.routes: dict[str, httpx.Response | Exception] = {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.routes.get(request.url.path)
        if response is None:
            return httpx.Response(404, json={"error": "not found"})
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def pump() -> FakeProvider:
    """Fake launchpad API."""
    return FakeProvider()


@pytest.fixture
def dex() -> FakeProvider:
    """Fake DEX aggregator API."""
    return FakeProvider()


@pytest.fixture
async def gateway(mock_redis, redis_store, pump, dex):
    """Gateway backed by fake providers and a dict-backed cache."""
    clients = {
        PUMP_PROVIDER: ProviderClient(
            PUMP_PROVIDER,
            "https://pump.test",
            QuotaTracker(100, 60_000),
            transport=httpx.MockTransport(pump),
        ),
        DEXSCREENER_PROVIDER: ProviderClient(
            DEXSCREENER_PROVIDER,
            "https://dex.test",
            QuotaTracker(100, 60_000),
            transport=httpx.MockTransport(dex),
        ),
    }
    gateway = DataGateway(mock_redis, clients)
    yield gateway
    await gateway.close()


# ============================================================================
# Cache Key Tests
# ============================================================================


class TestMakeCacheKey:
    """Tests for make_cache_key."""

    def test_params_sorted(self):
        """Parameter order does not change the key."""
        a = make_cache_key(FetchCategory.PRICE_HISTORY, {"address": MINT, "limit": 10})
        b = make_cache_key(FetchCategory.PRICE_HISTORY, {"limit": 10, "address": MINT})
        assert a == b

    def test_no_params(self):
        """Parameterless categories get an ``all`` suffix."""
        assert make_cache_key(FetchCategory.SOL_PRICE) == "scanner:cache:sol-price:all"

    def test_prefix(self):
        """A custom prefix is honoured."""
        key = make_cache_key(FetchCategory.SPOT_PRICE, {"address": "x"}, prefix="p:")
        assert key == "p:spot-price:address=x"


# ============================================================================
# Fetch Tests
# ============================================================================


class TestFetchCaching:
    """Tests for TTL caching and failure handling."""

    @pytest.mark.asyncio
    async def test_cache_hit_skips_provider_and_quota(self, gateway, dex, redis_store):
        """A second fetch within the TTL is served from cache without charging quota."""
        dex.routes[f"/latest/dex/tokens/{MINT}"] = httpx.Response(200, json=PAIRS_PAYLOAD)
        quota = gateway.provider(DEXSCREENER_PROVIDER).quota

        first = await gateway.fetch(FetchCategory.SPOT_PRICE, {"address": MINT})
        second = await gateway.fetch(FetchCategory.SPOT_PRICE, {"address": MINT})

        assert isinstance(first, FetchOk)
        assert first.from_cache is False
        assert second.from_cache is True
        assert first.value == second.value == pytest.approx(0.7)
        assert quota.total_acquired == 1
        assert len(dex.requests) == 1
        assert gateway.stats.cache_hits == 1
        assert gateway.stats.cache_misses == 1

    @pytest.mark.asyncio
    async def test_ttl_per_category(self, gateway, pump, mock_redis):
        """Payloads are written with the category's TTL."""
        pump.routes["/sol-price"] = httpx.Response(200, json={"solPrice": 150.0})

        result = await gateway.fetch(FetchCategory.SOL_PRICE)

        assert result.value == 150.0
        key, ttl, raw = mock_redis.setex.call_args.args
        assert key == "scanner:cache:sol-price:all"
        assert ttl == gateway.ttl_for(FetchCategory.SOL_PRICE)
        assert json.loads(raw) == {"solPrice": 150.0}

    @pytest.mark.asyncio
    async def test_http_500_returns_default_without_caching(self, gateway, dex, redis_store):
        """A provider error yields the default, is not cached, and is retried next call."""
        dex.routes[f"/latest/dex/tokens/{MINT}"] = httpx.Response(500, text="down")

        first = await gateway.fetch(FetchCategory.SPOT_PRICE, {"address": MINT})
        second = await gateway.fetch(FetchCategory.SPOT_PRICE, {"address": MINT})

        assert isinstance(first, FetchFailed)
        assert first.value is None
        assert first.error.status_code == 500
        assert isinstance(second, FetchFailed)
        assert redis_store == {}
        assert len(dex.requests) == 2
        assert gateway.stats.provider_failures == 2

    @pytest.mark.asyncio
    async def test_list_default_on_failure(self, gateway, pump):
        """List categories degrade to an empty list."""
        pump.routes["/coins"] = httpx.ConnectError("refused")

        result = await gateway.fetch(FetchCategory.TOKEN_LIST)

        assert not result.ok
        assert result.value == []

    @pytest.mark.asyncio
    async def test_rejected_payload_not_cached(self, gateway, pump, redis_store):
        """A payload of the wrong shape is treated as a provider failure."""
        pump.routes["/coins"] = httpx.Response(200, json={"unexpected": True})

        result = await gateway.fetch(FetchCategory.TOKEN_LIST)

        assert not result.ok
        assert result.value == []
        assert redis_store == {}

    @pytest.mark.asyncio
    async def test_corrupt_cache_entry_refetched(self, gateway, pump, redis_store):
        """An undecodable cache entry is discarded and the provider is asked again."""
        key = make_cache_key(FetchCategory.SOL_PRICE)
        redis_store[key] = "{not json"
        pump.routes["/sol-price"] = httpx.Response(200, json={"solPrice": 151.5})

        result = await gateway.fetch(FetchCategory.SOL_PRICE)

        assert result.ok
        assert result.value == 151.5
        assert gateway.stats.corrupt_entries == 1
        assert json.loads(redis_store[key]) == {"solPrice": 151.5}

    @pytest.mark.asyncio
    async def test_missing_path_parameter(self, gateway, dex):
        """A category whose path needs an address fails without a request."""
        result = await gateway.fetch(FetchCategory.SPOT_PRICE, {})

        assert not result.ok
        assert dex.requests == []

    @pytest.mark.asyncio
    async def test_explicit_key(self, gateway, pump, redis_store):
        """An explicit key overrides the derived cache key."""
        pump.routes["/sol-price"] = httpx.Response(200, json=149.0)

        result = await gateway.fetch(FetchCategory.SOL_PRICE, key="custom:sol")

        assert result.key == "custom:sol"
        assert "custom:sol" in redis_store


class TestFetchRouting:
    """Tests for path and query construction."""

    @pytest.mark.asyncio
    async def test_address_fills_path(self, gateway, pump):
        """The address goes into the path, the rest into the query string."""
        pump.routes[f"/candlesticks/{MINT}"] = httpx.Response(
            200,
            json=[
                {"timestamp": 1_760_000_000, "open": 1, "high": 2, "low": 0.5, "close": 1.5, "volume": 10},
            ],
        )

        candles = await gateway.price_history(MINT, timeframe_minutes=5, limit=50)

        request = pump.requests[0]
        assert request.url.path == f"/candlesticks/{MINT}"
        assert request.url.params["timeframe"] == "5"
        assert request.url.params["limit"] == "50"
        assert "address" not in request.url.params
        assert candles == [
            Candle(
                timestamp=datetime.fromtimestamp(1_760_000_000, tz=UTC),
                open=1.0,
                high=2.0,
                low=0.5,
                close=1.5,
                volume=10.0,
            )
        ]

    @pytest.mark.asyncio
    async def test_reply_feed_fallback_path(self, gateway, pump):
        """Without an address the reply thread falls back to the global feed."""
        pump.routes["/replies"] = httpx.Response(
            200,
            json={"replies": [{"id": 1, "mint": MINT, "text": "cto time", "user": "u", "timestamp": 1_760_000_000}]},
        )

        result = await gateway.fetch(FetchCategory.REPLY_THREAD, {"limit": 100, "offset": 0})

        assert result.ok
        assert pump.requests[0].url.params["limit"] == "100"
        assert result.value[0] == Reply(
            reply_id="1",
            token_address=MINT,
            text="cto time",
            user="u",
            timestamp=datetime.fromtimestamp(1_760_000_000, tz=UTC),
        )

    @pytest.mark.asyncio
    async def test_listing_path_uses_chain(self, gateway, dex):
        """The listing endpoint is keyed by chain and address."""
        dex.routes[f"/orders/v1/solana/{MINT}"] = httpx.Response(
            200,
            json=[{"type": "tokenProfile", "status": "approved", "paymentTimestamp": 1_760_000_000_000}],
        )

        result = await gateway.fetch(FetchCategory.LISTING_STATUS, {"address": MINT})

        assert result.value == ListingStatus(
            token_address=MINT,
            paid=True,
            status="approved",
            order_type="tokenProfile",
            paid_at=datetime.fromtimestamp(1_760_000_000, tz=UTC),
        )

    @pytest.mark.asyncio
    async def test_unpaid_listing(self, gateway, dex):
        """Orders without an approval are unpaid."""
        dex.routes[f"/orders/v1/solana/{MINT}"] = httpx.Response(200, json=[{"status": "processing"}])

        result = await gateway.fetch(FetchCategory.LISTING_STATUS, {"address": MINT})

        assert result.value.paid is False
        assert result.value.status == "processing"

    @pytest.mark.asyncio
    async def test_market_snapshot_uses_most_liquid_pair(self, gateway, dex):
        """Snapshots come from the deepest pair."""
        dex.routes[f"/latest/dex/tokens/{MINT}"] = httpx.Response(200, json=PAIRS_PAYLOAD)

        result = await gateway.fetch(FetchCategory.MARKET_SNAPSHOT, {"address": MINT})

        assert result.value == MarketSnapshot(
            token_address=MINT,
            price_usd=0.7,
            liquidity_usd=5000.0,
            volume_24h_usd=1200.0,
            market_cap_usd=70000.0,
            price_change_24h_pct=-3.5,
        )

    @pytest.mark.asyncio
    async def test_no_pairs_is_none(self, gateway, dex):
        """A token without pairs has no spot price."""
        dex.routes[f"/latest/dex/tokens/{MINT}"] = httpx.Response(200, json={"pairs": None})

        assert await gateway.spot_price(MINT) is None

    @pytest.mark.asyncio
    async def test_malformed_items_skipped(self, gateway, pump):
        """One bad item does not fail the whole list."""
        pump.routes["/trades/latest"] = httpx.Response(
            200,
            json=[
                {"signature": "s1", "mint": MINT, "user": "w", "is_buy": True, "sol_amount": 2_000_000_000,
                 "token_amount": 1_000_000_000, "timestamp": 1_760_000_000},
                {"signature": "s2"},
            ],
        )

        result = await gateway.fetch(FetchCategory.TRADE_LIST)

        assert len(result.value) == 1
        assert isinstance(result.value[0], TradeEvent)
        assert result.value[0].sol_amount == 2.0


class TestClearCache:
    """Tests for clear_cache."""

    @pytest.mark.asyncio
    async def test_clear_cache_scans_prefix(self, gateway, mock_redis):
        """Every key under the prefix is deleted across scan pages."""
        mock_redis.scan.side_effect = [(5, ["a", "b"]), (0, ["c"])]
        mock_redis.delete.side_effect = None
        mock_redis.delete.return_value = 2

        deleted = await gateway.clear_cache()

        assert deleted == 4
        assert mock_redis.scan.call_args.kwargs["match"] == "scanner:cache:*"


# ============================================================================
# Model Decoding Tests
# ============================================================================


class TestLaunchedTokenFromDict:
    """Tests for LaunchedToken decoding."""

    def test_bonding_curve_payload(self):
        """Reserves in lamports and raw units are converted."""
        token = LaunchedToken.from_dict(
            {
                "mint": MINT,
                "symbol": "TEST",
                "name": "Test",
                "creator": "dev",
                "created_timestamp": 1_760_000_000_000,
                "virtual_sol_reserves": 30_000_000_000,
                "virtual_token_reserves": 1_000_000_000_000_000,
                "real_sol_reserves": 5_000_000_000,
                "total_supply": 1_000_000_000_000_000,
                "market_cap": 30.0,
                "bonding_curve": "curve",
                "reply_count": 3,
            }
        )

        assert token.address == MINT
        assert token.deployer == "dev"
        assert token.created_at == datetime.fromtimestamp(1_760_000_000, tz=UTC)
        assert token.price_sol == pytest.approx(30 / 1_000_000_000)
        assert token.liquidity_sol == pytest.approx(5.0)
        assert token.total_supply == pytest.approx(1_000_000_000)
        assert token.liquidity_locked is True
        assert token.reply_count == 3
        assert token.holder_count is None

    def test_missing_mint(self):
        """A payload without a mint is rejected."""
        with pytest.raises(ValueError):
            LaunchedToken.from_dict({"symbol": "X"})
