"""Tests for provider clients and rolling-window quotas."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from token_scanner.errors import ProviderUnavailable
from token_scanner.gateway.providers import ProviderClient, QuotaTracker

# ============================================================================
# Fixtures
# ============================================================================


class FakeClock:
    """Manually advanced monotonic clock whose sleep moves time forward."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    """Create a fake clock."""
    return FakeClock()


def make_client(handler, *, quota: QuotaTracker | None = None) -> ProviderClient:
    return ProviderClient(
        "pump",
        "https://frontend-api.test/",
        quota or QuotaTracker(100, 60_000),
        transport=httpx.MockTransport(handler),
    )


# ============================================================================
# QuotaTracker Tests
# ============================================================================


class TestQuotaTracker:
    """Tests for QuotaTracker."""

    def test_rejects_invalid_limits(self):
        """Quotas need at least one request and a positive window."""
        with pytest.raises(ValueError):
            QuotaTracker(0, 1000)
        with pytest.raises(ValueError):
            QuotaTracker(1, 0)

    @pytest.mark.asyncio
    async def test_under_quota_does_not_wait(self, clock):
        """Acquisitions below the limit return immediately."""
        quota = QuotaTracker(3, 1000, clock=clock, sleep=clock.sleep)

        for _ in range(3):
            await quota.acquire()

        assert clock.sleeps == []
        assert quota.total_acquired == 3
        assert quota.in_window() == 3

    @pytest.mark.asyncio
    async def test_excess_call_is_delayed_not_dropped(self, clock):
        """The call over quota waits for the oldest grant to age out."""
        quota = QuotaTracker(2, 1000, clock=clock, sleep=clock.sleep)

        await quota.acquire()
        clock.now = 0.25
        await quota.acquire()
        clock.now = 0.5
        await quota.acquire()

        assert clock.sleeps == [pytest.approx(0.5)]
        assert clock.now == pytest.approx(1.0)
        assert quota.total_acquired == 3
        assert quota.total_waits == 1

    @pytest.mark.asyncio
    async def test_rolling_window_never_exceeded(self, clock):
        """No window of window_ms ever holds more than max_requests grants."""
        quota = QuotaTracker(3, 1000, clock=clock, sleep=clock.sleep)
        granted_at: list[float] = []

        for _ in range(10):
            await quota.acquire()
            granted_at.append(clock.now)
            clock.now += 0.25

        for start in granted_at:
            in_window = [t for t in granted_at if start <= t < start + 1.0]
            assert len(in_window) <= 3

    @pytest.mark.asyncio
    async def test_window_slides(self, clock):
        """Old grants stop counting once the window has passed."""
        quota = QuotaTracker(1, 1000, clock=clock, sleep=clock.sleep)

        await quota.acquire()
        clock.now = 1.5
        await quota.acquire()

        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_concurrent_acquires_serialized(self, clock):
        """Concurrent callers share one quota."""
        quota = QuotaTracker(2, 1000, clock=clock, sleep=clock.sleep)

        await asyncio.gather(*(quota.acquire() for _ in range(4)))

        assert quota.total_acquired == 4
        assert clock.now == pytest.approx(1.0)


# ============================================================================
# ProviderClient Tests
# ============================================================================


class TestProviderClient:
    """Tests for ProviderClient."""

    @pytest.mark.asyncio
    async def test_get_json(self):
        """A 2xx JSON body is decoded and the quota is charged."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[{"mint": "abc"}])

        quota = QuotaTracker(10, 60_000)
        client = make_client(handler, quota=quota)
        try:
            body = await client.get_json("/coins", params={"limit": 5})
        finally:
            await client.close()

        assert body == [{"mint": "abc"}]
        assert quota.total_acquired == 1
        assert seen[0].url.path == "/coins"
        assert seen[0].url.params["limit"] == "5"
        assert seen[0].headers["Accept"] == "application/json"

    @pytest.mark.asyncio
    async def test_extra_headers_sent(self):
        """Opaque credentials are passed through as headers."""
        captured: dict[str, str] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured.update(request.headers)
            return httpx.Response(200, json={})

        client = ProviderClient(
            "pump",
            "https://frontend-api.test",
            QuotaTracker(10, 60_000),
            headers={"Cookie": "session=1"},
            transport=httpx.MockTransport(handler),
        )
        try:
            await client.get_json("/sol-price")
        finally:
            await client.close()

        assert captured["cookie"] == "session=1"

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        """Non-2xx responses raise ProviderUnavailable with the status."""
        client = make_client(lambda request: httpx.Response(500, text="boom"))
        try:
            with pytest.raises(ProviderUnavailable) as exc_info:
                await client.get_json("/coins")
        finally:
            await client.close()

        assert exc_info.value.status_code == 500
        assert exc_info.value.provider == "pump"

    @pytest.mark.asyncio
    async def test_network_error(self):
        """Transport failures raise ProviderUnavailable."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)
        try:
            with pytest.raises(ProviderUnavailable) as exc_info:
                await client.get_json("/coins")
        finally:
            await client.close()

        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        """An undecodable body raises ProviderUnavailable."""
        client = make_client(lambda request: httpx.Response(200, text="<html>"))
        try:
            with pytest.raises(ProviderUnavailable):
                await client.get_json("/coins")
        finally:
            await client.close()
