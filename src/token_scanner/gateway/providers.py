"""HTTP provider clients with rolling-window request quotas."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from token_scanner.errors import ProviderUnavailable

logger = logging.getLogger(__name__)

# Constants
DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_USER_AGENT = "Token-Scanner-Bot/1.0"

PUMP_PROVIDER = "pump"
DEXSCREENER_PROVIDER = "dexscreener"


class QuotaTracker:
    """Rolling-window request quota for a single provider.

    At most ``max_requests`` acquisitions are granted within any window of
    ``window_ms`` milliseconds. When the window is full, ``acquire`` waits
    until the oldest grant ages out instead of failing.

    Example:
        >>> quota = QuotaTracker(30, 60_000)
        >>> await quota.acquire()  # returns immediately while under quota
    """

    def __init__(
        self,
        max_requests: int,
        window_ms: int,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the quota tracker.

        Args:
            max_requests: Maximum grants inside one window.
            window_ms: Window length in milliseconds.
            clock: Monotonic clock in seconds (injectable for tests).
            sleep: Awaitable sleep used while waiting (injectable for tests).
        """
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window_ms <= 0:
            raise ValueError("window_ms must be > 0")
        self._max_requests = max_requests
        self._window = window_ms / 1000.0
        self._clock = clock
        self._sleep = sleep
        self._grants: deque[float] = deque()
        self._lock = asyncio.Lock()
        self._total_acquired = 0
        self._total_waits = 0

    @property
    def max_requests(self) -> int:
        return self._max_requests

    @property
    def window_seconds(self) -> float:
        return self._window

    @property
    def total_acquired(self) -> int:
        """Number of grants handed out since creation."""
        return self._total_acquired

    @property
    def total_waits(self) -> int:
        """Number of times a caller had to wait for capacity."""
        return self._total_waits

    def _evict(self, now: float) -> None:
        while self._grants and self._grants[0] <= now - self._window:
            self._grants.popleft()

    def in_window(self) -> int:
        """Grants still counted against the current window."""
        self._evict(self._clock())
        return len(self._grants)

    async def acquire(self) -> None:
        """Wait until a request slot is available, then claim it."""
        async with self._lock:
            while True:
                now = self._clock()
                self._evict(now)
                if len(self._grants) < self._max_requests:
                    self._grants.append(now)
                    self._total_acquired += 1
                    return
                wait_time = self._grants[0] + self._window - now
                self._total_waits += 1
                logger.debug("Quota exhausted, waiting %.3fs for a slot", wait_time)
                await self._sleep(max(wait_time, 0.0))


class ProviderClient:
    """Quota-limited JSON GET client for one external provider.

    Every request first acquires a slot from the provider's QuotaTracker.
    Network failures, non-2xx statuses and undecodable bodies are raised
    as ProviderUnavailable.

    Example:
        >>> client = ProviderClient("pump", "https://frontend-api.pump.fun", QuotaTracker(30, 60_000))
        >>> coins = await client.get_json("/coins/latest")
        >>> await client.close()
    """

    def __init__(
        self,
        name: str,
        base_url: str,
        quota: QuotaTracker,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        user_agent: str = DEFAULT_USER_AGENT,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the provider client.

        Args:
            name: Provider name used in logs and errors.
            base_url: Provider API root.
            quota: Shared quota tracker for this provider.
            timeout: Request timeout in seconds.
            user_agent: User-Agent header value.
            headers: Extra headers (opaque provider credentials).
            transport: Optional httpx transport (used by tests).
        """
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.quota = quota
        request_headers = {"Accept": "application/json", "User-Agent": user_agent}
        if headers:
            request_headers.update(headers)
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers=request_headers,
            transport=transport,
        )

        logger.info(
            "Initialized %s provider with base_url=%s, quota=%d/%.0fs",
            name,
            self.base_url,
            quota.max_requests,
            quota.window_seconds,
        )

    async def get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """GET a JSON document from the provider.

        Args:
            path: Path relative to the base URL.
            params: Query string parameters.

        Returns:
            Decoded JSON body.

        Raises:
            ProviderUnavailable: On network failure, non-2xx status, or invalid JSON.
        """
        await self.quota.acquire()
        try:
            response = await self._client.get(path, params=params)
        except httpx.HTTPError as e:
            raise ProviderUnavailable(
                f"{self.name} request to {path} failed: {e}",
                provider=self.name,
            ) from e

        if response.is_error:
            raise ProviderUnavailable(
                f"{self.name} returned HTTP {response.status_code} for {path}",
                provider=self.name,
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise ProviderUnavailable(
                f"{self.name} returned invalid JSON for {path}",
                provider=self.name,
                status_code=response.status_code,
            ) from e

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
