"""Data models for the gateway module.

Provider payloads are decoded into these frozen dataclasses at the gateway
boundary so the rest of the application never handles raw JSON.
"""

from __future__ import annotations

import contextlib
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Generic, TypeVar

from token_scanner.errors import ProviderUnavailable

T = TypeVar("T")

LAMPORTS_PER_SOL = 1_000_000_000
TOKEN_DECIMALS_FACTOR = 1_000_000

# Epoch values above this are treated as milliseconds.
_MS_EPOCH_THRESHOLD = 10_000_000_000


def to_datetime(value: Any) -> datetime | None:
    """Parse an epoch (seconds or milliseconds) or ISO-8601 value into UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, (int, float)):
        ts = float(value)
        if ts > _MS_EPOCH_THRESHOLD:
            ts /= 1000.0
        return datetime.fromtimestamp(ts, tz=UTC)
    if isinstance(value, str):
        with contextlib.suppress(ValueError):
            return to_datetime(float(value))
        with contextlib.suppress(ValueError):
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return None


def to_float(value: Any) -> float | None:
    """Parse a numeric field that providers send as number or string."""
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class FetchCategory(str, Enum):
    """Cache/TTL bucket for gateway lookups."""

    TOKEN_LIST = "token-list"
    TRADE_LIST = "trade-list"
    TOKEN_TRADES = "token-trades"
    REPLY_THREAD = "reply-thread"
    USER_TOKENS = "user-tokens"
    WALLET_TRADES = "wallet-trades"
    SOL_PRICE = "sol-price"
    PRICE_HISTORY = "price-history"
    SPOT_PRICE = "spot-price"
    MARKET_SNAPSHOT = "market-snapshot"
    LISTING_STATUS = "dex-listing-status"


@dataclass(frozen=True)
class LaunchedToken:
    """A token as reported by the launchpad feed."""

    address: str
    ticker: str
    name: str
    deployer: str
    created_at: datetime
    price_sol: float | None = None
    total_supply: float | None = None
    market_cap_sol: float | None = None
    market_cap_usd: float | None = None
    liquidity_sol: float | None = None
    liquidity_locked: bool = False
    holder_count: int | None = None
    top_holder_concentration: float | None = None
    burned_fraction: float | None = None
    reply_count: int = 0
    complete: bool = False
    description: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LaunchedToken:
        """Create a LaunchedToken from a launchpad coin payload."""
        address = data.get("mint") or data.get("address")
        if not address:
            raise ValueError("token payload has no mint address")

        created_at = to_datetime(data.get("created_timestamp") or data.get("created_at"))
        virtual_sol = to_float(data.get("virtual_sol_reserves"))
        virtual_tokens = to_float(data.get("virtual_token_reserves"))
        real_sol = to_float(data.get("real_sol_reserves"))

        price_sol = to_float(data.get("price"))
        if price_sol is None and virtual_sol and virtual_tokens:
            price_sol = (virtual_sol / LAMPORTS_PER_SOL) / (virtual_tokens / TOKEN_DECIMALS_FACTOR)

        liquidity_sol = to_float(data.get("liquidity"))
        if liquidity_sol is None:
            reserves = real_sol if real_sol is not None else virtual_sol
            if reserves is not None:
                liquidity_sol = reserves / LAMPORTS_PER_SOL

        total_supply = to_float(data.get("total_supply"))
        if total_supply is not None and "virtual_token_reserves" in data:
            total_supply /= TOKEN_DECIMALS_FACTOR

        burned_fraction = None
        burned = to_float(data.get("burned_supply"))
        if burned is not None and total_supply:
            burned_fraction = burned / total_supply

        holders = data.get("holder_count", data.get("holders"))
        concentration = to_float(data.get("top_holder_concentration"))

        return cls(
            address=str(address),
            ticker=str(data.get("symbol") or data.get("ticker") or ""),
            name=str(data.get("name") or ""),
            deployer=str(data.get("creator") or data.get("deployer") or ""),
            created_at=created_at or datetime.now(UTC),
            price_sol=price_sol,
            total_supply=total_supply,
            market_cap_sol=to_float(data.get("market_cap")),
            market_cap_usd=to_float(data.get("usd_market_cap")),
            liquidity_sol=liquidity_sol,
            # Bonding-curve reserves cannot be withdrawn by the deployer.
            liquidity_locked=bool(data.get("liquidity_locked", "bonding_curve" in data)),
            holder_count=int(holders) if holders is not None else None,
            top_holder_concentration=concentration,
            burned_fraction=burned_fraction,
            reply_count=int(data.get("reply_count") or 0),
            complete=bool(data.get("complete", False)),
            description=str(data.get("description") or ""),
        )


@dataclass(frozen=True)
class TradeEvent:
    """A single swap on the launchpad."""

    signature: str
    token_address: str
    wallet_address: str
    is_buy: bool
    sol_amount: float
    token_amount: float
    timestamp: datetime
    ticker: str = ""
    price_impact_pct: float | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TradeEvent:
        """Create a TradeEvent from a launchpad trade payload."""
        mint = data.get("mint") or data.get("token_address")
        if not mint:
            raise ValueError("trade payload has no mint address")
        sol_raw = to_float(data.get("sol_amount")) or 0.0
        token_raw = to_float(data.get("token_amount")) or 0.0
        return cls(
            signature=str(data.get("signature") or data.get("tx") or ""),
            token_address=str(mint),
            wallet_address=str(data.get("user") or data.get("wallet") or ""),
            is_buy=bool(data.get("is_buy", True)),
            sol_amount=sol_raw / LAMPORTS_PER_SOL,
            token_amount=token_raw / TOKEN_DECIMALS_FACTOR,
            timestamp=to_datetime(data.get("timestamp")) or datetime.now(UTC),
            ticker=str(data.get("symbol") or ""),
            price_impact_pct=to_float(data.get("price_impact")),
        )

    @property
    def price_sol(self) -> float | None:
        """Execution price in SOL per token."""
        if self.token_amount <= 0:
            return None
        return self.sol_amount / self.token_amount


@dataclass(frozen=True)
class Reply:
    """A comment on a token's reply thread."""

    reply_id: str
    token_address: str
    text: str
    user: str
    timestamp: datetime

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Reply:
        """Create a Reply from a launchpad reply payload."""
        return cls(
            reply_id=str(data.get("id", "")),
            token_address=str(data.get("mint") or ""),
            text=str(data.get("text") or ""),
            user=str(data.get("user") or ""),
            timestamp=to_datetime(data.get("timestamp")) or datetime.now(UTC),
        )


@dataclass(frozen=True)
class Candle:
    """One OHLCV bar of price history."""

    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Candle:
        """Create a Candle from a candlestick payload."""
        close = to_float(data.get("close"))
        if close is None:
            raise ValueError("candle payload has no close")
        open_ = to_float(data.get("open"))
        high = to_float(data.get("high"))
        low = to_float(data.get("low"))
        return cls(
            timestamp=to_datetime(data.get("timestamp")) or datetime.now(UTC),
            open=open_ if open_ is not None else close,
            high=high if high is not None else close,
            low=low if low is not None else close,
            close=close,
            volume=to_float(data.get("volume")) or 0.0,
        )


@dataclass(frozen=True)
class MarketSnapshot:
    """Aggregated DEX pair data for a token."""

    token_address: str
    price_usd: float | None
    liquidity_usd: float | None = None
    volume_24h_usd: float | None = None
    market_cap_usd: float | None = None
    price_change_24h_pct: float | None = None
    pair_created_at: datetime | None = None

    @classmethod
    def from_pair(cls, token_address: str, pair: dict[str, Any]) -> MarketSnapshot:
        """Create a MarketSnapshot from a DEX aggregator pair payload."""
        liquidity = pair.get("liquidity") or {}
        volume = pair.get("volume") or {}
        change = pair.get("priceChange") or {}
        return cls(
            token_address=token_address,
            price_usd=to_float(pair.get("priceUsd")),
            liquidity_usd=to_float(liquidity.get("usd")),
            volume_24h_usd=to_float(volume.get("h24")),
            market_cap_usd=to_float(pair.get("marketCap") or pair.get("fdv")),
            price_change_24h_pct=to_float(change.get("h24")),
            pair_created_at=to_datetime(pair.get("pairCreatedAt")),
        )


@dataclass(frozen=True)
class ListingStatus:
    """Paid-listing order status on the DEX aggregator."""

    token_address: str
    paid: bool
    status: str = ""
    order_type: str = ""
    paid_at: datetime | None = None


@dataclass(frozen=True)
class FetchOk(Generic[T]):
    """Successful gateway fetch."""

    category: FetchCategory
    key: str
    value: T
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class FetchFailed(Generic[T]):
    """Failed gateway fetch carrying the category's neutral default."""

    category: FetchCategory
    key: str
    value: T
    error: ProviderUnavailable = field(compare=False)

    @property
    def ok(self) -> bool:
        return False


FetchResult = FetchOk[T] | FetchFailed[T]
