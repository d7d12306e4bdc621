"""Per-user token filters stored in a Redis hash."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from token_scanner.errors import ValidationFailure

if TYPE_CHECKING:
    from redis.asyncio import Redis

    from token_scanner.storage.repos import TokenDTO

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "filters:"

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


def _decode(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def _optional_number(raw: str, cast: type) -> Any:
    if raw == "":
        return None
    try:
        return cast(float(raw))
    except ValueError:
        return None


@dataclass(frozen=True)
class TokenFilters:
    """Thresholds a user applies to token lists. ``None`` disables a check."""

    min_holders: int | None = None
    min_liquidity: float | None = None
    min_market_cap: float | None = None
    exclude_cto: bool = False
    only_verified: bool = False

    def __post_init__(self) -> None:
        for name in ("min_holders", "min_liquidity", "min_market_cap"):
            value = getattr(self, name)
            if value is not None and (not math.isfinite(value) or value < 0):
                raise ValidationFailure(f"{name} must be a non-negative number, got {value}")

    @property
    def is_empty(self) -> bool:
        return self == TokenFilters()

    def to_mapping(self) -> dict[str, str]:
        """Flatten to Redis hash fields; disabled thresholds are empty strings."""
        return {
            "min_holders": "" if self.min_holders is None else str(self.min_holders),
            "min_liquidity": "" if self.min_liquidity is None else str(self.min_liquidity),
            "min_market_cap": "" if self.min_market_cap is None else str(self.min_market_cap),
            "exclude_cto": "1" if self.exclude_cto else "0",
            "only_verified": "1" if self.only_verified else "0",
        }

    @classmethod
    def from_mapping(cls, data: Mapping[Any, Any]) -> TokenFilters:
        fields = {_decode(k): _decode(v) for k, v in data.items()}
        return cls(
            min_holders=_optional_number(fields.get("min_holders", ""), int),
            min_liquidity=_optional_number(fields.get("min_liquidity", ""), float),
            min_market_cap=_optional_number(fields.get("min_market_cap", ""), float),
            exclude_cto=fields.get("exclude_cto", "0").lower() in _TRUE_VALUES,
            only_verified=fields.get("only_verified", "0").lower() in _TRUE_VALUES,
        )

    def matches(self, token: TokenDTO) -> bool:
        metrics = token.metrics
        if self.min_holders is not None and (metrics.get("holder_count") or 0) < self.min_holders:
            return False
        if self.min_liquidity is not None and (metrics.get("liquidity_amount") or 0.0) < self.min_liquidity:
            return False
        if self.min_market_cap is not None and (metrics.get("market_cap") or 0.0) < self.min_market_cap:
            return False
        if self.exclude_cto and token.is_cto:
            return False
        return not (self.only_verified and not token.is_verified)


class FilterManager:
    """Stores and applies per-user token filters.

    Filters live in the hash ``filters:{user_id}`` so they survive restarts
    and are shared between processes.
    """

    def __init__(self, redis: Redis, *, key_prefix: str = DEFAULT_KEY_PREFIX) -> None:
        self._redis = redis
        self._key_prefix = key_prefix

    def _key(self, user_id: str) -> str:
        return f"{self._key_prefix}{user_id}"

    async def set_filters(self, user_id: str, filters: TokenFilters) -> None:
        """Replace a user's filters with a single HSET."""
        if not user_id:
            raise ValidationFailure("user_id is required")
        await self._redis.hset(self._key(user_id), mapping=filters.to_mapping())
        logger.debug("Filters set for user %s: %s", user_id, filters)

    async def get_filters(self, user_id: str) -> TokenFilters:
        """Return a user's filters; an unknown user gets no filtering."""
        data = await self._redis.hgetall(self._key(user_id))
        if not data:
            return TokenFilters()
        return TokenFilters.from_mapping(data)

    async def clear_filters(self, user_id: str) -> bool:
        deleted = await self._redis.delete(self._key(user_id))
        return int(deleted) > 0

    @staticmethod
    def apply_filters(tokens: Iterable[TokenDTO], filters: TokenFilters) -> list[TokenDTO]:
        """Keep the tokens that pass every enabled check, in input order."""
        return [token for token in tokens if filters.matches(token)]
