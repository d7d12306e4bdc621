"""Data models for the alerter module."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol


class NotificationKind(str, Enum):
    """What produced a notification."""

    LAUNCH = "launch"
    PRICE_ALERT = "price_alert"
    WHALE_TRADE = "whale_trade"
    COMMUNITY_TAKEOVER = "community_takeover"


class Severity(str, Enum):
    """How loudly a notification should be rendered."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class NotificationEvent:
    """A single thing worth telling someone about.

    ``fields`` holds ordered label/value pairs rendered by every channel.
    """

    kind: NotificationKind
    title: str
    message: str
    fields: tuple[tuple[str, str], ...] = ()
    severity: Severity = Severity.MEDIUM
    token_address: str | None = None
    wallet_address: str | None = None
    user_id: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "title": self.title,
            "message": self.message,
            "fields": [list(pair) for pair in self.fields],
            "severity": self.severity.value,
            "token_address": self.token_address,
            "wallet_address": self.wallet_address,
            "user_id": self.user_id,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class FormattedAlert:
    """A notification rendered for every supported channel."""

    title: str
    body: str
    discord_embed: dict[str, object]
    telegram_markdown: str
    plain_text: str
    links: dict[str, str] = field(default_factory=dict)


class Notifier(Protocol):
    """Sink the core components report through."""

    async def notify(self, event: NotificationEvent) -> None: ...
