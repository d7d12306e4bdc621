"""Fan-out of formatted alerts to every configured channel."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Protocol

from token_scanner.alerter.formatter import AlertFormatter
from token_scanner.alerter.models import FormattedAlert, NotificationEvent

logger = logging.getLogger(__name__)


class AlertChannel(Protocol):
    """A destination alerts can be delivered to."""

    name: str

    async def send(self, alert: FormattedAlert) -> bool:
        """Deliver an alert. Returns True on success."""
        ...


@dataclass
class DispatchResult:
    """Per-channel delivery outcome for one alert."""

    results: dict[str, bool] = field(default_factory=dict)

    @property
    def success_count(self) -> int:
        return sum(1 for ok in self.results.values() if ok)

    @property
    def failure_count(self) -> int:
        return sum(1 for ok in self.results.values() if not ok)

    @property
    def all_succeeded(self) -> bool:
        return bool(self.results) and self.failure_count == 0


@dataclass
class DispatcherStats:
    """Counters for notification delivery."""

    events_received: int = 0
    alerts_sent: int = 0
    alerts_failed: int = 0
    alerts_logged: int = 0


class AlertDispatcher:
    """Formats notification events and sends them to every channel.

    With no channels configured, or in dry-run mode, events are logged
    instead of sent. Channel failures are logged and never raised.

    Example:
        ```python
        dispatcher = AlertDispatcher([DiscordChannel(webhook_url)])
        await dispatcher.notify(event)
        ```
    """

    def __init__(
        self,
        channels: list[AlertChannel],
        *,
        formatter: AlertFormatter | None = None,
        dry_run: bool = False,
    ) -> None:
        self._channels = list(channels)
        self._formatter = formatter or AlertFormatter()
        self._dry_run = dry_run
        self._stats = DispatcherStats()

    @property
    def channels(self) -> list[AlertChannel]:
        return list(self._channels)

    @property
    def stats(self) -> DispatcherStats:
        return self._stats

    async def dispatch(self, alert: FormattedAlert) -> DispatchResult:
        """Send an already-formatted alert to every channel concurrently."""
        results = await asyncio.gather(
            *(channel.send(alert) for channel in self._channels),
            return_exceptions=True,
        )
        outcome = DispatchResult()
        for channel, result in zip(self._channels, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning("Channel %s raised while sending alert: %s", channel.name, result)
                outcome.results[channel.name] = False
            else:
                outcome.results[channel.name] = bool(result)
        return outcome

    async def notify(self, event: NotificationEvent) -> None:
        """Deliver a notification event."""
        self._stats.events_received += 1
        formatted = self._formatter.format(event)

        if self._dry_run or not self._channels:
            self._stats.alerts_logged += 1
            logger.info(
                "%s%s: %s",
                "[DRY RUN] " if self._dry_run else "",
                formatted.title,
                formatted.body.replace("\n", " | "),
            )
            return

        result = await self.dispatch(formatted)
        if result.all_succeeded:
            self._stats.alerts_sent += 1
            logger.info("Alert sent: kind=%s title=%s", event.kind.value, event.title)
        else:
            self._stats.alerts_failed += 1
            logger.warning(
                "Alert partially failed: %d/%d channels succeeded",
                result.success_count,
                result.success_count + result.failure_count,
            )

    async def close(self) -> None:
        """Close channels that hold network resources."""
        for channel in self._channels:
            close = getattr(channel, "close", None)
            if close is not None:
                await close()
