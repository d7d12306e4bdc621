"""Process-local set of alerts awaiting evaluation."""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from token_scanner.storage.repos import AlertDTO


class ActiveAlertSet:
    """Active alerts keyed by id.

    Mirrors the persisted ``active=true`` rows. It is rebuilt wholesale by
    ``replace_all`` at startup and after bulk deactivation, and shrinks one
    entry at a time as alerts trigger.
    """

    def __init__(self) -> None:
        self._alerts: dict[int, AlertDTO] = {}

    def replace_all(self, alerts: Iterable[AlertDTO]) -> None:
        self._alerts = {alert.id: alert for alert in alerts if alert.active}

    def add(self, alert: AlertDTO) -> None:
        if alert.active:
            self._alerts[alert.id] = alert

    def discard(self, alert_id: int) -> None:
        self._alerts.pop(alert_id, None)

    def snapshot(self) -> list[AlertDTO]:
        """Copy of the current members, in id order."""
        return [self._alerts[alert_id] for alert_id in sorted(self._alerts)]

    def __contains__(self, alert_id: object) -> bool:
        return alert_id in self._alerts

    def __len__(self) -> int:
        return len(self._alerts)
