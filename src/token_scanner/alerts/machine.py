"""Threshold-triggered, one-shot price alerts.

Lifecycle:
    active -> triggered   (price condition met during a sweep)
    active -> expired     (older than max_age at an expiry sweep)

Both transitions are terminal and are made through a conditional
``UPDATE ... WHERE active``; only the caller whose UPDATE changed the row
notifies, so overlapping sweeps can never notify twice.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING

from token_scanner.alerter.formatter import format_price
from token_scanner.alerter.models import NotificationEvent, NotificationKind, Severity
from token_scanner.alerts.state import ActiveAlertSet
from token_scanner.errors import NotFoundError, ValidationFailure
from token_scanner.storage.repos import AlertDTO, AlertRepository

if TYPE_CHECKING:
    from token_scanner.alerter.models import Notifier
    from token_scanner.gateway.gateway import DataGateway
    from token_scanner.storage.database import DatabaseManager

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_EPSILON = 1e-4
DEFAULT_MAX_CONCURRENCY = 10
DEFAULT_MAX_AGE = timedelta(hours=168)


class AlertCondition(str, Enum):
    """Price comparison an alert waits for."""

    ABOVE = "above"
    BELOW = "below"
    EQUALS = "equals"


def condition_met(
    condition: AlertCondition | str,
    price: float,
    target: float,
    *,
    epsilon: float = DEFAULT_EPSILON,
) -> bool:
    """Check a price against an alert target.

    Example:
        >>> condition_met("above", 1.2, 1.0)
        True
    """
    condition = AlertCondition(condition)
    if condition is AlertCondition.ABOVE:
        return price >= target
    if condition is AlertCondition.BELOW:
        return price <= target
    return abs(price - target) < epsilon


@dataclass
class AlertSweepResult:
    """Outcome of one ``check_alerts`` pass."""

    checked: int = 0
    triggered: int = 0
    skipped: int = 0
    failed: int = 0


class AlertStateMachine:
    """Owns the alert lifecycle.

    Example:
        ```python
        machine = AlertStateMachine(db, gateway, dispatcher, active_set=ActiveAlertSet())
        await machine.load_active()
        await machine.add_alert("user-1", mint, 0.002, "above")
        result = await machine.check_alerts()
        ```
    """

    def __init__(
        self,
        db: DatabaseManager,
        gateway: DataGateway,
        notifier: Notifier,
        *,
        active_set: ActiveAlertSet,
        epsilon: float = DEFAULT_EPSILON,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        max_age: timedelta = DEFAULT_MAX_AGE,
    ) -> None:
        """Initialize the state machine.

        Args:
            db: Database manager for alert persistence.
            gateway: Data gateway for spot prices.
            notifier: Notification sink for triggered alerts.
            active_set: Process-local set of active alerts.
            epsilon: Tolerance for the ``equals`` condition.
            max_concurrency: Maximum concurrent per-alert evaluations.
            max_age: Age after which untriggered alerts expire.
        """
        self._db = db
        self._gateway = gateway
        self._notifier = notifier
        self._active = active_set
        self._epsilon = epsilon
        self._max_concurrency = max_concurrency
        self._max_age = max_age
        self._in_flight: set[int] = set()
        # Serializes set rebuilds against single-alert inserts and deletes.
        self._membership_lock = asyncio.Lock()

    @property
    def active_set(self) -> ActiveAlertSet:
        return self._active

    async def add_alert(
        self,
        user_id: str,
        token_address: str,
        price_target: float,
        condition: str,
    ) -> AlertDTO:
        """Create an active alert.

        Raises:
            ValidationFailure: On an unknown condition, an empty address or
                user, or a non-positive or non-finite target. Nothing is
                written in that case.
        """
        try:
            parsed = AlertCondition(str(condition).lower())
        except ValueError as e:
            choices = ", ".join(c.value for c in AlertCondition)
            raise ValidationFailure(f"Unknown condition {condition!r}; expected one of: {choices}") from e
        try:
            target = float(price_target)
        except (TypeError, ValueError) as e:
            raise ValidationFailure(f"Price target {price_target!r} is not a number") from e
        if not math.isfinite(target) or target <= 0:
            raise ValidationFailure("Price target must be a positive, finite number")
        if not user_id or not token_address:
            raise ValidationFailure("user_id and token_address are required")

        async with self._membership_lock:
            async with self._db.get_async_session() as session:
                alert = await AlertRepository(session).insert(
                    user_id=user_id,
                    token_address=token_address,
                    price_target=target,
                    condition=parsed.value,
                )
            self._active.add(alert)
        logger.info(
            "Alert %d added: user=%s token=%s %s %s",
            alert.id,
            user_id,
            token_address[:10] + "...",
            parsed.value,
            target,
        )
        return alert

    async def remove_alert(self, user_id: str, alert_id: int) -> None:
        """Delete one of a user's alerts.

        Raises:
            NotFoundError: If the alert does not exist or belongs to someone else.
        """
        async with self._membership_lock:
            async with self._db.get_async_session() as session:
                deleted = await AlertRepository(session).delete_for_user(user_id, alert_id)
            if not deleted:
                raise NotFoundError(f"Alert {alert_id} not found for user {user_id}")
            self._active.discard(alert_id)
        logger.info("Alert %d removed by user %s", alert_id, user_id)

    async def list_alerts(self, user_id: str) -> list[AlertDTO]:
        async with self._db.get_async_session() as session:
            return await AlertRepository(session).list_for_user(user_id)

    async def load_active(self) -> int:
        """Rebuild the active set from persisted active alerts."""
        async with self._membership_lock:
            async with self._db.get_async_session() as session:
                alerts = await AlertRepository(session).list_active()
            self._active.replace_all(alerts)
        logger.debug("Loaded %d active alerts", len(alerts))
        return len(alerts)

    async def check_alerts(self) -> AlertSweepResult:
        """Evaluate every active alert against its current spot price."""
        alerts = self._active.snapshot()
        result = AlertSweepResult()
        if not alerts:
            return result

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def check_one(alert: AlertDTO) -> bool | None:
            async with semaphore:
                price = await self._gateway.spot_price(alert.token_address)
                if price is None:
                    return None
                if not condition_met(alert.condition, price, alert.price_target, epsilon=self._epsilon):
                    return False
                return await self._trigger(alert, price)

        outcomes = await asyncio.gather(*(check_one(a) for a in alerts), return_exceptions=True)
        for alert, outcome in zip(alerts, outcomes, strict=True):
            result.checked += 1
            if isinstance(outcome, BaseException):
                result.failed += 1
                logger.warning("Alert %d check failed: %s", alert.id, outcome)
            elif outcome is None:
                result.skipped += 1
                logger.debug("Alert %d skipped: no price for %s", alert.id, alert.token_address)
            elif outcome:
                result.triggered += 1

        if result.triggered or result.failed:
            logger.info(
                "Alert sweep: checked=%d triggered=%d skipped=%d failed=%d",
                result.checked,
                result.triggered,
                result.skipped,
                result.failed,
            )
        return result

    async def _trigger(self, alert: AlertDTO, price: float) -> bool:
        if alert.id in self._in_flight:
            return False
        self._in_flight.add(alert.id)
        try:
            now = datetime.now(UTC)
            async with self._db.get_async_session() as session:
                changed = await AlertRepository(session).mark_triggered(alert.id, price=price, at=now)
            self._active.discard(alert.id)
            if not changed:
                logger.debug("Alert %d was already inactive", alert.id)
                return False
        finally:
            self._in_flight.discard(alert.id)

        await self._notifier.notify(self._build_event(alert, price, now))
        return True

    def _build_event(self, alert: AlertDTO, price: float, at: datetime) -> NotificationEvent:
        return NotificationEvent(
            kind=NotificationKind.PRICE_ALERT,
            title="Price Alert Triggered",
            message=f"Price is {alert.condition} your target of {format_price(alert.price_target)}",
            fields=(
                ("Current Price", format_price(price)),
                ("Target", format_price(alert.price_target)),
                ("Condition", alert.condition),
            ),
            severity=Severity.HIGH,
            token_address=alert.token_address,
            user_id=alert.user_id,
            timestamp=at,
        )

    async def expire_stale(self, *, now: datetime | None = None) -> int:
        """Deactivate alerts older than ``max_age`` without notifying."""
        now = now or datetime.now(UTC)
        cutoff = now - self._max_age
        async with self._db.get_async_session() as session:
            expired = await AlertRepository(session).expire_older_than(cutoff, at=now)
        await self.load_active()
        if expired:
            logger.info("Expired %d stale alerts", expired)
        return expired
