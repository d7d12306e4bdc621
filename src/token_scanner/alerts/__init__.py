"""Alerts module - one-shot price alerts."""

from token_scanner.alerts.machine import (
    AlertCondition,
    AlertStateMachine,
    AlertSweepResult,
    condition_met,
)
from token_scanner.alerts.state import ActiveAlertSet

__all__ = [
    "ActiveAlertSet",
    "AlertCondition",
    "AlertStateMachine",
    "AlertSweepResult",
    "condition_met",
]
