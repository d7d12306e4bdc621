"""Alerter module - notification formatting and delivery."""

from token_scanner.alerter.dispatcher import AlertChannel, AlertDispatcher, DispatchResult
from token_scanner.alerter.formatter import AlertFormatter
from token_scanner.alerter.models import (
    FormattedAlert,
    NotificationEvent,
    NotificationKind,
    Notifier,
    Severity,
)

__all__ = [
    "AlertChannel",
    "AlertDispatcher",
    "AlertFormatter",
    "DispatchResult",
    "FormattedAlert",
    "NotificationEvent",
    "NotificationKind",
    "Notifier",
    "Severity",
]
