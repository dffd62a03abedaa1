"""Notification dispatch for lottery status changes."""

from .dispatcher import (
    DispatchOutcome,
    DispatchRecord,
    DispatchReport,
    DispatchStatus,
    NotificationDispatcher,
    Transport,
)
from .messages import (
    CANCELLATION,
    LOSER,
    MessageTemplate,
    NotificationType,
    REPLACEMENT,
    WINNER,
)

__all__ = [
    "CANCELLATION",
    "DispatchOutcome",
    "DispatchRecord",
    "DispatchReport",
    "DispatchStatus",
    "LOSER",
    "MessageTemplate",
    "NotificationDispatcher",
    "NotificationType",
    "REPLACEMENT",
    "Transport",
    "WINNER",
]
