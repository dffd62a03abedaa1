"""Notification types and the texts the engine sends on its own."""

from __future__ import annotations

import enum
from dataclasses import dataclass


class NotificationType(str, enum.Enum):
    INVITED = "INVITED"
    LOST = "LOST"
    CANCELLED = "CANCELLED"
    ENROLLED = "ENROLLED"
    ANNOUNCEMENT = "ANNOUNCEMENT"


@dataclass(frozen=True)
class MessageTemplate:
    type: NotificationType
    title: str
    body: str

    def render(self, event_name: str) -> tuple[str, str]:
        """Return ``(title, message)`` with the event name filled in."""
        return self.title, self.body.format(event_name=event_name)


WINNER = MessageTemplate(
    NotificationType.INVITED,
    "You won the lottery!",
    "Congratulations! You have been selected for {event_name}. "
    "Please accept or decline your invitation.",
)

LOSER = MessageTemplate(
    NotificationType.LOST,
    "Lottery results",
    "Unfortunately, you were not selected for {event_name}. "
    "You may still have a chance if someone declines.",
)

REPLACEMENT = MessageTemplate(
    NotificationType.INVITED,
    "Spot available!",
    "A spot opened up for {event_name} and you have been invited from the "
    "waiting list. Please accept or decline your invitation.",
)

CANCELLATION = MessageTemplate(
    NotificationType.CANCELLED,
    "Event cancelled",
    "{event_name} has been cancelled by the organizer.",
)


__all__ = [
    "CANCELLATION",
    "LOSER",
    "MessageTemplate",
    "NotificationType",
    "REPLACEMENT",
    "WINNER",
]
