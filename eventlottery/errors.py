"""Exception taxonomy raised by the lottery engine.

State-mutating operations either commit completely or raise one of these
errors after rolling back. Callers can catch :class:`LotteryError` to handle
every engine failure in one place.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .notifications.dispatcher import DispatchReport


class LotteryError(Exception):
    """Base class for all engine errors."""


class EventNotFound(LotteryError, LookupError):
    """The referenced event does not exist."""

    def __init__(self, event_id: int) -> None:
        super().__init__(f"Event {event_id} does not exist")
        self.event_id = event_id


class AlreadyJoined(LotteryError):
    """The entrant already holds an entry on the event's waiting list.

    Callers should treat this as success-equivalent. ``entry_id`` and
    ``decision_id`` identify the existing records when they could be read.
    """

    def __init__(
        self,
        event_id: int,
        entrant_id: str,
        *,
        entry_id: Optional[int] = None,
        decision_id: Optional[int] = None,
    ) -> None:
        super().__init__(
            f"Entrant '{entrant_id}' has already joined event {event_id}"
        )
        self.event_id = event_id
        self.entrant_id = entrant_id
        self.entry_id = entry_id
        self.decision_id = decision_id


class RegistrationClosed(LotteryError):
    """The event is not accepting entrants right now."""


class WaitingListFull(LotteryError):
    """The event's ``max_entrants`` limit has been reached."""


class InvalidConfiguration(LotteryError, ValueError):
    """An event or setting lacks a valid value required by the operation."""


class NothingToDraw(LotteryError):
    """A draw found no PENDING decisions to select from."""


class InvalidTransition(LotteryError):
    """The target decision or event is not in the required source state,
    or the caller does not own the decision. Nothing was changed."""


class StoreUnavailable(LotteryError):
    """The database could not be reached; the operation did not commit."""


class PartialDispatchFailure(LotteryError):
    """One or more notification recipients could not be notified.

    The state transition that triggered the dispatch has already committed.
    ``report`` holds the per-recipient outcomes so failed recipients can be
    retried on their own.
    """

    def __init__(self, report: "DispatchReport") -> None:
        failed = report.failed
        super().__init__(
            f"{len(failed)} of {len(report.outcomes)} notification(s) failed"
        )
        self.report = report


__all__ = [
    "AlreadyJoined",
    "EventNotFound",
    "InvalidConfiguration",
    "InvalidTransition",
    "LotteryError",
    "NothingToDraw",
    "PartialDispatchFailure",
    "RegistrationClosed",
    "StoreUnavailable",
    "WaitingListFull",
]
