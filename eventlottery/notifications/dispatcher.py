"""Fan-out of status-change notifications to entrants."""

from __future__ import annotations

import enum
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ..db.session import read_session, transaction
from ..errors import PartialDispatchFailure
from ..models import (
    Decision,
    DecisionStatus,
    EntrantProfile,
    Notification,
    WaitingListEntry,
)
from .messages import NotificationType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchRecord:
    """What the delivery transport receives for each notification."""

    recipient_id: str
    event_id: Optional[int]
    type: str
    title: str
    message: str


#: Delivery hook (push, email, ...). Raising marks the recipient as failed.
Transport = Callable[[DispatchRecord], None]


class DispatchStatus(str, enum.Enum):
    SENT = "sent"
    SUPPRESSED = "suppressed"
    FAILED = "failed"


@dataclass(frozen=True)
class DispatchOutcome:
    recipient_id: str
    status: DispatchStatus
    notification_id: Optional[int] = None
    error: Optional[str] = None


@dataclass
class DispatchReport:
    """Per-recipient outcomes of one fan-out."""

    outcomes: list[DispatchOutcome] = field(default_factory=list)

    def _with_status(self, status: DispatchStatus) -> list[DispatchOutcome]:
        return [o for o in self.outcomes if o.status == status]

    @property
    def sent(self) -> list[DispatchOutcome]:
        return self._with_status(DispatchStatus.SENT)

    @property
    def suppressed(self) -> list[DispatchOutcome]:
        return self._with_status(DispatchStatus.SUPPRESSED)

    @property
    def failed(self) -> list[DispatchOutcome]:
        return self._with_status(DispatchStatus.FAILED)

    @property
    def ok(self) -> bool:
        return not self.failed

    def failed_recipients(self) -> list[str]:
        return [o.recipient_id for o in self.failed]

    def raise_for_failures(self) -> None:
        """Raise :class:`PartialDispatchFailure` if any recipient failed."""
        if self.failed:
            raise PartialDispatchFailure(self)


class NotificationDispatcher:
    """Create notifications for entrants, honouring their opt-out flag.

    Each notification is written in its own transaction so one recipient's
    failure cannot affect another's. Fan-out runs on a bounded thread pool;
    with ``max_workers=1`` recipients are handled one after another in the
    calling thread. Engines on a :class:`~sqlalchemy.pool.StaticPool` (the
    in-memory SQLite engine) share one connection, so their recipients are
    always handled in turn.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        max_workers: int = 8,
        transport: Optional[Transport] = None,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        bind = session_factory.kw.get("bind")
        if bind is not None and isinstance(bind.pool, StaticPool):
            # per-recipient transactions must not interleave on one connection
            max_workers = 1
        self._session_factory = session_factory
        self._max_workers = max_workers
        self._transport = transport

    def notify(
        self,
        entrant_id: str,
        event_id: Optional[int],
        type: NotificationType | str,
        title: str,
        message: str,
    ) -> DispatchOutcome:
        """Notify a single entrant.

        Returns a ``suppressed`` outcome without writing anything when the
        entrant opted out. Otherwise the notification row is appended and
        handed to the transport inside one transaction; a transport error
        rolls the row back and propagates.
        """
        type_value = type.value if isinstance(type, NotificationType) else str(type)
        with transaction(self._session_factory) as session:
            if EntrantProfile.is_opted_out(session, entrant_id):
                logger.debug(f"Notification to {entrant_id} suppressed (opted out)")
                return DispatchOutcome(entrant_id, DispatchStatus.SUPPRESSED)

            notification = Notification(
                recipient_id=entrant_id,
                event_id=event_id,
                type=type_value,
                title=title,
                message=message,
            )
            session.add(notification)
            session.flush()
            if self._transport is not None:
                self._transport(
                    DispatchRecord(
                        recipient_id=entrant_id,
                        event_id=event_id,
                        type=type_value,
                        title=title,
                        message=message,
                    )
                )
            notification_id = notification.id

        return DispatchOutcome(
            entrant_id, DispatchStatus.SENT, notification_id=notification_id
        )

    def notify_many(
        self,
        entrant_ids: Iterable[str],
        event_id: Optional[int],
        type: NotificationType | str,
        title: str,
        message: str,
    ) -> DispatchReport:
        """Send the same notification to every entrant in ``entrant_ids``.

        Duplicate ids are notified once. Outcomes are reported in input order.
        """
        type_value = type.value if isinstance(type, NotificationType) else str(type)
        records = [
            DispatchRecord(recipient_id, event_id, type_value, title, message)
            for recipient_id in dict.fromkeys(entrant_ids)
        ]
        return self.dispatch(records)

    def dispatch(self, records: Sequence[DispatchRecord]) -> DispatchReport:
        """Deliver a batch of possibly different notifications."""
        if not records:
            return DispatchReport()

        workers = min(self._max_workers, len(records))
        if workers == 1:
            outcomes = [self._notify_collecting_errors(record) for record in records]
        else:
            with ThreadPoolExecutor(
                max_workers=workers, thread_name_prefix="notify"
            ) as pool:
                outcomes = list(pool.map(self._notify_collecting_errors, records))

        report = DispatchReport(outcomes)
        if report.failed:
            logger.warning(
                f"{len(report.failed)} of {len(records)} notification(s) failed: "
                f"{report.failed_recipients()}"
            )
        return report

    def _notify_collecting_errors(self, record: DispatchRecord) -> DispatchOutcome:
        # Failures are reported per recipient instead of aborting the batch.
        try:
            return self.notify(
                record.recipient_id,
                record.event_id,
                record.type,
                record.title,
                record.message,
            )
        except Exception as exc:
            logger.warning(f"Notification to {record.recipient_id} failed: {exc}")
            return DispatchOutcome(
                record.recipient_id, DispatchStatus.FAILED, error=str(exc)
            )

    def notify_by_status(
        self,
        event_id: int,
        statuses: Iterable[DecisionStatus | str],
        title: str,
        message: str,
    ) -> DispatchReport:
        """Broadcast an organizer message to entrants in any of ``statuses``.

        The notification type of each message is the recipient's decision
        status.
        """
        values = [DecisionStatus(s).value for s in statuses]
        if not values:
            raise ValueError("At least one status must be selected")

        with read_session(self._session_factory) as session:
            rows = session.execute(
                select(Decision.entrant_id, Decision.status)
                .where(Decision.event_id == event_id, Decision.status.in_(values))
                .order_by(Decision.id.asc())
            ).all()

        records = [
            DispatchRecord(entrant_id, event_id, status, title, message)
            for entrant_id, status in rows
        ]
        return self.dispatch(records)

    def notify_waiting_list(
        self, event_id: int, title: str, message: str
    ) -> DispatchReport:
        """Send a message to everyone currently on the event's waiting list."""
        with read_session(self._session_factory) as session:
            entrant_ids = session.scalars(
                select(WaitingListEntry.entrant_id)
                .where(WaitingListEntry.event_id == event_id)
                .order_by(WaitingListEntry.joined_at.asc(), WaitingListEntry.id.asc())
            ).all()
        return self.notify_many(
            entrant_ids, event_id, NotificationType.ENROLLED, title, message
        )

    def notifications_for(
        self, recipient_id: str, *, unread_only: bool = False
    ) -> list[Notification]:
        with read_session(self._session_factory) as session:
            return Notification.for_recipient(
                session, recipient_id, unread_only=unread_only
            )

    def mark_read(self, recipient_id: str, notification_id: int) -> bool:
        """Acknowledge a notification. Returns ``False`` if it is not the recipient's."""
        with transaction(self._session_factory) as session:
            result = session.execute(
                update(Notification)
                .where(
                    Notification.id == notification_id,
                    Notification.recipient_id == recipient_id,
                )
                .values(read=True)
            )
            return (result.rowcount or 0) == 1


__all__ = [
    "DispatchOutcome",
    "DispatchRecord",
    "DispatchReport",
    "DispatchStatus",
    "NotificationDispatcher",
    "Transport",
]
