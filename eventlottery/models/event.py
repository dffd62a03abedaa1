"""Event model: the capacity-limited occasion entrants compete for."""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from ..db.utils import dt_iso, ensure_utc
from ..errors import EventNotFound
from .base import Base, ID_TYPE

if TYPE_CHECKING:
    from .decision import Decision
    from .lottery_draw import LotteryDraw
    from .waiting_list import WaitingListEntry


class EventStatus(str, enum.Enum):
    """Lifecycle of an event."""

    DRAFT = "DRAFT"
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    DRAWN = "DRAWN"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


#: Statuses from which an organizer may run the draw.
DRAWABLE_STATUSES = (EventStatus.OPEN.value, EventStatus.CLOSED.value)

#: Statuses in which new entrants may join. Late joiners on a DRAWN event
#: form the queue that replacement promotions draw from.
JOINABLE_STATUSES = (EventStatus.OPEN.value, EventStatus.DRAWN.value)

#: Fields frozen once the draw has run.
LOTTERY_FIELDS = frozenset(
    {"number_of_winners", "max_entrants", "registration_start", "registration_end"}
)

#: Columns only the lottery itself writes.
MANAGED_FIELDS = frozenset({"status", "entrant_count"})


class Event(Base):
    """An organizer's event with a bounded number of places."""

    __tablename__ = "events"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Primary key."""

    organizer_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    """External identity of the organizer who owns the event."""

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    event_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    registration_start: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    """Entrants may not join before this instant, when set."""

    registration_end: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    """Entrants may not join after this instant, when set."""

    max_entrants: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    """Optional cap on the waiting-list size."""

    number_of_winners: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    """Number of places handed out by the draw. Required before drawing."""

    entrant_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    """Current waiting-list size, maintained atomically by join and leave."""

    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=EventStatus.DRAFT.value
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    entries: Mapped[list["WaitingListEntry"]] = relationship(
        back_populates="event", cascade="all, delete-orphan"
    )
    decisions: Mapped[list["Decision"]] = relationship(
        back_populates="event", cascade="all, delete-orphan"
    )
    draw_record: Mapped[Optional["LotteryDraw"]] = relationship(
        back_populates="event", cascade="all, delete-orphan", uselist=False
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('DRAFT','OPEN','CLOSED','DRAWN','COMPLETED','CANCELLED')",
            name="status_enum",
        ),
        CheckConstraint("entrant_count >= 0", name="entrant_count_non_negative"),
        Index("ix_events_status", "status"),
    )

    def __init__(
        self,
        *,
        organizer_id: str,
        name: str,
        number_of_winners: Optional[int] = None,
        max_entrants: Optional[int] = None,
        description: Optional[str] = None,
        location: Optional[str] = None,
        event_date: Optional[datetime] = None,
        registration_start: Optional[datetime] = None,
        registration_end: Optional[datetime] = None,
        status: EventStatus | str = EventStatus.DRAFT,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ) -> None:
        if max_entrants is not None and max_entrants <= 0:
            raise ValueError("max_entrants must be a positive integer when set")
        if (
            registration_start is not None
            and registration_end is not None
            and registration_end < registration_start
        ):
            raise ValueError("registration_end must not precede registration_start")

        self.organizer_id = organizer_id
        self.name = name
        self.number_of_winners = number_of_winners
        self.max_entrants = max_entrants
        self.description = description
        self.location = location
        self.event_date = event_date
        self.registration_start = registration_start
        self.registration_end = registration_end
        self.status = EventStatus(status).value
        self.entrant_count = 0
        if created_at is not None:
            self.created_at = created_at
        if updated_at is not None:
            self.updated_at = updated_at

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<Event(id={self.id}, name='{self.name}', status={self.status}, "
            f"number_of_winners={self.number_of_winners})>"
        )

    @classmethod
    def require(cls, session: Session, event_id: int) -> "Event":
        """Return the event or raise :class:`EventNotFound`."""

        event = session.get(cls, event_id)
        if event is None:
            raise EventNotFound(event_id)
        return event

    @property
    def is_drawn(self) -> bool:
        return self.status in (EventStatus.DRAWN.value, EventStatus.COMPLETED.value)

    def registration_window_contains(self, moment: datetime) -> bool:
        """Return ``True`` when ``moment`` lies inside the registration window.

        Missing bounds are treated as open-ended.
        """
        moment = ensure_utc(moment)
        start = ensure_utc(self.registration_start)
        end = ensure_utc(self.registration_end)
        if start is not None and moment < start:
            return False
        if end is not None and moment > end:
            return False
        return True

    def accepts_entrants(self, moment: datetime) -> bool:
        """Return ``True`` when a join at ``moment`` should be admitted."""
        return self.status in JOINABLE_STATUSES and self.registration_window_contains(
            moment
        )

    def to_json(self) -> dict[str, Any]:
        """Return a JSON-serializable representation of the event."""
        return {
            "id": self.id,
            "organizer_id": self.organizer_id,
            "name": self.name,
            "description": self.description,
            "location": self.location,
            "event_date": dt_iso(self.event_date),
            "registration_start": dt_iso(self.registration_start),
            "registration_end": dt_iso(self.registration_end),
            "max_entrants": self.max_entrants,
            "number_of_winners": self.number_of_winners,
            "entrant_count": self.entrant_count,
            "status": self.status,
            "created_at": dt_iso(self.created_at),
            "updated_at": dt_iso(self.updated_at),
        }


__all__ = [
    "DRAWABLE_STATUSES",
    "Event",
    "EventStatus",
    "JOINABLE_STATUSES",
    "LOTTERY_FIELDS",
    "MANAGED_FIELDS",
]
