"""Waiting-list membership records."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import DateTime, Float, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..db.utils import dt_iso
from .base import Base, ID_TYPE

if TYPE_CHECKING:
    from .decision import Decision
    from .event import Event


class WaitingListEntry(Base):
    """An entrant's place on an event's waiting list."""

    __tablename__ = "waiting_list_entries"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Primary key."""

    event_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    """Event the entrant joined."""

    entrant_id: Mapped[str] = mapped_column(String(128), nullable=False)
    """External identity of the entrant."""

    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    """Join time. Replacement promotions are ordered by this column."""

    invited_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    """Set when the entrant's decision is promoted to INVITED."""

    join_latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    join_longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    event: Mapped["Event"] = relationship(back_populates="entries")
    decision: Mapped[Optional["Decision"]] = relationship(
        back_populates="entry", uselist=False, cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("event_id", "entrant_id", name="uq_waiting_list_entrant"),
        Index("ix_waiting_list_event_joined", "event_id", "joined_at"),
    )

    def __init__(
        self,
        *,
        event_id: int,
        entrant_id: str,
        joined_at: Optional[datetime] = None,
        invited_at: Optional[datetime] = None,
        join_latitude: Optional[float] = None,
        join_longitude: Optional[float] = None,
    ) -> None:
        if not entrant_id:
            raise ValueError("entrant_id must not be empty")
        self.event_id = event_id
        self.entrant_id = entrant_id
        if joined_at is not None:
            self.joined_at = joined_at
        self.invited_at = invited_at
        self.join_latitude = join_latitude
        self.join_longitude = join_longitude

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<WaitingListEntry(id={self.id}, event_id={self.event_id}, "
            f"entrant_id='{self.entrant_id}', joined_at={self.joined_at})>"
        )

    def to_json(self) -> dict[str, Any]:
        location = None
        if self.join_latitude is not None and self.join_longitude is not None:
            location = {"latitude": self.join_latitude, "longitude": self.join_longitude}
        return {
            "id": self.id,
            "event_id": self.event_id,
            "entrant_id": self.entrant_id,
            "joined_at": dt_iso(self.joined_at),
            "invited_at": dt_iso(self.invited_at),
            "join_location": location,
        }


__all__ = ["WaitingListEntry"]
