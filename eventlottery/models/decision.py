"""Allocation decisions: one per entrant per event."""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..db.utils import dt_iso
from .base import Base, ID_TYPE

if TYPE_CHECKING:
    from .event import Event
    from .waiting_list import WaitingListEntry


class DecisionStatus(str, enum.Enum):
    """Where an entrant stands in the lottery."""

    PENDING = "PENDING"
    INVITED = "INVITED"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    LOST = "LOST"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    def can_transition_to(self, target: "DecisionStatus") -> bool:
        """Return ``True`` when the state machine allows ``self -> target``."""
        return DecisionStatus(target) in ALLOWED_TRANSITIONS.get(self, frozenset())


TERMINAL_STATUSES = frozenset(
    {
        DecisionStatus.ACCEPTED,
        DecisionStatus.DECLINED,
        DecisionStatus.LOST,
        DecisionStatus.CANCELLED,
    }
)

#: Engine-driven transitions. Terminal statuses have no successors.
ALLOWED_TRANSITIONS: dict[DecisionStatus, frozenset[DecisionStatus]] = {
    DecisionStatus.PENDING: frozenset(
        {DecisionStatus.INVITED, DecisionStatus.LOST, DecisionStatus.CANCELLED}
    ),
    DecisionStatus.INVITED: frozenset(
        {DecisionStatus.ACCEPTED, DecisionStatus.DECLINED, DecisionStatus.CANCELLED}
    ),
}


class Decision(Base):
    """Outcome record that follows an entrant through the lottery.

    Rows are only ever mutated through
    :meth:`eventlottery.store.decisions.DecisionStore.compare_and_set`, which
    applies a state-machine transition as a single conditional update.
    """

    __tablename__ = "decisions"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Primary key."""

    event_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    """Event this decision belongs to."""

    entrant_id: Mapped[str] = mapped_column(String(128), nullable=False)
    """External identity of the entrant."""

    entry_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("waiting_list_entries.id", ondelete="CASCADE"),
        nullable=False,
    )
    """Back-reference to the waiting-list entry created alongside."""

    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=DecisionStatus.PENDING.value
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
    )
    """Bumped on every status transition."""

    responded_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    """Set only when the entrant accepts or declines."""

    event: Mapped["Event"] = relationship(back_populates="decisions")
    entry: Mapped["WaitingListEntry"] = relationship(back_populates="decision")

    __table_args__ = (
        UniqueConstraint("event_id", "entrant_id", name="uq_decision_entrant"),
        UniqueConstraint("entry_id", name="uq_decision_entry"),
        CheckConstraint(
            "status IN ('PENDING','INVITED','ACCEPTED','DECLINED','LOST','CANCELLED')",
            name="status_enum",
        ),
        Index("ix_decisions_event_status", "event_id", "status"),
        Index("ix_decisions_entrant", "entrant_id"),
    )

    def __init__(
        self,
        *,
        event_id: int,
        entrant_id: str,
        entry_id: Optional[int] = None,
        entry: Optional["WaitingListEntry"] = None,
        status: DecisionStatus | str = DecisionStatus.PENDING,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
        responded_at: Optional[datetime] = None,
    ) -> None:
        self.event_id = event_id
        self.entrant_id = entrant_id
        if entry is not None:
            self.entry = entry
        if entry_id is not None:
            self.entry_id = entry_id
        self.status = DecisionStatus(status).value
        if created_at is not None:
            self.created_at = created_at
        if updated_at is not None:
            self.updated_at = updated_at
        self.responded_at = responded_at

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<Decision(id={self.id}, event_id={self.event_id}, "
            f"entrant_id='{self.entrant_id}', status={self.status})>"
        )

    @property
    def status_enum(self) -> DecisionStatus:
        return DecisionStatus(self.status)

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "entrant_id": self.entrant_id,
            "entry_id": self.entry_id,
            "status": self.status,
            "updated_at": dt_iso(self.updated_at),
            "responded_at": dt_iso(self.responded_at),
        }


__all__ = ["ALLOWED_TRANSITIONS", "Decision", "DecisionStatus", "TERMINAL_STATUSES"]
