"""Audit record written by every committed draw."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..db.utils import dt_iso
from .base import Base, ID_TYPE

if TYPE_CHECKING:
    from .event import Event


class LotteryDraw(Base):
    """Immutable record of the random draw run for an event.

    Storing the seed together with the canonical candidate order lets anyone
    replay the permutation and confirm the recorded winners. The unique
    constraint on ``event_id`` also guarantees that an event is drawn once.
    """

    __tablename__ = "lottery_draws"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Primary key."""

    event_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    """Event that was drawn."""

    seed: Mapped[str] = mapped_column(String(64), nullable=False)
    """Seed of the shuffle, stored as a decimal string to survive any backend."""

    candidate_ids: Mapped[list[int]] = mapped_column(JSON, nullable=False)
    """PENDING decision ids in canonical join order, before shuffling."""

    winner_ids: Mapped[list[int]] = mapped_column(JSON, nullable=False)
    """Decision ids promoted to INVITED, in draw order."""

    winners_count: Mapped[int] = mapped_column(Integer, nullable=False)
    losers_count: Mapped[int] = mapped_column(Integer, nullable=False)

    drawn_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    event: Mapped["Event"] = relationship(back_populates="draw_record")

    __table_args__ = (UniqueConstraint("event_id", name="uq_lottery_draw_event"),)

    def __init__(
        self,
        *,
        event_id: int,
        seed: int,
        candidate_ids: list[int],
        winner_ids: list[int],
        drawn_at: Optional[datetime] = None,
    ) -> None:
        if len(winner_ids) > len(candidate_ids):
            raise ValueError("winner_ids cannot outnumber candidate_ids")
        self.event_id = event_id
        self.seed = str(seed)
        self.candidate_ids = list(candidate_ids)
        self.winner_ids = list(winner_ids)
        self.winners_count = len(winner_ids)
        self.losers_count = len(candidate_ids) - len(winner_ids)
        if drawn_at is not None:
            self.drawn_at = drawn_at

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<LotteryDraw(event_id={self.event_id}, winners={self.winners_count}, "
            f"losers={self.losers_count})>"
        )

    @property
    def seed_value(self) -> int:
        return int(self.seed)

    def to_json(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "seed": self.seed,
            "candidate_ids": list(self.candidate_ids),
            "winner_ids": list(self.winner_ids),
            "winners_count": self.winners_count,
            "losers_count": self.losers_count,
            "drawn_at": dt_iso(self.drawn_at),
        }


__all__ = ["LotteryDraw"]
