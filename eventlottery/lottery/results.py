"""Value objects returned by :class:`~eventlottery.lottery.engine.DecisionEngine`."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from ..db.utils import dt_iso
from ..models import DecisionStatus
from ..notifications import DispatchReport


class ResponseOutcome(str, enum.Enum):
    """An invited entrant's answer."""

    ACCEPT = "ACCEPT"
    DECLINE = "DECLINE"

    @property
    def target_status(self) -> DecisionStatus:
        if self is ResponseOutcome.ACCEPT:
            return DecisionStatus.ACCEPTED
        return DecisionStatus.DECLINED


@dataclass(frozen=True)
class JoinResult:
    event_id: int
    entrant_id: str
    entry_id: int
    decision_id: int
    joined_at: datetime

    def to_json(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "entrant_id": self.entrant_id,
            "entry_id": self.entry_id,
            "decision_id": self.decision_id,
            "joined_at": dt_iso(self.joined_at),
        }


@dataclass(frozen=True)
class DrawResult:
    """Outcome of a draw.

    ``already_drawn`` is ``True`` when the event had been drawn before the call;
    the counts and ids then describe the recorded draw and nothing was sent.
    """

    event_id: int
    winners_count: int
    losers_count: int
    winner_entrant_ids: list[str]
    loser_entrant_ids: list[str]
    seed: Optional[int]
    already_drawn: bool = False
    dispatch: DispatchReport = field(default_factory=DispatchReport)

    def to_json(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "winners_count": self.winners_count,
            "losers_count": self.losers_count,
            "winner_entrant_ids": list(self.winner_entrant_ids),
            "loser_entrant_ids": list(self.loser_entrant_ids),
            "seed": None if self.seed is None else str(self.seed),
            "already_drawn": self.already_drawn,
        }


@dataclass(frozen=True)
class ReplacementResult:
    event_id: int
    requested: int
    promoted_entrant_ids: list[str]
    dispatch: DispatchReport = field(default_factory=DispatchReport)

    @property
    def promoted_count(self) -> int:
        return len(self.promoted_entrant_ids)

    @property
    def is_partial(self) -> bool:
        return self.promoted_count < self.requested


@dataclass(frozen=True)
class RespondResult:
    event_id: int
    decision_id: int
    entrant_id: str
    status: DecisionStatus
    promoted_entrant_ids: list[str] = field(default_factory=list)
    dispatch: DispatchReport = field(default_factory=DispatchReport)


@dataclass(frozen=True)
class ExpiryResult:
    event_id: int
    expired_entrant_ids: list[str] = field(default_factory=list)
    promoted_entrant_ids: list[str] = field(default_factory=list)
    dispatch: DispatchReport = field(default_factory=DispatchReport)


@dataclass(frozen=True)
class CancelResult:
    event_id: int
    cancelled_entrant_ids: list[str] = field(default_factory=list)
    already_cancelled: bool = False
    dispatch: DispatchReport = field(default_factory=DispatchReport)


__all__ = [
    "CancelResult",
    "DrawResult",
    "ExpiryResult",
    "JoinResult",
    "ReplacementResult",
    "RespondResult",
    "ResponseOutcome",
]
