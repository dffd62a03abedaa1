"""Keyed storage for lottery decisions."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from ..errors import InvalidTransition
from ..models import Decision, DecisionStatus, WaitingListEntry

logger = logging.getLogger(__name__)

# Keep IN lists well below the bound-parameter limits of every backend.
_CAS_CHUNK_SIZE = 500


class DecisionStore:
    """Session-scoped accessors for :class:`Decision` rows.

    Status changes go through :meth:`compare_and_set` only; nothing else in the
    package assigns ``Decision.status`` on a persisted row.
    """

    def create_pending(
        self, session: Session, entry: WaitingListEntry, *, now: datetime
    ) -> Decision:
        """Create the PENDING decision that accompanies a fresh entry."""
        if entry.id is None:
            raise ValueError("Entry must be flushed before its decision is created")
        decision = Decision(
            event_id=entry.event_id,
            entrant_id=entry.entrant_id,
            entry=entry,
            status=DecisionStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        session.add(decision)
        session.flush()
        return decision

    def get(self, session: Session, decision_id: int) -> Optional[Decision]:
        return session.get(Decision, decision_id)

    def for_entrant_in_event(
        self, session: Session, event_id: int, entrant_id: str
    ) -> Optional[Decision]:
        return session.scalar(
            select(Decision).where(
                Decision.event_id == event_id,
                Decision.entrant_id == entrant_id,
            )
        )

    def list_for_event(
        self,
        session: Session,
        event_id: int,
        status: Optional[DecisionStatus | str] = None,
    ) -> list[Decision]:
        stmt = select(Decision).where(Decision.event_id == event_id)
        if status is not None:
            stmt = stmt.where(Decision.status == DecisionStatus(status).value)
        return list(session.scalars(stmt.order_by(Decision.id.asc())).all())

    def pending_in_join_order(
        self, session: Session, event_id: int, *, limit: Optional[int] = None
    ) -> list[Decision]:
        """Return PENDING decisions ordered by their entry's join time.

        Ties on ``joined_at`` are broken by entry id, so the order is total and
        stable across calls.
        """
        stmt = (
            select(Decision)
            .join(WaitingListEntry, WaitingListEntry.id == Decision.entry_id)
            .where(
                Decision.event_id == event_id,
                Decision.status == DecisionStatus.PENDING.value,
            )
            .order_by(WaitingListEntry.joined_at.asc(), WaitingListEntry.id.asc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(session.scalars(stmt).all())

    def invited_before(
        self, session: Session, event_id: int, cutoff: datetime
    ) -> list[Decision]:
        """Return INVITED decisions whose entry was invited at or before ``cutoff``."""
        stmt = (
            select(Decision)
            .join(WaitingListEntry, WaitingListEntry.id == Decision.entry_id)
            .where(
                Decision.event_id == event_id,
                Decision.status == DecisionStatus.INVITED.value,
                WaitingListEntry.invited_at.is_not(None),
                WaitingListEntry.invited_at <= cutoff,
            )
            .order_by(WaitingListEntry.invited_at.asc(), WaitingListEntry.id.asc())
        )
        return list(session.scalars(stmt).all())

    def delete_pending(self, session: Session, decision_id: int) -> bool:
        """Delete a decision only while it is still PENDING."""
        result = session.execute(
            delete(Decision).where(
                Decision.id == decision_id,
                Decision.status == DecisionStatus.PENDING.value,
            )
        )
        return (result.rowcount or 0) == 1

    def for_entrant(self, session: Session, entrant_id: str) -> list[Decision]:
        """Return every decision held by ``entrant_id`` across events."""
        stmt = (
            select(Decision)
            .where(Decision.entrant_id == entrant_id)
            .order_by(Decision.event_id.asc())
        )
        return list(session.scalars(stmt).all())

    def count_by_status(self, session: Session, event_id: int) -> dict[str, int]:
        rows = session.execute(
            select(Decision.status, func.count(Decision.id))
            .where(Decision.event_id == event_id)
            .group_by(Decision.status)
        ).all()
        counts = {status.value: 0 for status in DecisionStatus}
        for status, count in rows:
            counts[status] = int(count)
        return counts

    def compare_and_set(
        self,
        session: Session,
        decision_ids: Sequence[int],
        *,
        expected: DecisionStatus | str,
        target: DecisionStatus | str,
        now: datetime,
        responded: bool = False,
        event_id: Optional[int] = None,
        entrant_id: Optional[str] = None,
    ) -> int:
        """Move decisions from ``expected`` to ``target`` in one conditional update.

        Only rows still in ``expected`` are touched, so a decision that another
        transaction already moved is skipped rather than overwritten.

        Parameters
        ----------
        session : Session
            Session whose transaction the update joins.
        decision_ids : Sequence[int]
            Decisions to transition.
        expected : DecisionStatus | str
            Status each row must currently hold.
        target : DecisionStatus | str
            Status to write.
        now : datetime
            Value for ``updated_at`` (and ``responded_at`` when ``responded``).
        responded : bool, default: False
            Whether the transition was made by the entrant.
        event_id : Optional[int], default: None
            Additionally require the rows to belong to this event.
        entrant_id : Optional[str], default: None
            Additionally require the rows to belong to this entrant.

        Returns
        -------
        int
            Number of rows that actually changed.

        Raises
        ------
        InvalidTransition
            If the state machine does not allow ``expected -> target``.
        """
        source = DecisionStatus(expected)
        destination = DecisionStatus(target)
        if not source.can_transition_to(destination):
            raise InvalidTransition(
                f"Decision status cannot move from {source.value} to {destination.value}"
            )

        ids = list(dict.fromkeys(decision_ids))
        if not ids:
            return 0

        values: dict = {"status": destination.value, "updated_at": now}
        if responded:
            values["responded_at"] = now

        changed = 0
        for start in range(0, len(ids), _CAS_CHUNK_SIZE):
            chunk = ids[start : start + _CAS_CHUNK_SIZE]
            stmt = update(Decision).where(
                Decision.id.in_(chunk),
                Decision.status == source.value,
            )
            if event_id is not None:
                stmt = stmt.where(Decision.event_id == event_id)
            if entrant_id is not None:
                stmt = stmt.where(Decision.entrant_id == entrant_id)
            result = session.execute(
                stmt.values(**values).execution_options(synchronize_session="fetch")
            )
            changed += result.rowcount or 0

        logger.debug(
            f"compare_and_set {source.value}->{destination.value}: "
            f"{changed}/{len(ids)} decision(s) changed"
        )
        return changed


__all__ = ["DecisionStore"]
