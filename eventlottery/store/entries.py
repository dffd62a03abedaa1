"""Keyed storage for waiting-list entries."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import AlreadyJoined
from ..models import WaitingListEntry

logger = logging.getLogger(__name__)


class EntryStore:
    """Session-scoped accessors for :class:`WaitingListEntry` rows.

    Methods never open or commit transactions; the caller owns the session
    and decides the transaction boundary.
    """

    def join(
        self,
        session: Session,
        event_id: int,
        entrant_id: str,
        *,
        joined_at: datetime,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> WaitingListEntry:
        """Insert a new entry and flush it.

        The ``(event_id, entrant_id)`` uniqueness constraint decides whether the
        entrant is new; there is no separate existence check.

        Raises
        ------
        AlreadyJoined
            If an entry for the pair already exists. The session's transaction
            is no longer usable afterwards and must be rolled back.
        """
        entry = WaitingListEntry(
            event_id=event_id,
            entrant_id=entrant_id,
            joined_at=joined_at,
            join_latitude=latitude,
            join_longitude=longitude,
        )
        session.add(entry)
        try:
            session.flush()
        except IntegrityError as exc:
            logger.debug(
                f"Duplicate waiting-list entry for event {event_id}, entrant {entrant_id}"
            )
            raise AlreadyJoined(event_id, entrant_id) from exc
        return entry

    def get(
        self, session: Session, event_id: int, entrant_id: str
    ) -> Optional[WaitingListEntry]:
        return session.scalar(
            select(WaitingListEntry).where(
                WaitingListEntry.event_id == event_id,
                WaitingListEntry.entrant_id == entrant_id,
            )
        )

    def exists(self, session: Session, event_id: int, entrant_id: str) -> bool:
        found = session.scalar(
            select(WaitingListEntry.id).where(
                WaitingListEntry.event_id == event_id,
                WaitingListEntry.entrant_id == entrant_id,
            )
        )
        return found is not None

    def list(self, session: Session, event_id: int) -> list[WaitingListEntry]:
        """Return the event's entries in join order."""
        stmt = (
            select(WaitingListEntry)
            .where(WaitingListEntry.event_id == event_id)
            .order_by(WaitingListEntry.joined_at.asc(), WaitingListEntry.id.asc())
        )
        return list(session.scalars(stmt).all())

    def leave(self, session: Session, event_id: int, entrant_id: str) -> bool:
        """Delete the entry. Its decision goes with it through ``ON DELETE CASCADE``.

        Returns ``False`` when there was nothing to delete.
        """
        result = session.execute(
            delete(WaitingListEntry).where(
                WaitingListEntry.event_id == event_id,
                WaitingListEntry.entrant_id == entrant_id,
            )
        )
        return (result.rowcount or 0) > 0

    def mark_invited(
        self, session: Session, entry_ids: list[int], *, invited_at: datetime
    ) -> None:
        """Stamp ``invited_at`` on the given entries."""
        if not entry_ids:
            return
        entries = session.scalars(
            select(WaitingListEntry).where(WaitingListEntry.id.in_(entry_ids))
        ).all()
        for entry in entries:
            entry.invited_at = invited_at
        session.flush()


__all__ = ["EntryStore"]
