"""Read-side view of who is registered for an event and where they stand."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from .db.utils import dt_iso
from .models import Decision, Event, WaitingListEntry

logger = logging.getLogger(__name__)

MISSING_DECISION = "missing_decision"
MISSING_ENTRY = "missing_entry"


@dataclass(frozen=True)
class Registration:
    """One entrant's entry joined with their decision.

    Either side may be missing when the store is inconsistent; the matching
    :class:`IntegrityWarning` is then part of the report.
    """

    entrant_id: str
    decision_status: Optional[str]
    join_timestamp: Optional[datetime]
    invited_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None
    entry_id: Optional[int] = None
    decision_id: Optional[int] = None

    def to_json(self) -> dict[str, Any]:
        return {
            "entrant_id": self.entrant_id,
            "decision_status": self.decision_status,
            "join_timestamp": dt_iso(self.join_timestamp),
            "invited_at": dt_iso(self.invited_at),
            "responded_at": dt_iso(self.responded_at),
            "entry_id": self.entry_id,
            "decision_id": self.decision_id,
        }


@dataclass(frozen=True)
class IntegrityWarning:
    """An entry without a decision, or a decision without an entry."""

    entrant_id: str
    kind: str
    detail: str

    def to_json(self) -> dict[str, Any]:
        return {"entrant_id": self.entrant_id, "kind": self.kind, "detail": self.detail}


@dataclass
class RegistrationReport:
    event_id: int
    registrations: list[Registration] = field(default_factory=list)
    warnings: list[IntegrityWarning] = field(default_factory=list)

    def by_status(self, status: str) -> list[Registration]:
        return [r for r in self.registrations if r.decision_status == status]

    def to_json(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "registrations": [r.to_json() for r in self.registrations],
            "warnings": [w.to_json() for w in self.warnings],
        }


def registrations_for(session: Session, event_id: int) -> RegistrationReport:
    """Join the event's entries and decisions on ``entrant_id``.

    Registrations are ordered by join time; orphaned decisions (no entry)
    come last. Nothing is dropped: every orphan on either side is listed and
    reported as a warning.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session.
    event_id : int
        Event whose registrations are listed.

    Returns
    -------
    RegistrationReport
        The joined rows plus any integrity warnings.
    """
    entries = session.scalars(
        select(WaitingListEntry)
        .where(WaitingListEntry.event_id == event_id)
        .order_by(WaitingListEntry.joined_at.asc(), WaitingListEntry.id.asc())
    ).all()
    decisions = session.scalars(
        select(Decision)
        .where(Decision.event_id == event_id)
        .order_by(Decision.id.asc())
    ).all()
    decision_by_entrant = {d.entrant_id: d for d in decisions}

    report = RegistrationReport(event_id=event_id)
    seen: set[str] = set()

    for entry in entries:
        seen.add(entry.entrant_id)
        decision = decision_by_entrant.get(entry.entrant_id)
        if decision is None:
            _warn(
                report,
                IntegrityWarning(
                    entry.entrant_id,
                    MISSING_DECISION,
                    f"Entry {entry.id} of event {event_id} has no decision",
                ),
            )
        report.registrations.append(
            Registration(
                entrant_id=entry.entrant_id,
                decision_status=decision.status if decision is not None else None,
                join_timestamp=entry.joined_at,
                invited_at=entry.invited_at,
                responded_at=decision.responded_at if decision is not None else None,
                entry_id=entry.id,
                decision_id=decision.id if decision is not None else None,
            )
        )

    for decision in decisions:
        if decision.entrant_id in seen:
            continue
        _warn(
            report,
            IntegrityWarning(
                decision.entrant_id,
                MISSING_ENTRY,
                f"Decision {decision.id} of event {event_id} has no waiting-list entry",
            ),
        )
        report.registrations.append(
            Registration(
                entrant_id=decision.entrant_id,
                decision_status=decision.status,
                join_timestamp=None,
                responded_at=decision.responded_at,
                decision_id=decision.id,
            )
        )

    return report


def _warn(report: RegistrationReport, warning: IntegrityWarning) -> None:
    logger.warning(f"Registration integrity: {warning.detail}")
    report.warnings.append(warning)


def events_for_entrant(session: Session, entrant_id: str) -> list[dict[str, Any]]:
    """List every event the entrant registered for, with their decision status."""
    rows = session.execute(
        select(Event.id, Event.name, Decision.status)
        .join(Decision, Decision.event_id == Event.id)
        .where(Decision.entrant_id == entrant_id)
        .order_by(Event.id.asc())
    ).all()
    return [
        {"event_id": event_id, "event_name": name, "decision_status": status}
        for event_id, name, status in rows
    ]


__all__ = [
    "IntegrityWarning",
    "MISSING_DECISION",
    "MISSING_ENTRY",
    "Registration",
    "RegistrationReport",
    "events_for_entrant",
    "registrations_for",
]
