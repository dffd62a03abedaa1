"""Organizer and entrant workflows that sit outside the lottery engine.

These functions take an active session and never commit; the caller decides
the transaction boundary, e.g. ``with session_factory.begin() as session:``.
"""

from typing import Iterable, Optional
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from .db.utils import utcnow
from .errors import InvalidConfiguration, InvalidTransition
from .models import EntrantProfile, Event, EventStatus
from .models.event import LOTTERY_FIELDS, MANAGED_FIELDS

EDITABLE_FIELDS = frozenset(
    {
        "name",
        "description",
        "location",
        "event_date",
        "registration_start",
        "registration_end",
        "max_entrants",
        "number_of_winners",
    }
)


def create_event(
    session: Session,
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
    open_now: bool = False,
) -> Event:
    """Create an event in DRAFT (or OPEN when ``open_now``) and flush it.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session.
    organizer_id : str
        External identity of the organizer.
    name : str
        Display name of the event.
    number_of_winners : Optional[int]
        Places handed out by the draw. May be set later, but must be a
        positive integer by the time the event is drawn.
    max_entrants : Optional[int]
        Optional cap on the waiting list.
    open_now : bool, default: False
        Open registration immediately.

    Returns
    -------
    Event
        The persisted event with its ``id`` populated.
    """
    if not organizer_id:
        raise ValueError("organizer_id is required")
    if not name:
        raise ValueError("name is required")
    _check_number_of_winners(number_of_winners)

    event = Event(
        organizer_id=organizer_id,
        name=name,
        number_of_winners=number_of_winners,
        max_entrants=max_entrants,
        description=description,
        location=location,
        event_date=event_date,
        registration_start=registration_start,
        registration_end=registration_end,
        status=EventStatus.OPEN if open_now else EventStatus.DRAFT,
    )
    session.add(event)
    session.flush()
    return event


def _check_number_of_winners(value: Optional[int]) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidConfiguration(
            f"number_of_winners must be a positive integer, got {value!r}"
        )


def _move_status(
    session: Session,
    event_id: int,
    allowed_from: Iterable[EventStatus],
    target: EventStatus,
) -> Event:
    event = Event.require(session, event_id)
    sources = [s.value for s in allowed_from]
    changed = session.execute(
        update(Event)
        .where(Event.id == event_id, Event.status.in_(sources))
        .values(status=target.value, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    ).rowcount
    session.refresh(event)
    if not changed:
        raise InvalidTransition(
            f"Event {event_id} is {event.status}; cannot move to {target.value}"
        )
    return event


def open_registration(session: Session, event_id: int) -> Event:
    """Open a DRAFT or CLOSED event for entrants."""
    return _move_status(
        session, event_id, (EventStatus.DRAFT, EventStatus.CLOSED), EventStatus.OPEN
    )


def close_registration(session: Session, event_id: int) -> Event:
    """Stop accepting entrants. The event can still be drawn."""
    return _move_status(session, event_id, (EventStatus.OPEN,), EventStatus.CLOSED)


def complete_event(session: Session, event_id: int) -> Event:
    """Mark a drawn event as finished."""
    return _move_status(session, event_id, (EventStatus.DRAWN,), EventStatus.COMPLETED)


def update_event(session: Session, event_id: int, **changes) -> Event:
    """Edit event details.

    Once the event is drawn (or completed or cancelled) its lottery
    parameters are frozen; descriptive fields stay editable. The status and
    entrant count are never edited here: status moves through
    :func:`open_registration`, :func:`close_registration`,
    :func:`complete_event` and the engine's draw and cancel operations.

    Raises
    ------
    EventNotFound
        If the event does not exist.
    ValueError
        If a field name is unknown or managed by the lottery.
    InvalidTransition
        If a frozen field is changed after the draw.
    InvalidConfiguration
        If ``number_of_winners`` or ``max_entrants`` is invalid.
    """
    event = Event.require(session, event_id)
    managed = set(changes) & MANAGED_FIELDS
    if managed:
        raise ValueError(f"Event field(s) {sorted(managed)} cannot be edited directly")
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown event field(s): {sorted(unknown)}")

    frozen = event.is_drawn or event.status == EventStatus.CANCELLED.value
    if frozen:
        locked = set(changes) & LOTTERY_FIELDS
        if locked:
            raise InvalidTransition(
                f"Event {event_id} is {event.status}; cannot change {sorted(locked)}"
            )

    if "number_of_winners" in changes:
        _check_number_of_winners(changes["number_of_winners"])
    if "max_entrants" in changes:
        max_entrants = changes["max_entrants"]
        if max_entrants is not None and (
            isinstance(max_entrants, bool)
            or not isinstance(max_entrants, int)
            or max_entrants < max(event.entrant_count, 1)
        ):
            raise InvalidConfiguration(
                f"max_entrants must be a positive integer no lower than the "
                f"current {event.entrant_count} entrant(s), got {max_entrants!r}"
            )

    start = changes.get("registration_start", event.registration_start)
    end = changes.get("registration_end", event.registration_end)
    if start is not None and end is not None and end < start:
        raise ValueError("registration_end must not precede registration_start")

    for field_name, value in changes.items():
        setattr(event, field_name, value)
    event.updated_at = utcnow()
    session.flush()
    return event


def events_for_organizer(session: Session, organizer_id: str) -> list[Event]:
    """Return the organizer's events, newest first."""
    stmt = (
        select(Event)
        .where(Event.organizer_id == organizer_id)
        .order_by(Event.created_at.desc(), Event.id.desc())
    )
    return list(session.scalars(stmt).all())


def set_notification_preference(
    session: Session,
    entrant_id: str,
    opt_out: bool,
    display_name: Optional[str] = None,
) -> EntrantProfile:
    """Create or update the entrant's profile with their opt-out choice."""
    profile = EntrantProfile.get_by_entrant_id(session, entrant_id)
    if profile is None:
        profile = EntrantProfile(
            entrant_id=entrant_id,
            display_name=display_name,
            notification_opt_out=opt_out,
        )
        session.add(profile)
    else:
        profile.notification_opt_out = opt_out
        if display_name is not None:
            profile.display_name = display_name
        profile.updated_at = utcnow()
    session.flush()
    return profile
