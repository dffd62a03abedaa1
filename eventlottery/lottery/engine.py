"""The lottery state machine: joining, drawing, responding and replacing.

Every public method that changes state runs inside one
:func:`~eventlottery.db.session.transaction`, so it either commits completely
or leaves the store untouched. Notifications are only sent after the commit;
their failures are reported in the returned result and never undo the state
change.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional, Sequence

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session, sessionmaker

from ..config import Settings
from ..db.session import read_session, transaction
from ..db.utils import ensure_utc, utcnow
from ..errors import (
    AlreadyJoined,
    InvalidConfiguration,
    InvalidTransition,
    NothingToDraw,
    RegistrationClosed,
    WaitingListFull,
)
from ..models import (
    Decision,
    DecisionStatus,
    Event,
    EventStatus,
    LotteryDraw,
)
from ..models.event import DRAWABLE_STATUSES, JOINABLE_STATUSES
from ..notifications import (
    CANCELLATION,
    LOSER,
    REPLACEMENT,
    WINNER,
    DispatchRecord,
    DispatchReport,
    MessageTemplate,
    NotificationDispatcher,
)
from ..registrations import RegistrationReport, registrations_for
from ..store import DecisionStore, EntryStore
from .results import (
    CancelResult,
    DrawResult,
    ExpiryResult,
    JoinResult,
    ReplacementResult,
    RespondResult,
    ResponseOutcome,
)
from .rng import (
    SeedFactory,
    fixed_seed_factory,
    generate_seed,
    seeded_permutation,
    split_winners,
)

logger = logging.getLogger(__name__)

# Bounds the re-reads when a replacement candidate is taken by a concurrent promoter.
MAX_PROMOTION_ATTEMPTS = 5


class DecisionEngine:
    """Run the lottery for events stored behind ``session_factory``.

    Parameters
    ----------
    session_factory : sessionmaker
        Factory from :func:`eventlottery.db.engine.get_sessionmaker`.
    settings : Settings, optional
        Engine settings; defaults to :class:`Settings` with its defaults.
    dispatcher : NotificationDispatcher, optional
        Dispatcher used after commits. Built from ``settings`` when omitted.
    seed_factory : SeedFactory, optional
        Source of draw seeds. Defaults to ``settings.fixed_seed`` when set,
        otherwise :func:`~eventlottery.lottery.rng.generate_seed`.
    clock : Callable[[], datetime], optional
        Returns the current time; tests pass a fixed clock.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        settings: Optional[Settings] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        seed_factory: Optional[SeedFactory] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings or Settings()
        self._dispatcher = dispatcher or NotificationDispatcher(
            session_factory, max_workers=self._settings.dispatch_workers
        )
        if seed_factory is None:
            if self._settings.fixed_seed is not None:
                seed_factory = fixed_seed_factory(self._settings.fixed_seed)
            else:
                seed_factory = generate_seed
        self._seed_factory = seed_factory
        self._clock = clock or utcnow
        self.entries = EntryStore()
        self.decisions = DecisionStore()

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def dispatcher(self) -> NotificationDispatcher:
        return self._dispatcher

    def _now(self) -> datetime:
        return ensure_utc(self._clock())

    # ------------------------------------------------------------------
    # Waiting list
    # ------------------------------------------------------------------
    def join(
        self,
        event_id: int,
        entrant_id: str,
        *,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> JoinResult:
        """Put ``entrant_id`` on the event's waiting list.

        The entry, its PENDING decision and the event's entrant count are
        written in one transaction.

        Raises
        ------
        EventNotFound
            If the event does not exist.
        AlreadyJoined
            If the entrant is already on the list. Treat as success.
        RegistrationClosed
            If the event is not accepting entrants at this moment.
        WaitingListFull
            If ``max_entrants`` has been reached.
        """
        now = self._now()
        with transaction(self._session_factory) as session:
            event = Event.require(session, event_id)

            existing = self.entries.get(session, event_id, entrant_id)
            if existing is not None:
                decision = self.decisions.for_entrant_in_event(
                    session, event_id, entrant_id
                )
                raise AlreadyJoined(
                    event_id,
                    entrant_id,
                    entry_id=existing.id,
                    decision_id=decision.id if decision is not None else None,
                )

            if not event.accepts_entrants(now):
                raise RegistrationClosed(
                    f"Event {event_id} is not accepting entrants (status {event.status})"
                )

            claimed = session.execute(
                update(Event)
                .where(
                    Event.id == event_id,
                    Event.status.in_(JOINABLE_STATUSES),
                    or_(
                        Event.max_entrants.is_(None),
                        Event.entrant_count < Event.max_entrants,
                    ),
                )
                .values(entrant_count=Event.entrant_count + 1, updated_at=now)
                .execution_options(synchronize_session=False)
            ).rowcount
            if not claimed:
                session.refresh(event)
                if not event.accepts_entrants(now):
                    raise RegistrationClosed(
                        f"Event {event_id} is not accepting entrants (status {event.status})"
                    )
                raise WaitingListFull(
                    f"Event {event_id} waiting list is full ({event.max_entrants})"
                )

            entry = self.entries.join(
                session,
                event_id,
                entrant_id,
                joined_at=now,
                latitude=latitude,
                longitude=longitude,
            )
            decision = self.decisions.create_pending(session, entry, now=now)
            result = JoinResult(
                event_id=event_id,
                entrant_id=entrant_id,
                entry_id=entry.id,
                decision_id=decision.id,
                joined_at=now,
            )

        logger.info(f"Entrant {entrant_id} joined event {event_id}")
        return result

    def leave(self, event_id: int, entrant_id: str) -> bool:
        """Remove a PENDING entrant from the waiting list.

        Returns ``False`` when the entrant was not on the list.

        Raises
        ------
        InvalidTransition
            If the entrant's decision is no longer PENDING.
        """
        now = self._now()
        with transaction(self._session_factory) as session:
            Event.require(session, event_id)
            if not self.entries.exists(session, event_id, entrant_id):
                return False

            # Event row first, then decisions, the same lock order as join and draw.
            session.execute(
                update(Event)
                .where(Event.id == event_id, Event.entrant_count > 0)
                .values(entrant_count=Event.entrant_count - 1, updated_at=now)
                .execution_options(synchronize_session=False)
            )

            decision = self.decisions.for_entrant_in_event(session, event_id, entrant_id)
            if decision is not None and not self.decisions.delete_pending(
                session, decision.id
            ):
                raise InvalidTransition(
                    f"Entrant {entrant_id} cannot leave event {event_id}: "
                    f"decision is {decision.status}"
                )

            self.entries.leave(session, event_id, entrant_id)

        logger.info(f"Entrant {entrant_id} left event {event_id}")
        return True

    # ------------------------------------------------------------------
    # Draw
    # ------------------------------------------------------------------
    def draw(self, event_id: int, *, seed: Optional[int] = None) -> DrawResult:
        """Select the event's winners at random.

        Drawing an event that has already been drawn returns the recorded
        outcome with ``already_drawn=True`` and changes nothing.

        Parameters
        ----------
        event_id : int
            Event to draw.
        seed : int, optional
            Seed for the shuffle. Uses the engine's seed factory when omitted.

        Returns
        -------
        DrawResult
            Winners and losers, the seed, and the notification report.

        Raises
        ------
        EventNotFound
            If the event does not exist.
        InvalidConfiguration
            If ``number_of_winners`` is not a positive integer.
        InvalidTransition
            If the event is a draft or has been cancelled.
        NothingToDraw
            If no entrant is PENDING. The event stays undrawn.
        """
        now = self._now()
        with transaction(self._session_factory) as session:
            event = Event.require(session, event_id)
            if event.is_drawn:
                return self._recorded_draw(session, event)

            number_of_winners = event.number_of_winners
            if (
                isinstance(number_of_winners, bool)
                or not isinstance(number_of_winners, int)
                or number_of_winners <= 0
            ):
                raise InvalidConfiguration(
                    f"Event {event_id} needs a positive number_of_winners, "
                    f"got {number_of_winners!r}"
                )

            # Only one drawer can move the event out of OPEN/CLOSED.
            claimed = session.execute(
                update(Event)
                .where(Event.id == event_id, Event.status.in_(DRAWABLE_STATUSES))
                .values(status=EventStatus.DRAWN.value, updated_at=now)
                .execution_options(synchronize_session=False)
            ).rowcount
            if not claimed:
                session.refresh(event)
                if event.is_drawn:
                    return self._recorded_draw(session, event)
                raise InvalidTransition(
                    f"Event {event_id} is {event.status}; only OPEN or CLOSED events "
                    "can be drawn"
                )

            pending = self.decisions.pending_in_join_order(session, event_id)
            if not pending:
                raise NothingToDraw(f"Event {event_id} has no pending entrants")

            if seed is None:
                seed = self._seed_factory()
            winners, losers = split_winners(pending, number_of_winners, seed)
            winner_ids = [d.id for d in winners]
            loser_ids = [d.id for d in losers]

            invited = self.decisions.compare_and_set(
                session,
                winner_ids,
                expected=DecisionStatus.PENDING,
                target=DecisionStatus.INVITED,
                now=now,
                event_id=event_id,
            )
            lost = self.decisions.compare_and_set(
                session,
                loser_ids,
                expected=DecisionStatus.PENDING,
                target=DecisionStatus.LOST,
                now=now,
                event_id=event_id,
            )
            if invited != len(winner_ids) or lost != len(loser_ids):
                raise InvalidTransition(
                    f"Draw for event {event_id} aborted: decisions changed concurrently"
                )

            self.entries.mark_invited(
                session, [d.entry_id for d in winners], invited_at=now
            )
            session.add(
                LotteryDraw(
                    event_id=event_id,
                    seed=seed,
                    candidate_ids=[d.id for d in pending],
                    winner_ids=winner_ids,
                    drawn_at=now,
                )
            )
            session.flush()

            event_name = event.name
            # Winners in draw order, losers in join order.
            winner_set = set(winner_ids)
            result = DrawResult(
                event_id=event_id,
                winners_count=len(winners),
                losers_count=len(losers),
                winner_entrant_ids=[d.entrant_id for d in winners],
                loser_entrant_ids=[
                    d.entrant_id for d in pending if d.id not in winner_set
                ],
                seed=seed,
            )

        logger.info(
            f"Drew event {event_id}: {result.winners_count} invited, "
            f"{result.losers_count} lost"
        )
        records = self._records(WINNER, event_id, event_name, result.winner_entrant_ids)
        if self._settings.notify_losers:
            records += self._records(LOSER, event_id, event_name, result.loser_entrant_ids)
        return replace(result, dispatch=self._dispatch(records))

    def _recorded_draw(self, session: Session, event: Event) -> DrawResult:
        record = session.scalar(
            select(LotteryDraw).where(LotteryDraw.event_id == event.id)
        )
        if record is None:
            raise InvalidTransition(
                f"Event {event.id} is {event.status} but has no recorded draw"
            )

        entrant_by_decision = dict(
            session.execute(
                select(Decision.id, Decision.entrant_id).where(
                    Decision.id.in_(record.candidate_ids)
                )
            ).all()
        )
        winner_set = set(record.winner_ids)
        losers = [i for i in record.candidate_ids if i not in winner_set]
        logger.debug(f"Event {event.id} already drawn; returning recorded result")
        return DrawResult(
            event_id=event.id,
            winners_count=record.winners_count,
            losers_count=record.losers_count,
            winner_entrant_ids=[
                entrant_by_decision[i] for i in record.winner_ids if i in entrant_by_decision
            ],
            loser_entrant_ids=[
                entrant_by_decision[i] for i in losers if i in entrant_by_decision
            ],
            seed=record.seed_value,
            already_drawn=True,
        )

    def verify_draw(self, event_id: int) -> bool:
        """Replay the recorded draw and check that it produced the recorded winners.

        Returns ``False`` when the event has no draw record.
        """
        with read_session(self._session_factory) as session:
            Event.require(session, event_id)
            record = session.scalar(
                select(LotteryDraw).where(LotteryDraw.event_id == event_id)
            )
            if record is None:
                return False
            replayed = seeded_permutation(record.candidate_ids, record.seed_value)
            return replayed[: record.winners_count] == list(record.winner_ids)

    # ------------------------------------------------------------------
    # Replacement and responses
    # ------------------------------------------------------------------
    def promote_replacement(self, event_id: int, count: int = 1) -> ReplacementResult:
        """Invite up to ``count`` PENDING entrants in join order.

        Fewer candidates than ``count`` yields a partial result. Cancelled
        events promote nobody.
        """
        if count < 1:
            raise ValueError("count must be at least 1")
        now = self._now()
        with transaction(self._session_factory) as session:
            event = Event.require(session, event_id)
            promoted = self._promote(session, event, count, now)
            event_name = event.name

        report = self._dispatch(self._records(REPLACEMENT, event_id, event_name, promoted))
        return ReplacementResult(
            event_id=event_id,
            requested=count,
            promoted_entrant_ids=promoted,
            dispatch=report,
        )

    def _promote(
        self, session: Session, event: Event, count: int, now: datetime
    ) -> list[str]:
        if event.status == EventStatus.CANCELLED.value:
            return []
        if not event.is_drawn:
            raise InvalidTransition(
                f"Event {event.id} has not been drawn; nothing to replace"
            )

        promoted: list[Decision] = []
        for _ in range(MAX_PROMOTION_ATTEMPTS):
            wanted = count - len(promoted)
            if wanted <= 0:
                break
            candidates = self.decisions.pending_in_join_order(
                session, event.id, limit=wanted
            )
            if not candidates:
                break
            for candidate in candidates:
                changed = self.decisions.compare_and_set(
                    session,
                    [candidate.id],
                    expected=DecisionStatus.PENDING,
                    target=DecisionStatus.INVITED,
                    now=now,
                    event_id=event.id,
                )
                if changed:
                    promoted.append(candidate)

        if promoted:
            self.entries.mark_invited(
                session, [d.entry_id for d in promoted], invited_at=now
            )
            logger.info(
                f"Promoted {len(promoted)} replacement(s) for event {event.id}"
            )
        else:
            logger.info(f"No replacement candidates left for event {event.id}")
        return [d.entrant_id for d in promoted]

    def respond(
        self,
        event_id: int,
        entrant_id: str,
        decision_id: int,
        outcome: ResponseOutcome | str,
    ) -> RespondResult:
        """Record an invited entrant's answer.

        A decline promotes exactly one replacement in the same transaction.

        Raises
        ------
        InvalidTransition
            If the decision is not INVITED, belongs to another event, or is
            held by another entrant. Nothing is changed.
        """
        outcome = ResponseOutcome(outcome)
        target = outcome.target_status
        now = self._now()
        with transaction(self._session_factory) as session:
            event = Event.require(session, event_id)
            changed = self.decisions.compare_and_set(
                session,
                [decision_id],
                expected=DecisionStatus.INVITED,
                target=target,
                now=now,
                responded=True,
                event_id=event_id,
                entrant_id=entrant_id,
            )
            if changed != 1:
                raise InvalidTransition(
                    self._refusal_reason(session, event_id, entrant_id, decision_id)
                )

            promoted: list[str] = []
            if target is DecisionStatus.DECLINED:
                promoted = self._promote(session, event, 1, now)
            event_name = event.name

        logger.info(
            f"Entrant {entrant_id} responded {outcome.value} for event {event_id}"
        )
        report = self._dispatch(self._records(REPLACEMENT, event_id, event_name, promoted))
        return RespondResult(
            event_id=event_id,
            decision_id=decision_id,
            entrant_id=entrant_id,
            status=target,
            promoted_entrant_ids=promoted,
            dispatch=report,
        )

    def accept(self, event_id: int, entrant_id: str, decision_id: int) -> RespondResult:
        return self.respond(event_id, entrant_id, decision_id, ResponseOutcome.ACCEPT)

    def decline(self, event_id: int, entrant_id: str, decision_id: int) -> RespondResult:
        return self.respond(event_id, entrant_id, decision_id, ResponseOutcome.DECLINE)

    def _refusal_reason(
        self, session: Session, event_id: int, entrant_id: str, decision_id: int
    ) -> str:
        decision = self.decisions.get(session, decision_id)
        if decision is None:
            return f"Decision {decision_id} does not exist"
        if decision.event_id != event_id:
            return f"Decision {decision_id} does not belong to event {event_id}"
        if decision.entrant_id != entrant_id:
            return f"Decision {decision_id} is not held by entrant {entrant_id}"
        return f"Decision {decision_id} is {decision.status}, not INVITED"

    def expire_invitations(
        self, event_id: int, *, now: Optional[datetime] = None
    ) -> ExpiryResult:
        """Treat invitations older than ``settings.invitation_ttl`` as declined.

        Each expired invitation promotes one replacement. Without a configured
        TTL nothing happens.
        """
        ttl = self._settings.invitation_ttl
        if ttl is None:
            return ExpiryResult(event_id=event_id)

        now = ensure_utc(now) if now is not None else self._now()
        cutoff = now - ttl
        with transaction(self._session_factory) as session:
            event = Event.require(session, event_id)
            expired: list[str] = []
            for decision in self.decisions.invited_before(session, event_id, cutoff):
                changed = self.decisions.compare_and_set(
                    session,
                    [decision.id],
                    expected=DecisionStatus.INVITED,
                    target=DecisionStatus.DECLINED,
                    now=now,
                    event_id=event_id,
                )
                if changed:
                    expired.append(decision.entrant_id)

            promoted: list[str] = []
            if expired:
                promoted = self._promote(session, event, len(expired), now)
            event_name = event.name

        if expired:
            logger.info(
                f"Expired {len(expired)} invitation(s) for event {event_id}"
            )
        report = self._dispatch(self._records(REPLACEMENT, event_id, event_name, promoted))
        return ExpiryResult(
            event_id=event_id,
            expired_entrant_ids=expired,
            promoted_entrant_ids=promoted,
            dispatch=report,
        )

    # ------------------------------------------------------------------
    # Organizer actions
    # ------------------------------------------------------------------
    def cancel_event(self, event_id: int) -> CancelResult:
        """Cancel the event and every decision that is still open.

        PENDING and INVITED decisions become CANCELLED. Entrants whose
        decision was cancelled, and those who had already accepted, are told.

        Raises
        ------
        InvalidTransition
            If the event is COMPLETED.
        """
        now = self._now()
        with transaction(self._session_factory) as session:
            event = Event.require(session, event_id)
            if event.status == EventStatus.CANCELLED.value:
                return CancelResult(event_id=event_id, already_cancelled=True)

            claimed = session.execute(
                update(Event)
                .where(
                    Event.id == event_id,
                    Event.status.not_in(
                        (EventStatus.CANCELLED.value, EventStatus.COMPLETED.value)
                    ),
                )
                .values(status=EventStatus.CANCELLED.value, updated_at=now)
                .execution_options(synchronize_session=False)
            ).rowcount
            if not claimed:
                session.refresh(event)
                if event.status == EventStatus.CANCELLED.value:
                    return CancelResult(event_id=event_id, already_cancelled=True)
                raise InvalidTransition(
                    f"Event {event_id} is {event.status} and cannot be cancelled"
                )

            cancelled: list[str] = []
            for status in (DecisionStatus.PENDING, DecisionStatus.INVITED):
                open_decisions = self.decisions.list_for_event(session, event_id, status)
                changed = self.decisions.compare_and_set(
                    session,
                    [d.id for d in open_decisions],
                    expected=status,
                    target=DecisionStatus.CANCELLED,
                    now=now,
                    event_id=event_id,
                )
                if changed != len(open_decisions):
                    raise InvalidTransition(
                        f"Cancelling event {event_id} aborted: decisions changed "
                        "concurrently"
                    )
                cancelled.extend(d.entrant_id for d in open_decisions)

            accepted = [
                d.entrant_id
                for d in self.decisions.list_for_event(
                    session, event_id, DecisionStatus.ACCEPTED
                )
            ]
            event_name = event.name

        logger.info(
            f"Cancelled event {event_id}: {len(cancelled)} open decision(s) cancelled"
        )
        report = self._dispatch(
            self._records(CANCELLATION, event_id, event_name, cancelled + accepted)
        )
        return CancelResult(
            event_id=event_id, cancelled_entrant_ids=cancelled, dispatch=report
        )

    def registrations_for(self, event_id: int) -> RegistrationReport:
        """Return the event's registrations joined with their decisions."""
        with read_session(self._session_factory) as session:
            Event.require(session, event_id)
            return registrations_for(session, event_id)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------
    @staticmethod
    def _records(
        template: MessageTemplate,
        event_id: int,
        event_name: str,
        entrant_ids: Sequence[str],
    ) -> list[DispatchRecord]:
        title, message = template.render(event_name)
        return [
            DispatchRecord(entrant_id, event_id, template.type.value, title, message)
            for entrant_id in entrant_ids
        ]

    def _dispatch(self, records: list[DispatchRecord]) -> DispatchReport:
        if not records:
            return DispatchReport()
        return self._dispatcher.dispatch(records)


__all__ = ["MAX_PROMOTION_ATTEMPTS", "DecisionEngine"]
