from __future__ import annotations

import unittest
from unittest.mock import patch

from sqlalchemy import event as sa_event
from sqlalchemy import select, update

from eventlottery.config import Settings
from eventlottery.errors import (
    EventNotFound,
    InvalidConfiguration,
    InvalidTransition,
    NothingToDraw,
)
from eventlottery.lottery import DecisionEngine, split_winners
from eventlottery.models import Event, LotteryDraw, WaitingListEntry
from eventlottery.db.utils import ensure_utc
from eventlottery.workflows import close_registration

from lottery_fixtures import LotteryTestCase


class DrawTests(LotteryTestCase):
    def test_two_winners_from_five_pending(self) -> None:
        event_id = self.create_event(number_of_winners=2)
        entrants = self.join_many(event_id, 5)

        result = self.lottery.draw(event_id, seed=42)

        self.assertFalse(result.already_drawn)
        self.assertEqual(result.winners_count, 2)
        self.assertEqual(result.losers_count, 3)
        self.assertEqual(
            sorted(result.winner_entrant_ids + result.loser_entrant_ids),
            sorted(entrants),
        )
        statuses = self.statuses(event_id)
        self.assertEqual(list(statuses.values()).count("INVITED"), 2)
        self.assertEqual(list(statuses.values()).count("LOST"), 3)
        for entrant_id in result.winner_entrant_ids:
            self.assertEqual(statuses[entrant_id], "INVITED")

        with self.Session() as session:
            event = session.get(Event, event_id)
            self.assertEqual(event.status, "DRAWN")

    def test_more_places_than_entrants_invites_everyone(self) -> None:
        event_id = self.create_event(number_of_winners=5)
        self.join_many(event_id, 3)

        result = self.lottery.draw(event_id)

        self.assertEqual(result.winners_count, 3)
        self.assertEqual(result.losers_count, 0)
        self.assertEqual(set(self.statuses(event_id).values()), {"INVITED"})

    def test_seeded_draw_is_reproducible(self) -> None:
        event_id = self.create_event(number_of_winners=3)
        entrants = self.join_many(event_id, 8)

        result = self.lottery.draw(event_id, seed=2024)

        expected_winners, expected_losers = split_winners(entrants, 3, 2024)
        self.assertEqual(result.winner_entrant_ids, expected_winners)
        self.assertEqual(sorted(result.loser_entrant_ids), sorted(expected_losers))
        self.assertEqual(
            result.loser_entrant_ids, [e for e in entrants if e not in expected_winners]
        )
        self.assertEqual(result.seed, 2024)

    def test_engine_seed_factory_is_used_and_recorded(self) -> None:
        lottery = DecisionEngine(
            self.Session,
            settings=self.settings,
            dispatcher=self.dispatcher,
            seed_factory=lambda: 77,
            clock=self.clock,
        )
        event_id = self.create_event(number_of_winners=1)
        self.join_many(event_id, 4)

        result = lottery.draw(event_id)

        self.assertEqual(result.seed, 77)
        with self.Session() as session:
            record = session.scalar(
                select(LotteryDraw).where(LotteryDraw.event_id == event_id)
            )
            self.assertEqual(record.seed_value, 77)
            self.assertEqual(record.winners_count, 1)
            self.assertEqual(record.losers_count, 3)
            self.assertEqual(len(record.candidate_ids), 4)

    def test_second_draw_is_a_no_op(self) -> None:
        event_id = self.create_event(number_of_winners=2)
        self.join_many(event_id, 5)
        first = self.lottery.draw(event_id, seed=1)
        sent = len(self.transport.records)
        statuses = self.statuses(event_id)

        second = self.lottery.draw(event_id, seed=999)

        self.assertTrue(second.already_drawn)
        self.assertEqual(second.winner_entrant_ids, first.winner_entrant_ids)
        self.assertEqual(second.loser_entrant_ids, first.loser_entrant_ids)
        self.assertEqual(second.seed, 1)
        self.assertEqual(self.statuses(event_id), statuses)
        self.assertEqual(len(self.transport.records), sent)
        with self.Session() as session:
            draws = session.scalars(select(LotteryDraw)).all()
            self.assertEqual(len(draws), 1)

    def test_winners_get_invited_at_stamp(self) -> None:
        event_id = self.create_event(number_of_winners=1)
        self.join_many(event_id, 3)
        self.clock.advance(hours=2)

        result = self.lottery.draw(event_id, seed=5)

        with self.Session() as session:
            entries = {
                e.entrant_id: e
                for e in session.scalars(
                    select(WaitingListEntry).where(WaitingListEntry.event_id == event_id)
                )
            }
        winner = result.winner_entrant_ids[0]
        self.assertEqual(ensure_utc(entries[winner].invited_at), self.clock.now)
        for loser in result.loser_entrant_ids:
            self.assertIsNone(entries[loser].invited_at)

    def test_missing_number_of_winners_is_invalid(self) -> None:
        event_id = self.create_event(number_of_winners=None)
        self.join_many(event_id, 2)

        with self.assertRaises(InvalidConfiguration):
            self.lottery.draw(event_id)

        self.assertEqual(set(self.statuses(event_id).values()), {"PENDING"})
        with self.Session() as session:
            self.assertEqual(session.get(Event, event_id).status, "OPEN")

    def test_nothing_to_draw_leaves_event_undrawn(self) -> None:
        event_id = self.create_event()

        with self.assertRaises(NothingToDraw):
            self.lottery.draw(event_id)

        with self.Session() as session:
            self.assertEqual(session.get(Event, event_id).status, "OPEN")
            self.assertIsNone(
                session.scalar(select(LotteryDraw).where(LotteryDraw.event_id == event_id))
            )

        self.join_many(event_id, 1)
        self.assertEqual(self.lottery.draw(event_id).winners_count, 1)

    def test_failure_after_invitations_rolls_back_whole_draw(self) -> None:
        event_id = self.create_event(number_of_winners=2)
        entrants = self.join_many(event_id, 4)

        with patch.object(
            self.lottery.entries, "mark_invited", side_effect=RuntimeError("disk full")
        ):
            with self.assertRaises(RuntimeError):
                self.lottery.draw(event_id, seed=12)

        self.assertEqual(set(self.statuses(event_id).values()), {"PENDING"})
        with self.Session() as session:
            self.assertEqual(session.get(Event, event_id).status, "OPEN")
            self.assertIsNone(
                session.scalar(select(LotteryDraw).where(LotteryDraw.event_id == event_id))
            )
            invited_at = session.scalars(
                select(WaitingListEntry.invited_at).where(
                    WaitingListEntry.event_id == event_id
                )
            ).all()
        self.assertEqual(invited_at, [None] * len(entrants))
        self.assertEqual(self.transport.records, [])

        result = self.lottery.draw(event_id, seed=12)
        self.assertFalse(result.already_drawn)
        self.assertEqual(result.winners_count, 2)

    def test_failed_audit_insert_rolls_back_whole_draw(self) -> None:
        event_id = self.create_event(number_of_winners=1)
        self.join_many(event_id, 3)
        attempts = []

        def fail_on_audit_insert(conn, cursor, statement, parameters, context, executemany):
            if statement.lstrip().upper().startswith("INSERT INTO LOTTERY_DRAWS"):
                attempts.append(statement)
                raise RuntimeError("audit log unavailable")

        sa_event.listen(self.engine, "before_cursor_execute", fail_on_audit_insert)
        try:
            with self.assertRaises(RuntimeError):
                self.lottery.draw(event_id, seed=3)
        finally:
            sa_event.remove(self.engine, "before_cursor_execute", fail_on_audit_insert)

        self.assertEqual(len(attempts), 1)
        self.assertEqual(set(self.statuses(event_id).values()), {"PENDING"})
        with self.Session() as session:
            self.assertEqual(session.get(Event, event_id).status, "OPEN")

    def test_drawn_status_without_record_is_refused(self) -> None:
        event_id = self.create_event()
        self.join_many(event_id, 2)
        with self.Session.begin() as session:
            session.execute(
                update(Event).where(Event.id == event_id).values(status="DRAWN")
            )

        with self.assertRaises(InvalidTransition):
            self.lottery.draw(event_id)
        self.assertEqual(set(self.statuses(event_id).values()), {"PENDING"})

    def test_draft_event_cannot_be_drawn(self) -> None:
        event_id = self.create_event(open_now=False)

        with self.assertRaises(InvalidTransition):
            self.lottery.draw(event_id)

    def test_closed_event_can_be_drawn(self) -> None:
        event_id = self.create_event(number_of_winners=1)
        self.join_many(event_id, 2)
        with self.Session.begin() as session:
            close_registration(session, event_id)

        result = self.lottery.draw(event_id, seed=3)

        self.assertEqual(result.winners_count, 1)

    def test_unknown_event(self) -> None:
        with self.assertRaises(EventNotFound):
            self.lottery.draw(404)

    def test_draw_notifies_winners_and_losers(self) -> None:
        event_id = self.create_event(number_of_winners=2)
        self.join_many(event_id, 4)

        result = self.lottery.draw(event_id, seed=8)

        self.assertEqual(
            sorted(self.transport.recipients("INVITED")),
            sorted(result.winner_entrant_ids),
        )
        self.assertEqual(
            sorted(self.transport.recipients("LOST")),
            sorted(result.loser_entrant_ids),
        )
        self.assertEqual(len(result.dispatch.sent), 4)
        winner_notes = self.notifications(result.winner_entrant_ids[0])
        self.assertEqual(winner_notes[0].title, "You won the lottery!")
        self.assertIn("Pottery Workshop", winner_notes[0].message)

    def test_losers_are_not_notified_when_disabled(self) -> None:
        lottery = DecisionEngine(
            self.Session,
            settings=Settings(dispatch_workers=1, notify_losers=False),
            dispatcher=self.dispatcher,
            clock=self.clock,
        )
        event_id = self.create_event(number_of_winners=1)
        self.join_many(event_id, 3)

        result = lottery.draw(event_id, seed=11)

        self.assertEqual(self.transport.recipients(), result.winner_entrant_ids)
        self.assertEqual(self.transport.recipients("LOST"), [])


class VerifyDrawTests(LotteryTestCase):
    def test_recorded_draw_verifies(self) -> None:
        event_id = self.create_event(number_of_winners=3)
        self.join_many(event_id, 10)
        self.lottery.draw(event_id)

        self.assertTrue(self.lottery.verify_draw(event_id))

    def test_tampered_record_fails_verification(self) -> None:
        event_id = self.create_event(number_of_winners=2)
        self.join_many(event_id, 6)
        self.lottery.draw(event_id, seed=12)

        with self.Session.begin() as session:
            record = session.scalar(
                select(LotteryDraw).where(LotteryDraw.event_id == event_id)
            )
            losers = [i for i in record.candidate_ids if i not in record.winner_ids]
            session.execute(
                update(LotteryDraw)
                .where(LotteryDraw.id == record.id)
                .values(winner_ids=losers[:2])
            )

        self.assertFalse(self.lottery.verify_draw(event_id))

    def test_undrawn_event_does_not_verify(self) -> None:
        event_id = self.create_event()
        self.assertFalse(self.lottery.verify_draw(event_id))


if __name__ == "__main__":
    unittest.main()
