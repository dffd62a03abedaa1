from __future__ import annotations

import unittest
from datetime import timedelta

from sqlalchemy import event as sa_event
from sqlalchemy import func, select

from eventlottery.errors import (
    AlreadyJoined,
    EventNotFound,
    InvalidTransition,
    RegistrationClosed,
    WaitingListFull,
)
from eventlottery.models import Decision, Event, WaitingListEntry

from lottery_fixtures import START, LotteryTestCase


class JoinTests(LotteryTestCase):
    def _counts(self, event_id: int) -> tuple[int, int, int]:
        with self.Session() as session:
            entries = session.scalar(
                select(func.count(WaitingListEntry.id)).where(
                    WaitingListEntry.event_id == event_id
                )
            )
            decisions = session.scalar(
                select(func.count(Decision.id)).where(Decision.event_id == event_id)
            )
            entrant_count = session.get(Event, event_id).entrant_count
        return entries, decisions, entrant_count

    def test_join_creates_entry_and_pending_decision(self) -> None:
        event_id = self.create_event()

        result = self.lottery.join(event_id, "alice", latitude=53.5, longitude=-113.5)

        self.assertEqual(result.entrant_id, "alice")
        self.assertEqual(result.joined_at, START)
        with self.Session() as session:
            entry = session.get(WaitingListEntry, result.entry_id)
            decision = session.get(Decision, result.decision_id)
            self.assertEqual(entry.entrant_id, "alice")
            self.assertEqual(entry.join_latitude, 53.5)
            self.assertEqual(entry.join_longitude, -113.5)
            self.assertEqual(decision.status, "PENDING")
            self.assertEqual(decision.entry_id, entry.id)
            self.assertIsNone(decision.responded_at)
        self.assertEqual(self._counts(event_id), (1, 1, 1))

    def test_second_join_reports_already_joined(self) -> None:
        event_id = self.create_event()
        first = self.lottery.join(event_id, "alice")

        with self.assertRaises(AlreadyJoined) as ctx:
            self.lottery.join(event_id, "alice")

        self.assertEqual(ctx.exception.entry_id, first.entry_id)
        self.assertEqual(ctx.exception.decision_id, first.decision_id)
        self.assertEqual(self._counts(event_id), (1, 1, 1))

    def test_same_entrant_may_join_different_events(self) -> None:
        first = self.create_event(name="First")
        second = self.create_event(name="Second")

        self.lottery.join(first, "alice")
        self.lottery.join(second, "alice")

        self.assertEqual(self._counts(first), (1, 1, 1))
        self.assertEqual(self._counts(second), (1, 1, 1))

    def test_draft_event_rejects_entrants(self) -> None:
        event_id = self.create_event(open_now=False)

        with self.assertRaises(RegistrationClosed):
            self.lottery.join(event_id, "alice")
        self.assertEqual(self._counts(event_id), (0, 0, 0))

    def test_registration_window_is_enforced(self) -> None:
        event_id = self.create_event(
            registration_start=START + timedelta(days=1),
            registration_end=START + timedelta(days=2),
        )

        with self.assertRaises(RegistrationClosed):
            self.lottery.join(event_id, "early")

        self.clock.advance(days=1, hours=1)
        self.lottery.join(event_id, "on-time")

        self.clock.advance(days=2)
        with self.assertRaises(RegistrationClosed):
            self.lottery.join(event_id, "late")

        self.assertEqual(self._counts(event_id), (1, 1, 1))

    def test_waiting_list_capacity(self) -> None:
        event_id = self.create_event(max_entrants=2)
        self.join_many(event_id, 2)

        with self.assertRaises(WaitingListFull):
            self.lottery.join(event_id, "third")

        self.assertEqual(self._counts(event_id), (2, 2, 2))

    def test_unknown_event(self) -> None:
        with self.assertRaises(EventNotFound):
            self.lottery.join(12345, "alice")

    def test_late_joiner_on_drawn_event_stays_pending(self) -> None:
        event_id = self.create_event(number_of_winners=1)
        self.join_many(event_id, 2)
        self.lottery.draw(event_id, seed=1)

        self.lottery.join(event_id, "late")

        self.assertEqual(self.decision_for(event_id, "late").status, "PENDING")


class LeaveTests(LotteryTestCase):
    def test_leave_removes_entry_and_decision(self) -> None:
        event_id = self.create_event()
        self.join_many(event_id, 2)

        self.assertTrue(self.lottery.leave(event_id, "entrant-1"))

        self.assertIsNone(self.decision_for(event_id, "entrant-1"))
        with self.Session() as session:
            self.assertEqual(session.get(Event, event_id).entrant_count, 1)
            remaining = session.scalars(
                select(WaitingListEntry.entrant_id).where(
                    WaitingListEntry.event_id == event_id
                )
            ).all()
            self.assertEqual(remaining, ["entrant-2"])

    def test_leave_then_rejoin(self) -> None:
        event_id = self.create_event(max_entrants=1)
        self.lottery.join(event_id, "alice")
        self.lottery.leave(event_id, "alice")

        self.lottery.join(event_id, "bob")

        self.assertEqual(self.decision_for(event_id, "bob").status, "PENDING")

    def test_leave_unknown_entrant(self) -> None:
        event_id = self.create_event()
        self.assertFalse(self.lottery.leave(event_id, "nobody"))

    def test_invited_entrant_cannot_leave(self) -> None:
        event_id = self.create_event(number_of_winners=1)
        self.join_many(event_id, 1)
        self.lottery.draw(event_id)

        with self.assertRaises(InvalidTransition):
            self.lottery.leave(event_id, "entrant-1")

        self.assertEqual(self.decision_for(event_id, "entrant-1").status, "INVITED")
        with self.Session() as session:
            self.assertEqual(session.get(Event, event_id).entrant_count, 1)

    def test_leave_updates_event_before_deleting_rows(self) -> None:
        event_id = self.create_event()
        self.join_many(event_id, 1)
        writes: list[str] = []

        def record(conn, cursor, statement, parameters, context, executemany):
            words = statement.split()
            if words[0].upper() == "UPDATE":
                writes.append(f"UPDATE {words[1]}")
            elif words[0].upper() == "DELETE":
                writes.append(f"DELETE {words[2]}")

        sa_event.listen(self.engine, "before_cursor_execute", record)
        try:
            self.lottery.leave(event_id, "entrant-1")
        finally:
            sa_event.remove(self.engine, "before_cursor_execute", record)

        self.assertEqual(
            writes,
            ["UPDATE events", "DELETE decisions", "DELETE waiting_list_entries"],
        )


if __name__ == "__main__":
    unittest.main()
