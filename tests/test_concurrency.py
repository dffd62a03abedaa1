from __future__ import annotations

import tempfile
import threading
import unittest
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from sqlalchemy import func, select

from eventlottery.config import Settings
from eventlottery.db.engine import get_sessionmaker, make_engine
from eventlottery.errors import AlreadyJoined, WaitingListFull
from eventlottery.lottery import DecisionEngine
from eventlottery.models import Base, Decision, Event, LotteryDraw, WaitingListEntry
from eventlottery.workflows import create_event


class ConcurrencyTests(unittest.TestCase):
    """Races between threads, each with its own connection to a file database."""

    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(self.tmpdir.name) / "lottery.db"
        self.engine = make_engine(f"sqlite+pysqlite:///{db_path}")
        Base.metadata.create_all(self.engine)
        self.Session = get_sessionmaker(self.engine)
        self.lottery = DecisionEngine(self.Session, settings=Settings(dispatch_workers=4))

    def tearDown(self) -> None:
        self.engine.dispose()
        self.tmpdir.cleanup()

    def _event(self, **overrides) -> int:
        fields = dict(
            organizer_id="organizer-1",
            name="Marathon",
            number_of_winners=3,
            open_now=True,
        )
        fields.update(overrides)
        with self.Session.begin() as session:
            return create_event(session, **fields).id

    def _run_together(self, workers: int, fn) -> list:
        barrier = threading.Barrier(workers)

        def task(index):
            barrier.wait()
            try:
                return fn(index)
            except Exception as exc:
                return exc

        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(task, range(workers)))

    def _count(self, model, event_id: int) -> int:
        with self.Session() as session:
            return session.scalar(
                select(func.count(model.id)).where(model.event_id == event_id)
            )

    def test_concurrent_duplicate_joins_create_one_entry(self) -> None:
        event_id = self._event()

        outcomes = self._run_together(6, lambda _: self.lottery.join(event_id, "alice"))

        joined = [o for o in outcomes if not isinstance(o, Exception)]
        duplicates = [o for o in outcomes if isinstance(o, AlreadyJoined)]
        self.assertEqual(len(joined), 1)
        self.assertEqual(len(duplicates), 5)
        self.assertEqual(self._count(WaitingListEntry, event_id), 1)
        self.assertEqual(self._count(Decision, event_id), 1)
        with self.Session() as session:
            self.assertEqual(session.get(Event, event_id).entrant_count, 1)

    def test_concurrent_joins_respect_capacity(self) -> None:
        event_id = self._event(max_entrants=3)

        outcomes = self._run_together(
            6, lambda i: self.lottery.join(event_id, f"runner-{i}")
        )

        joined = [o for o in outcomes if not isinstance(o, Exception)]
        full = [o for o in outcomes if isinstance(o, WaitingListFull)]
        self.assertEqual(len(joined), 3)
        self.assertEqual(len(full), 3)
        self.assertEqual(self._count(WaitingListEntry, event_id), 3)

    def test_concurrent_draws_select_once(self) -> None:
        event_id = self._event(number_of_winners=3)
        for n in range(10):
            self.lottery.join(event_id, f"runner-{n}")

        results = self._run_together(
            4, lambda i: self.lottery.draw(event_id, seed=1000 + i)
        )

        self.assertFalse(any(isinstance(r, Exception) for r in results), results)
        fresh = [r for r in results if not r.already_drawn]
        self.assertEqual(len(fresh), 1)
        for result in results:
            self.assertEqual(result.winner_entrant_ids, fresh[0].winner_entrant_ids)
        self.assertEqual(self._count(LotteryDraw, event_id), 1)
        with self.Session() as session:
            invited = session.scalar(
                select(func.count(Decision.id)).where(
                    Decision.event_id == event_id, Decision.status == "INVITED"
                )
            )
        self.assertEqual(invited, 3)
        self.assertEqual(len(fresh[0].dispatch.sent), 10)

    def test_concurrent_declines_share_one_replacement(self) -> None:
        event_id = self._event(number_of_winners=2)
        self.lottery.join(event_id, "first")
        self.lottery.join(event_id, "second")
        drawn = self.lottery.draw(event_id, seed=5)
        self.lottery.join(event_id, "reserve")

        with self.Session() as session:
            decision_ids = {
                d.entrant_id: d.id
                for d in session.scalars(
                    select(Decision).where(Decision.event_id == event_id)
                )
            }
        winners = drawn.winner_entrant_ids

        results = self._run_together(
            2,
            lambda i: self.lottery.decline(event_id, winners[i], decision_ids[winners[i]]),
        )

        self.assertFalse(any(isinstance(r, Exception) for r in results), results)
        promoted = [p for r in results for p in r.promoted_entrant_ids]
        self.assertEqual(promoted, ["reserve"])


if __name__ == "__main__":
    unittest.main()
