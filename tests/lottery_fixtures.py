from __future__ import annotations

import threading
import unittest
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from eventlottery.config import Settings
from eventlottery.db.engine import get_sessionmaker, make_engine
from eventlottery.lottery import DecisionEngine
from eventlottery.models import Base, Decision, Notification
from eventlottery.notifications import DispatchRecord, NotificationDispatcher
from eventlottery.workflows import create_event

START = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingTransport:
    """Transport that remembers deliveries and fails for chosen recipients."""

    def __init__(self, fail_for: Iterable[str] = ()) -> None:
        self.records: list[DispatchRecord] = []
        self.fail_for = set(fail_for)
        self._lock = threading.Lock()

    def __call__(self, record: DispatchRecord) -> None:
        if record.recipient_id in self.fail_for:
            raise ConnectionError(f"gateway rejected {record.recipient_id}")
        with self._lock:
            self.records.append(record)

    def recipients(self, type: Optional[str] = None) -> list[str]:
        return [r.recipient_id for r in self.records if type is None or r.type == type]


class LotteryTestCase(unittest.TestCase):
    """In-memory database plus an engine wired to a fixed clock."""

    settings = Settings()

    def setUp(self) -> None:
        self.engine = make_engine("sqlite+pysqlite:///:memory:")
        Base.metadata.create_all(self.engine)
        self.Session = get_sessionmaker(self.engine)
        self.clock = FixedClock()
        self.transport = RecordingTransport()
        self.dispatcher = NotificationDispatcher(self.Session, transport=self.transport)
        self.lottery = DecisionEngine(
            self.Session,
            settings=self.settings,
            dispatcher=self.dispatcher,
            clock=self.clock,
        )

    def tearDown(self) -> None:
        self.engine.dispose()

    def create_event(self, **overrides) -> int:
        fields = dict(
            organizer_id="organizer-1",
            name="Pottery Workshop",
            number_of_winners=2,
            open_now=True,
        )
        fields.update(overrides)
        with self.Session.begin() as session:
            return create_event(session, **fields).id

    def join_many(self, event_id: int, count: int, prefix: str = "entrant") -> list[str]:
        """Join ``count`` entrants one minute apart; returns ids in join order."""
        entrant_ids = []
        for n in range(1, count + 1):
            entrant_id = f"{prefix}-{n}"
            self.clock.advance(minutes=1)
            self.lottery.join(event_id, entrant_id)
            entrant_ids.append(entrant_id)
        return entrant_ids

    def decision_for(self, event_id: int, entrant_id: str) -> Optional[Decision]:
        with self.Session() as session:
            return self.lottery.decisions.for_entrant_in_event(
                session, event_id, entrant_id
            )

    def statuses(self, event_id: int) -> dict[str, str]:
        with self.Session() as session:
            return {
                d.entrant_id: d.status
                for d in self.lottery.decisions.list_for_event(session, event_id)
            }

    def notifications(self, recipient_id: str) -> list[Notification]:
        with self.Session() as session:
            return Notification.for_recipient(session, recipient_id)
