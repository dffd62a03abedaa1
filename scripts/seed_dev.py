"""Reset the development database and run a small demo lottery."""

import logging
from datetime import datetime, timedelta, timezone

from eventlottery.config import Settings
from eventlottery.db.engine import get_sessionmaker, make_engine
from eventlottery.lottery import DecisionEngine
from eventlottery.models import Base
from eventlottery.registrations import registrations_for
from eventlottery.workflows import create_event, set_notification_preference

logger = logging.getLogger(__name__)

ENTRANTS = [f"entrant_{n:02d}" for n in range(1, 9)]


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    engine = make_engine()

    # SQLite cannot drop tables with live foreign keys; switch the check off.
    with engine.connect() as conn:
        conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
        Base.metadata.drop_all(bind=conn)
        conn.exec_driver_sql("PRAGMA foreign_keys=ON")
        conn.commit()
    Base.metadata.create_all(engine)

    Session = get_sessionmaker(engine)
    settings = Settings.from_env()
    lottery = DecisionEngine(Session, settings=settings)
    now = datetime.now(timezone.utc)

    with Session.begin() as session:
        event = create_event(
            session,
            organizer_id="organizer_01",
            name="Community Swim Lessons",
            description="Beginner swim lessons, ten weeks.",
            location="Downtown Recreation Centre",
            event_date=now + timedelta(days=30),
            registration_start=now - timedelta(days=1),
            registration_end=now + timedelta(days=7),
            max_entrants=20,
            number_of_winners=3,
            open_now=True,
        )
        event_id = event.id
        set_notification_preference(session, ENTRANTS[-1], True, display_name="Quiet Entrant")

    for entrant_id in ENTRANTS:
        lottery.join(event_id, entrant_id)

    result = lottery.draw(event_id)
    logger.info(f"Winners: {result.winner_entrant_ids} (seed {result.seed})")

    first_winner = result.winner_entrant_ids[0]
    with Session() as session:
        decision = lottery.decisions.for_entrant_in_event(session, event_id, first_winner)
        decision_id = decision.id
    declined = lottery.decline(event_id, first_winner, decision_id)
    logger.info(f"{first_winner} declined; promoted {declined.promoted_entrant_ids}")

    with Session() as session:
        report = registrations_for(session, event_id)
        for registration in report.registrations:
            logger.info(f"{registration.entrant_id}: {registration.decision_status}")
        logger.info(f"Counts: {lottery.decisions.count_by_status(session, event_id)}")

    logger.info(f"Draw verified: {lottery.verify_draw(event_id)}")


if __name__ == "__main__":
    main()
