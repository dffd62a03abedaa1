from .base import Base

# import models so Alembic/autoloaders can discover mappers
from .event import Event, EventStatus  # noqa: F401
from .entrant import EntrantProfile  # noqa: F401
from .waiting_list import WaitingListEntry  # noqa: F401
from .decision import (  # noqa: F401
    ALLOWED_TRANSITIONS,
    Decision,
    DecisionStatus,
    TERMINAL_STATUSES,
)
from .notification import Notification  # noqa: F401
from .lottery_draw import LotteryDraw  # noqa: F401

__all__ = [
    "ALLOWED_TRANSITIONS",
    "Base",
    "Decision",
    "DecisionStatus",
    "EntrantProfile",
    "Event",
    "EventStatus",
    "LotteryDraw",
    "Notification",
    "TERMINAL_STATUSES",
    "WaitingListEntry",
]
