"""Waiting-list lottery engine for capacity-limited events."""

from .config import Settings
from .errors import (
    AlreadyJoined,
    EventNotFound,
    InvalidConfiguration,
    InvalidTransition,
    LotteryError,
    NothingToDraw,
    PartialDispatchFailure,
    RegistrationClosed,
    StoreUnavailable,
    WaitingListFull,
)

__version__ = "0.1.0"

__all__ = [
    "AlreadyJoined",
    "EventNotFound",
    "InvalidConfiguration",
    "InvalidTransition",
    "LotteryError",
    "NothingToDraw",
    "PartialDispatchFailure",
    "RegistrationClosed",
    "Settings",
    "StoreUnavailable",
    "WaitingListFull",
]
