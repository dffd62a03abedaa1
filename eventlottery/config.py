"""Runtime settings read from the environment (and ``.env`` when present)."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Mapping, Optional

from dotenv import load_dotenv

from .errors import InvalidConfiguration

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}
DEFAULT_DATABASE_URL = "sqlite:///./dev.db"


def _parse_bool(name: str, raw: Optional[str], default: bool) -> bool:
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise InvalidConfiguration(f"{name} must be a boolean, got {raw!r}")


def _parse_int(name: str, raw: Optional[str], *, minimum: Optional[int] = None) -> Optional[int]:
    if raw is None or raw.strip() == "":
        return None
    try:
        value = int(raw.strip())
    except ValueError as exc:
        raise InvalidConfiguration(f"{name} must be an integer, got {raw!r}") from exc
    if minimum is not None and value < minimum:
        raise InvalidConfiguration(f"{name} must be >= {minimum}, got {value}")
    return value


def _parse_hours(name: str, raw: Optional[str]) -> Optional[timedelta]:
    if raw is None or raw.strip() == "":
        return None
    try:
        hours = float(raw.strip())
    except ValueError as exc:
        raise InvalidConfiguration(f"{name} must be a number of hours, got {raw!r}") from exc
    if hours <= 0:
        raise InvalidConfiguration(f"{name} must be positive, got {hours}")
    return timedelta(hours=hours)


def _parse_seconds(name: str, raw: Optional[str], default: float) -> float:
    if raw is None or raw.strip() == "":
        return default
    try:
        seconds = float(raw.strip())
    except ValueError as exc:
        raise InvalidConfiguration(f"{name} must be a number of seconds, got {raw!r}") from exc
    if seconds < 0:
        raise InvalidConfiguration(f"{name} must not be negative, got {seconds}")
    return seconds


@dataclass(frozen=True)
class Settings:
    """Engine settings.

    Attributes
    ----------
    notify_losers : bool
        Send a LOST notification to every entrant the draw did not select.
    dispatch_workers : int
        Upper bound on concurrent notification tasks.
    invitation_ttl : Optional[timedelta]
        How long an invitation stays open before
        :meth:`~eventlottery.lottery.engine.DecisionEngine.expire_invitations`
        treats it as declined. ``None`` disables expiry.
    fixed_seed : Optional[int]
        Seed every draw with this value. Only meant for development and
        demos; production draws seed from :mod:`secrets`.
    database_url : str
        SQLAlchemy URL of the store. Relative SQLite paths are resolved
        against the repo root by :func:`eventlottery.db.engine.make_engine`.
    sqlite_busy_timeout : float
        Seconds a SQLite connection waits on a competing writer.
    """

    notify_losers: bool = True
    dispatch_workers: int = 8
    invitation_ttl: Optional[timedelta] = None
    fixed_seed: Optional[int] = None
    database_url: str = DEFAULT_DATABASE_URL
    sqlite_busy_timeout: float = 30.0

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from ``environ`` (defaults to ``os.environ`` after ``.env``)."""
        if environ is None:
            load_dotenv()
            environ = os.environ

        workers = _parse_int(
            "LOTTERY_DISPATCH_WORKERS",
            environ.get("LOTTERY_DISPATCH_WORKERS"),
            minimum=1,
        )
        return cls(
            notify_losers=_parse_bool(
                "LOTTERY_NOTIFY_LOSERS", environ.get("LOTTERY_NOTIFY_LOSERS"), True
            ),
            dispatch_workers=workers if workers is not None else cls.dispatch_workers,
            invitation_ttl=_parse_hours(
                "LOTTERY_INVITATION_TTL_HOURS",
                environ.get("LOTTERY_INVITATION_TTL_HOURS"),
            ),
            fixed_seed=_parse_int("LOTTERY_SEED", environ.get("LOTTERY_SEED")),
            database_url=(environ.get("DB_URL") or "").strip() or DEFAULT_DATABASE_URL,
            sqlite_busy_timeout=_parse_seconds(
                "LOTTERY_SQLITE_BUSY_TIMEOUT",
                environ.get("LOTTERY_SQLITE_BUSY_TIMEOUT"),
                cls.sqlite_busy_timeout,
            ),
        )


__all__ = ["DEFAULT_DATABASE_URL", "Settings"]
