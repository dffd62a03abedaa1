"""Session helpers shared by every store operation."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from ..errors import StoreUnavailable

logger = logging.getLogger(__name__)


@contextmanager
def transaction(session_factory: sessionmaker) -> Iterator[Session]:
    """Run the enclosed block as one all-or-nothing database transaction.

    The session commits when the block exits normally and rolls back on any
    exception. Connectivity failures are re-raised as
    :class:`~eventlottery.errors.StoreUnavailable`; the rollback guarantees
    that nothing from the failed block was applied, so the caller may retry
    the whole operation.

    Parameters
    ----------
    session_factory : sessionmaker
        Factory bound to the engine the transaction should run on.

    Yields
    ------
    Session
        Session whose transaction spans the ``with`` block.
    """
    try:
        with session_factory.begin() as session:
            yield session
    except (OperationalError, InterfaceError, DisconnectionError) as exc:
        logger.error(f"Database unavailable, transaction rolled back: {exc}")
        raise StoreUnavailable(str(exc)) from exc



@contextmanager
def read_session(session_factory: sessionmaker) -> Iterator[Session]:
    """Open a session for reads only; nothing is committed.

    Connectivity failures are re-raised as
    :class:`~eventlottery.errors.StoreUnavailable`, as in :func:`transaction`.
    """
    try:
        with session_factory() as session:
            yield session
    except (OperationalError, InterfaceError, DisconnectionError) as exc:
        logger.error(f"Database unavailable during read: {exc}")
        raise StoreUnavailable(str(exc)) from exc


__all__ = ["read_session", "transaction"]
