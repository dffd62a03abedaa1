import logging
from pathlib import Path
from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import Settings
from .utils import resolve_sqlite_url

logger = logging.getLogger(__name__)

# Repo root; relative sqlite paths in DB_URL are resolved against it.
ROOT_DIR = Path(__file__).resolve().parents[2]


def default_database_url(settings: Optional[Settings] = None) -> str:
    """Database URL from ``settings`` (or the environment), made absolute for SQLite."""
    settings = settings or Settings.from_env()
    return resolve_sqlite_url(settings.database_url, ROOT_DIR)


def _is_sqlite_memory(url: str) -> bool:
    database = make_url(url).database
    return not database or database == ":memory:" or "mode=memory" in url


def make_engine(
    database_url: Optional[str] = None,
    echo: bool = False,
    *,
    busy_timeout: Optional[float] = None,
) -> Engine:
    """Create the engine every store and dispatcher session is bound to.

    Parameters
    ----------
    database_url : Optional[str]
        SQLAlchemy URL. Defaults to ``DB_URL`` from the environment.
    echo : bool, default: False
        Log emitted SQL.
    busy_timeout : Optional[float]
        Seconds a SQLite writer waits for a competing transaction before
        giving up. Defaults to ``Settings.sqlite_busy_timeout``.
    """
    settings = None
    if database_url is None or busy_timeout is None:
        settings = Settings.from_env()
    url = database_url or default_database_url(settings)
    timeout = busy_timeout if busy_timeout is not None else settings.sqlite_busy_timeout

    connect_args = {}
    engine_kwargs = {}
    if url.startswith("sqlite"):
        connect_args["timeout"] = timeout
        # pooled connections are handed between the dispatcher's threads
        connect_args["check_same_thread"] = False
        if _is_sqlite_memory(url):
            # every thread must see the same in-memory database
            engine_kwargs["poolclass"] = StaticPool

    engine = create_engine(
        url, echo=echo, future=True, connect_args=connect_args, **engine_kwargs
    )
    if url.startswith("sqlite"):

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            # cascades from entries to decisions depend on it
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    logger.debug(f"Created engine for {engine.url.render_as_string(hide_password=True)}")
    return engine


def get_sessionmaker(engine: Engine) -> sessionmaker:
    """Session factory shared by the stores, the engine and the dispatcher."""
    return sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,  # results are read after their transaction closes
        future=True,
    )
