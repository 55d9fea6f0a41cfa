"""
Database connection and session management.

Handles SQLite database initialization and the session factory.

All sessions must be created via `db_session()` and are single-owner:
they may only be used in the thread that created them and within their scope.
"""
import logging
import os
import threading
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import NullPool

from bizlink.core.config import get_database_url, settings
from bizlink.core.memory.models import Base


logger = logging.getLogger(__name__)


def create_db_engine(url: str, echo: bool = False) -> Engine:
    """
    Create a SQLite engine with the pragmas the app relies on.

    NullPool gives each session its own connection, so sessions opened in
    threadpool workers never share a connection.
    """
    db_engine = create_engine(
        url,
        connect_args={"timeout": 30, "check_same_thread": False},
        poolclass=NullPool,
        echo=echo,
    )
    event.listen(db_engine, "connect", _set_sqlite_pragma)
    return db_engine


def _set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints and WAL mode in SQLite."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=30000")
    cursor.close()


def create_session_factory(url: str, echo: bool = False) -> sessionmaker:
    """Build a session factory bound to its own engine (used by tests and tools)."""
    return sessionmaker(autocommit=False, autoflush=False, bind=create_db_engine(url, echo=echo))


engine = create_db_engine(get_database_url(), echo=settings.database_echo)

DB_DEBUG_LOG = (
    settings.database_echo
    or os.getenv("DB_DEBUG_LOG", "0").lower() in ("1", "true", "yes")
)

# Session factory: one Session instance per unit of work (request, stream completion).
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Only one thread creates tables at a time.
_init_lock = threading.Lock()


def init_db(session_factory: Optional[sessionmaker] = None) -> None:
    """Initialize database schema (create missing tables)."""
    factory = session_factory or SessionLocal
    with _init_lock:
        Base.metadata.create_all(bind=factory.kw["bind"])
        logger.info("Database schema initialized")


@contextmanager
def db_session(session_factory: Optional[sessionmaker] = None) -> Generator[Session, None, None]:
    """
    Context manager for database sessions.

    Use only in the thread that calls this; do not pass the yielded session
    to another thread. Commits on success, rolls back on error.
    """
    db = (session_factory or SessionLocal)()
    if DB_DEBUG_LOG:
        logger.debug("DB session created id=%s thread_id=%s", id(db), threading.get_ident())
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
