"""Database engine and session factory for SQLAlchemy."""

import logging
import time
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import DeclarativeBase, sessionmaker, Session

from ..config import settings
from ..deadline import Deadline

logger = logging.getLogger(__name__)

# VM instructions between SQLite progress-handler callbacks
_SQLITE_PROGRESS_STEPS = 1000


class Base(DeclarativeBase):
    pass


def make_engine(url: str) -> Engine:
    """Build an engine; pooled connections for server databases."""
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},  # SQLite needs this for multi-thread
            echo=False,
        )
    return create_engine(
        url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_recycle=settings.db_pool_recycle_sec,
        pool_timeout=settings.db_pool_timeout_sec,
        pool_pre_ping=True,
        echo=False,
    )


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    """SQLite ignores FOREIGN KEY clauses unless asked per connection."""
    module = type(dbapi_connection).__module__
    if module.startswith("sqlite3") or module.startswith("pysqlite"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = make_engine(settings.database_url)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


def wait_for_database(
    bind: Engine,
    attempts: int = settings.db_connect_attempts,
    interval: float = settings.db_connect_interval_sec,
) -> None:
    """Ping the database until it answers or attempts run out."""
    for attempt in range(1, attempts + 1):
        try:
            with bind.connect() as conn:
                conn.execute(text("SELECT 1"))
            return
        except OperationalError as e:
            if attempt == attempts:
                logger.error("Database unreachable after %d attempts: %s", attempts, e)
                raise
            logger.warning("Waiting for database (attempt %d/%d)...", attempt, attempts)
            time.sleep(interval)


def init_database(bind: Engine | None = None) -> None:
    """Create all tables.

    Models must be imported before create_all() so they register with Base.metadata.
    """
    bind = bind or engine
    from . import sensor  # noqa: F401

    wait_for_database(bind)
    Base.metadata.create_all(bind=bind)

    # WAL lets the MQTT consumer and HTTP handlers write concurrently
    if bind.dialect.name == "sqlite" and bind.url.database not in (None, "", ":memory:"):
        with bind.connect() as conn:
            conn.execute(text("PRAGMA journal_mode=WAL"))
            conn.commit()


@contextmanager
def statement_deadline(session: Session, deadline: Deadline) -> Iterator[None]:
    """Abort statements issued inside this block once the deadline passes.

    SQLite gets a progress handler that interrupts the running statement;
    PostgreSQL gets a statement timeout scoped to the transaction; MySQL and
    MariaDB get session limits that are put back when the block exits.
    Other dialects only see the pre-statement checks.
    """
    conn = session.connection()
    dialect = conn.dialect.name

    if dialect == "sqlite":
        raw = conn.connection.driver_connection
        raw.set_progress_handler(
            lambda: 1 if deadline.expired() else 0, _SQLITE_PROGRESS_STEPS,
        )
        try:
            yield
        finally:
            raw.set_progress_handler(None, 0)
        return

    remaining = deadline.remaining()
    if remaining is None or dialect not in ("postgresql", "mysql", "mariadb"):
        yield
        return

    ms = max(1, int(remaining * 1000))
    if dialect == "postgresql":
        conn.execute(text(f"SET LOCAL statement_timeout = {ms}"))
        yield
        return

    limits, resets = _mysql_limits(conn.dialect, ms)
    for stmt in limits:
        conn.execute(text(stmt))
    try:
        yield
    finally:
        _reset_session(conn, resets)


def _mysql_limits(dialect, ms: int) -> tuple[list[str], list[str]]:
    """Session statements bounding every statement kind, plus their resets.

    MySQL's max_execution_time only covers SELECT, so UPDATE/DELETE are
    bounded through the row-lock wait instead (whole seconds, at least 1).
    """
    lock_wait = max(1, -(-ms // 1000))
    if dialect.name == "mariadb" or getattr(dialect, "is_mariadb", False):
        return (
            [
                f"SET SESSION max_statement_time = {ms / 1000:.3f}",
                f"SET SESSION innodb_lock_wait_timeout = {lock_wait}",
            ],
            [
                "SET SESSION max_statement_time = DEFAULT",
                "SET SESSION innodb_lock_wait_timeout = DEFAULT",
            ],
        )
    return (
        [
            f"SET SESSION max_execution_time = {ms}",
            f"SET SESSION innodb_lock_wait_timeout = {lock_wait}",
        ],
        [
            "SET SESSION max_execution_time = DEFAULT",
            "SET SESSION innodb_lock_wait_timeout = DEFAULT",
        ],
    )


def _reset_session(conn, statements: list[str]) -> None:
    """Undo session limits on the pooled connection.

    Runs on the DBAPI cursor so it still works after the ORM transaction
    has failed.  A connection that cannot be reset is invalidated so the
    pool does not hand its limits to the next caller.
    """
    try:
        cursor = conn.connection.dbapi_connection.cursor()
        try:
            for stmt in statements:
                cursor.execute(stmt)
        finally:
            cursor.close()
    except Exception as e:
        logger.warning("Could not reset session limits, discarding connection: %s", e)
        conn.invalidate()
