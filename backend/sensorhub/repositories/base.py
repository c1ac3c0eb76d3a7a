"""Shared plumbing for repositories: sessions, deadlines, error context."""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..config import settings
from ..deadline import Deadline
from ..errors import OperationTimeout, RepositoryError
from ..models.database import statement_deadline
from ..schemas.sensor import DEFAULT_PAGE, DEFAULT_PAGE_SIZE, MAX_PAGE, MAX_PAGE_SIZE

logger = logging.getLogger(__name__)

T = TypeVar("T")


def clamp_page(page: int, size: int) -> tuple[int, int]:
    """Force pagination into 1 <= page <= MAX_PAGE and 1 <= size <= 100."""
    page = min(page, MAX_PAGE) if page and page >= 1 else DEFAULT_PAGE
    if not size or size < 1:
        size = DEFAULT_PAGE_SIZE
    return page, min(size, MAX_PAGE_SIZE)


def to_db_time(value: datetime) -> datetime:
    """Timestamps are stored as naive UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def from_db_time(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class BaseRepository:
    """Runs statements in a caller's session or in a short-lived one of its own."""

    def __init__(
        self,
        session_factory: sessionmaker,
        query_timeout: float = settings.query_timeout_sec,
    ):
        self._session_factory = session_factory
        self.query_timeout = query_timeout

    def new_deadline(self) -> Deadline:
        return Deadline(self.query_timeout)

    def _call(
        self,
        operation: str,
        predicate: dict[str, Any],
        fn: Callable[[Session], T],
        session: Optional[Session] = None,
        deadline: Optional[Deadline] = None,
    ) -> T:
        """Execute ``fn`` under a deadline and wrap storage failures.

        With an injected session the caller owns the transaction; otherwise
        one is opened here and committed when ``fn`` returns.
        """
        deadline = deadline or self.new_deadline()
        deadline.check(operation)
        try:
            if session is not None:
                with statement_deadline(session, deadline):
                    return fn(session)
            with self._session_factory(expire_on_commit=False) as own, own.begin():
                with statement_deadline(own, deadline):
                    return fn(own)
        except (SQLAlchemyError, OverflowError) as exc:
            # OverflowError: driver could not bind an out-of-range integer
            if deadline.expired():
                logger.warning("%s aborted at deadline (%s)", operation, _fmt(predicate))
                raise OperationTimeout(f"{operation} exceeded its deadline") from exc
            logger.error("%s failed (%s): %s", operation, _fmt(predicate), exc)
            raise RepositoryError(operation, predicate) from exc


def _fmt(predicate: dict[str, Any]) -> str:
    return " ".join(f"{k}={v}" for k, v in predicate.items())
