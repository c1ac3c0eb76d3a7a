"""Per-operation deadlines and caller cancellation.

A Deadline travels with every repository call.  It is checked before each
statement and pushed down to the database as a statement timeout where the
dialect allows it, so an expired or cancelled operation aborts its
in-flight statement instead of running to completion.
"""

import threading
import time
from typing import Callable, Optional

from .errors import OperationTimeout


class Deadline:
    """Expiry instant plus a cancellation flag, safe to share across threads."""

    def __init__(
        self,
        timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._clock = clock
        self._expires_at = clock() + timeout if timeout is not None else None
        self._cancelled = threading.Event()

    @classmethod
    def none(cls) -> "Deadline":
        """A deadline that never expires (still cancellable)."""
        return cls(None)

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def remaining(self) -> Optional[float]:
        """Seconds left, or None for an unbounded deadline."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    def expired(self) -> bool:
        if self.cancelled:
            return True
        remaining = self.remaining()
        return remaining is not None and remaining <= 0.0

    def check(self, operation: str) -> None:
        """Raise OperationTimeout if the caller gave up or time ran out."""
        if self.cancelled:
            raise OperationTimeout(f"{operation} cancelled by caller")
        if self.expired():
            raise OperationTimeout(f"{operation} exceeded its deadline")
