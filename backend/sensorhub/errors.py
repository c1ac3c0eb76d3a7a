"""Error taxonomy shared by the service layer and its adapters.

Repositories raise RepositoryError with the failing operation and its
predicate; TelemetryService classifies those into the TelemetryError
subclasses below, which are the only errors callers ever see.
"""

from typing import Any, Iterable, Optional


class TelemetryError(Exception):
    """Base class for errors surfaced to ingestion/query callers."""

    status_code: int = 500
    transient: bool = False

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class InvalidInput(TelemetryError):
    """Structural validation failure, malformed timestamp, bad pagination."""

    status_code = 400


class NotFound(TelemetryError):
    status_code = 404


class InternalFailure(TelemetryError):
    """Database or transport failure. Any open transaction was rolled back."""

    status_code = 500


class Conflict(InternalFailure):
    """Natural-key race on dimension insert. Retrying the request is safe."""

    status_code = 503
    transient = True


class OperationTimeout(InternalFailure):
    """The operation's deadline elapsed or the caller cancelled it."""

    status_code = 504


class RepositoryError(Exception):
    """Raw storage failure with enough context to log it.

    The originating SQLAlchemy exception is chained as ``__cause__``.
    """

    def __init__(self, operation: str, predicate: Optional[dict[str, Any]] = None):
        self.operation = operation
        self.predicate = predicate or {}
        detail = " ".join(f"{k}={v}" for k, v in self.predicate.items())
        super().__init__(f"{operation} failed" + (f" ({detail})" if detail else ""))


def describe_validation_errors(errors: Iterable[dict[str, Any]]) -> str:
    """Flatten pydantic error dicts into "field: message; ..." text."""
    parts = []
    for err in errors:
        loc = ".".join(str(p) for p in err.get("loc", ())) or "body"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)
