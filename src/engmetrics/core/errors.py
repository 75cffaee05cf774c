"""Error taxonomy for the metrics engine.

Hard failures (NotFoundError, ValidationFailure) propagate to the caller.
Soft failures (StorageFailure in analytic sub-queries, EnrichmentFailure,
CacheFailure) are caught at the boundary where they occur, logged, and
recorded as a SoftWarning on the result.
"""

from dataclasses import dataclass


class EngMetricsError(Exception):
    """Base class for all engine errors."""


class NotFoundError(EngMetricsError, LookupError):
    """A record expected to exist by id was absent."""

    def __init__(self, kind: str, identifier: object) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class ValidationFailure(EngMetricsError, ValueError):
    """A record failed validation and processing cannot continue."""


class StorageFailure(EngMetricsError):
    """A storage query or write failed."""


class EnrichmentFailure(EngMetricsError):
    """Repository or team registration failed."""


class CacheFailure(EngMetricsError):
    """A cache read or write failed."""


@dataclass(frozen=True)
class SoftWarning:
    """A degraded-but-successful outcome recorded on a result.

    Attributes:
        kind: Failure class name (e.g., StorageFailure).
        message: Human-readable detail.
    """

    kind: str
    message: str

    @classmethod
    def from_exception(cls, exc: BaseException, context: str = "") -> "SoftWarning":
        detail = f"{context}: {exc}" if context else str(exc)
        return cls(kind=type(exc).__name__, message=detail)
