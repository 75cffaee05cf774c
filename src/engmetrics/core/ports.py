"""Port interfaces for storage and collaborator adapters.

These protocols define the contracts that adapters must implement.
The core depends only on these interfaces, not concrete implementations.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, runtime_checkable

from engmetrics.core.models import Alert, CodeRepository, Event, Metric, Team


@dataclass(frozen=True)
class MetricQuery:
    """Filter for MetricStorePort.list_metrics.

    Attributes:
        name: Exact metric name.
        name_prefix: Metric names starting with this prefix.
        name_pattern: SQL LIKE-style pattern (``%`` any run, ``_`` one char).
        start: Inclusive lower timestamp bound.
        end: Upper timestamp bound, inclusive unless ``end_exclusive``.
        dimensions: Subset containment filter.
        order: ``"asc"`` or ``"desc"`` by timestamp.
        limit: Maximum number of results, None for all.
        end_exclusive: Treat ``end`` as an exclusive bound.
    """

    name: str | None = None
    name_prefix: str | None = None
    name_pattern: str | None = None
    start: float | None = None
    end: float | None = None
    dimensions: Mapping[str, Any] = field(default_factory=dict)
    order: Literal["asc", "desc"] = "asc"
    limit: int | None = None
    end_exclusive: bool = False


@runtime_checkable
class MetricStorePort(Protocol):
    """Port for metric persistence and queries.

    Empty results are returned when nothing matches. Connectivity or
    constraint errors raise StorageFailure.
    """

    async def save(self, metric: Metric) -> Metric:
        """Persist a metric and return it with an id assigned."""
        ...

    async def find_by_id(self, metric_id: int) -> Metric | None:
        """Return the metric with the given id, or None."""
        ...

    async def list_metrics(self, query: MetricQuery) -> Sequence[Metric]:
        """Return metrics matching the query."""
        ...

    async def find_aggregate(
        self, name: str, dimensions: Mapping[str, Any]
    ) -> Metric | None:
        """Return the most recent metric with this name and exact dimension set."""
        ...

    async def update(self, metric: Metric) -> Metric:
        """Replace a stored metric by id."""
        ...


@runtime_checkable
class EventStorePort(Protocol):
    """Port for event persistence."""

    async def save(self, event: Event) -> Event:
        """Persist an event and return it with id and timestamp set."""
        ...

    async def find_by_id(self, event_id: int) -> Event | None:
        """Return the event with the given id, or None."""
        ...


@runtime_checkable
class RepositoryRegistrarPort(Protocol):
    """Port for organizational entities used to enrich metrics.

    Implementations are expected to upsert idempotently on repository
    name and team slug.
    """

    async def find_repository_by_name(self, name: str) -> CodeRepository | None: ...

    async def save_repository(self, repository: CodeRepository) -> CodeRepository: ...

    async def find_team_by_slug(self, slug: str) -> Team | None: ...

    async def save_team(self, team: Team) -> Team: ...


@runtime_checkable
class CachePort(Protocol):
    """Port for an advisory string cache."""

    async def read(self, key: str) -> str | None:
        """Return the cached value, or None on a miss."""
        ...

    async def write(self, key: str, value: str, ttl: float | None = None) -> None:
        """Store a value for ttl seconds (None for no expiry)."""
        ...


@runtime_checkable
class NotificationPort(Protocol):
    """Port for alert delivery."""

    async def send_alert(self, alert: Alert) -> None: ...
