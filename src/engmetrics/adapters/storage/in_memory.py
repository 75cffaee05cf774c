"""In-memory storage adapters for metrics, events and organizational records."""

import itertools
from collections.abc import Mapping, Sequence
from dataclasses import replace
from typing import Any

from engmetrics.core import query as metric_query
from engmetrics.core.errors import StorageFailure
from engmetrics.core.models import CodeRepository, Event, Metric, Team
from engmetrics.core.ports import MetricQuery


class InMemoryMetricStore:
    """In-memory implementation of MetricStorePort.

    Stores metrics in a dict keyed by id. Suitable for testing and
    low-volume deployments where persistence is not required.
    """

    def __init__(self) -> None:
        self._metrics: dict[int, Metric] = {}
        self._ids = itertools.count(1)

    async def save(self, metric: Metric) -> Metric:
        """Persist a metric and return it with an id assigned."""
        saved = metric.with_id(next(self._ids))
        self._metrics[saved.id] = saved
        return saved

    async def find_by_id(self, metric_id: int) -> Metric | None:
        return self._metrics.get(metric_id)

    async def list_metrics(self, query: MetricQuery) -> Sequence[Metric]:
        """Return metrics matching the query."""
        return metric_query.apply(self._metrics.values(), query)

    async def find_aggregate(
        self, name: str, dimensions: Mapping[str, Any]
    ) -> Metric | None:
        """Most recent metric with this name and exactly these dimensions."""
        candidates = [
            metric
            for metric in self._metrics.values()
            if metric.name == name and metric.has_exact_dimensions(dimensions)
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda m: (m.timestamp, m.id or 0))

    async def update(self, metric: Metric) -> Metric:
        """Replace a stored metric by id."""
        if metric.id is None or metric.id not in self._metrics:
            raise StorageFailure(f"cannot update unsaved metric {metric.name}")
        self._metrics[metric.id] = metric
        return metric

    async def count(self) -> int:
        return len(self._metrics)

    async def clear(self) -> None:
        self._metrics.clear()


class InMemoryEventStore:
    """In-memory implementation of EventStorePort."""

    def __init__(self) -> None:
        self._events: dict[int, Event] = {}
        self._ids = itertools.count(1)

    async def save(self, event: Event) -> Event:
        """Persist an event, stamping its timestamp when absent."""
        saved = event.with_id(next(self._ids))
        self._events[saved.id] = saved
        return saved

    async def find_by_id(self, event_id: int) -> Event | None:
        return self._events.get(event_id)


class InMemoryRepositoryRegistrar:
    """In-memory implementation of RepositoryRegistrarPort.

    Saves are idempotent upserts keyed on repository name and team slug, so
    two concurrent registrations for the same organization converge on one
    Team record.
    """

    def __init__(self) -> None:
        self._repositories: dict[str, CodeRepository] = {}
        self._teams: dict[str, Team] = {}
        self._ids = itertools.count(1)

    async def find_repository_by_name(self, name: str) -> CodeRepository | None:
        return self._repositories.get(name)

    async def save_repository(self, repository: CodeRepository) -> CodeRepository:
        existing = self._repositories.get(repository.name)
        repo_id = existing.id if existing else repository.id or next(self._ids)
        saved = replace(repository, id=repo_id)
        self._repositories[repository.name] = saved
        return saved

    async def find_team_by_slug(self, slug: str) -> Team | None:
        return self._teams.get(slug)

    async def save_team(self, team: Team) -> Team:
        existing = self._teams.get(team.slug)
        if existing is not None:
            return existing
        saved = replace(team, id=team.id or next(self._ids))
        self._teams[team.slug] = saved
        return saved

    @property
    def repositories(self) -> list[CodeRepository]:
        return list(self._repositories.values())

    @property
    def teams(self) -> list[Team]:
        return list(self._teams.values())
