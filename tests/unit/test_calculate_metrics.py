"""Tests for MetricCalculationService."""

from collections.abc import Callable

import pytest

from engmetrics.adapters.cache.in_memory import InMemoryCache
from engmetrics.adapters.storage.in_memory import (
    InMemoryEventStore,
    InMemoryMetricStore,
    InMemoryRepositoryRegistrar,
)
from engmetrics.core.encoding.json import decode_metric
from engmetrics.core.errors import (
    CacheFailure,
    NotFoundError,
    StorageFailure,
    ValidationFailure,
)
from engmetrics.core.models import CodeRepository, Event, Metric
from engmetrics.core.use_cases import (
    MetricCalculationService,
    RepositoryRegistration,
    unwrap_single,
)

pytestmark = [pytest.mark.core, pytest.mark.tier(0)]


class FailingSaveStore(InMemoryMetricStore):
    """Rejects saves for one metric name."""

    def __init__(self, rejected: str) -> None:
        super().__init__()
        self._rejected = rejected

    async def save(self, metric: Metric) -> Metric:
        if metric.name == self._rejected:
            raise StorageFailure("disk full")
        return await super().save(metric)


class IdlessStore(InMemoryMetricStore):
    async def save(self, metric: Metric) -> Metric:
        return metric


class BrokenRegistrar(InMemoryRepositoryRegistrar):
    async def save_repository(self, repository: CodeRepository) -> CodeRepository:
        raise RuntimeError("registrar offline")


class BrokenCache(InMemoryCache):
    async def write(self, key: str, value: str, ttl: float | None = None) -> None:
        raise CacheFailure("cache offline")


def push_event() -> Event:
    return Event(
        name="github.push",
        source="github",
        timestamp=1_700_000_000.0,
        data={
            "ref": "refs/heads/main",
            "repository": {"full_name": "acme/api", "owner": {"login": "acme"}},
            "pusher": {"name": "dana"},
            "commits": [
                {
                    "message": "feat: add endpoint",
                    "author": {"username": "dana"},
                    "added": ["app/x.py"],
                }
            ],
        },
    )


class TestCalculate:
    """Tests for MetricCalculationService.call."""

    async def test_missing_event_raises_not_found(
        self, event_store: InMemoryEventStore, metric_store: InMemoryMetricStore
    ) -> None:
        service = MetricCalculationService(event_store, metric_store)
        with pytest.raises(NotFoundError):
            await service.call(404)

    async def test_metrics_are_persisted_with_ids(
        self, event_store: InMemoryEventStore, metric_store: InMemoryMetricStore
    ) -> None:
        saved = await event_store.save(push_event())
        result = await MetricCalculationService(event_store, metric_store).call(saved.id)

        assert result.metrics
        assert all(metric.id is not None for metric in result.metrics)
        assert await metric_store.count() == len(result.metrics)
        assert not result.degraded

    async def test_metrics_share_repository_and_event_timestamp(
        self, event_store: InMemoryEventStore, metric_store: InMemoryMetricStore
    ) -> None:
        saved = await event_store.save(push_event())
        result = await MetricCalculationService(event_store, metric_store).call(saved.id)

        assert result.repository == "acme/api"
        assert {metric.dimensions["repository"] for metric in result.metrics} == {"acme/api"}
        assert {metric.timestamp for metric in result.metrics} == {1_700_000_000.0}
        assert {metric.source for metric in result.metrics} == {"github"}

    async def test_event_without_repository_is_not_enriched(
        self, event_store: InMemoryEventStore, metric_store: InMemoryMetricStore
    ) -> None:
        saved = await event_store.save(Event(name="custom.ping", source="hooks"))
        result = await MetricCalculationService(event_store, metric_store).call(saved.id)

        (metric,) = result.metrics
        assert "repository" not in metric.dimensions
        assert result.repository is None

    async def test_registration_creates_team_and_repository(
        self,
        event_store: InMemoryEventStore,
        metric_store: InMemoryMetricStore,
        registrar: InMemoryRepositoryRegistrar,
    ) -> None:
        saved = await event_store.save(push_event())
        service = MetricCalculationService(
            event_store, metric_store, registration=RepositoryRegistration(registrar)
        )
        await service.call(saved.id)

        (team,) = registrar.teams
        (repository,) = registrar.repositories
        assert team.slug == "acme"
        assert repository.name == "acme/api"
        assert repository.team_id == team.id
        assert repository.url == "https://github.com/acme/api"

    async def test_registration_failure_is_a_warning(
        self, event_store: InMemoryEventStore, metric_store: InMemoryMetricStore
    ) -> None:
        saved = await event_store.save(push_event())
        service = MetricCalculationService(
            event_store,
            metric_store,
            registration=RepositoryRegistration(BrokenRegistrar()),
        )
        result = await service.call(saved.id)

        assert result.metrics
        assert [warning.kind for warning in result.warnings] == ["EnrichmentFailure"]

    async def test_failed_save_skips_that_metric(
        self, event_store: InMemoryEventStore
    ) -> None:
        store = FailingSaveStore("github.push.total")
        saved = await event_store.save(push_event())
        result = await MetricCalculationService(event_store, store).call(saved.id)

        assert "github.push.total" not in [metric.name for metric in result.metrics]
        assert result.metrics
        assert result.warnings[0].kind == "StorageFailure"

    async def test_metric_saved_without_id_is_rejected(
        self, event_store: InMemoryEventStore
    ) -> None:
        saved = await event_store.save(push_event())
        service = MetricCalculationService(event_store, IdlessStore())
        with pytest.raises(ValidationFailure):
            await service.call(saved.id)

    async def test_saved_metrics_are_written_to_cache(
        self,
        event_store: InMemoryEventStore,
        metric_store: InMemoryMetricStore,
        cache: InMemoryCache,
    ) -> None:
        saved = await event_store.save(push_event())
        service = MetricCalculationService(event_store, metric_store, cache=cache)
        result = await service.call(saved.id)

        first = result.metrics[0]
        cached = await cache.read(f"metric:{first.id}")
        assert cached is not None
        assert decode_metric(cached) == first

    async def test_cache_failure_is_a_warning(
        self,
        event_store: InMemoryEventStore,
        metric_store: InMemoryMetricStore,
        clock: Callable[[], float],
    ) -> None:
        saved = await event_store.save(push_event())
        service = MetricCalculationService(
            event_store, metric_store, cache=BrokenCache(clock)
        )
        result = await service.call(saved.id)

        assert result.metrics
        assert {warning.kind for warning in result.warnings} == {"CacheFailure"}

    async def test_ingest_saves_then_calculates(
        self, event_store: InMemoryEventStore, metric_store: InMemoryMetricStore
    ) -> None:
        result = await MetricCalculationService(event_store, metric_store).ingest(
            Event(name="custom.ping", source="hooks")
        )
        assert result.event.id is not None
        assert await event_store.find_by_id(result.event.id) == result.event


class TestUnwrapSingle:
    """Tests for unwrap_single."""

    async def test_single_metric_is_unwrapped(
        self, event_store: InMemoryEventStore, metric_store: InMemoryMetricStore
    ) -> None:
        service = MetricCalculationService(event_store, metric_store)
        result = await service.ingest(Event(name="custom.ping", source="hooks"))
        unwrapped = unwrap_single(result)
        assert isinstance(unwrapped, Metric)
        assert unwrapped.name == "custom.ping.total"

    async def test_many_metrics_stay_a_list(
        self, event_store: InMemoryEventStore, metric_store: InMemoryMetricStore
    ) -> None:
        service = MetricCalculationService(event_store, metric_store)
        result = await service.ingest(push_event())
        assert unwrap_single(result) == result.metrics
