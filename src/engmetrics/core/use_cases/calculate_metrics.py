"""Event-to-metric calculation: classify, enrich, persist, cache."""

import time
from collections.abc import Callable
from dataclasses import dataclass, field

from engmetrics.core.classifiers import MetricClassifier
from engmetrics.core.classifiers.base import UNKNOWN, organization_name, repository_name
from engmetrics.core.encoding.json import encode_metric
from engmetrics.core.errors import (
    EnrichmentFailure,
    NotFoundError,
    SoftWarning,
    StorageFailure,
    ValidationFailure,
)
from engmetrics.core.logs import get_logger
from engmetrics.core.models import Event, Metric, MetricDefinition
from engmetrics.core.ports import CachePort, EventStorePort, MetricStorePort
from engmetrics.core.use_cases.caching import AdvisoryCache
from engmetrics.core.use_cases.registration import RepositoryRegistration

logger = get_logger(__name__)

METRIC_CACHE_TTL = 86400.0


@dataclass
class CalculationResult:
    """Outcome of calculating metrics for one event.

    Attributes:
        event: The event that was classified.
        metrics: Persisted metrics, always a list (possibly of length 1).
        warnings: Soft failures that did not stop the calculation.
        repository: Repository name resolved for the event, if any.
    """

    event: Event
    metrics: list[Metric] = field(default_factory=list)
    warnings: list[SoftWarning] = field(default_factory=list)
    repository: str | None = None

    @property
    def degraded(self) -> bool:
        return bool(self.warnings)


def unwrap_single(result: CalculationResult) -> Metric | list[Metric]:
    """Return the lone metric for single-metric callers, else the list."""
    if len(result.metrics) == 1:
        return result.metrics[0]
    return result.metrics


def _lacks(definition: MetricDefinition, key: str) -> bool:
    value = definition.dimensions.get(key)
    return value is None or value == "" or value == UNKNOWN


def enrich_definitions(
    definitions: list[MetricDefinition], event: Event
) -> tuple[list[MetricDefinition], str | None, str | None]:
    """Backfill repository and organization from the event payload.

    Only applies when at least one definition lacks a repository. Every
    definition missing the dimension receives the same values.

    Returns:
        Enriched definitions, the resolved repository and organization.
    """
    repository = repository_name(event.data)
    organization = organization_name(event.data, repository)
    if repository is None or not any(_lacks(d, "repository") for d in definitions):
        return definitions, repository, organization
    enriched = []
    for definition in definitions:
        dimensions = dict(definition.dimensions)
        if _lacks(definition, "repository"):
            dimensions["repository"] = repository
        if organization and _lacks(definition, "organization"):
            dimensions["organization"] = organization
        enriched.append(MetricDefinition(definition.name, definition.value, dimensions))
    return enriched, repository, organization


class MetricCalculationService:
    """Turns a stored event into persisted metrics.

    Steps: resolve the event, classify it, backfill repository dimensions,
    register the repository (best effort), persist each metric and write it
    through to the cache.

    Example:
        ```python
        service = MetricCalculationService(events, metrics)
        result = await service.call(event_id)
        for metric in result.metrics:
            ...
        ```
    """

    def __init__(
        self,
        events: EventStorePort,
        metrics: MetricStorePort,
        classifier: MetricClassifier | None = None,
        registration: RepositoryRegistration | None = None,
        cache: CachePort | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._events = events
        self._metrics = metrics
        self._classifier = classifier or MetricClassifier()
        self._registration = registration
        self._cache = cache
        self._clock = clock

    async def call(self, event_id: int) -> CalculationResult:
        """Calculate and persist metrics for an event.

        Args:
            event_id: Id of a stored event.

        Returns:
            CalculationResult with persisted metrics and soft warnings.

        Raises:
            NotFoundError: If the event does not exist.
            ValidationFailure: If the store returns a metric without an id.
        """
        event = await self._events.find_by_id(event_id)
        if event is None:
            raise NotFoundError("event", event_id)

        definitions = self._classifier.classify(event).metrics
        definitions, repository, organization = enrich_definitions(definitions, event)
        result = CalculationResult(event=event, repository=repository)
        log = logger.with_fields(event_id=event_id, event_name=event.name)

        if repository and self._registration is not None:
            try:
                await self._registration.register(
                    repository, organization, provider=event.source
                )
            except EnrichmentFailure as exc:
                result.warnings.append(SoftWarning.from_exception(exc))
                log.with_fields(repository=repository, error=str(exc)).warning(
                    "Repository registration failed"
                )

        cache = AdvisoryCache(self._cache, ttl=METRIC_CACHE_TTL)
        timestamp = event.timestamp if event.timestamp is not None else self._clock()
        for definition in definitions:
            metric = Metric.from_definition(definition, event.source, timestamp)
            try:
                saved = await self._metrics.save(metric)
            except StorageFailure as exc:
                result.warnings.append(SoftWarning.from_exception(exc, metric.name))
                log.with_fields(metric=metric.name, error=str(exc)).warning(
                    "Metric could not be saved"
                )
                continue
            if saved.id is None:
                raise ValidationFailure(f"metric {saved.name} was saved without an id")
            result.metrics.append(saved)
            await cache.write(f"metric:{saved.id}", encode_metric(saved))

        result.warnings.extend(cache.warnings)
        log.with_fields(metrics=len(result.metrics)).debug("Metrics calculated")
        return result

    async def ingest(self, event: Event) -> CalculationResult:
        """Persist a new event and calculate its metrics in one step."""
        saved = await self._events.save(event)
        if saved.id is None:
            raise ValidationFailure(f"event {saved.name} was saved without an id")
        return await self.call(saved.id)
