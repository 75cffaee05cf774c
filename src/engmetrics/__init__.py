"""Engineering metrics: event classification, DORA ratings and analytics."""

from engmetrics.adapters.cache import InMemoryCache
from engmetrics.adapters.logging import configure_logging
from engmetrics.adapters.storage import (
    InMemoryEventStore,
    InMemoryMetricStore,
    InMemoryRepositoryRegistrar,
    SQLiteEventStore,
    SQLiteMetricStore,
)
from engmetrics.app import EngMetrics
from engmetrics.config import EngMetricsConfig
from engmetrics.core.classifiers import ClassifierOptions, MetricClassifier
from engmetrics.core.errors import (
    CacheFailure,
    EngMetricsError,
    EnrichmentFailure,
    NotFoundError,
    StorageFailure,
    ValidationFailure,
)
from engmetrics.core.models import Event, Metric, MetricDefinition, Rating
from engmetrics.core.ports import MetricQuery
from engmetrics.core.use_cases import (
    DoraMetric,
    DoraRatingEngine,
    MetricCalculationService,
    MetricRollup,
    RepositoryRegistration,
)
from engmetrics.core.use_cases.analytics import (
    AnalyzeBuildPerformance,
    AnalyzeCommits,
    AnalyzeDeploymentPerformance,
    AnalyzeTeamPerformance,
)

__all__ = [
    "AnalyzeBuildPerformance",
    "AnalyzeCommits",
    "AnalyzeDeploymentPerformance",
    "AnalyzeTeamPerformance",
    "CacheFailure",
    "ClassifierOptions",
    "DoraMetric",
    "DoraRatingEngine",
    "EngMetrics",
    "EngMetricsConfig",
    "EngMetricsError",
    "EnrichmentFailure",
    "Event",
    "InMemoryCache",
    "InMemoryEventStore",
    "InMemoryMetricStore",
    "InMemoryRepositoryRegistrar",
    "Metric",
    "MetricCalculationService",
    "MetricClassifier",
    "MetricDefinition",
    "MetricQuery",
    "MetricRollup",
    "NotFoundError",
    "Rating",
    "RepositoryRegistration",
    "SQLiteEventStore",
    "SQLiteMetricStore",
    "StorageFailure",
    "ValidationFailure",
    "configure_logging",
]
