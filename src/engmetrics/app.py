"""Wiring of stores, cache and use cases from an EngMetricsConfig.

Example:
    ```python
    app = EngMetrics.from_config(EngMetricsConfig.from_env())
    result = await app.calculation.ingest(event)
    overall = await app.dora.overall(30)
    await app.close()
    ```
"""

import time
from collections.abc import Callable
from dataclasses import dataclass, field

from engmetrics.adapters.cache.in_memory import InMemoryCache
from engmetrics.adapters.logging import configure_logging
from engmetrics.adapters.storage.in_memory import InMemoryRepositoryRegistrar
from engmetrics.adapters.storage.sqlite_events import SQLiteEventStore
from engmetrics.adapters.storage.sqlite_metrics import SQLiteMetricStore
from engmetrics.config import EngMetricsConfig
from engmetrics.core.classifiers import MetricClassifier
from engmetrics.core.use_cases import (
    DoraRatingEngine,
    MetricCalculationService,
    MetricRollup,
    RepositoryRegistration,
    RollupResult,
)
from engmetrics.core.use_cases.analytics import (
    AnalyzeBuildPerformance,
    AnalyzeCommits,
    AnalyzeDeploymentPerformance,
    AnalyzeTeamPerformance,
)


@dataclass
class EngMetrics:
    """Ready-to-use engine sharing one metric store, event store and cache."""

    config: EngMetricsConfig
    metrics: SQLiteMetricStore
    events: SQLiteEventStore
    registrar: InMemoryRepositoryRegistrar
    cache: InMemoryCache
    clock: Callable[[], float] = time.time
    calculation: MetricCalculationService = field(init=False)
    dora: DoraRatingEngine = field(init=False)
    rollup: MetricRollup = field(init=False)
    commits: AnalyzeCommits = field(init=False)
    builds: AnalyzeBuildPerformance = field(init=False)
    deployments: AnalyzeDeploymentPerformance = field(init=False)
    team: AnalyzeTeamPerformance = field(init=False)

    def __post_init__(self) -> None:
        ttl = float(self.config.cache_ttl_seconds)
        self.calculation = MetricCalculationService(
            self.events,
            self.metrics,
            classifier=MetricClassifier(self.config.classifier_options()),
            registration=RepositoryRegistration(self.registrar),
            cache=self.cache,
            clock=self.clock,
        )
        self.dora = DoraRatingEngine(self.metrics, clock=self.clock)
        self.rollup = MetricRollup(self.metrics, clock=self.clock)
        self.commits = AnalyzeCommits(self.metrics, self.cache, self.clock, cache_ttl=ttl)
        self.builds = AnalyzeBuildPerformance(
            self.metrics, self.cache, self.clock, cache_ttl=ttl
        )
        self.deployments = AnalyzeDeploymentPerformance(
            self.metrics, self.cache, self.clock, cache_ttl=ttl
        )
        self.team = AnalyzeTeamPerformance(self.metrics, self.cache, self.clock, cache_ttl=ttl)

    @classmethod
    def from_config(
        cls,
        config: EngMetricsConfig,
        clock: Callable[[], float] = time.time,
        setup_logging: bool = True,
    ) -> "EngMetrics":
        """Build the engine; metrics and events share one SQLite database."""
        if setup_logging:
            configure_logging(config.log_level)
        return cls(
            config=config,
            metrics=SQLiteMetricStore(config.database_path),
            events=SQLiteEventStore(config.database_path),
            registrar=InMemoryRepositoryRegistrar(),
            cache=InMemoryCache(clock=clock),
            clock=clock,
        )

    async def snapshot_dora(self) -> RollupResult:
        """Write DORA snapshots for every configured period."""
        return await self.rollup.snapshot_dora(self.config.dora_periods)

    async def close(self) -> None:
        await self.metrics.close()
        await self.events.close()
