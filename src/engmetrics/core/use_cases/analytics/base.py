"""Shared plumbing for read-side analytic reports."""

import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from engmetrics.core import timeseries
from engmetrics.core.errors import SoftWarning, StorageFailure
from engmetrics.core.logs import get_logger
from engmetrics.core.models import Metric
from engmetrics.core.ports import CachePort, MetricQuery, MetricStorePort
from engmetrics.core.use_cases.caching import (
    DEFAULT_REPORT_TTL,
    AdvisoryCache,
    cache_key,
    repository_key_part,
)

logger = get_logger(__name__)


@dataclass
class ReportResult:
    """An analytic report plus how it was produced.

    Attributes:
        report: Dashboard-ready dict; every top-level key is always present.
        warnings: Soft failures absorbed while building the report.
        from_cache: True when the report was served from the cache.
    """

    report: dict[str, Any]
    warnings: list[SoftWarning] = field(default_factory=list)
    from_cache: bool = False

    def __getitem__(self, key: str) -> Any:
        return self.report[key]


def percentage(count: float, total: float) -> float:
    """Share of total in percent, one decimal; 0 when total is 0."""
    if not total:
        return 0.0
    return round(count / total * 100, 1)


def daily_series(metrics: Iterable[Metric]) -> list[tuple[float, float]]:
    return [(metric.timestamp, metric.value) for metric in metrics]


def group_sum(metrics: Iterable[Metric], key: str, default: str = "unknown") -> dict[str, float]:
    """Sum metric values per dimension value."""
    totals: dict[str, float] = {}
    for metric in metrics:
        label = str(metric.dimension(key, default))
        totals[label] = totals.get(label, 0.0) + metric.value
    return totals


def ranked(totals: Mapping[str, float], limit: int | None = None) -> list[tuple[str, float]]:
    """Items by descending total, ties broken by label."""
    ordered = sorted(totals.items(), key=lambda item: (-item[1], item[0]))
    return ordered[:limit] if limit is not None else ordered


class AnalyticsReport:
    """Base for reports reading metrics over a trailing window.

    Subclasses implement ``build()`` and name their cache key prefix. Every
    store read goes through ``fetch()``, which turns a StorageFailure into
    an empty result and a recorded warning.
    """

    cache_prefix: str = ""
    cache_ttl: float = DEFAULT_REPORT_TTL

    def __init__(
        self,
        store: MetricStorePort,
        cache: CachePort | None = None,
        clock: Callable[[], float] = time.time,
        cache_ttl: float | None = None,
    ) -> None:
        self._store = store
        self._cache = cache
        self._clock = clock
        if cache_ttl is not None:
            self.cache_ttl = cache_ttl

    def cache_key(self, days: int, repository: str | None) -> str:
        return cache_key(self.cache_prefix, f"days_{days}", repository_key_part(repository))

    async def call(self, days: int = 30, repository: str | None = None) -> ReportResult:
        """Build the report for the last ``days`` days, consulting the cache."""
        cache = AdvisoryCache(self._cache, ttl=self.cache_ttl)
        key = self.cache_key(days, repository)
        cached = await cache.read_report(key)
        if cached is not None:
            return ReportResult(cached, warnings=cache.warnings, from_cache=True)

        end = self._clock()
        start = end - days * timeseries.DAY
        warnings: list[SoftWarning] = []
        report = await self.build(start, end, days, repository, warnings)
        if not warnings:
            await cache.write_report(key, report)
        return ReportResult(report, warnings=warnings + cache.warnings)

    async def build(
        self,
        start: float,
        end: float,
        days: int,
        repository: str | None,
        warnings: list[SoftWarning],
    ) -> dict[str, Any]:
        raise NotImplementedError

    async def fetch(
        self,
        warnings: list[SoftWarning],
        start: float,
        end: float,
        name: str | None = None,
        pattern: str | None = None,
        repository: str | None = None,
    ) -> list[Metric]:
        """Metrics by name or pattern in the window, empty on storage failure."""
        query = MetricQuery(
            name=name,
            name_pattern=pattern,
            start=start,
            end=end,
            dimensions={"repository": repository} if repository else {},
        )
        try:
            return list(await self._store.list_metrics(query))
        except StorageFailure as exc:
            label = name or pattern or "*"
            warnings.append(SoftWarning.from_exception(exc, label))
            logger.with_fields(metric=label, error=str(exc)).warning(
                "Metric query failed, treating as no data"
            )
            return []

    async def fetch_first(
        self,
        warnings: list[SoftWarning],
        start: float,
        end: float,
        names: Iterable[str],
        repository: str | None = None,
    ) -> list[Metric]:
        """Metrics for the first name in ``names`` that has any."""
        for name in names:
            found = await self.fetch(warnings, start, end, name=name, repository=repository)
            if found:
                return found
        return []
