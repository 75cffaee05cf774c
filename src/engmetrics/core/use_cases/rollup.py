"""Periodic rollups: time-bucketed aggregates and DORA snapshots.

Aggregates are written as ``<name>.<period>`` with a ``time_period``
dimension. Re-running a rollup over the same window updates the existing
aggregate (found by exact dimension match) instead of inserting a duplicate.
"""

import time
from collections import defaultdict
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from engmetrics.core.errors import SoftWarning, StorageFailure
from engmetrics.core.logs import get_logger
from engmetrics.core.models import Metric
from engmetrics.core.ports import MetricQuery, MetricStorePort
from engmetrics.core.timeseries import ROLLUP_PERIODS, is_rollup
from engmetrics.core.use_cases.dora import (
    DoraMetric,
    DoraRatingEngine,
    OverallPerformance,
)

logger = get_logger(__name__)

_PERIOD_FORMATS = {
    "5min": "%Y-%m-%d %H:%M",
    "hourly": "%Y-%m-%d %H:00",
    "daily": "%Y-%m-%d",
}
DORA_SOURCE = "dora"
DEFAULT_DORA_PERIODS = (7, 30, 90)


@dataclass
class RollupResult:
    created: int = 0
    updated: int = 0
    warnings: list[SoftWarning] = field(default_factory=list)


def bucket_start(timestamp: float, seconds: int) -> float:
    return timestamp - (timestamp % seconds)


def time_period_label(timestamp: float, period: str) -> str:
    return datetime.fromtimestamp(timestamp).strftime(_PERIOD_FORMATS[period])


class MetricRollup:
    """Writes rolled-up aggregates and DORA snapshot metrics.

    Args:
        store: Metric store read from and written to.
        clock: Time source for snapshot timestamps and default windows.
    """

    def __init__(
        self, store: MetricStorePort, clock: Callable[[], float] = time.time
    ) -> None:
        self._store = store
        self._clock = clock

    async def rollup(
        self, period: str, start: float | None = None, end: float | None = None
    ) -> RollupResult:
        """Aggregate raw metrics in ``[start, end]`` into ``period`` buckets.

        ``dora.*`` snapshots keep their latest value per bucket; every other
        metric is summed. Defaults to the last bucket width before now.

        Raises:
            ValueError: If period is not one of 5min, hourly, daily.
            StorageFailure: If the source metrics cannot be read.
        """
        if period not in ROLLUP_PERIODS:
            raise ValueError(f"period must be one of {sorted(ROLLUP_PERIODS)}")
        seconds = ROLLUP_PERIODS[period]
        end = self._clock() if end is None else end
        start = end - seconds if start is None else start

        metrics = await self._store.list_metrics(MetricQuery(start=start, end=end))
        groups: dict[tuple[Any, ...], list[Metric]] = defaultdict(list)
        for metric in metrics:
            if is_rollup(metric):
                continue
            key = (
                metric.name,
                metric.source,
                tuple(sorted((k, str(v)) for k, v in metric.dimensions.items())),
                bucket_start(metric.timestamp, seconds),
            )
            groups[key].append(metric)

        result = RollupResult()
        for (name, source, _, bucket), members in groups.items():
            members.sort(key=lambda m: m.timestamp)
            if name.startswith("dora."):
                value = members[-1].value
            else:
                value = sum(metric.value for metric in members)
            dimensions = {
                **members[-1].dimensions,
                "time_period": time_period_label(bucket, period),
            }
            aggregate = Metric(
                name=f"{name}.{period}",
                value=value,
                source=source,
                timestamp=bucket,
                dimensions=dimensions,
            )
            await self._upsert(aggregate, result)
        logger.with_fields(
            period=period, created=result.created, updated=result.updated
        ).info("Rollup complete")
        return result

    async def _upsert(self, metric: Metric, result: RollupResult) -> None:
        try:
            existing = await self._store.find_aggregate(metric.name, metric.dimensions)
            if existing is None:
                await self._store.save(metric)
                result.created += 1
            else:
                await self._store.update(
                    Metric(
                        id=existing.id,
                        name=metric.name,
                        value=metric.value,
                        source=metric.source,
                        timestamp=metric.timestamp,
                        dimensions=metric.dimensions,
                    )
                )
                result.updated += 1
        except StorageFailure as exc:
            result.warnings.append(SoftWarning.from_exception(exc, metric.name))
            logger.with_fields(metric=metric.name, error=str(exc)).warning(
                "Aggregate could not be written"
            )

    async def snapshot_dora(
        self, periods: Iterable[int] = DEFAULT_DORA_PERIODS
    ) -> RollupResult:
        """Persist ``dora.*`` snapshot metrics computed from raw metrics.

        Metrics with no underlying data (rating unknown) are not written,
        except deployment frequency whose no-data rating is ``low``.
        """
        engine = DoraRatingEngine(self._store, clock=self._clock, include_snapshots=False)
        now = self._clock()
        result = RollupResult()
        for days in periods:
            for metric in self._snapshots(days, now, await engine.overall(days)):
                await self._upsert(metric, result)
        return result

    @staticmethod
    def _snapshots(
        days: int, now: float, overall: OverallPerformance
    ) -> Sequence[Metric]:
        def snapshot(kind: DoraMetric, value: float, **dims: Any) -> Metric:
            return Metric(
                name=kind.metric_name,
                value=value,
                source=DORA_SOURCE,
                timestamp=now,
                dimensions={"period_days": days, **dims},
            )

        frequency = overall.deployment_frequency
        snapshots = [
            snapshot(
                DoraMetric.DEPLOYMENT_FREQUENCY,
                frequency.value,
                rating=frequency.rating,
                days_with_deployments=frequency.days_with_deployments,
                total_deployments=frequency.total_deployments,
            )
        ]
        if overall.lead_time.sample_size:
            snapshots.append(
                snapshot(
                    DoraMetric.LEAD_TIME,
                    overall.lead_time.value,
                    rating=overall.lead_time.rating,
                    sample_size=overall.lead_time.sample_size,
                )
            )
        if overall.time_to_restore.sample_size:
            snapshots.append(
                snapshot(
                    DoraMetric.TIME_TO_RESTORE,
                    overall.time_to_restore.value,
                    rating=overall.time_to_restore.rating,
                    sample_size=overall.time_to_restore.sample_size,
                )
            )
        if overall.change_failure_rate.deployments:
            snapshots.append(
                snapshot(
                    DoraMetric.CHANGE_FAILURE_RATE,
                    overall.change_failure_rate.value,
                    rating=overall.change_failure_rate.rating,
                    failures=overall.change_failure_rate.failures,
                    deployments=overall.change_failure_rate.deployments,
                )
            )
        return snapshots
