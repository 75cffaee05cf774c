"""DORA calculators: deployment frequency, lead time, time to restore and
change failure rate, plus the combined performance level and trends.

Each calculator walks a fallback chain of metric names. Precomputed
``dora.*`` snapshots (and their ``.hourly`` / ``.5min`` rollups) are tried
first, then raw provider metrics. With no data at all, deployment frequency
reports ``low`` while the other three report ``unknown``.
"""

import time
from collections.abc import Callable, Mapping
from dataclasses import asdict, dataclass, field
from enum import StrEnum
from typing import Any

from engmetrics.core import timeseries
from engmetrics.core.errors import SoftWarning
from engmetrics.core.logs import get_logger
from engmetrics.core.models import Metric, Rating
from engmetrics.core.ports import MetricStorePort
from engmetrics.core.rating import (
    average_score,
    rate_change_failure_rate,
    rate_deployment_frequency,
    rate_lead_time,
    rate_time_to_restore,
    rating_for_score,
)
from engmetrics.core.use_cases.fallback import (
    ChainResolution,
    ChainTier,
    FallbackChain,
    SeriesKind,
)

logger = get_logger(__name__)

SECONDS_PER_HOUR = 3600.0
LEAD_TIME_BREAKDOWN_KEYS = (
    "code_review_hours",
    "ci_hours",
    "qa_hours",
    "approval_hours",
    "deployment_hours",
)
DEFAULT_PERIOD_DAYS = 30


class DoraMetric(StrEnum):
    DEPLOYMENT_FREQUENCY = "deployment_frequency"
    LEAD_TIME = "lead_time"
    TIME_TO_RESTORE = "time_to_restore"
    CHANGE_FAILURE_RATE = "change_failure_rate"

    @property
    def metric_name(self) -> str:
        """Name of the persisted snapshot metric (``dora.<metric>``)."""
        return f"dora.{self.value}"


def snapshot_tiers(metric: DoraMetric) -> list[ChainTier]:
    """``dora.<metric>``, then its hourly and five-minute rollups."""
    base = metric.metric_name
    return [
        ChainTier(base, kind=SeriesKind.SNAPSHOT),
        ChainTier(f"{base}.hourly", kind=SeriesKind.SNAPSHOT),
        ChainTier(f"{base}.5min", kind=SeriesKind.SNAPSHOT),
    ]


DEPLOYMENT_CHAIN = FallbackChain(
    snapshot_tiers(DoraMetric.DEPLOYMENT_FREQUENCY)
    + [
        ChainTier("github.ci.deploy.completed"),
        ChainTier("github.deployment_status.success"),
        ChainTier("ci.deploy.completed"),
        ChainTier(
            pattern="%deploy%",
            exclude_prefixes=("dora.", "github.workflow_step."),
            exclude_suffixes=(".duration", ".failure", ".failed", ".incident"),
        ),
    ]
)

LEAD_TIME_CHAIN = FallbackChain(
    snapshot_tiers(DoraMetric.LEAD_TIME)
    + [
        ChainTier("github.ci.lead_time"),
        ChainTier("ci.lead_time"),
        ChainTier(pattern="%lead_time%", exclude_prefixes=("dora.",)),
    ]
)

TIME_TO_RESTORE_CHAIN = FallbackChain(
    snapshot_tiers(DoraMetric.TIME_TO_RESTORE)
    + [
        ChainTier("incident.resolution_time"),
        ChainTier(pattern="%incident.resolution_time%", exclude_prefixes=("dora.",)),
    ]
)

CHANGE_FAILURE_SNAPSHOT_CHAIN = FallbackChain(
    snapshot_tiers(DoraMetric.CHANGE_FAILURE_RATE)
)

DEPLOYMENT_FAILURE_CHAIN = FallbackChain(
    [
        ChainTier("ci.deploy.incident"),
        ChainTier("github.ci.deploy.incident"),
        ChainTier("github.ci.deploy.failed"),
        ChainTier("github.deployment.failure"),
    ]
)


@dataclass
class DeploymentFrequencyReport:
    value: float = 0.0
    rating: str = Rating.LOW.value
    days_with_deployments: int = 0
    total_days: int = 0
    total_deployments: int = 0
    source: str | None = None
    warnings: list[SoftWarning] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return _report_dict(self)


@dataclass
class LeadTimeReport:
    value: float = 0.0
    rating: str = Rating.UNKNOWN.value
    sample_size: int = 0
    percentile: dict[str, float] | None = None
    breakdown: dict[str, float] | None = None
    source: str | None = None
    warnings: list[SoftWarning] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return _report_dict(self)


@dataclass
class TimeToRestoreReport:
    value: float = 0.0
    rating: str = Rating.UNKNOWN.value
    sample_size: int = 0
    source: str | None = None
    warnings: list[SoftWarning] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return _report_dict(self)


@dataclass
class ChangeFailureRateReport:
    value: float = 0.0
    rating: str = Rating.UNKNOWN.value
    failures: int = 0
    deployments: int = 0
    source: str | None = None
    warnings: list[SoftWarning] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return _report_dict(self)


@dataclass
class OverallPerformance:
    average_score: float
    overall_performance_level: str
    deployment_frequency: DeploymentFrequencyReport
    lead_time: LeadTimeReport
    time_to_restore: TimeToRestoreReport
    change_failure_rate: ChangeFailureRateReport

    @property
    def warnings(self) -> list[SoftWarning]:
        return (
            self.deployment_frequency.warnings
            + self.lead_time.warnings
            + self.time_to_restore.warnings
            + self.change_failure_rate.warnings
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "average_score": self.average_score,
            "overall_performance_level": self.overall_performance_level,
            "deployment_frequency": self.deployment_frequency.to_dict(),
            "lead_time": self.lead_time.to_dict(),
            "time_to_restore": self.time_to_restore.to_dict(),
            "change_failure_rate": self.change_failure_rate.to_dict(),
        }


@dataclass(frozen=True)
class TrendPoint:
    start: float
    end: float
    value: float
    rating: str


def _report_dict(report: Any) -> dict[str, Any]:
    data = asdict(report)
    data.pop("warnings", None)
    return data


def _int_dimension(metric: Metric, key: str) -> int:
    value = metric.dimension(key, 0)
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


class DoraRatingEngine:
    """Computes the four DORA metrics over a trailing window of days.

    Args:
        store: Metric store to read from.
        clock: Time source (unix seconds) defining the end of every window.
        include_snapshots: When False, only raw provider metrics are read.
    """

    def __init__(
        self,
        store: MetricStorePort,
        clock: Callable[[], float] = time.time,
        include_snapshots: bool = True,
    ) -> None:
        self._store = store
        self._clock = clock
        self._include_snapshots = include_snapshots

    def window(self, days: int) -> tuple[float, float]:
        end = self._clock()
        return end - days * timeseries.DAY, end

    async def _resolve(
        self,
        chain: FallbackChain,
        start: float,
        end: float,
        days: int,
        repository: str | None,
        end_exclusive: bool = False,
    ) -> ChainResolution:
        dimensions = {"repository": repository} if repository else {}
        if not self._include_snapshots:
            chain = chain.only(SeriesKind.RAW)
        return await chain.resolve(
            self._store,
            start,
            end,
            dimensions=dimensions,
            snapshot_dimensions={"period_days": days},
            end_exclusive=end_exclusive,
        )

    # --- Deployment frequency ---

    async def deployment_frequency(
        self, days: int = DEFAULT_PERIOD_DAYS, repository: str | None = None
    ) -> DeploymentFrequencyReport:
        """Deployments per day over the last ``days`` days."""
        start, end = self.window(days)
        return await self._deployment_frequency(start, end, days, repository)

    async def _deployment_frequency(
        self,
        start: float,
        end: float,
        days: int,
        repository: str | None,
        end_exclusive: bool = False,
    ) -> DeploymentFrequencyReport:
        resolution = await self._resolve(
            DEPLOYMENT_CHAIN, start, end, days, repository, end_exclusive
        )
        report = DeploymentFrequencyReport(total_days=days, warnings=resolution.warnings)
        if not resolution.found or days <= 0:
            return report
        report.source = resolution.source
        if resolution.tier.kind is SeriesKind.SNAPSHOT:
            latest = resolution.latest
            report.value = round(latest.value, 2)
            report.days_with_deployments = _int_dimension(latest, "days_with_deployments")
            report.total_deployments = _int_dimension(latest, "total_deployments")
        else:
            deployments = resolution.metrics
            report.total_deployments = len(deployments)
            report.days_with_deployments = len(
                {timeseries.local_date(metric.timestamp) for metric in deployments}
            )
            report.value = round(len(deployments) / days, 2)
        report.rating = rate_deployment_frequency(report.value).value
        return report

    # --- Lead time for changes ---

    async def lead_time(
        self,
        days: int = DEFAULT_PERIOD_DAYS,
        percentile: float | None = None,
        breakdown: bool = False,
        repository: str | None = None,
    ) -> LeadTimeReport:
        """Average commit-to-deploy time in hours.

        Args:
            days: Window length.
            percentile: Also report this percentile of the raw values.
            breakdown: Also report average hours per process stage.
            repository: Restrict to one repository.
        """
        start, end = self.window(days)
        return await self._lead_time(start, end, days, repository, percentile, breakdown)

    async def _lead_time(
        self,
        start: float,
        end: float,
        days: int,
        repository: str | None,
        percentile: float | None = None,
        breakdown: bool = False,
        end_exclusive: bool = False,
    ) -> LeadTimeReport:
        resolution = await self._resolve(
            LEAD_TIME_CHAIN, start, end, days, repository, end_exclusive
        )
        report = LeadTimeReport(warnings=resolution.warnings)
        if not resolution.found:
            return report
        report.source = resolution.source
        raw = resolution
        if resolution.tier.kind is SeriesKind.SNAPSHOT:
            latest = resolution.latest
            report.value = round(latest.value, 2)
            report.sample_size = _int_dimension(latest, "sample_size")
            if percentile is not None or breakdown:
                # Snapshots hold no individual observations.
                raw = await self._resolve(
                    LEAD_TIME_CHAIN.only(SeriesKind.RAW),
                    start,
                    end,
                    days,
                    repository,
                    end_exclusive,
                )
                report.warnings.extend(raw.warnings)
        else:
            hours = [value / SECONDS_PER_HOUR for value in resolution.values]
            report.value = round(timeseries.average(hours), 2)
            report.sample_size = len(hours)
        if raw.found:
            hours = [value / SECONDS_PER_HOUR for value in raw.values]
            if percentile is not None:
                report.percentile = {
                    "percentile": percentile,
                    "value": round(timeseries.percentile(hours, percentile), 2),
                }
            if breakdown:
                report.breakdown = self._breakdown(raw.metrics)
        report.rating = rate_lead_time(report.value).value
        return report

    @staticmethod
    def _breakdown(metrics: list[Metric]) -> dict[str, float]:
        stages: dict[str, float] = {}
        for key in LEAD_TIME_BREAKDOWN_KEYS:
            values = []
            for metric in metrics:
                raw = metric.dimension(key)
                if isinstance(raw, (int, float)) and not isinstance(raw, bool):
                    values.append(float(raw))
                elif isinstance(raw, str):
                    try:
                        values.append(float(raw))
                    except ValueError:
                        continue
            stages[key] = round(timeseries.average(values), 2)
        return stages

    # --- Time to restore service ---

    async def time_to_restore(
        self, days: int = DEFAULT_PERIOD_DAYS, repository: str | None = None
    ) -> TimeToRestoreReport:
        """Average incident resolution time in hours."""
        start, end = self.window(days)
        return await self._time_to_restore(start, end, days, repository)

    async def _time_to_restore(
        self,
        start: float,
        end: float,
        days: int,
        repository: str | None,
        end_exclusive: bool = False,
    ) -> TimeToRestoreReport:
        resolution = await self._resolve(
            TIME_TO_RESTORE_CHAIN, start, end, days, repository, end_exclusive
        )
        report = TimeToRestoreReport(warnings=resolution.warnings)
        if not resolution.found:
            return report
        report.source = resolution.source
        if resolution.tier.kind is SeriesKind.SNAPSHOT:
            latest = resolution.latest
            report.value = round(latest.value, 2)
            report.sample_size = _int_dimension(latest, "sample_size")
        else:
            hours = [value / SECONDS_PER_HOUR for value in resolution.values]
            report.value = round(timeseries.average(hours), 2)
            report.sample_size = len(hours)
        report.rating = rate_time_to_restore(report.value).value
        return report

    # --- Change failure rate ---

    async def change_failure_rate(
        self, days: int = DEFAULT_PERIOD_DAYS, repository: str | None = None
    ) -> ChangeFailureRateReport:
        """Percentage of deployments that failed."""
        start, end = self.window(days)
        return await self._change_failure_rate(start, end, days, repository)

    async def _change_failure_rate(
        self,
        start: float,
        end: float,
        days: int,
        repository: str | None,
        end_exclusive: bool = False,
    ) -> ChangeFailureRateReport:
        snapshot = await self._resolve(
            CHANGE_FAILURE_SNAPSHOT_CHAIN, start, end, days, repository, end_exclusive
        )
        report = ChangeFailureRateReport(warnings=list(snapshot.warnings))
        if snapshot.found:
            latest = snapshot.latest
            report.source = snapshot.source
            report.failures = _int_dimension(latest, "failures")
            report.deployments = _int_dimension(latest, "deployments")
            report.value = round(latest.value, 2)
            report.rating = (
                rate_change_failure_rate(report.value).value
                if report.deployments > 0
                else Rating.UNKNOWN.value
            )
            return report

        deployments = await self._resolve(
            DEPLOYMENT_CHAIN.only(SeriesKind.RAW),
            start,
            end,
            days,
            repository,
            end_exclusive,
        )
        failures = await self._resolve(
            DEPLOYMENT_FAILURE_CHAIN, start, end, days, repository, end_exclusive
        )
        report.warnings.extend(deployments.warnings + failures.warnings)
        return self.rate_change_failures(
            len(failures.metrics),
            len(deployments.metrics),
            report,
            source=deployments.source,
        )

    @staticmethod
    def rate_change_failures(
        failures: int,
        deployments: int,
        report: ChangeFailureRateReport | None = None,
        source: str | None = None,
    ) -> ChangeFailureRateReport:
        """Fill a report from raw failure and deployment counts."""
        report = report or ChangeFailureRateReport()
        report.failures = failures
        report.deployments = deployments
        report.source = source
        if deployments <= 0:
            report.value = 0.0
            report.rating = Rating.UNKNOWN.value
            return report
        report.value = round(min(failures / deployments * 100, 100.0), 2)
        report.rating = rate_change_failure_rate(report.value).value
        return report

    # --- Combined views ---

    async def overall(
        self, days: int = DEFAULT_PERIOD_DAYS, repository: str | None = None
    ) -> OverallPerformance:
        """All four metrics plus the averaged performance level."""
        frequency = await self.deployment_frequency(days, repository)
        lead_time = await self.lead_time(days, repository=repository)
        restore = await self.time_to_restore(days, repository)
        failure_rate = await self.change_failure_rate(days, repository)
        ratings = [
            frequency.rating,
            lead_time.rating,
            restore.rating,
            failure_rate.rating,
        ]
        score = average_score(ratings)
        return OverallPerformance(
            average_score=round(score, 2),
            overall_performance_level=rating_for_score(score).value,
            deployment_frequency=frequency,
            lead_time=lead_time,
            time_to_restore=restore,
            change_failure_rate=failure_rate,
        )

    async def trend(
        self,
        metric: DoraMetric | str,
        interval: str = "week",
        periods: int = 4,
        repository: str | None = None,
    ) -> list[TrendPoint]:
        """One result per trailing ``day|week|month`` bucket, oldest first."""
        if interval not in timeseries.INTERVALS:
            raise ValueError(f"interval must be one of {sorted(timeseries.INTERVALS)}")
        metric = DoraMetric(metric)
        width = timeseries.INTERVALS[interval]
        days = width // timeseries.DAY
        end = self._clock()
        start = end - periods * width
        points = []
        for bucket in timeseries.bucket_by([], width, start, end):
            report = await self._calculate(
                metric, bucket.start, bucket.end, days, repository, end_exclusive=True
            )
            points.append(
                TrendPoint(
                    start=bucket.start,
                    end=bucket.end,
                    value=report.value,
                    rating=report.rating,
                )
            )
        return points

    async def _calculate(
        self,
        metric: DoraMetric,
        start: float,
        end: float,
        days: int,
        repository: str | None,
        end_exclusive: bool = False,
    ) -> Any:
        match metric:
            case DoraMetric.DEPLOYMENT_FREQUENCY:
                return await self._deployment_frequency(
                    start, end, days, repository, end_exclusive
                )
            case DoraMetric.LEAD_TIME:
                return await self._lead_time(
                    start, end, days, repository, end_exclusive=end_exclusive
                )
            case DoraMetric.TIME_TO_RESTORE:
                return await self._time_to_restore(
                    start, end, days, repository, end_exclusive
                )
            case DoraMetric.CHANGE_FAILURE_RATE:
                return await self._change_failure_rate(
                    start, end, days, repository, end_exclusive
                )

    async def report(
        self, metric: DoraMetric | str, days: int = DEFAULT_PERIOD_DAYS
    ) -> Mapping[str, Any]:
        """Dict form of one calculator, for callers keyed by metric name."""
        start, end = self.window(days)
        result = await self._calculate(DoraMetric(metric), start, end, days, None)
        return result.to_dict()
