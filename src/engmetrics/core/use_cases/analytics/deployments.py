"""Deployment performance analytics."""

from typing import Any

from engmetrics.core import timeseries
from engmetrics.core.errors import SoftWarning
from engmetrics.core.use_cases.analytics.base import AnalyticsReport, daily_series
from engmetrics.core.use_cases.dora import DEPLOYMENT_CHAIN, DEPLOYMENT_FAILURE_CHAIN
from engmetrics.core.use_cases.fallback import SeriesKind

DEPLOY_DURATION_NAMES = (
    "github.ci.deploy.duration",
    "ci.deploy.duration",
    "github.deployment.duration",
)


def empty_deployment_report(days: int) -> dict[str, Any]:
    return {
        "repository": None,
        "time_period": days,
        "deploys_by_day": {},
        "total_deploys": 0,
        "failed_deploys": 0,
        "average_deploy_duration": 0.0,
        "success_rate": 0.0,
        "source": None,
    }


class AnalyzeDeploymentPerformance(AnalyticsReport):
    """Daily deployment counts, durations and success rate.

    Successful deployments come from the raw tiers of the deployment
    frequency chain and failures from the deployment failure chain, so the
    counts agree with what the change failure rate calculator sees.
    """

    cache_prefix = "deployment_performance"

    async def build(
        self,
        start: float,
        end: float,
        days: int,
        repository: str | None,
        warnings: list[SoftWarning],
    ) -> dict[str, Any]:
        report = empty_deployment_report(days)
        report["repository"] = repository
        filters = {"repository": repository} if repository else None

        deploys = await DEPLOYMENT_CHAIN.only(SeriesKind.RAW).resolve(
            self._store, start, end, dimensions=filters
        )
        failures = await DEPLOYMENT_FAILURE_CHAIN.resolve(
            self._store, start, end, dimensions=filters
        )
        warnings.extend(deploys.warnings)
        warnings.extend(failures.warnings)
        durations = await self.fetch_first(
            warnings, start, end, DEPLOY_DURATION_NAMES, repository=repository
        )

        succeeded = len(deploys.metrics)
        failed = len(failures.metrics)
        attempted = succeeded + failed
        report["deploys_by_day"] = {
            day: int(count)
            for day, count in timeseries.group_by_day(
                daily_series(deploys.metrics), start, end
            ).items()
        }
        report["total_deploys"] = succeeded
        report["failed_deploys"] = failed
        report["average_deploy_duration"] = round(
            timeseries.average([metric.value for metric in durations]), 2
        )
        report["success_rate"] = round(succeeded / attempted * 100, 2) if attempted else 0.0
        report["source"] = deploys.source
        return report
