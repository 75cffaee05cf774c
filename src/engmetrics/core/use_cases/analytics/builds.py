"""Build (CI job) performance analytics."""

from collections import defaultdict
from typing import Any

from engmetrics.core import timeseries
from engmetrics.core.errors import SoftWarning
from engmetrics.core.models import Metric
from engmetrics.core.use_cases.analytics.base import (
    AnalyticsReport,
    daily_series,
    group_sum,
    ranked,
)

FLAKY_MIN_OBSERVATIONS = 4
FLAKY_TRANSITION_SHARE = 0.25
LONGEST_WORKFLOWS = 5


def flaky_builds(
    conclusions: list[Metric],
    min_observations: int = FLAKY_MIN_OBSERVATIONS,
    transition_share: float = FLAKY_TRANSITION_SHARE,
) -> list[dict[str, Any]]:
    """(workflow, job) pairs whose conclusion keeps flipping.

    Observations of each pair are ordered by time and every change of
    conclusion between neighbours counts as a transition. A pair is flaky
    with at least ``min_observations`` runs and at least
    ``transition_share * (runs - 1)`` transitions.

    Returns:
        Flaky pairs ordered by descending transition rate (percent).
    """
    runs: dict[tuple[str, str], list[Metric]] = defaultdict(list)
    for metric in conclusions:
        key = (
            str(metric.dimension("workflow_name", "unknown")),
            str(metric.dimension("job_name", "unknown")),
        )
        runs[key].append(metric)

    flaky = []
    for (workflow, job), observations in runs.items():
        total = len(observations)
        if total < min_observations:
            continue
        observations.sort(key=lambda metric: (metric.timestamp, metric.id or 0))
        outcomes = [metric.dimension("conclusion") for metric in observations]
        transitions = sum(
            1 for previous, current in zip(outcomes, outcomes[1:]) if previous != current
        )
        if transitions < transition_share * (total - 1):
            continue
        flaky.append(
            {
                "workflow_name": workflow,
                "job_name": job,
                "total_runs": total,
                "transitions": transitions,
                "transition_rate": round(transitions / (total - 1) * 100, 2),
            }
        )
    return sorted(
        flaky,
        key=lambda row: (-row["transition_rate"], row["workflow_name"], row["job_name"]),
    )


def empty_build_report(days: int) -> dict[str, Any]:
    return {
        "repository": None,
        "time_period": days,
        "total_builds": 0,
        "successful_builds": 0,
        "failed_builds": 0,
        "success_rate": 0.0,
        "average_build_duration": 0.0,
        "builds_by_day": {},
        "success_by_day": {},
        "builds_by_workflow": [],
        "longest_workflow_durations": [],
        "flaky_builds": [],
    }


class AnalyzeBuildPerformance(AnalyticsReport):
    """Workflow-job outcomes, durations and flakiness over a trailing window."""

    cache_prefix = "build_performance"

    async def build(
        self,
        start: float,
        end: float,
        days: int,
        repository: str | None,
        warnings: list[SoftWarning],
    ) -> dict[str, Any]:
        report = empty_build_report(days)
        report["repository"] = repository

        async def read(name: str) -> list[Metric]:
            return await self.fetch(warnings, start, end, name=name, repository=repository)

        completed = await read("github.workflow_job.completed")
        durations = await read("github.ci.build.duration")
        successes = await read("github.workflow_job.conclusion.success")
        failures = await read("github.workflow_job.conclusion.failure")

        total = len(completed)
        report["total_builds"] = total
        report["successful_builds"] = len(successes)
        report["failed_builds"] = len(failures)
        report["success_rate"] = round(len(successes) / total * 100, 2) if total else 0.0
        report["average_build_duration"] = round(
            timeseries.average([metric.value for metric in durations]), 2
        )
        report["builds_by_day"] = {
            day: int(count)
            for day, count in timeseries.group_by_day(daily_series(completed), start, end).items()
        }
        report["success_by_day"] = {
            day: int(count)
            for day, count in timeseries.group_by_day(daily_series(successes), start, end).items()
        }
        report["builds_by_workflow"] = [
            {"workflow_name": workflow, "count": int(count)}
            for workflow, count in ranked(
                group_sum(completed, "workflow_name")
            )
        ]
        report["longest_workflow_durations"] = self._longest(durations)
        report["flaky_builds"] = flaky_builds(successes + failures)
        return report

    @staticmethod
    def _longest(durations: list[Metric]) -> list[dict[str, Any]]:
        grouped: dict[str, list[float]] = defaultdict(list)
        for metric in durations:
            grouped[str(metric.dimension("workflow_name", "unknown"))].append(metric.value)
        averages = {
            workflow: round(timeseries.average(values), 2)
            for workflow, values in grouped.items()
        }
        return [
            {"workflow_name": workflow, "average_duration": duration}
            for workflow, duration in ranked(averages, limit=LONGEST_WORKFLOWS)
        ]
