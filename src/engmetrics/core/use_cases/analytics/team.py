"""Team delivery analytics: issue velocity, backlog growth, resolution times."""

import math
from datetime import datetime
from typing import Any

from engmetrics.core import timeseries
from engmetrics.core.errors import SoftWarning
from engmetrics.core.models import Metric
from engmetrics.core.use_cases.analytics.base import AnalyticsReport, daily_series

CLOSED_NAMES = ("github.issue.closed", "jira.issue.closed")
CREATED_NAMES = ("github.issue.created", "jira.issue.created")
RESOLUTION_NAMES = ("github.issues.time_to_close", "jira.issue.resolution_time")


def _iso(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp).isoformat()


def resolution_stats(hours: list[float]) -> dict[str, Any]:
    """Average, median and 90th percentile of resolution times in hours."""
    return {
        "average_hours": round(timeseries.average(hours), 2),
        "median_hours": round(timeseries.median(hours), 2),
        "p90_hours": round(timeseries.percentile(hours, 90), 2),
        "sample_size": len(hours),
    }


def empty_team_report(days: int) -> dict[str, Any]:
    return {
        "repository": None,
        "time_period": days,
        "team_velocity": 0.0,
        "weekly_velocities": [],
        "total_closed": 0,
        "total_created": 0,
        "completion_rate": 0.0,
        "num_weeks": 0,
        "backlog_growth": [],
        "resolution_time": resolution_stats([]),
    }


class AnalyzeTeamPerformance(AnalyticsReport):
    """Issue throughput of a team over a trailing window.

    Velocity is the number of closed issues per week, averaged over the
    weeks that saw at least one closure rather than every calendar week of
    the window. GitHub and Jira issues are counted together with a
    per-source breakdown on each week.
    """

    cache_prefix = "team_performance"

    async def build(
        self,
        start: float,
        end: float,
        days: int,
        repository: str | None,
        warnings: list[SoftWarning],
    ) -> dict[str, Any]:
        report = empty_team_report(days)
        report["repository"] = repository

        async def read_all(names: tuple[str, ...]) -> list[Metric]:
            found: list[Metric] = []
            for name in names:
                found.extend(
                    await self.fetch(warnings, start, end, name=name, repository=repository)
                )
            return found

        closed = await read_all(CLOSED_NAMES)
        created = await read_all(CREATED_NAMES)
        resolutions = await read_all(RESOLUTION_NAMES)

        weeks = math.ceil(days / 7) if days > 0 else 0
        window_start = end - weeks * timeseries.WEEK
        closed_buckets = timeseries.bucket_by(
            daily_series(closed), timeseries.WEEK, window_start, end, reduce="sum"
        )
        created_buckets = timeseries.bucket_by(
            daily_series(created), timeseries.WEEK, window_start, end, reduce="sum"
        )

        weekly = []
        for bucket in closed_buckets:
            if bucket.count == 0:
                continue
            breakdown: dict[str, int] = {}
            for metric in closed:
                if bucket.start <= metric.timestamp < bucket.end:
                    breakdown[metric.source] = breakdown.get(metric.source, 0) + int(metric.value)
            weekly.append(
                {
                    "start_time": _iso(bucket.start),
                    "end_time": _iso(bucket.end),
                    "count": int(bucket.value),
                    "source_breakdown": dict(sorted(breakdown.items())),
                }
            )

        total_closed = int(sum(bucket.value for bucket in closed_buckets))
        total_created = int(sum(bucket.value for bucket in created_buckets))
        report["weekly_velocities"] = weekly
        report["num_weeks"] = len(weekly)
        report["team_velocity"] = round(total_closed / len(weekly), 1) if weekly else 0.0
        report["total_closed"] = total_closed
        report["total_created"] = total_created
        report["completion_rate"] = (
            round(total_closed / total_created * 100, 1) if total_created else 0.0
        )
        report["backlog_growth"] = [
            {
                "start_time": _iso(opened.start),
                "created": int(opened.value),
                "closed": int(done.value),
                "growth": int(opened.value - done.value),
            }
            for opened, done in zip(created_buckets, closed_buckets)
        ]
        report["resolution_time"] = resolution_stats(
            [metric.value for metric in resolutions]
        )
        return report
