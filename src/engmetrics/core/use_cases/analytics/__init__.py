"""Read-side analytic reports."""

from engmetrics.core.use_cases.analytics.base import AnalyticsReport, ReportResult
from engmetrics.core.use_cases.analytics.builds import (
    AnalyzeBuildPerformance,
    flaky_builds,
)
from engmetrics.core.use_cases.analytics.commits import AnalyzeCommits
from engmetrics.core.use_cases.analytics.deployments import (
    AnalyzeDeploymentPerformance,
)
from engmetrics.core.use_cases.analytics.team import (
    AnalyzeTeamPerformance,
    resolution_stats,
)

__all__ = [
    "AnalyticsReport",
    "AnalyzeBuildPerformance",
    "AnalyzeCommits",
    "AnalyzeDeploymentPerformance",
    "AnalyzeTeamPerformance",
    "ReportResult",
    "flaky_builds",
    "resolution_stats",
]
