"""Commit analytics: hotspots, commit types, author activity and churn."""

from typing import Any

from engmetrics.core import timeseries
from engmetrics.core.errors import SoftWarning
from engmetrics.core.models import Metric
from engmetrics.core.use_cases.analytics.base import (
    AnalyticsReport,
    daily_series,
    group_sum,
    percentage,
    ranked,
)

COMMIT_COUNT_NAMES = ("github.commit_volume.daily", "github.push.commits.total")


def _shares(totals: dict[str, float], key: str) -> list[dict[str, Any]]:
    grand_total = sum(totals.values())
    return [
        {key: label, "count": int(count), "percentage": percentage(count, grand_total)}
        for label, count in ranked(totals)
    ]


def empty_commit_report(days: int) -> dict[str, Any]:
    return {
        "repository": None,
        "time_period": days,
        "directory_hotspots": [],
        "file_extensions": [],
        "commit_types": [],
        "breaking_changes": {"total": 0, "by_author": []},
        "author_activity": [],
        "commit_volume": {
            "total_commits": 0,
            "days_with_commits": 0,
            "commits_per_day": 0.0,
            "commit_frequency": 0.0,
            "daily_activity": {},
        },
        "code_churn": {
            "additions": 0,
            "deletions": 0,
            "total_churn": 0,
            "churn_ratio": 0.0,
        },
    }


class AnalyzeCommits(AnalyticsReport):
    """Commit activity report over a trailing window.

    Reads the per-push ``commit.*`` and ``github.push.*`` metrics written by
    the classifier and folds them into hotspots, type shares, per-author
    activity, daily volume and churn.
    """

    cache_prefix = "commit_analysis"

    async def build(
        self,
        start: float,
        end: float,
        days: int,
        repository: str | None,
        warnings: list[SoftWarning],
    ) -> dict[str, Any]:
        report = empty_commit_report(days)
        report["repository"] = repository

        async def read(name: str) -> list[Metric]:
            return await self.fetch(warnings, start, end, name=name, repository=repository)

        directories = await read("commit.directory_change")
        extensions = await read("commit.file_extension_change")
        types = await read("commit.type")
        breaking = await read("commit.breaking_change")
        volume = await read("commit.code_volume")
        by_author = await read("github.push.by_author")
        commits = await self.fetch_first(
            warnings, start, end, COMMIT_COUNT_NAMES, repository=repository
        )

        report["directory_hotspots"] = _shares(group_sum(directories, "directory"), "directory")
        report["file_extensions"] = _shares(group_sum(extensions, "extension"), "extension")
        report["commit_types"] = _shares(group_sum(types, "commit_type"), "commit_type")

        breaking_by_author = group_sum(breaking, "author")
        report["breaking_changes"] = {
            "total": int(sum(breaking_by_author.values())),
            "by_author": [
                {"author": author, "count": int(count)}
                for author, count in ranked(breaking_by_author)
            ],
        }

        report["author_activity"] = self._author_activity(by_author, volume)
        report["commit_volume"] = self._commit_volume(commits, start, end, days)

        additions = int(sum(float(metric.dimension("additions", 0)) for metric in volume))
        deletions = int(sum(float(metric.dimension("deletions", 0)) for metric in volume))
        report["code_churn"] = {
            "additions": additions,
            "deletions": deletions,
            "total_churn": additions + deletions,
            "churn_ratio": round(additions / deletions, 2) if deletions else float(additions),
        }
        return report

    @staticmethod
    def _author_activity(
        by_author: list[Metric], volume: list[Metric]
    ) -> list[dict[str, Any]]:
        authors: dict[str, dict[str, Any]] = {}

        def entry(author: str) -> dict[str, Any]:
            return authors.setdefault(
                author,
                {
                    "author": author,
                    "commit_count": 0,
                    "lines_added": 0,
                    "lines_deleted": 0,
                    "lines_changed": 0,
                },
            )

        for metric in by_author:
            entry(str(metric.dimension("author", "unknown")))["commit_count"] += int(metric.value)
        for metric in volume:
            row = entry(str(metric.dimension("author", "unknown")))
            row["lines_added"] += int(float(metric.dimension("additions", 0)))
            row["lines_deleted"] += int(float(metric.dimension("deletions", 0)))
            row["lines_changed"] += int(metric.value)
        return sorted(
            authors.values(), key=lambda row: (-row["commit_count"], row["author"])
        )

    @staticmethod
    def _commit_volume(
        commits: list[Metric], start: float, end: float, days: int
    ) -> dict[str, Any]:
        daily = timeseries.group_by_day(daily_series(commits), start, end, reduce="sum")
        total = int(sum(daily.values()))
        active_days = sum(1 for count in daily.values() if count > 0)
        return {
            "total_commits": total,
            "days_with_commits": active_days,
            "commits_per_day": round(total / days, 2) if days else 0.0,
            "commit_frequency": round(active_days / days, 2) if days else 0.0,
            "daily_activity": {day: int(count) for day, count in daily.items()},
        }
