"""Tests for the DORA rating engine."""

from collections.abc import Callable
from typing import Any

import pytest

from engmetrics.adapters.storage.in_memory import InMemoryEventStore, InMemoryMetricStore
from engmetrics.core.models import Event, Metric
from engmetrics.core.use_cases import (
    DoraMetric,
    DoraRatingEngine,
    MetricCalculationService,
    MetricRollup,
)

pytestmark = [pytest.mark.core, pytest.mark.tier(0)]

HOUR = 3600.0
DAY = 24 * HOUR


@pytest.fixture
def engine(
    metric_store: InMemoryMetricStore, clock: Callable[[], float]
) -> DoraRatingEngine:
    return DoraRatingEngine(metric_store, clock=clock)


async def save_all(store: InMemoryMetricStore, metrics: list[Metric]) -> None:
    for metric in metrics:
        await store.save(metric)


def deploy_job(conclusion: str, timestamp: float) -> Event:
    """A completed workflow job whose only step deploys."""
    data: dict[str, Any] = {
        "action": "completed",
        "repository": {"full_name": "acme/api", "owner": {"login": "acme"}},
        "workflow_job": {
            "workflow_name": "CD",
            "name": "ship",
            "conclusion": conclusion,
            "started_at": "2023-11-13T10:00:00Z",
            "completed_at": "2023-11-13T10:10:00Z",
            "steps": [
                {
                    "name": "Deploy to prod",
                    "conclusion": conclusion,
                    "started_at": "2023-11-13T10:02:00Z",
                    "completed_at": "2023-11-13T10:08:00Z",
                }
            ],
        },
    }
    return Event(name="github.workflow_job", source="github", timestamp=timestamp, data=data)


class TestDeploymentFrequency:
    """Tests for deployment frequency."""

    async def test_daily_deploys_rate_elite(
        self,
        engine: DoraRatingEngine,
        metric_store: InMemoryMetricStore,
        make_metric: Callable[..., Metric],
    ) -> None:
        """Thirty deploys in thirty days is one per day."""
        await save_all(
            metric_store,
            [make_metric("github.ci.deploy.completed", days_ago=i + 0.5) for i in range(30)],
        )

        report = await engine.deployment_frequency(30)

        assert report.value == 1.0
        assert report.rating == "elite"
        assert report.total_deployments == 30
        assert report.total_days == 30
        assert report.source == "github.ci.deploy.completed"

    async def test_no_data_rates_low(self, engine: DoraRatingEngine) -> None:
        report = await engine.deployment_frequency(30)
        assert report.value == 0.0
        assert report.rating == "low"
        assert report.source is None

    async def test_deploys_outside_window_are_ignored(
        self,
        engine: DoraRatingEngine,
        metric_store: InMemoryMetricStore,
        make_metric: Callable[..., Metric],
    ) -> None:
        await save_all(
            metric_store,
            [
                make_metric("ci.deploy.completed", days_ago=10),
                make_metric("ci.deploy.completed", days_ago=2),
            ],
        )

        report = await engine.deployment_frequency(7)

        assert report.total_deployments == 1
        assert report.value == round(1 / 7, 2)
        assert report.rating == "high"

    async def test_pattern_tier_skips_failures_and_durations(
        self,
        engine: DoraRatingEngine,
        metric_store: InMemoryMetricStore,
        make_metric: Callable[..., Metric],
    ) -> None:
        await save_all(
            metric_store,
            [
                make_metric("gitlab.deploy.finished", days_ago=1),
                make_metric("gitlab.deploy.failed", days_ago=1),
                make_metric("gitlab.deploy.duration", 120, days_ago=1),
            ],
        )

        report = await engine.deployment_frequency(10)

        assert report.total_deployments == 1
        assert report.source == "pattern:%deploy%"

    @pytest.mark.parametrize(
        ("conclusions", "expected"),
        [(("success", "failure"), 1), (("failure",), 0)],
    )
    async def test_workflow_job_deploys_count_once(
        self,
        engine: DoraRatingEngine,
        metric_store: InMemoryMetricStore,
        event_store: InMemoryEventStore,
        now: float,
        conclusions: tuple[str, ...],
        expected: int,
    ) -> None:
        """Only jobs whose deploy step passed are deployments."""
        service = MetricCalculationService(event_store, metric_store)
        for conclusion in conclusions:
            await service.ingest(deploy_job(conclusion, now - HOUR))

        report = await engine.deployment_frequency(30)

        assert report.total_deployments == expected
        if expected:
            assert report.source == "github.ci.deploy.completed"
        else:
            assert report.source is None

    async def test_rollup_aggregates_are_not_counted_as_deploys(
        self,
        engine: DoraRatingEngine,
        metric_store: InMemoryMetricStore,
        make_metric: Callable[..., Metric],
        clock: Callable[[], float],
        now: float,
    ) -> None:
        await metric_store.save(make_metric("gitlab.deploy.finished", days_ago=1))
        rollup = await MetricRollup(metric_store, clock).rollup("daily", now - 2 * DAY, now)
        assert rollup.created == 1

        report = await engine.deployment_frequency(30)

        assert report.total_deployments == 1
        assert report.source == "pattern:%deploy%"

    async def test_snapshot_for_matching_period_wins(
        self,
        engine: DoraRatingEngine,
        metric_store: InMemoryMetricStore,
        make_metric: Callable[..., Metric],
    ) -> None:
        await save_all(
            metric_store,
            [
                make_metric(
                    "dora.deployment_frequency",
                    2.5,
                    source="dora",
                    period_days=30,
                    days_with_deployments=20,
                    total_deployments=75,
                ),
                make_metric("github.ci.deploy.completed", days_ago=3),
            ],
        )

        report = await engine.deployment_frequency(30)

        assert report.source == "dora.deployment_frequency"
        assert report.value == 2.5
        assert report.total_deployments == 75
        assert report.days_with_deployments == 20

    async def test_snapshot_for_other_period_is_ignored(
        self,
        engine: DoraRatingEngine,
        metric_store: InMemoryMetricStore,
        make_metric: Callable[..., Metric],
    ) -> None:
        await save_all(
            metric_store,
            [
                make_metric("dora.deployment_frequency", 2.5, source="dora", period_days=90),
                make_metric("github.ci.deploy.completed", days_ago=3),
            ],
        )

        report = await engine.deployment_frequency(30)

        assert report.source == "github.ci.deploy.completed"

    async def test_snapshots_can_be_disabled(
        self,
        metric_store: InMemoryMetricStore,
        clock: Callable[[], float],
        make_metric: Callable[..., Metric],
    ) -> None:
        await save_all(
            metric_store,
            [
                make_metric("dora.deployment_frequency", 2.5, source="dora", period_days=30),
                make_metric("github.ci.deploy.completed", days_ago=3),
            ],
        )
        engine = DoraRatingEngine(metric_store, clock=clock, include_snapshots=False)

        report = await engine.deployment_frequency(30)

        assert report.source == "github.ci.deploy.completed"

    async def test_repository_filter(
        self,
        engine: DoraRatingEngine,
        metric_store: InMemoryMetricStore,
        make_metric: Callable[..., Metric],
    ) -> None:
        await save_all(
            metric_store,
            [
                make_metric("ci.deploy.completed", repository="acme/api"),
                make_metric("ci.deploy.completed", repository="acme/web"),
                make_metric("ci.deploy.completed", repository="acme/web"),
            ],
        )

        report = await engine.deployment_frequency(7, repository="acme/web")

        assert report.total_deployments == 2


class TestLeadTime:
    """Tests for lead time for changes."""

    async def test_raw_seconds_are_reported_in_hours(
        self,
        engine: DoraRatingEngine,
        metric_store: InMemoryMetricStore,
        make_metric: Callable[..., Metric],
    ) -> None:
        await save_all(
            metric_store,
            [make_metric("ci.lead_time", hours * HOUR) for hours in (2, 4, 6)],
        )

        report = await engine.lead_time(30)

        assert report.value == 4.0
        assert report.sample_size == 3
        assert report.rating == "elite"
        assert report.source == "ci.lead_time"
        assert report.percentile is None
        assert report.breakdown is None

    async def test_percentile_and_breakdown(
        self,
        engine: DoraRatingEngine,
        metric_store: InMemoryMetricStore,
        make_metric: Callable[..., Metric],
    ) -> None:
        await save_all(
            metric_store,
            [
                make_metric("github.ci.lead_time", 30 * HOUR, code_review_hours=10),
                make_metric("github.ci.lead_time", 50 * HOUR, code_review_hours=20),
                make_metric("github.ci.lead_time", 70 * HOUR),
            ],
        )

        report = await engine.lead_time(30, percentile=50, breakdown=True)

        assert report.value == 50.0
        assert report.rating == "high"
        assert report.percentile == {"percentile": 50, "value": 50.0}
        assert report.breakdown is not None
        assert report.breakdown["code_review_hours"] == 15.0
        assert report.breakdown["qa_hours"] == 0.0

    async def test_no_data_is_unknown(self, engine: DoraRatingEngine) -> None:
        report = await engine.lead_time(30)
        assert report.rating == "unknown"
        assert report.sample_size == 0

    async def test_snapshot_value_is_already_hours(
        self,
        engine: DoraRatingEngine,
        metric_store: InMemoryMetricStore,
        make_metric: Callable[..., Metric],
    ) -> None:
        await save_all(
            metric_store,
            [
                make_metric(
                    "dora.lead_time.hourly",
                    30.0,
                    source="dora",
                    period_days=7,
                    sample_size=5,
                )
            ],
        )

        report = await engine.lead_time(7)

        assert report.source == "dora.lead_time.hourly"
        assert report.value == 30.0
        assert report.sample_size == 5
        assert report.rating == "high"


    async def test_percentile_and_breakdown_under_a_snapshot(
        self,
        engine: DoraRatingEngine,
        metric_store: InMemoryMetricStore,
        make_metric: Callable[..., Metric],
    ) -> None:
        """The snapshot supplies the value, raw observations the sub-reports."""
        await save_all(
            metric_store,
            [
                make_metric(
                    "dora.lead_time", 12.0, source="dora", period_days=30, sample_size=3
                ),
                make_metric("ci.lead_time", 2 * HOUR, code_review_hours=1),
                make_metric("ci.lead_time", 4 * HOUR, code_review_hours=3),
                make_metric("ci.lead_time", 6 * HOUR),
            ],
        )

        report = await engine.lead_time(30, percentile=75, breakdown=True)

        assert report.source == "dora.lead_time"
        assert report.value == 12.0
        assert report.sample_size == 3
        assert report.percentile == {"percentile": 75, "value": 6.0}
        assert report.breakdown is not None
        assert report.breakdown["code_review_hours"] == 2.0

    async def test_snapshot_without_raw_observations_has_no_sub_reports(
        self,
        engine: DoraRatingEngine,
        metric_store: InMemoryMetricStore,
        make_metric: Callable[..., Metric],
    ) -> None:
        await metric_store.save(
            make_metric("dora.lead_time", 12.0, source="dora", period_days=30, sample_size=3)
        )

        report = await engine.lead_time(30, percentile=95, breakdown=True)

        assert report.value == 12.0
        assert report.percentile is None
        assert report.breakdown is None

    async def test_rollup_aggregates_are_not_lead_time_samples(
        self,
        engine: DoraRatingEngine,
        metric_store: InMemoryMetricStore,
        make_metric: Callable[..., Metric],
        clock: Callable[[], float],
        now: float,
    ) -> None:
        await metric_store.save(make_metric("gitlab.lead_time", 4 * HOUR, days_ago=1))
        await MetricRollup(metric_store, clock).rollup("daily", now - 2 * DAY, now)

        report = await engine.lead_time(30)

        assert report.source == "pattern:%lead_time%"
        assert report.value == 4.0
        assert report.sample_size == 1


class TestTimeToRestore:
    """Tests for time to restore service."""

    async def test_resolution_seconds_in_hours(
        self,
        engine: DoraRatingEngine,
        metric_store: InMemoryMetricStore,
        make_metric: Callable[..., Metric],
    ) -> None:
        await save_all(
            metric_store,
            [
                make_metric("incident.resolution_time", 1 * HOUR),
                make_metric("incident.resolution_time", 3 * HOUR),
            ],
        )

        report = await engine.time_to_restore(30)

        assert report.value == 2.0
        assert report.sample_size == 2
        assert report.rating == "high"

    async def test_one_hour_is_elite(
        self,
        engine: DoraRatingEngine,
        metric_store: InMemoryMetricStore,
        make_metric: Callable[..., Metric],
    ) -> None:
        await metric_store.save(make_metric("incident.resolution_time", HOUR))
        report = await engine.time_to_restore(30)
        assert report.rating == "elite"

    async def test_no_data_is_unknown(self, engine: DoraRatingEngine) -> None:
        assert (await engine.time_to_restore(30)).rating == "unknown"


    async def test_rollup_aggregates_are_not_incidents(
        self,
        engine: DoraRatingEngine,
        metric_store: InMemoryMetricStore,
        make_metric: Callable[..., Metric],
        clock: Callable[[], float],
        now: float,
    ) -> None:
        await metric_store.save(
            make_metric("pagerduty.incident.resolution_time", 2 * HOUR, days_ago=1)
        )
        await MetricRollup(metric_store, clock).rollup("daily", now - 2 * DAY, now)

        report = await engine.time_to_restore(30)

        assert report.source == "pattern:%incident.resolution_time%"
        assert report.value == 2.0
        assert report.sample_size == 1


class TestChangeFailureRate:
    """Tests for change failure rate."""

    async def test_three_failures_in_ten_deploys_is_high(
        self,
        engine: DoraRatingEngine,
        metric_store: InMemoryMetricStore,
        make_metric: Callable[..., Metric],
    ) -> None:
        await save_all(
            metric_store,
            [make_metric("ci.deploy.completed", days_ago=i + 1) for i in range(10)]
            + [make_metric("ci.deploy.incident", days_ago=i + 1) for i in range(3)],
        )

        report = await engine.change_failure_rate(30)

        assert report.value == 30.0
        assert report.rating == "high"
        assert report.failures == 3
        assert report.deployments == 10

    async def test_failed_workflow_job_is_not_also_a_deploy(
        self,
        engine: DoraRatingEngine,
        metric_store: InMemoryMetricStore,
        event_store: InMemoryEventStore,
        now: float,
    ) -> None:
        service = MetricCalculationService(event_store, metric_store)
        await service.ingest(deploy_job("success", now - HOUR))
        await service.ingest(deploy_job("failure", now - HOUR))

        report = await engine.change_failure_rate(30)

        assert report.deployments == 1
        assert report.failures == 1
        assert report.value == 100.0

    async def test_rollup_aggregates_are_not_counted_as_deploys(
        self,
        engine: DoraRatingEngine,
        metric_store: InMemoryMetricStore,
        make_metric: Callable[..., Metric],
        clock: Callable[[], float],
        now: float,
    ) -> None:
        await save_all(
            metric_store,
            [make_metric("gitlab.deploy.finished", days_ago=1) for _ in range(2)],
        )
        await MetricRollup(metric_store, clock).rollup("daily", now - 2 * DAY, now)

        report = await engine.change_failure_rate(30)

        assert report.deployments == 2
        assert report.failures == 0

    async def test_snapshot_carries_counts(
        self,
        engine: DoraRatingEngine,
        metric_store: InMemoryMetricStore,
        make_metric: Callable[..., Metric],
    ) -> None:
        await metric_store.save(
            make_metric(
                "dora.change_failure_rate",
                20.0,
                source="dora",
                period_days=30,
                failures=2,
                deployments=10,
            )
        )

        report = await engine.change_failure_rate(30)

        assert report.source == "dora.change_failure_rate"
        assert report.value == 20.0
        assert report.rating == "high"
        assert (report.failures, report.deployments) == (2, 10)

    async def test_no_deployments_is_unknown(self, engine: DoraRatingEngine) -> None:
        report = await engine.change_failure_rate(30)
        assert report.rating == "unknown"
        assert report.value == 0.0

    def test_rate_is_capped_at_one_hundred(self) -> None:
        report = DoraRatingEngine.rate_change_failures(12, 10)
        assert report.value == 100.0
        assert report.rating == "low"

    def test_zero_deployments_is_unknown(self) -> None:
        report = DoraRatingEngine.rate_change_failures(5, 0)
        assert report.value == 0.0
        assert report.rating == "unknown"


class TestCombinedViews:
    """Tests for overall performance, trends and reports."""

    async def test_overall_without_data_is_low(self, engine: DoraRatingEngine) -> None:
        """Only deployment frequency has a rating when nothing is recorded."""
        overall = await engine.overall(30)
        assert overall.average_score == 1.0
        assert overall.overall_performance_level == "low"
        assert overall.lead_time.rating == "unknown"

    async def test_overall_averages_known_ratings(
        self,
        engine: DoraRatingEngine,
        metric_store: InMemoryMetricStore,
        make_metric: Callable[..., Metric],
    ) -> None:
        await save_all(
            metric_store,
            [make_metric("ci.deploy.completed", days_ago=i + 0.5) for i in range(30)]
            + [make_metric("ci.deploy.incident", days_ago=i + 1) for i in range(9)]
            + [make_metric("ci.lead_time", 2 * HOUR)]
            + [make_metric("incident.resolution_time", 5 * HOUR)],
        )

        overall = await engine.overall(30)

        assert overall.deployment_frequency.rating == "elite"
        assert overall.lead_time.rating == "elite"
        assert overall.time_to_restore.rating == "high"
        assert overall.change_failure_rate.rating == "high"
        assert overall.average_score == 3.5
        assert overall.overall_performance_level == "elite"
        assert overall.warnings == []
        assert set(overall.to_dict()) == {
            "average_score",
            "overall_performance_level",
            "deployment_frequency",
            "lead_time",
            "time_to_restore",
            "change_failure_rate",
        }

    async def test_weekly_trend(
        self,
        engine: DoraRatingEngine,
        metric_store: InMemoryMetricStore,
        make_metric: Callable[..., Metric],
    ) -> None:
        await save_all(
            metric_store,
            [make_metric("ci.deploy.completed", days_ago=i + 0.5) for i in range(7)],
        )

        points = await engine.trend(DoraMetric.DEPLOYMENT_FREQUENCY, "week", 4)

        assert len(points) == 4
        assert [point.value for point in points] == [0.0, 0.0, 0.0, 1.0]
        assert points[-1].rating == "elite"
        assert points[0].rating == "low"
        assert points[0].start < points[-1].start

    async def test_trend_buckets_do_not_share_their_boundary(
        self,
        engine: DoraRatingEngine,
        metric_store: InMemoryMetricStore,
        make_metric: Callable[..., Metric],
    ) -> None:
        """A deploy exactly one week ago belongs to the later week only."""
        await metric_store.save(make_metric("ci.deploy.completed", days_ago=7))

        points = await engine.trend(DoraMetric.DEPLOYMENT_FREQUENCY, "week", 2)

        assert [point.value for point in points] == [0.0, 0.14]

    async def test_trend_rejects_unknown_interval(self, engine: DoraRatingEngine) -> None:
        with pytest.raises(ValueError):
            await engine.trend("lead_time", "fortnight")

    async def test_report_is_a_plain_dict(
        self,
        engine: DoraRatingEngine,
        metric_store: InMemoryMetricStore,
        make_metric: Callable[..., Metric],
    ) -> None:
        await metric_store.save(make_metric("incident.resolution_time", 2 * HOUR))

        report = await engine.report("time_to_restore", days=30)

        assert report["value"] == 2.0
        assert report["rating"] == "high"
        assert "warnings" not in report

    def test_snapshot_metric_names(self) -> None:
        assert DoraMetric.LEAD_TIME.metric_name == "dora.lead_time"
