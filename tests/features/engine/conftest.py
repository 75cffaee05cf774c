"""BDD step definitions for classification, DORA and analytics features."""

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import pytest
from pytest_bdd import given, parsers, then, when

from engmetrics.adapters.cache.in_memory import InMemoryCache
from engmetrics.adapters.storage.in_memory import (
    InMemoryEventStore,
    InMemoryMetricStore,
)
from engmetrics.core.errors import StorageFailure
from engmetrics.core.models import Event, Metric
from engmetrics.core.ports import MetricQuery
from engmetrics.core.use_cases import (
    CalculationResult,
    DoraRatingEngine,
    MetricCalculationService,
)
from engmetrics.core.use_cases.analytics import AnalyzeCommits, ReportResult

NOW = 1_700_000_000.0
DAY = 86400.0


class SelectivelyFailingStore(InMemoryMetricStore):
    """Metric store whose queries fail for chosen metric names."""

    def __init__(self) -> None:
        super().__init__()
        self.failing: set[str] = set()

    async def list_metrics(self, query: MetricQuery) -> Sequence[Metric]:
        if query.name in self.failing:
            raise StorageFailure(f"{query.name} unavailable")
        return await super().list_metrics(query)


@dataclass
class EngineScenarioContext:
    """State shared between the steps of one scenario."""

    metric_store: SelectivelyFailingStore = field(default_factory=SelectivelyFailingStore)
    event_store: InMemoryEventStore = field(default_factory=InMemoryEventStore)
    repository: str = ""
    commits: list[dict[str, Any]] = field(default_factory=list)
    calculation: CalculationResult | None = None
    dora_report: Any = None
    report: ReportResult | None = None

    def stored(self, name: str | None = None) -> list[Metric]:
        return list(run_async(self.metric_store.list_metrics(MetricQuery(name=name))))


def run_async(coro: Any) -> Any:
    return asyncio.run(coro)


@pytest.fixture
def ctx() -> EngineScenarioContext:
    """Fresh scenario context for each test."""
    return EngineScenarioContext()


def _engine(ctx: EngineScenarioContext) -> DoraRatingEngine:
    return DoraRatingEngine(ctx.metric_store, clock=lambda: NOW)


# === Setup Steps ===
@given(parsers.parse('a push to "{repository}"'))
def step_push(ctx: EngineScenarioContext, repository: str) -> None:
    ctx.repository = repository


@given(parsers.parse('a commit "{message}" touching "{path}"'))
def step_commit(ctx: EngineScenarioContext, message: str, path: str) -> None:
    ctx.commits.append(
        {
            "id": f"c{len(ctx.commits)}",
            "message": message,
            "author": {"username": "dana"},
            "added": [path],
        }
    )


@given(parsers.parse('{count:d} "{name}" metrics over the last {days:d} days'))
def step_metrics(ctx: EngineScenarioContext, count: int, name: str, days: int) -> None:
    async def seed() -> None:
        for index in range(count):
            await ctx.metric_store.save(
                Metric(
                    name=name,
                    value=1.0,
                    source="ci",
                    timestamp=NOW - (index + 0.5) * days / count * DAY,
                    dimensions={"directory": "app"},
                )
            )

    run_async(seed())


@given(parsers.parse('the store fails queries for "{name}"'))
def step_failing_queries(ctx: EngineScenarioContext, name: str) -> None:
    ctx.metric_store.failing.add(name)


# === Action Steps ===
@when("the push is calculated")
def step_calculate_push(ctx: EngineScenarioContext) -> None:
    owner = ctx.repository.split("/", 1)[0]
    event = Event(
        name="github.push",
        source="github",
        timestamp=NOW,
        data={
            "ref": "refs/heads/main",
            "repository": {"full_name": ctx.repository, "owner": {"login": owner}},
            "commits": ctx.commits,
        },
    )
    service = MetricCalculationService(ctx.event_store, ctx.metric_store)
    ctx.calculation = run_async(service.ingest(event))


@when(parsers.parse("deployment frequency is calculated for {days:d} days"))
def step_deployment_frequency(ctx: EngineScenarioContext, days: int) -> None:
    ctx.dora_report = run_async(_engine(ctx).deployment_frequency(days))


@when(parsers.parse("change failure rate is calculated for {days:d} days"))
def step_change_failure_rate(ctx: EngineScenarioContext, days: int) -> None:
    ctx.dora_report = run_async(_engine(ctx).change_failure_rate(days))


@when(parsers.parse("lead time is calculated for {days:d} days"))
def step_lead_time(ctx: EngineScenarioContext, days: int) -> None:
    ctx.dora_report = run_async(_engine(ctx).lead_time(days))


@when(parsers.parse("commit analytics run for {days:d} days"))
def step_commit_analytics(ctx: EngineScenarioContext, days: int) -> None:
    analytics = AnalyzeCommits(ctx.metric_store, InMemoryCache(), lambda: NOW)
    ctx.report = run_async(analytics.call(days))


# === Classification Assertions ===
@then(
    parsers.parse(
        'the "{name}" metric for directory "{directory}" has value {value:d}'
    )
)
def step_directory_value(
    ctx: EngineScenarioContext, name: str, directory: str, value: int
) -> None:
    (metric,) = [m for m in ctx.stored(name) if m.dimensions["directory"] == directory]
    assert metric.value == value


@then(parsers.parse('a "{name}" metric with type "{commit_type}" is stored'))
def step_type_stored(ctx: EngineScenarioContext, name: str, commit_type: str) -> None:
    assert any(m.dimensions["commit_type"] == commit_type for m in ctx.stored(name))


@then(parsers.parse('exactly {count:d} "{name}" metric is stored'))
def step_metric_count(ctx: EngineScenarioContext, count: int, name: str) -> None:
    assert len(ctx.stored(name)) == count


@then(parsers.parse('every stored metric has repository "{repository}"'))
def step_every_repository(ctx: EngineScenarioContext, repository: str) -> None:
    metrics = ctx.stored()
    assert metrics
    assert {m.dimensions["repository"] for m in metrics} == {repository}


# === DORA Assertions ===
@then(parsers.parse("the reported value is {value:f}"))
def step_reported_value(ctx: EngineScenarioContext, value: float) -> None:
    assert ctx.dora_report.value == value


@then(parsers.parse('the rating is "{rating}"'))
def step_rating(ctx: EngineScenarioContext, rating: str) -> None:
    assert ctx.dora_report.rating == rating


# === Analytics Assertions ===
@then(parsers.parse('the report section "{section}" is empty'))
def step_section_empty(ctx: EngineScenarioContext, section: str) -> None:
    assert ctx.report is not None
    assert not ctx.report[section]


@then(parsers.parse('the report section "{section}" is not empty'))
def step_section_not_empty(ctx: EngineScenarioContext, section: str) -> None:
    assert ctx.report is not None
    assert ctx.report[section]


@then(parsers.parse('the report carries a "{kind}" warning'))
def step_warning(ctx: EngineScenarioContext, kind: str) -> None:
    assert ctx.report is not None
    assert kind in {warning.kind for warning in ctx.report.warnings}
