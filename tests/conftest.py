"""Shared test fixtures for all test modules."""

from collections.abc import AsyncGenerator, Callable
from pathlib import Path
from typing import Any

import pytest

from engmetrics.adapters.cache.in_memory import InMemoryCache
from engmetrics.adapters.storage.in_memory import (
    InMemoryEventStore,
    InMemoryMetricStore,
    InMemoryRepositoryRegistrar,
)
from engmetrics.adapters.storage.sqlite_events import SQLiteEventStore
from engmetrics.adapters.storage.sqlite_metrics import SQLiteMetricStore
from engmetrics.core.models import Metric

# 2023-11-14T22:13:20Z, a fixed "now" for windowed calculations.
NOW = 1_700_000_000.0
DAY = 86400.0


@pytest.fixture
def now() -> float:
    return NOW


@pytest.fixture
def clock() -> Callable[[], float]:
    """Clock pinned to NOW."""
    return lambda: NOW


@pytest.fixture
def metrics_db_path(tmp_path: Path) -> str:
    """Provide a temporary database path for metric storage tests."""
    return str(tmp_path / "metrics.db")


@pytest.fixture
def events_db_path(tmp_path: Path) -> str:
    """Provide a temporary database path for event storage tests."""
    return str(tmp_path / "events.db")


@pytest.fixture
def metric_store() -> InMemoryMetricStore:
    return InMemoryMetricStore()


@pytest.fixture
def event_store() -> InMemoryEventStore:
    return InMemoryEventStore()


@pytest.fixture
def registrar() -> InMemoryRepositoryRegistrar:
    return InMemoryRepositoryRegistrar()


@pytest.fixture
def cache(clock: Callable[[], float]) -> InMemoryCache:
    return InMemoryCache(clock=clock)


@pytest.fixture
async def sqlite_metric_store() -> AsyncGenerator[SQLiteMetricStore]:
    """In-memory SQLite metric store with proper cleanup."""
    store = SQLiteMetricStore(":memory:")
    yield store
    await store.close()


@pytest.fixture
async def sqlite_event_store() -> AsyncGenerator[SQLiteEventStore]:
    """In-memory SQLite event store with proper cleanup."""
    store = SQLiteEventStore(":memory:")
    yield store
    await store.close()


@pytest.fixture
def make_metric() -> Callable[..., Metric]:
    """Factory for unsaved metrics, timestamps given as days before NOW."""

    def factory(
        name: str,
        value: float = 1.0,
        days_ago: float = 1.0,
        source: str = "github",
        **dimensions: Any,
    ) -> Metric:
        return Metric(
            name=name,
            value=value,
            source=source,
            timestamp=NOW - days_ago * DAY,
            dimensions=dimensions,
        )

    return factory
