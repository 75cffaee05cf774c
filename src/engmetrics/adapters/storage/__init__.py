"""Storage adapters implementing core ports."""

from engmetrics.adapters.storage.in_memory import (
    InMemoryEventStore,
    InMemoryMetricStore,
    InMemoryRepositoryRegistrar,
)
from engmetrics.adapters.storage.sqlite_events import SQLiteEventStore
from engmetrics.adapters.storage.sqlite_metrics import SQLiteMetricStore

__all__ = [
    "InMemoryEventStore",
    "InMemoryMetricStore",
    "InMemoryRepositoryRegistrar",
    "SQLiteEventStore",
    "SQLiteMetricStore",
]
