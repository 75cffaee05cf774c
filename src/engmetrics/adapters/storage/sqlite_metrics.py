"""SQLite storage adapter for metrics."""

from collections.abc import Mapping, Sequence
from typing import Any

from engmetrics.adapters.storage.sqlite_base import (
    SQLiteStorageBase,
    _json_dumps,
    _safe_json_loads,
)
from engmetrics.core.errors import StorageFailure
from engmetrics.core.models import Metric, normalize_dimensions
from engmetrics.core.ports import MetricQuery

_METRICS_SCHEMA = """
CREATE TABLE IF NOT EXISTS metrics (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    value REAL NOT NULL,
    source TEXT NOT NULL,
    timestamp REAL NOT NULL,
    dimensions TEXT NOT NULL DEFAULT '{}'
);
CREATE INDEX IF NOT EXISTS idx_metrics_name_timestamp ON metrics(name, timestamp);
CREATE INDEX IF NOT EXISTS idx_metrics_timestamp ON metrics(timestamp);
"""

_COLUMNS = "id, name, value, source, timestamp, dimensions"

_INSERT_METRIC = """
INSERT INTO metrics (name, value, source, timestamp, dimensions) VALUES (?, ?, ?, ?, ?)
"""

_SELECT_BY_ID = f"SELECT {_COLUMNS} FROM metrics WHERE id = ?"

_SELECT_BY_NAME_DESC = f"""
SELECT {_COLUMNS} FROM metrics WHERE name = ? ORDER BY timestamp DESC, id DESC
"""

_UPDATE_METRIC = """
UPDATE metrics SET name = ?, value = ?, source = ?, timestamp = ?, dimensions = ?
WHERE id = ?
"""

_COUNT_METRICS = "SELECT COUNT(*) FROM metrics"


def _dimension_clause(key: str, value: Any) -> tuple[str, list[Any]]:
    """WHERE fragment matching one dimension, comparing values as text."""
    path = '$."' + key.replace('"', '\\"') + '"'
    if isinstance(value, bool):
        return "json_type(dimensions, ?) = ?", [path, "true" if value else "false"]
    return "CAST(json_extract(dimensions, ?) AS TEXT) = ?", [path, str(value)]


def build_select(query: MetricQuery) -> tuple[str, tuple[Any, ...]]:
    """Translate a MetricQuery into a parameterized SELECT."""
    clauses: list[str] = []
    params: list[Any] = []
    if query.name is not None:
        clauses.append("name = ?")
        params.append(query.name)
    if query.name_prefix is not None:
        clauses.append("substr(name, 1, ?) = ?")
        params.extend([len(query.name_prefix), query.name_prefix])
    if query.name_pattern is not None:
        clauses.append("name LIKE ?")
        params.append(query.name_pattern)
    if query.start is not None:
        clauses.append("timestamp >= ?")
        params.append(query.start)
    if query.end is not None:
        clauses.append("timestamp < ?" if query.end_exclusive else "timestamp <= ?")
        params.append(query.end)
    for key, value in normalize_dimensions(query.dimensions).items():
        clause, clause_params = _dimension_clause(key, value)
        clauses.append(clause)
        params.extend(clause_params)

    sql = f"SELECT {_COLUMNS} FROM metrics"
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    direction = "DESC" if query.order == "desc" else "ASC"
    sql += f" ORDER BY timestamp {direction}, id {direction}"
    if query.limit is not None:
        sql += " LIMIT ?"
        params.append(query.limit)
    return sql, tuple(params)


class SQLiteMetricStore(SQLiteStorageBase):
    """SQLite implementation of MetricStorePort.

    Stores metrics using aiosqlite for non-blocking access, with dimensions
    kept as a JSON object column queried through ``json_extract``. Uses WAL
    mode for concurrent access on file databases.
    """

    _schema = _METRICS_SCHEMA

    @staticmethod
    def _to_row(metric: Metric) -> tuple[Any, ...]:
        return (
            metric.name,
            metric.value,
            metric.source,
            metric.timestamp,
            _json_dumps(metric.dimensions),
        )

    @staticmethod
    def _from_row(row: Any) -> Metric:
        return Metric(
            id=row[0],
            name=row[1],
            value=row[2],
            source=row[3],
            timestamp=row[4],
            dimensions=_safe_json_loads(row[5]),
        )

    async def save(self, metric: Metric) -> Metric:
        """Insert a metric and return it with its row id."""
        row_id = await self._insert(_INSERT_METRIC, self._to_row(metric))
        return metric.with_id(row_id)

    async def find_by_id(self, metric_id: int) -> Metric | None:
        row = await self._fetch_one(_SELECT_BY_ID, (metric_id,))
        return self._from_row(row) if row else None

    async def list_metrics(self, query: MetricQuery) -> Sequence[Metric]:
        """Return metrics matching the query."""
        sql, params = build_select(query)
        return [self._from_row(row) for row in await self._fetch_all(sql, params)]

    async def find_aggregate(
        self, name: str, dimensions: Mapping[str, Any]
    ) -> Metric | None:
        """Most recent metric with this name and exactly these dimensions."""
        for row in await self._fetch_all(_SELECT_BY_NAME_DESC, (name,)):
            metric = self._from_row(row)
            if metric.has_exact_dimensions(dimensions):
                return metric
        return None

    async def update(self, metric: Metric) -> Metric:
        """Replace the stored row for metric.id."""
        if metric.id is None:
            raise StorageFailure(f"cannot update unsaved metric {metric.name}")
        async with self.async_connection() as db:
            cursor = await db.execute(_UPDATE_METRIC, (*self._to_row(metric), metric.id))
            await db.commit()
            updated = cursor.rowcount
        if updated == 0:
            raise StorageFailure(f"metric {metric.id} does not exist")
        return metric

    async def count(self) -> int:
        row = await self._fetch_one(_COUNT_METRICS)
        return row[0] if row else 0
