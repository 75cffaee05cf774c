"""In-process evaluation of MetricQuery filters."""

import re
from collections.abc import Iterable
from functools import lru_cache

from engmetrics.core.models import Metric
from engmetrics.core.ports import MetricQuery


@lru_cache(maxsize=256)
def like_to_regex(pattern: str) -> re.Pattern[str]:
    """Compile a SQL LIKE pattern (``%`` and ``_`` wildcards), case-insensitive."""
    parts = []
    for char in pattern:
        if char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("^" + "".join(parts) + "$", re.IGNORECASE | re.DOTALL)


def matches(metric: Metric, query: MetricQuery) -> bool:
    """Return True if a metric satisfies every filter set on the query."""
    if query.name is not None and metric.name != query.name:
        return False
    if query.name_prefix is not None and not metric.name.startswith(query.name_prefix):
        return False
    if query.name_pattern is not None and not like_to_regex(query.name_pattern).match(
        metric.name
    ):
        return False
    if query.start is not None and metric.timestamp < query.start:
        return False
    if query.end is not None:
        if metric.timestamp > query.end:
            return False
        if query.end_exclusive and metric.timestamp == query.end:
            return False
    if query.dimensions and not metric.matches_dimensions(query.dimensions):
        return False
    return True


def apply(metrics: Iterable[Metric], query: MetricQuery) -> list[Metric]:
    """Filter, order and limit metrics according to the query."""
    selected = [metric for metric in metrics if matches(metric, query)]
    selected.sort(key=lambda m: (m.timestamp, m.id or 0), reverse=query.order == "desc")
    if query.limit is not None:
        selected = selected[: query.limit]
    return selected
