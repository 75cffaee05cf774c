"""Time-series reduction helpers.

Pure functions over ``(timestamp, value)`` series: fixed-width bucketing,
calendar-day grouping and order statistics.
"""

import math
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Literal

from engmetrics.core.models import Metric

DAY = 86400
WEEK = 7 * DAY
MONTH = 30 * DAY

INTERVALS: dict[str, int] = {"day": DAY, "week": WEEK, "month": MONTH}
# Bucket widths of the rollup aggregates, keyed by their name suffix.
ROLLUP_PERIODS: dict[str, int] = {"5min": 300, "hourly": 3600, "daily": DAY}

Point = tuple[float, float]
Reduction = Literal["sum", "count"]


@dataclass(frozen=True)
class Bucket:
    """A fixed-width slice of a window.

    Attributes:
        start: Inclusive bucket start (unix seconds).
        end: Exclusive bucket end (unix seconds).
        value: Sum of values or count of observations in the bucket.
        count: Number of observations in the bucket.
    """

    start: float
    end: float
    value: float
    count: int


def bucket_by(
    series: Iterable[Point],
    interval_seconds: float,
    window_start: float,
    window_end: float,
    reduce: Reduction = "count",
) -> list[Bucket]:
    """Partition ``[window_start, window_end)`` into fixed-width buckets.

    Every bucket is materialized, empty ones with value 0. An observation at
    time ``t`` lands in bucket ``floor((t - window_start) / interval_seconds)``.
    Observations outside the window are ignored.

    Args:
        series: ``(timestamp, value)`` pairs in any order.
        interval_seconds: Bucket width, must be positive.
        window_start: Inclusive window start.
        window_end: Exclusive window end.
        reduce: ``"count"`` counts observations, ``"sum"`` adds values.

    Returns:
        Buckets ordered by start time.
    """
    if interval_seconds <= 0:
        raise ValueError("interval_seconds must be positive")
    span = max(window_end - window_start, 0)
    size = math.ceil(span / interval_seconds)
    sums = [0.0] * size
    counts = [0] * size
    for timestamp, value in series:
        if timestamp < window_start or timestamp >= window_end:
            continue
        index = math.floor((timestamp - window_start) / interval_seconds)
        sums[index] += value
        counts[index] += 1
    buckets = []
    for index in range(size):
        start = window_start + index * interval_seconds
        end = min(start + interval_seconds, window_end)
        value = sums[index] if reduce == "sum" else float(counts[index])
        buckets.append(Bucket(start=start, end=end, value=value, count=counts[index]))
    return buckets


def is_rollup(metric: Metric) -> bool:
    """True for aggregates written by a rollup (period suffix plus time_period)."""
    return (
        metric.name.rsplit(".", 1)[-1] in ROLLUP_PERIODS
        and "time_period" in metric.dimensions
    )


def local_date(timestamp: float) -> date:
    """Return the local calendar date of a unix timestamp."""
    return datetime.fromtimestamp(timestamp).date()


def group_by_day(
    series: Iterable[Point],
    start: float,
    end: float,
    reduce: Reduction = "count",
) -> dict[str, float]:
    """Group observations by local calendar date, zero-filling every day.

    Returns:
        Mapping of ISO date string to count or sum, ordered by date.
    """
    first, last = local_date(start), local_date(end)
    days: dict[str, float] = {}
    current = first
    while current <= last:
        days[current.isoformat()] = 0.0
        current += timedelta(days=1)
    for timestamp, value in series:
        key = local_date(timestamp).isoformat()
        if key not in days:
            continue
        days[key] += value if reduce == "sum" else 1
    return days


def average(values: Sequence[float]) -> float:
    """Arithmetic mean, 0 for an empty sequence."""
    if not values:
        return 0.0
    return sum(values) / len(values)


def median(values: Sequence[float]) -> float:
    """Median, mean of the central pair for even lengths, 0 when empty."""
    if not values:
        return 0.0
    ordered = sorted(values)
    middle = len(ordered) // 2
    if len(ordered) % 2:
        return float(ordered[middle])
    return (ordered[middle - 1] + ordered[middle]) / 2


def percentile(values: Sequence[float], p: float) -> float:
    """Nearest-rank percentile.

    Index is ``ceil(n * p / 100) - 1`` clamped to ``[0, n - 1]``.
    The 50th percentile of an even-length series is the median, so
    ``percentile([10, 30, 50, 70, 90, 100], 50) == 60``.

    Args:
        values: Observations in any order.
        p: Percentile in ``(0, 100]``.

    Returns:
        The selected observation, 0 for an empty sequence.
    """
    if not 0 < p <= 100:
        raise ValueError(f"percentile must be in (0, 100], got {p}")
    if not values:
        return 0.0
    if p == 50:
        return median(values)
    ordered = sorted(values)
    index = math.ceil(len(ordered) * p / 100) - 1
    index = min(max(index, 0), len(ordered) - 1)
    return float(ordered[index])
