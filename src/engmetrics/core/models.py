"""Core domain models for engineering activity metrics."""

import time
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any

DimensionValue = str | int | float | bool
Dimensions = dict[str, DimensionValue]


def normalize_dimensions(raw: Mapping[Any, Any] | None) -> Dimensions:
    """Return a dimension map with string keys and scalar values.

    Keys are converted with ``str()`` so that ``{"repository": ...}`` and a
    key produced from an enum or symbol-like object collapse into one entry.
    Non-scalar values are stringified. ``None`` values are dropped.

    Args:
        raw: Mapping to normalize, may be None.

    Returns:
        A new dict, sorted by key for stable serialization.
    """
    if not raw:
        return {}
    normalized: Dimensions = {}
    for key, value in raw.items():
        if value is None:
            continue
        if not isinstance(value, (str, int, float, bool)):
            value = str(value)
        normalized[str(key)] = value
    return dict(sorted(normalized.items()))


class Rating(StrEnum):
    """DORA performance band."""

    ELITE = "elite"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    UNKNOWN = "unknown"


class AlertSeverity(StrEnum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class Event:
    """An immutable fact received from an external system.

    Attributes:
        name: Dotted event name (e.g., github.push).
        source: Originating system (e.g., github).
        data: JSON-like payload.
        timestamp: Unix timestamp in seconds, stamped on save when None.
        id: Store-assigned identifier, None before save.
    """

    name: str
    source: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: float | None = None
    id: int | None = None

    def __post_init__(self) -> None:
        if not self.name or not self.source:
            raise ValueError("Event name and source must be non-empty")
        if self.data is None:
            object.__setattr__(self, "data", {})

    def stamped(self) -> "Event":
        """Return a copy with the timestamp set to now when absent."""
        if self.timestamp is not None:
            return self
        return replace(self, timestamp=time.time())

    def with_id(self, event_id: int) -> "Event":
        """Return a stamped copy carrying the given id."""
        return replace(self.stamped(), id=event_id)


@dataclass(frozen=True)
class MetricDefinition:
    """An unsaved metric produced by classification.

    Attributes:
        name: Dotted metric name.
        value: Numeric observation.
        dimensions: Attributes used for filtering and grouping.
    """

    name: str
    value: float
    dimensions: Dimensions = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", float(self.value))
        object.__setattr__(self, "dimensions", normalize_dimensions(self.dimensions))

    def with_dimensions(self, **extra: DimensionValue) -> "MetricDefinition":
        """Return a copy with extra dimensions added (existing keys kept)."""
        merged = {**extra, **self.dimensions}
        return replace(self, dimensions=merged)


@dataclass(frozen=True)
class Metric:
    """A named, dimensioned, timestamped numeric observation.

    Attributes:
        name: Dotted metric name (e.g., github.push.commits.total).
        value: The observation, counts are stored as floats.
        source: Producing system.
        timestamp: Unix timestamp in seconds when the observation occurred.
        dimensions: Key-value attributes, always string keys.
        id: Store-assigned identifier, None until persisted.
    """

    name: str
    value: float
    source: str
    timestamp: float
    dimensions: Dimensions = field(default_factory=dict)
    id: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", float(self.value))
        object.__setattr__(self, "dimensions", normalize_dimensions(self.dimensions))

    @classmethod
    def from_definition(
        cls, definition: MetricDefinition, source: str, timestamp: float
    ) -> "Metric":
        return cls(
            name=definition.name,
            value=definition.value,
            source=source,
            timestamp=timestamp,
            dimensions=dict(definition.dimensions),
        )

    def with_id(self, metric_id: int) -> "Metric":
        return replace(self, id=metric_id)

    def dimension(self, key: str, default: Any = None) -> Any:
        """Look up a dimension value by key."""
        return self.dimensions.get(key, default)

    def matches_dimensions(self, wanted: Mapping[str, Any]) -> bool:
        """Return True if every wanted key-value pair is present.

        Values are compared as strings so that ``30`` and ``"30"`` match.
        """
        for key, value in normalize_dimensions(wanted).items():
            if key not in self.dimensions:
                return False
            if str(self.dimensions[key]) != str(value):
                return False
        return True

    def has_exact_dimensions(self, wanted: Mapping[str, Any]) -> bool:
        """Return True if the dimension sets are equal in both directions."""
        other = normalize_dimensions(wanted)
        return set(other) == set(self.dimensions) and self.matches_dimensions(other)


@dataclass(frozen=True)
class Alert:
    """A notification raised against a metric."""

    name: str
    severity: AlertSeverity
    metric: Metric
    threshold: float
    status: str = "active"
    timestamp: float = field(default_factory=time.time)
    id: int | None = None


@dataclass(frozen=True)
class Team:
    """An organizational unit owning repositories."""

    name: str
    slug: str
    description: str = ""
    id: int | None = None


@dataclass(frozen=True)
class CodeRepository:
    """A source repository, optionally assigned to a team."""

    name: str
    url: str | None = None
    provider: str = "github"
    team_id: int | None = None
    id: int | None = None
