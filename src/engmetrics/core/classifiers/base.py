"""Shared types and payload helpers for event classification rules."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from engmetrics.core.models import DimensionValue, Dimensions, Event, MetricDefinition

UNKNOWN = "unknown"


class UnconventionalCommitMode(StrEnum):
    """What to do with commit messages outside the Conventional Commits grammar."""

    SKIP = "skip"
    OTHER = "other"


@dataclass(frozen=True)
class ClassifierOptions:
    """Tuning knobs for classification.

    Attributes:
        hotspot_depth: Number of leading path segments that identify a directory.
        unconventional_commits: Skip or emit ``commit_type="other"``.
    """

    hotspot_depth: int = 1
    unconventional_commits: UnconventionalCommitMode = UnconventionalCommitMode.SKIP

    def __post_init__(self) -> None:
        if self.hotspot_depth < 1:
            raise ValueError("hotspot_depth must be at least 1")


@dataclass
class ClassificationResult:
    """Metric definitions derived from one event."""

    metrics: list[MetricDefinition] = field(default_factory=list)

    def add(self, name: str, value: float, dimensions: Mapping[str, Any]) -> None:
        self.metrics.append(MetricDefinition(name, value, dict(dimensions)))

    def extend(self, definitions: list[MetricDefinition]) -> None:
        self.metrics.extend(definitions)

    def names(self) -> list[str]:
        return [metric.name for metric in self.metrics]

    def __len__(self) -> int:
        return len(self.metrics)


def dig(data: Any, *keys: str | int) -> Any:
    """Walk nested mappings and sequences, returning None on any miss."""
    current = data
    for key in keys:
        if isinstance(current, Mapping):
            current = current.get(key)
        elif isinstance(current, (list, tuple)) and isinstance(key, int):
            current = current[key] if -len(current) <= key < len(current) else None
        else:
            return None
        if current is None:
            return None
    return current


def as_list(value: Any) -> list[Any]:
    """Return value if it is a list, otherwise an empty list."""
    return value if isinstance(value, list) else []


def as_number(value: Any, default: float = 0.0) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return default
    return default


def parse_time(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp, returning None when unparseable."""
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def seconds_between(start: Any, end: Any) -> float | None:
    """Seconds from start to end, or None if either side is unparseable."""
    started, finished = parse_time(start), parse_time(end)
    if started is None or finished is None:
        return None
    if (started.tzinfo is None) != (finished.tzinfo is None):
        return None
    return (finished - started).total_seconds()


def repository_name(data: Mapping[str, Any]) -> str | None:
    """Return the ``org/repo`` name carried by a payload, if any."""
    repository = data.get("repository") if isinstance(data, Mapping) else None
    if isinstance(repository, str) and repository:
        return repository
    full_name = dig(repository, "full_name")
    if isinstance(full_name, str) and full_name:
        return full_name
    return None


def organization_name(data: Mapping[str, Any], repository: str | None) -> str | None:
    """Owner part of ``org/repo``, else ``repository.owner.login``."""
    if repository and "/" in repository:
        return repository.split("/", 1)[0]
    login = dig(data, "repository", "owner", "login")
    if isinstance(login, str) and login:
        return login
    return None


def repository_dimensions(event: Event) -> Dimensions:
    """Base dimensions for repository-scoped providers.

    ``repository`` and ``organization`` are only present when resolvable;
    ``source`` is always present.
    """
    dimensions: dict[str, DimensionValue] = {"source": event.source}
    repository = repository_name(event.data)
    if repository:
        dimensions["repository"] = repository
    organization = organization_name(event.data, repository)
    if organization:
        dimensions["organization"] = organization
    return dimensions


def event_author(data: Mapping[str, Any]) -> str:
    """Actor of an event: sender login, then pusher name, else unknown."""
    for path in (("sender", "login"), ("pusher", "name"), ("user", "login")):
        value = dig(data, *path)
        if isinstance(value, str) and value:
            return value
    return UNKNOWN


def text(value: Any, default: str = UNKNOWN) -> str:
    """Return value as a non-empty string, else default."""
    if value is None or value == "":
        return default
    return str(value)
