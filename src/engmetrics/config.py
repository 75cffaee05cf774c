"""Runtime configuration loaded from ``ENGMETRICS_*`` environment variables."""

import os
from collections.abc import Mapping
from dataclasses import dataclass

from engmetrics.core.classifiers.base import ClassifierOptions, UnconventionalCommitMode
from engmetrics.core.errors import ValidationFailure

ENV_PREFIX = "ENGMETRICS_"
_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def _int(env: Mapping[str, str], key: str, default: int, minimum: int) -> int:
    raw = env.get(ENV_PREFIX + key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationFailure(f"{ENV_PREFIX}{key} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ValidationFailure(f"{ENV_PREFIX}{key} must be >= {minimum}, got {value}")
    return value


def _periods(raw: str | None) -> tuple[int, ...]:
    if raw is None or raw.strip() == "":
        return (7, 30, 90)
    periods = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        if not part.isdigit() or int(part) <= 0:
            raise ValidationFailure(
                f"{ENV_PREFIX}DORA_PERIODS must be positive integers, got {part!r}"
            )
        periods.append(int(part))
    if not periods:
        raise ValidationFailure(f"{ENV_PREFIX}DORA_PERIODS is empty")
    return tuple(periods)


@dataclass(frozen=True)
class EngMetricsConfig:
    """Settings for storage, logging, caching and classification.

    Attributes:
        database_path: SQLite path, ``:memory:`` for an in-process database.
        log_level: Level name for ``configure_logging``.
        cache_ttl_seconds: TTL for cached reports.
        hotspot_directory_depth: Path segments identifying a hotspot directory.
        unconventional_commit_mode: ``skip`` or ``other``.
        dora_periods: Windows (days) for DORA snapshots.
    """

    database_path: str = ":memory:"
    log_level: str = "INFO"
    cache_ttl_seconds: int = 3600
    hotspot_directory_depth: int = 1
    unconventional_commit_mode: UnconventionalCommitMode = UnconventionalCommitMode.SKIP
    dora_periods: tuple[int, ...] = (7, 30, 90)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "EngMetricsConfig":
        """Build a config from the environment (or a given mapping).

        Raises:
            ValidationFailure: If a variable holds an invalid value.
        """
        env = os.environ if env is None else env
        log_level = env.get(ENV_PREFIX + "LOG_LEVEL", "INFO").strip().upper() or "INFO"
        if log_level not in _LOG_LEVELS:
            raise ValidationFailure(f"{ENV_PREFIX}LOG_LEVEL is not a level name: {log_level!r}")
        mode = env.get(ENV_PREFIX + "UNCONVENTIONAL_COMMITS", "skip").strip().lower() or "skip"
        try:
            commit_mode = UnconventionalCommitMode(mode)
        except ValueError:
            raise ValidationFailure(
                f"{ENV_PREFIX}UNCONVENTIONAL_COMMITS must be 'skip' or 'other', got {mode!r}"
            ) from None
        return cls(
            database_path=env.get(ENV_PREFIX + "DATABASE_PATH", ":memory:") or ":memory:",
            log_level=log_level,
            cache_ttl_seconds=_int(env, "CACHE_TTL", 3600, minimum=0),
            hotspot_directory_depth=_int(env, "HOTSPOT_DEPTH", 1, minimum=1),
            unconventional_commit_mode=commit_mode,
            dora_periods=_periods(env.get(ENV_PREFIX + "DORA_PERIODS")),
        )

    def classifier_options(self) -> ClassifierOptions:
        return ClassifierOptions(
            hotspot_depth=self.hotspot_directory_depth,
            unconventional_commits=self.unconventional_commit_mode,
        )
