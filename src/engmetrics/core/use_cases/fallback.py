"""Ordered metric-name fallback chains.

A chain is a list of tiers, each naming one metric (or a LIKE pattern). Tiers
are queried in order and the first non-empty result wins; results from
different tiers are never merged.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from engmetrics.core.errors import SoftWarning, StorageFailure
from engmetrics.core.logs import get_logger
from engmetrics.core.models import Metric
from engmetrics.core.ports import MetricQuery, MetricStorePort
from engmetrics.core.timeseries import is_rollup

logger = get_logger(__name__)


class SeriesKind(StrEnum):
    """How a tier's metrics are reduced.

    SNAPSHOT tiers hold precomputed results (latest one wins), RAW tiers hold
    individual observations.
    """

    SNAPSHOT = "snapshot"
    RAW = "raw"


@dataclass(frozen=True)
class ChainTier:
    """One candidate source in a fallback chain.

    Attributes:
        name: Exact metric name, or None when ``pattern`` is used.
        pattern: LIKE pattern matched against metric names.
        kind: SNAPSHOT or RAW.
        exclude_prefixes: Names with these prefixes are dropped from pattern hits.
        exclude_suffixes: Names with these suffixes are dropped from pattern hits.
    """

    name: str | None = None
    pattern: str | None = None
    kind: SeriesKind = SeriesKind.RAW
    exclude_prefixes: tuple[str, ...] = ()
    exclude_suffixes: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if (self.name is None) == (self.pattern is None):
            raise ValueError("ChainTier needs exactly one of name or pattern")

    @property
    def label(self) -> str:
        return self.name if self.name is not None else f"pattern:{self.pattern}"

    def query(
        self,
        start: float,
        end: float,
        dimensions: Mapping[str, Any],
        end_exclusive: bool = False,
    ) -> MetricQuery:
        return MetricQuery(
            name=self.name,
            name_pattern=self.pattern,
            start=start,
            end=end,
            dimensions=dict(dimensions),
            order="asc",
            end_exclusive=end_exclusive,
        )

    def keep(self, metric: Metric) -> bool:
        """Pattern hits drop excluded names and rollup aggregates."""
        if self.pattern is not None and is_rollup(metric):
            return False
        if self.exclude_prefixes and metric.name.startswith(self.exclude_prefixes):
            return False
        return not (
            self.exclude_suffixes and metric.name.endswith(self.exclude_suffixes)
        )


@dataclass
class ChainResolution:
    """Result of walking a chain.

    Attributes:
        tier: The tier that produced data, None when every tier was empty.
        index: Zero-based position of that tier.
        metrics: Metrics from that tier only, ascending by timestamp.
        warnings: Storage failures encountered on the way.
    """

    tier: ChainTier | None = None
    index: int | None = None
    metrics: list[Metric] = field(default_factory=list)
    warnings: list[SoftWarning] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return bool(self.metrics)

    @property
    def source(self) -> str | None:
        return self.tier.label if self.tier else None

    @property
    def values(self) -> list[float]:
        return [metric.value for metric in self.metrics]

    @property
    def latest(self) -> Metric | None:
        return self.metrics[-1] if self.metrics else None


class FallbackChain:
    """Ordered tiers queried until one yields metrics.

    Example:
        ```python
        chain = FallbackChain([ChainTier("dora.lead_time", kind=SeriesKind.SNAPSHOT),
                               ChainTier("ci.lead_time")])
        resolution = await chain.resolve(store, start, end)
        ```
    """

    def __init__(self, tiers: Sequence[ChainTier]) -> None:
        self._tiers = tuple(tiers)

    @property
    def tiers(self) -> tuple[ChainTier, ...]:
        return self._tiers

    def __add__(self, other: "FallbackChain") -> "FallbackChain":
        return FallbackChain(self._tiers + other.tiers)

    def only(self, kind: SeriesKind) -> "FallbackChain":
        """Sub-chain holding the tiers of one kind, order preserved."""
        return FallbackChain([tier for tier in self._tiers if tier.kind == kind])

    async def resolve(
        self,
        store: MetricStorePort,
        start: float,
        end: float,
        dimensions: Mapping[str, Any] | None = None,
        snapshot_dimensions: Mapping[str, Any] | None = None,
        end_exclusive: bool = False,
    ) -> ChainResolution:
        """Walk the tiers in order and return the first non-empty one.

        A StorageFailure on one tier is logged, recorded as a warning and
        treated as no data for that tier.

        Args:
            store: Metric store to query.
            start: Inclusive window start.
            end: Window end, inclusive unless ``end_exclusive``.
            dimensions: Subset filter applied to every tier.
            snapshot_dimensions: Extra filter applied to SNAPSHOT tiers only.
            end_exclusive: Leave metrics stamped exactly at ``end`` out.
        """
        resolution = ChainResolution()
        base = dict(dimensions or {})
        for index, tier in enumerate(self._tiers):
            wanted = base
            if tier.kind is SeriesKind.SNAPSHOT and snapshot_dimensions:
                wanted = {**base, **snapshot_dimensions}
            try:
                found = await store.list_metrics(tier.query(start, end, wanted, end_exclusive))
            except StorageFailure as exc:
                resolution.warnings.append(SoftWarning.from_exception(exc, tier.label))
                logger.with_fields(metric=tier.label, error=str(exc)).warning(
                    "Metric query failed, treating as no data"
                )
                continue
            kept = [metric for metric in found if tier.keep(metric)]
            if kept:
                resolution.tier = tier
                resolution.index = index
                resolution.metrics = kept
                return resolution
        return resolution
