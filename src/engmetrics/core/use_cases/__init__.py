"""Application use cases composing the core ports."""

from engmetrics.core.use_cases.calculate_metrics import (
    CalculationResult,
    MetricCalculationService,
    unwrap_single,
)
from engmetrics.core.use_cases.dora import DoraMetric, DoraRatingEngine
from engmetrics.core.use_cases.fallback import (
    ChainResolution,
    ChainTier,
    FallbackChain,
    SeriesKind,
)
from engmetrics.core.use_cases.registration import RepositoryRegistration
from engmetrics.core.use_cases.rollup import MetricRollup, RollupResult

__all__ = [
    "CalculationResult",
    "ChainResolution",
    "ChainTier",
    "DoraMetric",
    "DoraRatingEngine",
    "FallbackChain",
    "MetricCalculationService",
    "MetricRollup",
    "RepositoryRegistration",
    "RollupResult",
    "SeriesKind",
    "unwrap_single",
]
