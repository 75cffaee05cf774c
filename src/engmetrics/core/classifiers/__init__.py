"""Event classification rules."""

from engmetrics.core.classifiers.base import (
    ClassificationResult,
    ClassifierOptions,
    UnconventionalCommitMode,
)
from engmetrics.core.classifiers.classifier import EventCategory, MetricClassifier
from engmetrics.core.classifiers.commits import (
    ConventionalCommit,
    directory_of,
    extension_of,
    parse_conventional_commit,
)

__all__ = [
    "ClassificationResult",
    "ClassifierOptions",
    "ConventionalCommit",
    "EventCategory",
    "MetricClassifier",
    "UnconventionalCommitMode",
    "directory_of",
    "extension_of",
    "parse_conventional_commit",
]
