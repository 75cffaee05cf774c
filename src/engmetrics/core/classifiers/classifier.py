"""Event-to-metric classification entry point."""

from enum import StrEnum

from engmetrics.core.classifiers.base import ClassificationResult, ClassifierOptions
from engmetrics.core.classifiers.github import classify_github
from engmetrics.core.classifiers.jira import classify_jira
from engmetrics.core.classifiers.providers import (
    classify_bitbucket,
    classify_ci,
    classify_generic,
    classify_gitlab,
    classify_incident,
    classify_task,
)
from engmetrics.core.logs import get_logger
from engmetrics.core.models import Event

logger = get_logger(__name__)


class EventCategory(StrEnum):
    """Known event families, selected by the first segment of the event name."""

    GITHUB = "github"
    JIRA = "jira"
    GITLAB = "gitlab"
    BITBUCKET = "bitbucket"
    CI = "ci"
    TASK = "task"
    INCIDENT = "incident"
    GENERIC = "generic"

    @classmethod
    def of(cls, event: Event) -> "EventCategory":
        prefix = event.name.split(".", 1)[0].lower()
        try:
            return cls(prefix)
        except ValueError:
            return cls.GENERIC


class MetricClassifier:
    """Maps one Event to zero or more metric definitions.

    Classification is pure. Malformed payloads degrade to fewer metrics,
    never to an exception.

    Example:
        ```python
        classifier = MetricClassifier(ClassifierOptions(hotspot_depth=2))
        result = classifier.classify(event)
        names = result.names()
        ```
    """

    def __init__(self, options: ClassifierOptions | None = None) -> None:
        self._options = options or ClassifierOptions()

    @property
    def options(self) -> ClassifierOptions:
        return self._options

    def classify(self, event: Event) -> ClassificationResult:
        """Classify an event.

        Args:
            event: A normalized event.

        Returns:
            ClassificationResult holding unsaved metric definitions.
        """
        category = EventCategory.of(event)
        try:
            return self._dispatch(category, event)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            logger.with_fields(
                event_name=event.name, category=str(category), error=str(exc)
            ).warning("Classification degraded to no metrics")
            return ClassificationResult()

    def _dispatch(self, category: EventCategory, event: Event) -> ClassificationResult:
        options = self._options
        match category:
            case EventCategory.GITHUB:
                return classify_github(event, options)
            case EventCategory.JIRA:
                return classify_jira(event, options)
            case EventCategory.GITLAB:
                return classify_gitlab(event, options)
            case EventCategory.BITBUCKET:
                return classify_bitbucket(event, options)
            case EventCategory.CI:
                return classify_ci(event, options)
            case EventCategory.TASK:
                return classify_task(event, options)
            case EventCategory.INCIDENT:
                return classify_incident(event, options)
            case EventCategory.GENERIC:
                return classify_generic(event, options)
