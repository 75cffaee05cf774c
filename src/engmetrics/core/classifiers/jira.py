"""Classification rules for Jira webhook events (``jira.<subtype>``)."""

import re

from engmetrics.core.classifiers.base import (
    UNKNOWN,
    ClassificationResult,
    ClassifierOptions,
    dig,
    seconds_between,
    text,
)
from engmetrics.core.models import Dimensions, Event

_ISSUE_RE = re.compile(r"^issue_(created|updated|resolved|deleted)$")
_SPRINT_RE = re.compile(r"^sprint_(started|closed)$")


def jira_dimensions(event: Event) -> Dimensions:
    project = dig(event.data, "issue", "fields", "project", "key") or dig(
        event.data, "project", "key"
    )
    return {"project": text(project), "source": event.source}


def issue_type(event: Event) -> str:
    return text(dig(event.data, "issue", "fields", "issuetype", "name"), UNKNOWN).lower()


def classify_jira(event: Event, options: ClassifierOptions) -> ClassificationResult:
    """Classify a ``jira.*`` event into metric definitions."""
    subtype = event.name.removeprefix("jira.")
    dims = jira_dimensions(event)
    result = ClassificationResult()

    if match := _ISSUE_RE.match(subtype):
        action = match.group(1)
        result.add("jira.issue.total", 1, {**dims, "action": action})
        result.add(f"jira.issue.{action}", 1, dims)
        result.add(
            "jira.issue.by_type",
            1,
            {**dims, "issue_type": issue_type(event), "action": action},
        )
        if action == "resolved":
            result.add("jira.issue.closed", 1, dims)
            fields = dig(event.data, "issue", "fields")
            elapsed = seconds_between(
                dig(fields, "created"), dig(fields, "resolutiondate")
            )
            if elapsed is not None:
                result.add("jira.issue.resolution_time", round(elapsed / 3600, 2), dims)
        return result

    if match := _SPRINT_RE.match(subtype):
        result.add(f"jira.sprint.{match.group(1)}", 1, dims)
        return result

    result.add(f"jira.{subtype}.total", 1, dims)
    return result
