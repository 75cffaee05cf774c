"""Classification rules for GitLab, Bitbucket, CI, task and incident events."""

import re

from engmetrics.core.classifiers.base import (
    ClassificationResult,
    ClassifierOptions,
    as_list,
    as_number,
    dig,
    event_author,
    repository_dimensions,
    seconds_between,
    text,
)
from engmetrics.core.models import Dimensions, Event

_MERGE_REQUEST_RE = re.compile(r"^merge_request\.(opened|closed|merged)$")
_PULLREQUEST_RE = re.compile(r"^pullrequest:(created|approved|merged|rejected)$")
_CI_RE = re.compile(r"^(build|deploy)\.(started|completed|failed)$")
_TASK_RE = re.compile(r"^(created|completed|moved)$")


def _subtype(event: Event) -> str:
    return event.name.split(".", 1)[1] if "." in event.name else ""


def classify_gitlab(event: Event, options: ClassifierOptions) -> ClassificationResult:
    subtype = _subtype(event)
    dims = _gitlab_dimensions(event)
    result = ClassificationResult()
    if subtype == "push":
        result.add("gitlab.push.total", 1, dims)
        result.add("gitlab.push.commits", len(as_list(event.data.get("commits"))), dims)
    elif match := _MERGE_REQUEST_RE.match(subtype):
        result.add(f"gitlab.merge_request.{match.group(1)}", 1, dims)
    else:
        result.add(f"gitlab.{subtype or 'event'}.total", 1, dims)
    return result


def _gitlab_dimensions(event: Event) -> Dimensions:
    dims = repository_dimensions(event)
    path = dig(event.data, "project", "path_with_namespace")
    if isinstance(path, str) and path and "repository" not in dims:
        dims["repository"] = path
        dims["organization"] = path.split("/", 1)[0]
    return dims


def classify_bitbucket(event: Event, options: ClassifierOptions) -> ClassificationResult:
    subtype = _subtype(event)
    dims = repository_dimensions(event)
    result = ClassificationResult()
    if subtype == "repo:push":
        changes = as_list(dig(event.data, "push", "changes"))
        commits = sum(len(as_list(dig(change, "commits"))) for change in changes)
        result.add("bitbucket.push.total", 1, dims)
        result.add("bitbucket.push.commits", commits, dims)
    elif match := _PULLREQUEST_RE.match(subtype):
        result.add(
            f"bitbucket.pullrequest.{match.group(1)}",
            1,
            {**dims, "author": event_author(event.data)},
        )
    else:
        result.add(f"bitbucket.{subtype.replace(':', '.') or 'event'}.total", 1, dims)
    return result


def classify_ci(event: Event, options: ClassifierOptions) -> ClassificationResult:
    """Provider-neutral CI events: ``ci.<build|deploy>.<started|completed|failed>``."""
    subtype = _subtype(event)
    dims = repository_dimensions(event)
    environment = event.data.get("environment")
    if isinstance(environment, str) and environment:
        dims["environment"] = environment
    result = ClassificationResult()
    match = _CI_RE.match(subtype)
    if match is None:
        if subtype == "lead_time":
            result.add("ci.lead_time", as_number(event.data.get("value")), dims)
        else:
            result.add(f"ci.{subtype or 'event'}.total", 1, dims)
        return result
    kind, state = match.groups()
    result.add(f"ci.{kind}.{state}", 1, dims)
    duration = as_number(event.data.get("duration"))
    if duration > 0:
        result.add(f"ci.{kind}.duration", duration, dims)
    if kind == "deploy" and state == "failed":
        result.add("ci.deploy.incident", 1, dims)
    if "lead_time" in event.data:
        result.add("ci.lead_time", as_number(event.data["lead_time"]), dims)
    return result


def classify_task(event: Event, options: ClassifierOptions) -> ClassificationResult:
    subtype = _subtype(event)
    dims: Dimensions = {"source": event.source}
    project = event.data.get("project")
    if isinstance(project, str) and project:
        dims["project"] = project
    result = ClassificationResult()
    if _TASK_RE.match(subtype):
        result.add(f"task.{subtype}", 1, dims)
    else:
        result.add(f"task.{subtype or 'event'}.total", 1, dims)
    return result


def classify_incident(event: Event, options: ClassifierOptions) -> ClassificationResult:
    """Incident lifecycle events; resolution time is reported in seconds."""
    action = _subtype(event) or "event"
    dims = repository_dimensions(event)
    severity = event.data.get("severity")
    if severity is not None:
        dims["severity"] = text(severity)
    result = ClassificationResult()
    result.add("incident.total", 1, {**dims, "action": action})
    result.add(f"incident.{action}", 1, dims)
    if action == "resolved":
        elapsed = as_number(event.data.get("resolution_time"), default=-1)
        if elapsed < 0:
            measured = seconds_between(
                event.data.get("started_at"), event.data.get("resolved_at")
            )
            elapsed = measured if measured is not None else -1
        if elapsed >= 0:
            result.add("incident.resolution_time", elapsed, dims)
    return result


def classify_generic(event: Event, options: ClassifierOptions) -> ClassificationResult:
    result = ClassificationResult()
    result.add(f"{event.name}.total", 1, {"source": event.source})
    return result
