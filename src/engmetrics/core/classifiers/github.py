"""Classification rules for GitHub webhook events.

Event names follow ``github.<event>[.<action>]``; when the action is not part
of the name it is taken from the payload's ``action`` field.
"""

from collections.abc import Callable
from typing import Any

from engmetrics.core.classifiers.base import (
    UNKNOWN,
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
from engmetrics.core.classifiers.commits import push_facets
from engmetrics.core.models import Dimensions, Event

Rule = Callable[[Event, str | None, Dimensions, ClassifierOptions], ClassificationResult]


def branch_from_ref(ref: Any) -> str:
    """Branch name from a git ref; tags are reported as ``tag:<name>``."""
    if not isinstance(ref, str) or not ref:
        return UNKNOWN
    if ref.startswith("refs/heads/"):
        return ref.removeprefix("refs/heads/")
    if ref.startswith("refs/tags/"):
        return "tag:" + ref.removeprefix("refs/tags/")
    return ref


def push_author(data: dict[str, Any]) -> str:
    """Head commit author, then pusher, then sender."""
    for path in (
        ("head_commit", "author", "username"),
        ("head_commit", "author", "name"),
        ("pusher", "name"),
        ("sender", "login"),
    ):
        value = dig(data, *path)
        if isinstance(value, str) and value:
            return value
    return UNKNOWN


def classify_push(
    event: Event, action: str | None, dims: Dimensions, options: ClassifierOptions
) -> ClassificationResult:
    result = ClassificationResult()
    commits = as_list(event.data.get("commits"))
    author = push_author(event.data)
    result.add("github.push.total", 1, dims)
    result.add(
        "github.push.branch_activity",
        1,
        {**dims, "branch": branch_from_ref(event.data.get("ref"))},
    )
    result.add("github.push.commits.total", len(commits), dims)
    result.add("github.push.by_author", len(commits), {**dims, "author": author})
    result.extend(push_facets(commits, dims, options, author))
    return result


def classify_pull_request(
    event: Event, action: str | None, dims: Dimensions, options: ClassifierOptions
) -> ClassificationResult:
    action = action or "total"
    result = ClassificationResult()
    pull = event.data.get("pull_request")
    result.add("github.pull_request.total", 1, {**dims, "action": action})
    result.add(f"github.pull_request.{action}", 1, dims)
    result.add(
        "github.pull_request.by_author",
        1,
        {**dims, "author": event_author(event.data), "action": action},
    )
    if action == "closed" and dig(pull, "merged") is True:
        result.add("github.pull_request.merged", 1, dims)
        elapsed = seconds_between(dig(pull, "created_at"), dig(pull, "merged_at"))
        if elapsed is not None:
            result.add("github.pull_request.time_to_merge", int(elapsed // 60), dims)
    return result


def classify_issues(
    event: Event, action: str | None, dims: Dimensions, options: ClassifierOptions
) -> ClassificationResult:
    action = action or "total"
    result = ClassificationResult()
    issue = event.data.get("issue")
    result.add("github.issues.total", 1, {**dims, "action": action})
    result.add(f"github.issues.{action}", 1, dims)
    result.add(
        "github.issues.by_author",
        1,
        {**dims, "author": event_author(event.data), "action": action},
    )
    if action == "opened":
        result.add("github.issue.created", 1, dims)
    elif action == "closed":
        result.add("github.issue.closed", 1, dims)
        elapsed = seconds_between(dig(issue, "created_at"), dig(issue, "closed_at"))
        if elapsed is not None:
            result.add("github.issues.time_to_close", round(elapsed / 3600, 2), dims)
    return result


def _check_rule(kind: str) -> Rule:
    def classify(
        event: Event, action: str | None, dims: Dimensions, options: ClassifierOptions
    ) -> ClassificationResult:
        check = event.data.get(kind)
        dimensions = dict(dims)
        if isinstance(check, dict):
            dimensions["status"] = text(check.get("status"))
            dimensions["conclusion"] = text(check.get("conclusion"))
        result = ClassificationResult()
        result.add(f"github.{kind}.{action or 'total'}", 1, dimensions)
        return result

    return classify


def _ref_rule(kind: str) -> Rule:
    def classify(
        event: Event, action: str | None, dims: Dimensions, options: ClassifierOptions
    ) -> ClassificationResult:
        ref_type = text(event.data.get("ref_type"))
        dimensions: Dimensions = {**dims, "ref_type": ref_type}
        if ref_type == "branch" and isinstance(event.data.get("ref"), str):
            dimensions["branch"] = event.data["ref"]
        result = ClassificationResult()
        result.add(f"github.{kind}.total", 1, dimensions)
        result.add(f"github.{kind}.{ref_type}", 1, dimensions)
        return result

    return classify


def _deployment_dimensions(data: dict[str, Any], dims: Dimensions) -> Dimensions:
    deployment = data.get("deployment")
    dimensions: Dimensions = {
        **dims,
        "environment": text(dig(deployment, "environment")),
    }
    for key in ("id", "ref", "task"):
        value = dig(deployment, key)
        if value is not None:
            dimensions["deployment_id" if key == "id" else key] = text(value)
    return dimensions


def classify_deployment(
    event: Event, action: str | None, dims: Dimensions, options: ClassifierOptions
) -> ClassificationResult:
    result = ClassificationResult()
    result.add("github.deployment.total", 1, _deployment_dimensions(event.data, dims))
    return result


def classify_deployment_status(
    event: Event, action: str | None, dims: Dimensions, options: ClassifierOptions
) -> ClassificationResult:
    state = text(dig(event.data, "deployment_status", "state"))
    dimensions = {**_deployment_dimensions(event.data, dims), "state": state}
    result = ClassificationResult()
    result.add("github.deployment_status.total", 1, dimensions)
    result.add(f"github.deployment_status.{state}", 1, dimensions)
    if state == "success":
        elapsed = seconds_between(
            dig(event.data, "deployment", "created_at"),
            dig(event.data, "deployment_status", "created_at"),
        )
        if elapsed is not None and elapsed > 0:
            result.add("github.deployment.duration", elapsed, dimensions)
    elif state in ("failure", "error"):
        result.add("github.deployment.failure", 1, dimensions)
    return result


def classify_workflow_run(
    event: Event, action: str | None, dims: Dimensions, options: ClassifierOptions
) -> ClassificationResult:
    action = action or "total"
    run = event.data.get("workflow_run")
    conclusion = text(dig(run, "conclusion"))
    dimensions: Dimensions = dict(dims)
    if isinstance(run, dict):
        dimensions["workflow_name"] = text(run.get("name"))
        dimensions["conclusion"] = conclusion
    result = ClassificationResult()
    result.add("github.workflow_run.total", 1, {**dimensions, "action": action})
    result.add(f"github.workflow_run.{action}", 1, dimensions)
    result.add(f"github.workflow_run.conclusion.{conclusion}", 1, dims)
    if action == "completed":
        elapsed = seconds_between(dig(run, "created_at"), dig(run, "updated_at"))
        if elapsed is not None:
            result.add("github.workflow_run.duration", elapsed, dimensions)
    return result


_TEST_STEP_WORDS = ("test", "spec", "jest", "unit", "integration", "e2e")
_DEPLOY_STEP_WORDS = ("deploy", "publish", "release", "push to")


def _step_metrics(
    result: ClassificationResult, steps: list[Any], dims: Dimensions
) -> None:
    """Test and deploy step durations and outcomes of a completed job.

    A job whose matched steps all succeed emits ``github.ci.<kind>.completed``,
    otherwise ``github.ci.<kind>.failed``. Only one of the two is written per
    job so deployment counts see each job once.
    """
    for kind, words in (("test", _TEST_STEP_WORDS), ("deploy", _DEPLOY_STEP_WORDS)):
        matched = [
            step
            for step in steps
            if isinstance(step, dict)
            and any(word in str(step.get("name", "")).lower() for word in words)
        ]
        if not matched:
            continue
        total = 0.0
        for step in matched:
            step_dims = {**dims, "step_name": text(step.get("name"))}
            elapsed = seconds_between(step.get("started_at"), step.get("completed_at"))
            if elapsed is not None:
                total += elapsed
                result.add(f"github.workflow_step.{kind}.duration", elapsed, step_dims)
            outcome = str(step.get("conclusion", "")).lower()
            if outcome == "success":
                result.add(f"github.workflow_step.{kind}.success", 1, step_dims)
            elif outcome in ("failure", "cancelled", "timed_out"):
                result.add(f"github.workflow_step.{kind}.failure", 1, step_dims)
        if total > 0:
            result.add(f"github.ci.{kind}.duration", total, dims)
        passed = all(str(step.get("conclusion", "")).lower() == "success" for step in matched)
        if passed:
            result.add(f"github.ci.{kind}.completed", 1, dims)
        else:
            result.add(f"github.ci.{kind}.failed", 1, dims)


def classify_workflow_job(
    event: Event, action: str | None, dims: Dimensions, options: ClassifierOptions
) -> ClassificationResult:
    action = action or "total"
    job = event.data.get("workflow_job")
    dimensions: Dimensions = dict(dims)
    if isinstance(job, dict):
        dimensions.update(
            workflow_name=text(job.get("workflow_name")),
            job_name=text(job.get("name")),
            branch=text(job.get("head_branch")),
            conclusion=text(job.get("conclusion")),
            status=text(job.get("status")),
        )
    result = ClassificationResult()
    result.add("github.workflow_job.total", 1, {**dimensions, "action": action})
    result.add(f"github.workflow_job.{action}", 1, dimensions)
    conclusion = dig(job, "conclusion")
    if conclusion:
        result.add(f"github.workflow_job.conclusion.{conclusion}", 1, dimensions)
    if action == "completed" and isinstance(job, dict):
        elapsed = seconds_between(job.get("started_at"), job.get("completed_at"))
        if elapsed is not None:
            result.add("github.workflow_job.duration", elapsed, dimensions)
            result.add("github.ci.build.duration", elapsed, dimensions)
        _step_metrics(result, as_list(job.get("steps")), dimensions)
    return result


def classify_ci(
    event: Event, action: str | None, dims: Dimensions, options: ClassifierOptions
) -> ClassificationResult:
    """GitHub-hosted CI events: ``github.ci.<build|deploy|lead_time>[.<state>]``."""
    parts = event.name.split(".")
    operation = parts[2] if len(parts) > 2 else "event"
    state = parts[3] if len(parts) > 3 else None
    result = ClassificationResult()
    if operation == "lead_time":
        result.add("github.ci.lead_time", as_number(event.data.get("value")), dims)
        return result
    if operation not in ("build", "deploy"):
        result.add(f"github.ci.{operation}.{state or 'generic'}", 1, dims)
        return result
    state = state or "total"
    result.add(f"github.ci.{operation}.total", 1, dims)
    if state != "total":
        result.add(f"github.ci.{operation}.{state}", 1, dims)
    duration = as_number(event.data.get("duration"))
    if duration > 0:
        result.add(f"github.ci.{operation}.duration", duration, dims)
    if operation == "deploy" and state == "failed":
        result.add("github.ci.deploy.incident", 1, dims)
    if "lead_time" in event.data:
        result.add("github.ci.lead_time", as_number(event.data["lead_time"]), dims)
    return result


def classify_repository(
    event: Event, action: str | None, dims: Dimensions, options: ClassifierOptions
) -> ClassificationResult:
    result = ClassificationResult()
    result.add("github.repository.total", 1, dims)
    if action:
        result.add(f"github.repository.{action}", 1, dims)
    return result


RULES: dict[str, Rule] = {
    "push": classify_push,
    "pull_request": classify_pull_request,
    "issues": classify_issues,
    "check_run": _check_rule("check_run"),
    "check_suite": _check_rule("check_suite"),
    "create": _ref_rule("create"),
    "delete": _ref_rule("delete"),
    "deployment": classify_deployment,
    "deployment_status": classify_deployment_status,
    "workflow_run": classify_workflow_run,
    "workflow_job": classify_workflow_job,
    "ci": classify_ci,
    "repository": classify_repository,
}


def classify_github(event: Event, options: ClassifierOptions) -> ClassificationResult:
    """Classify a ``github.*`` event into metric definitions."""
    parts = event.name.split(".")
    kind = parts[1] if len(parts) > 1 else "event"
    action = parts[2] if len(parts) > 2 else None
    if action is None and isinstance(event.data.get("action"), str):
        action = event.data["action"]
    dims = repository_dimensions(event)
    rule = RULES.get(kind)
    if rule is None:
        result = ClassificationResult()
        result.add(f"github.{kind}.{action or 'total'}", 1, dims)
        return result
    return rule(event, action, dims, options)
