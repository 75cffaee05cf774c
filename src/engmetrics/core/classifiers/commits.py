"""Commit-level facets of push events.

Directory and file-extension hotspots, Conventional Commits parsing, code
churn and daily commit volume. Every function here tolerates missing or
malformed payload fields by emitting nothing for the affected facet.
"""

import posixpath
import re
from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from engmetrics.core.classifiers.base import (
    UNKNOWN,
    ClassifierOptions,
    UnconventionalCommitMode,
    as_list,
    as_number,
    dig,
    parse_time,
)
from engmetrics.core.models import MetricDefinition

CONVENTIONAL_TYPES = (
    "feat",
    "fix",
    "docs",
    "style",
    "refactor",
    "perf",
    "test",
    "build",
    "ci",
    "chore",
    "revert",
)

_CONVENTIONAL_RE = re.compile(
    r"^(?P<type>" + "|".join(CONVENTIONAL_TYPES) + r")"
    r"(?:\((?P<scope>[^)]+)\))?(?P<bang>!)?:\s*(?P<description>\S.*)$",
    re.IGNORECASE,
)

OTHER_TYPE = "other"
NO_SCOPE = "none"
ROOT_DIRECTORY = "root"
NO_EXTENSION = "none"

_FILE_LISTS = ("added", "modified", "removed")


@dataclass(frozen=True)
class ConventionalCommit:
    """Parsed Conventional Commits header.

    Attributes:
        type: Lower-cased commit type (feat, fix, ...) or ``other``.
        scope: Scope from parentheses, None when absent.
        breaking: True for ``!`` before the colon or a BREAKING CHANGE footer.
        description: Text after the colon.
        conventional: False when the message did not match the grammar.
    """

    type: str
    scope: str | None
    breaking: bool
    description: str
    conventional: bool = True


def parse_conventional_commit(
    message: Any,
    mode: UnconventionalCommitMode = UnconventionalCommitMode.SKIP,
) -> ConventionalCommit | None:
    """Parse the first line of a commit message.

    Args:
        message: Raw commit message. Non-strings yield None.
        mode: SKIP returns None for non-matching messages, OTHER returns a
            commit of type ``other``.

    Returns:
        The parsed commit, or None when there is nothing to classify.
    """
    if not isinstance(message, str) or not message.strip():
        return None
    header = message.strip().splitlines()[0].strip()
    footer_breaking = "BREAKING CHANGE" in message or "BREAKING-CHANGE" in message
    match = _CONVENTIONAL_RE.match(header)
    if match is None:
        if mode is UnconventionalCommitMode.SKIP:
            return None
        return ConventionalCommit(
            type=OTHER_TYPE,
            scope=None,
            breaking=footer_breaking,
            description=header,
            conventional=False,
        )
    scope = match.group("scope")
    return ConventionalCommit(
        type=match.group("type").lower(),
        scope=scope.strip() if scope else None,
        breaking=bool(match.group("bang")) or footer_breaking,
        description=match.group("description").strip(),
    )


def directory_of(path: str, depth: int = 1) -> str:
    """Leading ``depth`` directory segments of a file path.

    Files at the repository root map to ``root``.
    """
    directory = posixpath.dirname(path.strip("/"))
    if not directory or directory == ".":
        return ROOT_DIRECTORY
    return "/".join(directory.split("/")[:depth])


def extension_of(path: str) -> str:
    """File extension without the dot, lower-cased, or ``none``."""
    extension = posixpath.splitext(posixpath.basename(path))[1]
    return extension[1:].lower() if extension else NO_EXTENSION


def touched_files(commits: list[Any]) -> list[str]:
    """Every added, modified or removed path across commits, in order."""
    paths: list[str] = []
    for commit in commits:
        for key in _FILE_LISTS:
            paths.extend(
                path for path in as_list(dig(commit, key)) if isinstance(path, str) and path
            )
    return paths


def file_change_definitions(
    commits: list[Any], base: Mapping[str, Any], options: ClassifierOptions
) -> list[MetricDefinition]:
    """Directory and extension hotspot metrics plus distinct file counts."""
    definitions: list[MetricDefinition] = []
    for key in _FILE_LISTS:
        distinct = {
            path
            for commit in commits
            for path in as_list(dig(commit, key))
            if isinstance(path, str) and path
        }
        if distinct:
            definitions.append(
                MetricDefinition(f"github.push.files_{key}", len(distinct), dict(base))
            )

    paths = touched_files(commits)
    directories = Counter(directory_of(path, options.hotspot_depth) for path in paths)
    extensions = Counter(extension_of(path) for path in paths)
    for directory, count in sorted(directories.items()):
        definitions.append(
            MetricDefinition(
                "commit.directory_change", count, {**base, "directory": directory}
            )
        )
    for extension, count in sorted(extensions.items()):
        definitions.append(
            MetricDefinition(
                "commit.file_extension_change", count, {**base, "extension": extension}
            )
        )
    return definitions


def commit_author(commit: Any, fallback: str) -> str:
    for path in (("author", "username"), ("author", "name"), ("author", "email")):
        value = dig(commit, *path)
        if isinstance(value, str) and value:
            return value
    return fallback


def commit_type_definitions(
    commits: list[Any],
    base: Mapping[str, Any],
    options: ClassifierOptions,
    author: str = UNKNOWN,
) -> list[MetricDefinition]:
    """One ``commit.type`` per parseable commit, plus breaking-change markers."""
    definitions: list[MetricDefinition] = []
    for commit in commits:
        parsed = parse_conventional_commit(
            dig(commit, "message"), options.unconventional_commits
        )
        if parsed is None:
            continue
        dimensions = {
            **base,
            "commit_type": parsed.type,
            "commit_scope": parsed.scope or NO_SCOPE,
            "author": commit_author(commit, author),
        }
        definitions.append(MetricDefinition("commit.type", 1, dimensions))
        if parsed.breaking:
            definitions.append(MetricDefinition("commit.breaking_change", 1, dimensions))
    return definitions


def code_volume_definition(
    commits: list[Any], base: Mapping[str, Any], author: str = UNKNOWN
) -> MetricDefinition | None:
    """Sum of additions and deletions across commits that carry stats."""
    additions = deletions = 0
    seen_stats = False
    for commit in commits:
        stats = dig(commit, "stats")
        if not isinstance(stats, Mapping):
            continue
        seen_stats = True
        additions += int(as_number(stats.get("additions")))
        deletions += int(as_number(stats.get("deletions")))
    if not seen_stats:
        return None
    return MetricDefinition(
        "commit.code_volume",
        additions + deletions,
        {**base, "additions": additions, "deletions": deletions, "author": author},
    )


def daily_volume_definitions(
    commits: list[Any], base: Mapping[str, Any]
) -> list[MetricDefinition]:
    """Commit counts per commit date (from each commit's own timestamp)."""
    by_date: Counter[str] = Counter()
    for commit in commits:
        committed = parse_time(dig(commit, "timestamp"))
        if committed is not None:
            by_date[committed.date().isoformat()] += 1
    return [
        MetricDefinition("github.commit_volume.daily", count, {**base, "commit_date": day})
        for day, count in sorted(by_date.items())
    ]


def push_facets(
    commits: list[Any],
    base: Mapping[str, Any],
    options: ClassifierOptions,
    author: str = UNKNOWN,
) -> list[MetricDefinition]:
    """All commit-derived metrics for one push."""
    commits = [commit for commit in commits if isinstance(commit, Mapping)]
    if not commits:
        return []
    definitions = file_change_definitions(commits, base, options)
    definitions.extend(commit_type_definitions(commits, base, options, author))
    volume = code_volume_definition(commits, base, author)
    if volume is not None:
        definitions.append(volume)
    definitions.extend(daily_volume_definitions(commits, base))
    return definitions
