"""JSON cache of downloaded issues.

Cache files hold a JSON array of issue objects in the shape returned by the
GitHub REST API (``GET /repos/{owner}/{repo}/issues``), so the output of the
``fetch`` command can be written without transformation.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any

from bugreport.logging import get_logger
from bugreport.models import Issue, IssueKind, IssueState
from bugreport.repository import RepositoryError, RepositoryRegistry

logger = get_logger(__name__)

__all__ = [
    "IssueStoreError",
    "issue_from_json",
    "issue_to_json",
    "load_issues",
    "save_issues",
]


class IssueStoreError(Exception):
    """Raised when an issue cache file cannot be read or is malformed."""

    pass


def _parse_timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    # GitHub uses a trailing Z for UTC
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _format_timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat().replace("+00:00", "Z")


def _issue_kind(data: Mapping[str, Any]) -> IssueKind:
    if data.get("pull_request"):
        return IssueKind.PULL_REQUEST
    if "#issuecomment-" in data.get("html_url", ""):
        return IssueKind.COMMENT
    return IssueKind.ISSUE


def issue_from_json(data: Mapping[str, Any], registry: RepositoryRegistry) -> Issue:
    """Convert a GitHub REST issue object into an Issue.

    The repository is resolved from ``html_url`` and registered if unknown.

    Raises:
        IssueStoreError: If required fields are missing or malformed.
    """
    if not isinstance(data, Mapping):
        raise IssueStoreError(f"Issue record must be a JSON object, got {type(data).__name__}")
    try:
        html_url = data["html_url"]
        milestone = data.get("milestone")
        assignee = data.get("assignee")
        return Issue(
            number=int(data["number"]),
            repository=registry.from_html_url(html_url),
            title=data.get("title") or "",
            labels=tuple(label["name"] for label in data.get("labels") or ()),
            milestone=milestone["title"] if milestone else None,
            assignee=assignee["login"] if assignee else None,
            state=IssueState(data.get("state", "open")),
            kind=_issue_kind(data),
            html_url=html_url,
            created_at=_parse_timestamp(data.get("created_at")),
            updated_at=_parse_timestamp(data.get("updated_at")),
            closed_at=_parse_timestamp(data.get("closed_at")),
        )
    except (KeyError, TypeError, ValueError, RepositoryError) as e:
        raise IssueStoreError(f"Invalid issue record {data.get('html_url', '?')}: {e}") from e


def issue_to_json(issue: Issue) -> dict[str, Any]:
    """Convert an Issue into the GitHub REST issue shape."""
    data: dict[str, Any] = {
        "number": issue.number,
        "title": issue.title,
        "html_url": issue.html_url,
        "state": issue.state.value,
        "labels": [{"name": label} for label in issue.labels],
        "milestone": {"title": issue.milestone} if issue.milestone is not None else None,
        "assignee": {"login": issue.assignee} if issue.assignee is not None else None,
        "created_at": _format_timestamp(issue.created_at),
        "updated_at": _format_timestamp(issue.updated_at),
        "closed_at": _format_timestamp(issue.closed_at),
    }
    if issue.is_pull_request:
        data["pull_request"] = {"html_url": issue.html_url}
    return data


def _apply_aliases(
    issue: Issue,
    label_aliases: Mapping[str, str],
    milestone_aliases: Mapping[str, str],
) -> Issue:
    labels = tuple(dict.fromkeys(label_aliases.get(label.casefold(), label) for label in issue.labels))
    if labels != issue.labels:
        issue = issue.with_labels(labels)
    if issue.milestone is not None and issue.milestone.casefold() in milestone_aliases:
        issue = replace(issue, milestone=milestone_aliases[issue.milestone.casefold()])
    return issue


def _read_file(path: Path) -> list[Any]:
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise IssueStoreError(f"Cannot read issue file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise IssueStoreError(f"Invalid JSON in issue file {path}: {e}") from e
    if not isinstance(data, list):
        raise IssueStoreError(f"Issue file {path} must contain a JSON array")
    return data


def load_issues(
    paths: Iterable[Path],
    registry: RepositoryRegistry,
    label_aliases: Mapping[str, str] | None = None,
    milestone_aliases: Mapping[str, str] | None = None,
    kinds: IssueKind = IssueKind.ALL,
) -> list[Issue]:
    """Load issues from cache files.

    Label and milestone aliases are applied first, then the filter query of
    every repository in the registry.

    Args:
        paths: JSON cache files to read, in order.
        registry: Repository registry used to resolve issue repositories.
        label_aliases: Map of alias label name to its canonical name.
        milestone_aliases: Map of alias milestone title to its canonical title.
        kinds: Kinds of records to keep.

    Returns:
        The loaded issues in file order.

    Raises:
        IssueStoreError: If a file cannot be read or contains invalid records.
    """
    label_aliases = {alias.casefold(): name for alias, name in (label_aliases or {}).items()}
    milestone_aliases = {
        alias.casefold(): name for alias, name in (milestone_aliases or {}).items()
    }

    issues: list[Issue] = []
    for path in paths:
        records = _read_file(Path(path))
        loaded = [issue_from_json(record, registry) for record in records]
        kept = [
            _apply_aliases(issue, label_aliases, milestone_aliases)
            for issue in loaded
            if issue.kind & kinds
        ]
        logger.info("Loaded %d issues from %s", len(kept), path)
        issues.extend(kept)

    filtered = registry.filter(issues)
    if len(filtered) != len(issues):
        logger.info("Repository filter queries removed %d issues", len(issues) - len(filtered))
    return filtered


def save_issues(path: Path, issues: Iterable[Issue | Mapping[str, Any]]) -> int:
    """Write issues to a cache file.

    Args:
        path: Destination file; parent directories are created.
        issues: Issues, or raw GitHub REST issue objects.

    Returns:
        Number of issues written.

    Raises:
        IssueStoreError: If the file cannot be written.
    """
    records = [issue_to_json(issue) if isinstance(issue, Issue) else dict(issue) for issue in issues]
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(records, f, indent=2)
    except OSError as e:
        raise IssueStoreError(f"Cannot write issue file {path}: {e}") from e
    logger.info("Saved %d issues to %s", len(records), path)
    return len(records)
