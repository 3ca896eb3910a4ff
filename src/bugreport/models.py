"""Issue data model used by the query engine and the report collaborators."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Flag, StrEnum, auto

from bugreport.repository import Repository

__all__ = [
    "Issue",
    "IssueCollection",
    "IssueKind",
    "IssueState",
]


class IssueState(StrEnum):
    """State of an issue or pull request."""

    OPEN = "open"
    CLOSED = "closed"


class IssueKind(Flag):
    """Kind of a record; combine members to select several kinds when loading."""

    ISSUE = auto()
    PULL_REQUEST = auto()
    COMMENT = auto()
    ALL = ISSUE | PULL_REQUEST | COMMENT


def _casefold(value: str | None) -> str | None:
    return value.casefold() if value is not None else None


@dataclass(frozen=True)
class Issue:
    """A single issue, pull request or comment record.

    Attributes:
        number: Issue number within its repository.
        repository: The repository the issue belongs to.
        title: Issue title.
        labels: Names of the labels applied to the issue.
        milestone: Milestone title, or None if no milestone is set.
        assignee: Login of the assignee, or None if unassigned.
        state: Open or closed.
        kind: Issue, pull request or comment.
        html_url: Link to the issue on GitHub.
        created_at: Creation timestamp, if known.
        updated_at: Last update timestamp, if known.
        closed_at: Closing timestamp, if closed.
    """

    number: int
    repository: Repository
    title: str = ""
    labels: tuple[str, ...] = ()
    milestone: str | None = None
    assignee: str | None = None
    state: IssueState = IssueState.OPEN
    kind: IssueKind = IssueKind.ISSUE
    html_url: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None
    closed_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.state is IssueState.OPEN

    @property
    def is_pull_request(self) -> bool:
        return self.kind is IssueKind.PULL_REQUEST

    @property
    def is_issue_or_comment(self) -> bool:
        return self.kind in (IssueKind.ISSUE, IssueKind.COMMENT)

    def has_label(self, label_name: str) -> bool:
        """Check whether the issue carries a label (case-insensitive)."""
        folded = label_name.casefold()
        return any(label.casefold() == folded for label in self.labels)

    def is_milestone(self, milestone_name: str | None) -> bool:
        """Check the milestone (case-insensitive); None matches issues without one."""
        return _casefold(self.milestone) == _casefold(milestone_name)

    def has_assignee(self, assignee_name: str | None) -> bool:
        """Check the assignee (case-insensitive); None matches unassigned issues."""
        return _casefold(self.assignee) == _casefold(assignee_name)

    def with_labels(self, labels: Iterable[str]) -> Issue:
        """Return a copy of the issue with a different label list."""
        return replace(self, labels=tuple(labels))

    def __str__(self) -> str:
        return f"{self.repository.repo_name}#{self.number}"


class IssueCollection:
    """Read-only view over a set of issues with name-existence lookups.

    Used by expression validation to check that referenced labels, milestones
    and assignees actually occur in the data.
    """

    def __init__(self, issues: Iterable[Issue]) -> None:
        self._issues = tuple(issues)
        self._labels = self._unique(label for issue in self._issues for label in issue.labels)
        self._milestones = self._unique(
            issue.milestone for issue in self._issues if issue.milestone is not None
        )
        self._assignees = self._unique(
            issue.assignee for issue in self._issues if issue.assignee is not None
        )

    @staticmethod
    def _unique(names: Iterable[str]) -> dict[str, str]:
        # casefolded name -> first seen spelling
        unique: dict[str, str] = {}
        for name in names:
            unique.setdefault(name.casefold(), name)
        return unique

    @property
    def issues(self) -> tuple[Issue, ...]:
        return self._issues

    @property
    def labels(self) -> list[str]:
        return list(self._labels.values())

    @property
    def milestones(self) -> list[str]:
        return list(self._milestones.values())

    @property
    def assignees(self) -> list[str]:
        return list(self._assignees.values())

    def has_label(self, label_name: str) -> bool:
        return label_name.casefold() in self._labels

    def has_milestone(self, milestone_name: str | None) -> bool:
        """Check whether any issue uses the milestone; None always exists."""
        return milestone_name is None or milestone_name.casefold() in self._milestones

    def has_user(self, user_name: str | None) -> bool:
        """Check whether any issue is assigned to the user; None always exists."""
        return user_name is None or user_name.casefold() in self._assignees

    def __iter__(self) -> Iterator[Issue]:
        return iter(self._issues)

    def __len__(self) -> int:
        return len(self._issues)
