"""Shared pytest fixtures for bug-report tests.

Issues are built with :func:`make_issue`, which can also be imported
directly where a fixture is inconvenient::

    from tests.conftest import make_issue
    issue = make_issue(1, labels=("bug",), milestone="2.0")
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from typing import Any

import pytest

from bugreport.models import Issue, IssueKind, IssueState
from bugreport.repository import Repository, RepositoryRegistry

COREFX = Repository.from_name("dotnet/corefx", alias="corefx")
COREFXLAB = Repository.from_name("dotnet/corefxlab")


def make_issue(
    number: int,
    labels: tuple[str, ...] = (),
    milestone: str | None = None,
    assignee: str | None = None,
    state: IssueState = IssueState.OPEN,
    kind: IssueKind = IssueKind.ISSUE,
    repository: Repository = COREFX,
    title: str = "",
) -> Issue:
    """Build an issue with an html_url matching its repository."""
    kind_path = "pull" if kind is IssueKind.PULL_REQUEST else "issues"
    return Issue(
        number=number,
        repository=repository,
        title=title or f"Issue {number}",
        labels=labels,
        milestone=milestone,
        assignee=assignee,
        state=state,
        kind=kind,
        html_url=f"{repository.html_url_prefix}{kind_path}/{number}",
    )


def raw_issue(number: int, repo_name: str = "dotnet/corefx", **fields: Any) -> dict[str, Any]:
    """Build an issue object in the GitHub REST shape."""
    data: dict[str, Any] = {
        "number": number,
        "title": f"Issue {number}",
        "html_url": f"https://github.com/{repo_name}/issues/{number}",
        "state": "open",
        "labels": [],
        "milestone": None,
        "assignee": None,
        "created_at": "2017-03-01T10:00:00Z",
        "updated_at": "2017-03-02T10:00:00Z",
        "closed_at": None,
    }
    data.update(fields)
    return data


@pytest.fixture
def registry() -> RepositoryRegistry:
    """Registry with dotnet/corefx (alias corefx) and dotnet/corefxlab."""
    return RepositoryRegistry([COREFX, COREFXLAB])


@pytest.fixture
def issue_factory() -> Callable[..., Issue]:
    return make_issue


@pytest.fixture
def issues() -> list[Issue]:
    """A small mixed set of issues across both repositories."""
    return [
        make_issue(1, labels=("bug", "area-System.Net"), milestone="2.0", assignee="alice"),
        make_issue(2, labels=("enhancement", "area-System.IO"), milestone="Future"),
        make_issue(3, labels=("bug",), state=IssueState.CLOSED, assignee="bob"),
        make_issue(4, labels=("question",), kind=IssueKind.PULL_REQUEST),
        make_issue(5, labels=("bug", "untriaged"), repository=COREFXLAB),
        make_issue(6, labels=("api-approved",), milestone="2.0", repository=COREFXLAB),
    ]


@pytest.fixture(autouse=True)
def reset_package_log_level() -> Iterator[None]:
    """Undo level changes made by setup_logging so caplog sees every record."""
    yield
    logging.getLogger("bugreport").setLevel(logging.NOTSET)
