"""Repository identities and the registry built during configuration loading."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import httpx

from bugreport.logging import get_logger

if TYPE_CHECKING:
    from bugreport.models import Issue
    from bugreport.query.expressions import Expression

logger = get_logger(__name__)

GITHUB_HTML_URL_PREFIX = "https://github.com/"

__all__ = [
    "GITHUB_HTML_URL_PREFIX",
    "Repository",
    "RepositoryError",
    "RepositoryRegistry",
]


class RepositoryError(ValueError):
    """Raised when a repository name or URL cannot be parsed."""

    pass


def _split_repo_name(repo_name: str) -> tuple[str, str]:
    parts = repo_name.strip().lower().split("/")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise RepositoryError(f"Invalid repository name format in repo '{repo_name}'")
    return parts[0], parts[1]


@dataclass(frozen=True)
class Repository:
    """A GitHub repository identity.

    Two repositories are equal when their lowercase ``owner/name`` match; the
    alias and filter query are descriptive only.

    Attributes:
        owner: Lowercase owner (organization or user) name.
        name: Lowercase repository name.
        alias: Optional short display name used in reports.
        filter_query: Optional expression; issues of this repository that do
            not match it are dropped when issues are loaded.
    """

    owner: str
    name: str
    alias: str | None = field(default=None, compare=False)
    filter_query: Expression | None = field(default=None, compare=False, repr=False)

    @classmethod
    def from_name(
        cls,
        repo_name: str,
        alias: str | None = None,
        filter_query: Expression | None = None,
    ) -> Repository:
        """Create a repository from an ``owner/name`` string.

        Raises:
            RepositoryError: If the name is not in ``owner/name`` form.
        """
        owner, name = _split_repo_name(repo_name)
        return cls(owner=owner, name=name, alias=alias, filter_query=filter_query)

    @property
    def repo_name(self) -> str:
        """Return the lowercase ``owner/name`` identity."""
        return f"{self.owner}/{self.name}"

    @property
    def display_name(self) -> str:
        """Return the alias if set, otherwise the repository name."""
        return self.alias or self.repo_name

    @property
    def html_url_prefix(self) -> str:
        """Return ``https://github.com/<owner>/<name>/``."""
        return f"{GITHUB_HTML_URL_PREFIX}{self.repo_name}/"

    def query_url(self, query_args: str) -> str:
        """Build the GitHub issue search URL for a query string.

        Args:
            query_args: GitHub search syntax, e.g. ``label:"bug" is:open``.

        Returns:
            The URL with the query URL-encoded into the ``q`` parameter.
        """
        return str(httpx.URL(f"{self.html_url_prefix}issues", params={"q": query_args}))

    def query_url_for_issues(self, query_prefix: str, issues: Iterable[Issue]) -> str:
        """Build a search URL that lists the given issue numbers explicitly."""
        numbers = " ".join(str(issue.number) for issue in issues)
        return self.query_url(f"{query_prefix} {numbers}".strip())

    def filter(self, issues: Iterable[Issue]) -> list[Issue]:
        """Drop issues of this repository that do not match its filter query.

        Issues from other repositories are kept unchanged.
        """
        if self.filter_query is None:
            return list(issues)
        filter_query = self.filter_query
        return [
            issue
            for issue in issues
            if issue.repository != self or filter_query.evaluate(issue)
        ]

    def __str__(self) -> str:
        if self.filter_query is None:
            return self.repo_name
        return f"{self.repo_name} filtered by '{self.filter_query}'"


class RepositoryRegistry:
    """Ordered set of known repositories.

    Built once while loading configuration and passed explicitly to the
    components that resolve repositories (issue loading, reports). Iteration
    follows definition order.

    Example:
        registry = RepositoryRegistry()
        corefx = registry.add("dotnet/corefx", alias="corefx")
        same = registry.from_html_url("https://github.com/dotnet/corefx/issues/1")
        assert same is corefx
    """

    def __init__(self, repositories: Iterable[Repository] = ()) -> None:
        self._repositories: dict[str, Repository] = {}
        for repo in repositories:
            self._register(repo)

    def _register(self, repo: Repository) -> Repository:
        existing = self._repositories.get(repo.repo_name)
        if existing is not None:
            return existing
        self._repositories[repo.repo_name] = repo
        logger.debug("Registered repository %s", repo.repo_name)
        return repo

    def add(
        self,
        repo_name: str,
        alias: str | None = None,
        filter_query: Expression | None = None,
    ) -> Repository:
        """Register a repository, or return the already registered one.

        Raises:
            RepositoryError: If the name is not in ``owner/name`` form.
        """
        existing = self.get(repo_name)
        if existing is not None:
            return existing
        return self._register(Repository.from_name(repo_name, alias, filter_query))

    def get(self, repo_name: str) -> Repository | None:
        """Look up a repository by ``owner/name`` (case-insensitive)."""
        return self._repositories.get(repo_name.strip().lower())

    def from_html_url(self, html_url: str) -> Repository:
        """Resolve the repository of a GitHub HTML URL, registering it if unknown.

        Raises:
            RepositoryError: If the URL does not contain an owner and a name.
        """
        if not html_url.startswith(GITHUB_HTML_URL_PREFIX):
            raise RepositoryError(f"Invalid GitHub URL '{html_url}', can't parse repo name")
        parts = html_url[len(GITHUB_HTML_URL_PREFIX) :].split("/")
        if len(parts) < 2 or not parts[0] or not parts[1]:
            raise RepositoryError(f"Invalid GitHub URL '{html_url}', can't parse repo name")
        return self.add(f"{parts[0]}/{parts[1]}")

    def repos_or_default(self, issues: Iterable[Issue]) -> list[Repository]:
        """Return the repositories of the issues in definition order.

        When there are no issues, the first defined repository is returned so
        that callers always have somewhere to link to.
        """
        used = {issue.repository for issue in issues}
        if not used:
            return list(self._repositories.values())[:1]
        return [repo for repo in self._repositories.values() if repo in used]

    def filter(self, issues: Iterable[Issue]) -> list[Issue]:
        """Apply every repository's filter query to the issues."""
        result = list(issues)
        for repo in self._repositories.values():
            result = repo.filter(result)
        return result

    def __iter__(self) -> Iterator[Repository]:
        return iter(self._repositories.values())

    def __len__(self) -> int:
        return len(self._repositories)

    def __contains__(self, repo: object) -> bool:
        return isinstance(repo, Repository) and repo.repo_name in self._repositories
