"""Query counts with GitHub links, and the HTML query report."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from bugreport.config import DEFAULT_REPORT_LINKS_MAX
from bugreport.logging import get_logger
from bugreport.models import Issue, IssueCollection
from bugreport.query.expressions import FALSE, Expression, MultiRepo, Or
from bugreport.query.github_query import to_github_query
from bugreport.query.untriaged import get_untriaged_reasons
from bugreport.report_config import Alert, NamedQuery, ReportConfig
from bugreport.repository import Repository, RepositoryRegistry

logger = get_logger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"
QUERY_REPORT_TEMPLATE = "query_report.html"

__all__ = [
    "CountLink",
    "QueryCount",
    "QueryReport",
    "QueryResult",
    "get_query_count",
]


@dataclass(frozen=True)
class CountLink:
    """Number of issues matching one part of a query in one repository.

    Attributes:
        count: Number of matching issues.
        description: ``[<repo>] <expression>`` shown as a tooltip.
        url: GitHub search URL. Parts that cannot be translated link to
            the matching issue numbers instead. None only when no issue matches.
    """

    count: int
    description: str
    url: str | None = None


@dataclass(frozen=True)
class QueryCount:
    """Total count of a query, optionally split into per-repository links."""

    total: int
    links: tuple[CountLink, ...] = ()


def _repo_count_links(
    query: Expression, issues: Sequence[Issue], repo: Repository
) -> Iterator[CountLink]:
    if isinstance(query, MultiRepo):
        query = query.get_expression(repo)
    if query is FALSE:
        # Query does not apply to this repository
        return

    repo_issues = [issue for issue in issues if issue.repository == repo]
    parts = query.operands if isinstance(query, Or) else (query,)
    for part in parts:
        part_issues = part.filter(repo_issues)
        query_args = to_github_query(part, repo)
        if query_args is not None:
            url: str | None = repo.query_url(query_args)
        elif part_issues:
            url = repo.query_url_for_issues("", part_issues)
        else:
            url = None
        yield CountLink(
            count=len(part_issues),
            description=f"[{repo.display_name}] {part}",
            url=url,
        )


def get_query_count(
    query: Expression,
    issues: Sequence[Issue],
    registry: RepositoryRegistry,
    links_max: int = DEFAULT_REPORT_LINKS_MAX,
) -> QueryCount:
    """Count the issues of a query and build GitHub links for the count.

    The normalized query is resolved per repository and each of its OR
    branches becomes one link. Links are dropped when there would be none
    or more than ``links_max``.

    Args:
        query: The query the issues were selected with.
        issues: Issues matching the query.
        registry: Configured repositories.
        links_max: Maximum number of links to show.

    Returns:
        The total count and the links.
    """
    normalized = query.normalized
    links = tuple(
        link
        for repo in registry.repos_or_default(issues)
        for link in _repo_count_links(normalized, issues, repo)
    )
    if not links or len(links) > links_max:
        links = ()
    return QueryCount(total=len(issues), links=links)


@dataclass(frozen=True)
class QueryResult:
    """Issues selected by one named query.

    Attributes:
        named_query: The configured query.
        issues: Matching issues.
        count: Total count and GitHub links.
        warnings: Names the query references that no issue carries.
        reasons: Per issue, why it is untriaged. Empty unless the query
            uses ``is:untriaged`` and some issue has a reason.
    """

    named_query: NamedQuery
    issues: tuple[Issue, ...]
    count: QueryCount
    warnings: tuple[str, ...] = ()
    reasons: tuple[tuple[str, ...], ...] = ()

    @property
    def name(self) -> str:
        return self.named_query.name

    @property
    def owners(self) -> tuple[str, ...]:
        return self.named_query.owners if isinstance(self.named_query, Alert) else ()


class QueryReport:
    """HTML report listing the issues of every alert and query report.

    Example:
        report = QueryReport(report_config)
        report.write(issues, Path("report.html"))
    """

    def __init__(
        self,
        config: ReportConfig,
        links_max: int = DEFAULT_REPORT_LINKS_MAX,
        templates_dir: Path | None = None,
    ) -> None:
        self.config = config
        self.links_max = links_max
        self._env = Environment(
            loader=FileSystemLoader(str(templates_dir or TEMPLATES_DIR)),
            autoescape=select_autoescape(["html", "xml"]),
        )

    def evaluate(self, issues: Iterable[Issue]) -> list[QueryResult]:
        """Run every configured query against the issues.

        Referenced names missing from the issues are logged as warnings with
        the query name as context.
        """
        issues = list(issues)
        collection = IssueCollection(issues)
        results: list[QueryResult] = []
        for named_query in self.config.named_queries:
            ctx_logger = logger.with_context(query_name=named_query.name)
            warnings = named_query.query.validate(collection, log=ctx_logger)
            matching = named_query.query.filter(issues)
            count = get_query_count(
                named_query.query, matching, self.config.registry, self.links_max
            )
            reasons = tuple(get_untriaged_reasons(named_query.query, issue) for issue in matching)
            ctx_logger.debug("Query matched %d issues", len(matching))
            results.append(
                QueryResult(
                    named_query,
                    tuple(matching),
                    count,
                    tuple(warnings),
                    reasons if any(reasons) else (),
                )
            )
        return results

    def render(self, issues: Iterable[Issue], generated_at: datetime | None = None) -> str:
        """Render the report as an HTML document."""
        template = self._env.get_template(QUERY_REPORT_TEMPLATE)
        return template.render(
            results=self.evaluate(issues),
            generated_at=(generated_at or datetime.now(UTC)).strftime("%Y-%m-%d %H:%M UTC"),
        )

    def write(self, issues: Iterable[Issue], output_path: Path) -> None:
        """Render the report into a file, creating parent directories."""
        html = self.render(issues)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(html, encoding="utf-8")
        logger.info("Wrote query report to %s", output_path)
