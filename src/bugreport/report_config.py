"""Loading of YAML report configuration files.

A configuration file defines the repositories to report on, label sets,
aliases, alerts and query reports::

    include:
      - common.yaml
    repositories:
      - name: dotnet/corefx
        alias: corefx
        filter_query: "-label:archived"
    labels:
      area: [area-System.Net, area-System.IO]
      issue_type: [bug, enhancement, question]
      untriaged: [untriaged]
      aliases:
        "System.Net": area-System.Net
    milestones:
      aliases:
        "2.0": "2.0.0"
    alerts:
      - name: Networking untriaged
        owners: [karelz]
        cc: [davidsh]
        queries:
          - query: "label:area-System.Net is:untriaged is:open"
    query_reports:
      - name: Open bugs
        queries:
          - repo: dotnet/corefx
            query: "label:bug is:open"
          - repo: dotnet/corefxlab
            query: "label:bug is:open -label:blocked"

Included files are read first, relative to the including file. Every
problem raises :class:`ReportConfigError` naming the offending entry.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from bugreport.logging import get_logger
from bugreport.query.exceptions import MultiRepoError, QueryParseError
from bugreport.query.expressions import Expression, MultiRepo, RepoExpression
from bugreport.query.parser import parse_query
from bugreport.query.untriaged import Untriaged, UntriagedLabels
from bugreport.repository import RepositoryError, RepositoryRegistry

logger = get_logger(__name__)

__all__ = [
    "Alert",
    "NamedQuery",
    "RepoQuery",
    "ReportConfig",
    "ReportConfigError",
    "build_query",
    "load_report_config",
]


class ReportConfigError(Exception):
    """Raised when report configuration is invalid."""

    pass


@dataclass(frozen=True)
class RepoQuery:
    """A query string, optionally bound to one repository."""

    query: str
    repo: str | None = None


@dataclass(frozen=True)
class NamedQuery:
    """A named query of a query report.

    Attributes:
        name: Display name.
        query: The parsed query; a MultiRepo when it differs per repository.
    """

    name: str
    query: Expression


@dataclass(frozen=True)
class Alert(NamedQuery):
    """A named query with the people responsible for its results."""

    owners: tuple[str, ...] = ()
    cc: tuple[str, ...] = ()


@dataclass(frozen=True)
class ReportConfig:
    """Assembled report configuration.

    Attributes:
        registry: Configured repositories in definition order.
        untriaged_labels: Label sets backing ``is:untriaged``.
        label_aliases: Map of alias label name to canonical label name.
        milestone_aliases: Map of alias milestone title to canonical title.
        alerts: Configured alerts.
        query_reports: Configured query reports.
    """

    registry: RepositoryRegistry
    untriaged_labels: UntriagedLabels = field(default_factory=UntriagedLabels)
    label_aliases: Mapping[str, str] = field(default_factory=dict)
    milestone_aliases: Mapping[str, str] = field(default_factory=dict)
    alerts: tuple[Alert, ...] = ()
    query_reports: tuple[NamedQuery, ...] = ()

    @property
    def custom_is_values(self) -> dict[str, Expression]:
        """Extra ``is:<name>`` values available in configured queries."""
        return _custom_is_values(self.untriaged_labels)

    @property
    def named_queries(self) -> tuple[NamedQuery, ...]:
        """Alerts followed by query reports."""
        return (*self.alerts, *self.query_reports)

    def parse_query(self, query: str) -> Expression:
        """Parse an ad-hoc query with the configured ``is:`` values.

        Raises:
            QueryParseError: If the query is invalid.
        """
        return parse_query(query, self.custom_is_values)


def _custom_is_values(untriaged_labels: UntriagedLabels) -> dict[str, Expression]:
    return {"untriaged": Untriaged(untriaged_labels)}


def build_query(
    repo_queries: Iterable[RepoQuery],
    registry: RepositoryRegistry,
    custom_is_values: Mapping[str, Expression] | None = None,
) -> Expression:
    """Parse the queries of one named query into a single expression.

    A single query without a repository yields a plain expression. Otherwise
    the result is a MultiRepo whose entries without a repository form the
    default.

    Raises:
        ValueError: If no query is given.
        QueryParseError: If a query is invalid.
        MultiRepoError: If a repository or the default appears twice.
        RepositoryError: If a repository name is invalid.
    """
    repo_queries = list(repo_queries)
    if not repo_queries:
        raise ValueError("Expected at least 1 query")
    if len(repo_queries) == 1 and repo_queries[0].repo is None:
        return parse_query(repo_queries[0].query, custom_is_values)
    return MultiRepo.from_repo_expressions(
        RepoExpression(
            registry.add(entry.repo) if entry.repo is not None else None,
            parse_query(entry.query, custom_is_values),
        )
        for entry in repo_queries
    )


def _read_yaml(file_path: Path) -> dict[str, Any]:
    try:
        with open(file_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ReportConfigError(f"Invalid YAML in {file_path}: {e}") from e
    except FileNotFoundError:
        raise ReportConfigError(f"Configuration file not found: {file_path}") from None
    except OSError as e:
        raise ReportConfigError(f"Cannot read configuration file {file_path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ReportConfigError(f"Configuration file {file_path} must contain a mapping")
    return data


def _read_with_includes(paths: Iterable[Path]) -> list[tuple[Path, dict[str, Any]]]:
    documents: list[tuple[Path, dict[str, Any]]] = []
    seen: set[Path] = set()

    def visit(file_path: Path, including: tuple[Path, ...]) -> None:
        resolved = file_path.resolve()
        if resolved in including:
            raise ReportConfigError(f"Circular include of {file_path}")
        if resolved in seen:
            return
        seen.add(resolved)
        data = _read_yaml(file_path)
        includes = _list_of(data.get("include"), "include", file_path)
        for include in includes:
            if not isinstance(include, str):
                raise ReportConfigError(f"'include' must contain file names in {file_path}")
            visit(file_path.parent / include, (*including, resolved))
        documents.append((file_path, data))
        logger.debug("Read configuration file %s", file_path)

    for path in paths:
        visit(Path(path), ())
    return documents


def _list_of(value: Any, field_name: str, location: Path | str) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ReportConfigError(f"'{field_name}' must be a list in {location}")
    return value


def _mapping_of(value: Any, field_name: str, file_path: Path) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ReportConfigError(f"'{field_name}' must be a mapping in {file_path}")
    return value


def _string_list(value: Any, field_name: str, context: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list) or not all(isinstance(item, str) and item.strip() for item in value):
        raise ReportConfigError(f"{field_name} must be a list of non-empty strings in {context}")
    return tuple(value)


def _load_aliases(
    documents: list[tuple[Path, dict[str, Any]]], section: str, kind: str
) -> dict[str, str]:
    aliases: dict[str, str] = {}
    for file_path, data in documents:
        section_data = _mapping_of(data.get(section), section, file_path)
        for alias, target in _mapping_of(section_data.get("aliases"), f"{section}.aliases", file_path).items():
            alias = str(alias)
            if alias in aliases:
                raise ReportConfigError(f"{kind} alias '{alias}' defined more than once")
            aliases[alias] = str(target)
    return aliases


def _load_untriaged_labels(documents: list[tuple[Path, dict[str, Any]]]) -> UntriagedLabels:
    area: list[str] = []
    issue_type: list[str] = []
    untriaged: list[str] = []
    for file_path, data in documents:
        labels = _mapping_of(data.get("labels"), "labels", file_path)
        area.extend(_string_list(labels.get("area"), "labels.area", str(file_path)))
        issue_type.extend(_string_list(labels.get("issue_type"), "labels.issue_type", str(file_path)))
        untriaged.extend(_string_list(labels.get("untriaged"), "labels.untriaged", str(file_path)))
    return UntriagedLabels(frozenset(area), frozenset(issue_type), frozenset(untriaged))


def _load_repositories(
    documents: list[tuple[Path, dict[str, Any]]],
    custom_is_values: Mapping[str, Expression],
) -> RepositoryRegistry:
    registry = RepositoryRegistry()
    for file_path, data in documents:
        for repo_data in _list_of(data.get("repositories"), "repositories", file_path):
            if not isinstance(repo_data, dict) or not isinstance(repo_data.get("name"), str):
                raise ReportConfigError(f"Repository must have a 'name' field in {file_path}")
            name = repo_data["name"]
            if registry.get(name) is not None:
                raise ReportConfigError(f"Repository '{name}' defined more than once")

            filter_query = None
            if repo_data.get("filter_query"):
                try:
                    filter_query = parse_query(str(repo_data["filter_query"]), custom_is_values)
                except QueryParseError as e:
                    raise ReportConfigError(
                        f"Invalid filter query in repository '{name}': {e}"
                    ) from e

            try:
                registry.add(name, alias=repo_data.get("alias"), filter_query=filter_query)
            except RepositoryError as e:
                raise ReportConfigError(str(e)) from e
    return registry


def _parse_repo_queries(entry: dict[str, Any], context: str) -> list[RepoQuery]:
    default_repo = entry.get("repo")
    queries: list[RepoQuery] = []
    for query_data in _list_of(entry.get("queries"), "queries", context):
        if isinstance(query_data, str):
            queries.append(RepoQuery(query_data, default_repo))
        elif isinstance(query_data, dict) and isinstance(query_data.get("query"), str):
            queries.append(RepoQuery(query_data["query"], query_data.get("repo", default_repo)))
        else:
            raise ReportConfigError(f"Each query must have a 'query' field in {context}")
    return queries


def _build_named_query(
    entry: Any,
    kind: str,
    file_path: Path,
    registry: RepositoryRegistry,
    custom_is_values: Mapping[str, Expression],
) -> tuple[str, Expression]:
    if not isinstance(entry, dict) or not isinstance(entry.get("name"), str):
        raise ReportConfigError(f"Each {kind} must have a 'name' field in {file_path}")
    name = entry["name"]
    context = f"{kind} '{name}'"
    try:
        return name, build_query(_parse_repo_queries(entry, context), registry, custom_is_values)
    except QueryParseError as e:
        raise ReportConfigError(f"Invalid query in {context}: {e}") from e
    except (MultiRepoError, RepositoryError, ValueError) as e:
        raise ReportConfigError(f"Invalid {context}: {e}") from e


def load_report_config(paths: Iterable[Path]) -> ReportConfig:
    """Load and assemble report configuration from YAML files.

    Args:
        paths: Configuration files; their includes are read first.

    Returns:
        The assembled configuration.

    Raises:
        ReportConfigError: If any file or entry is invalid.
    """
    documents = _read_with_includes(paths)

    untriaged_labels = _load_untriaged_labels(documents)
    custom_is_values = _custom_is_values(untriaged_labels)
    registry = _load_repositories(documents, custom_is_values)

    alerts: list[Alert] = []
    query_reports: list[NamedQuery] = []
    for file_path, data in documents:
        for entry in _list_of(data.get("alerts"), "alerts", file_path):
            name, query = _build_named_query(entry, "alert", file_path, registry, custom_is_values)
            owners = _string_list(entry.get("owners"), "owners", f"alert '{name}'")
            cc = _string_list(entry.get("cc"), "cc", f"alert '{name}'")
            if cc and not owners:
                raise ReportConfigError(f"Missing owner in alert '{name}'")
            alerts.append(Alert(name, query, owners, cc))

        for entry in _list_of(data.get("query_reports"), "query_reports", file_path):
            name, query = _build_named_query(
                entry, "query report", file_path, registry, custom_is_values
            )
            query_reports.append(NamedQuery(name, query))

    config = ReportConfig(
        registry=registry,
        untriaged_labels=untriaged_labels,
        label_aliases=_load_aliases(documents, "labels", "Label"),
        milestone_aliases=_load_aliases(documents, "milestones", "Milestone"),
        alerts=tuple(alerts),
        query_reports=tuple(query_reports),
    )
    logger.info(
        "Loaded report configuration: %d repositories, %d alerts, %d query reports",
        len(registry),
        len(alerts),
        len(query_reports),
    )
    return config
