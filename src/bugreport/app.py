"""Application runner for bug-report.

Loads configuration, sets up logging and dispatches to the subcommand
runners. Every runner returns a process exit code; expected failures are
logged and turned into exit code 1.
"""

from __future__ import annotations

import argparse
from dataclasses import replace
from typing import Any

from bugreport.cli import parse_args
from bugreport.config import Config, load_config
from bugreport.github_client import GitHubClientError, GitHubIssueClient
from bugreport.issue_store import IssueStoreError, load_issues, save_issues
from bugreport.logging import get_logger, setup_logging
from bugreport.models import Issue, IssueCollection
from bugreport.query import QueryParseError, to_github_query
from bugreport.report_config import ReportConfig, ReportConfigError, load_report_config
from bugreport.reports import QueryReport, get_query_count
from bugreport.repository import RepositoryRegistry

logger = get_logger(__name__)


class UsageError(Exception):
    """Raised when required inputs are given neither as options nor in the environment."""

    pass


def apply_cli_overrides(config: Config, parsed: argparse.Namespace) -> Config:
    """Apply CLI argument overrides to the configuration.

    Args:
        config: Base configuration loaded from environment.
        parsed: Parsed command-line arguments.

    Returns:
        New Config instance with CLI overrides applied.
    """
    overrides: dict[str, Any] = {}

    if parsed.log_level:
        overrides["log_level"] = parsed.log_level
    if getattr(parsed, "config", None):
        overrides["config_files"] = tuple(parsed.config)
    if getattr(parsed, "issues", None):
        overrides["issues_files"] = tuple(parsed.issues)

    if overrides:
        return replace(config, **overrides)
    return config


def _load_report_config(config: Config, required: bool) -> ReportConfig:
    if not config.config_files:
        if required:
            raise UsageError("No configuration files given (use --config or BUGREPORT_CONFIG_FILES)")
        return ReportConfig(registry=RepositoryRegistry())
    return load_report_config(config.config_files)


def _load_issues(config: Config, report_config: ReportConfig) -> list[Issue]:
    if not config.issues_files:
        raise UsageError("No issue files given (use --issues or BUGREPORT_ISSUES_FILES)")
    return load_issues(
        config.issues_files,
        report_config.registry,
        label_aliases=report_config.label_aliases,
        milestone_aliases=report_config.milestone_aliases,
    )


def run_query(parsed: argparse.Namespace, config: Config) -> int:
    """Evaluate one query and print the matching issues."""
    report_config = _load_report_config(config, required=False)
    query = report_config.parse_query(parsed.query)
    issues = _load_issues(config, report_config)

    if parsed.validate:
        query.validate(IssueCollection(issues))

    matching = query.filter(issues)

    if parsed.normalize:
        print(f"Normalized: {query.normalized}")
        count = get_query_count(
            query, matching, report_config.registry, config.report_links_max
        )
        for link in count.links:
            print(f"  {link.count:>5}  {link.description}")
            if link.url is not None:
                print(f"         {link.url}")
        if not count.links:
            # Too many parts to link, or nothing to link to
            print(f"GitHub query: {to_github_query(query.normalized) or '(not expressible)'}")

    for issue in matching:
        print(f"{issue}  {issue.title}")
    print(f"{len(matching)} of {len(issues)} issues match")
    return 0


def run_fetch(parsed: argparse.Namespace, config: Config) -> int:
    """Download the issues of every configured repository into one cache file."""
    report_config = _load_report_config(config, required=True)
    if not config.github_configured:
        logger.warning("GITHUB_TOKEN is not set, using anonymous GitHub access")

    raw_issues: list[dict[str, Any]] = []
    with GitHubIssueClient(
        token=config.github_token, base_url=config.github_api_url or None
    ) as client:
        for repo in report_config.registry:
            raw_issues.extend(client.list_issues(repo, state=parsed.state))

    save_issues(parsed.output, raw_issues)
    return 0


def run_report(parsed: argparse.Namespace, config: Config) -> int:
    """Render the HTML query report."""
    report_config = _load_report_config(config, required=True)
    issues = _load_issues(config, report_config)
    QueryReport(report_config, links_max=config.report_links_max).write(issues, parsed.output)
    return 0


COMMANDS = {
    "query": run_query,
    "fetch": run_fetch,
    "report": run_report,
}


def main(args: list[str] | None = None) -> int:
    """Main entry point for the application.

    Args:
        args: Optional list of command-line arguments.

    Returns:
        Exit code for the application.
    """
    parsed = parse_args(args)

    config = load_config(parsed.env_file)
    config = apply_cli_overrides(config, parsed)

    setup_logging(config.log_level, json_format=config.log_json)

    try:
        return COMMANDS[parsed.command](parsed, config)
    except QueryParseError as e:
        logger.error("Invalid query '%s': %s", e.query, e)
    except ReportConfigError as e:
        logger.error("Failed to load report configuration: %s", e)
    except IssueStoreError as e:
        logger.error("Failed to load issues: %s", e)
    except GitHubClientError as e:
        logger.error("Failed to fetch issues: %s", e)
    except UsageError as e:
        logger.error("%s", e)
    return 1


__all__ = [
    "apply_cli_overrides",
    "main",
    "run_fetch",
    "run_query",
    "run_report",
]
