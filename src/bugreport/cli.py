"""Command-line interface argument parsing for bug-report.

Subcommands:
- query: evaluate one query against cached issues
- fetch: download the issues of the configured repositories
- report: render the HTML query report
"""

from __future__ import annotations

import argparse
from pathlib import Path

from bugreport.github_client import VALID_STATES

QUERY_SYNTAX_HELP = """\
query syntax:
  label:NAME  -label:NAME  label:"PATTERN.*"  milestone:NAME  milestone:PAT..
  values outside [-_./a-zA-Z0-9] must be double-quoted: label:"help wanted"
  is:issue  is:pr  is:open  is:closed  is:untriaged
  no:milestone  no:assignee  assignee:USER
  operators (by precedence): ( ), !/NOT, AND (or juxtaposition), OR
"""


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Log level (overrides BUGREPORT_LOG_LEVEL)",
    )

    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to .env file (default: ./.env)",
    )


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Args:
        args: Optional list of arguments to parse. If None, uses sys.argv.

    Returns:
        Parsed arguments namespace. ``command`` holds the subcommand name;
        ``config`` and ``issues`` are lists of paths, empty when not given.
    """
    parser = argparse.ArgumentParser(
        prog="bug-report",
        description="bug-report - GitHub issue triage queries and reports",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=QUERY_SYNTAX_HELP,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    query_parser = subparsers.add_parser(
        "query",
        help="Evaluate a query against cached issues",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=QUERY_SYNTAX_HELP,
    )
    query_parser.add_argument("query", help="Query expression")
    query_parser.add_argument(
        "--issues",
        type=Path,
        nargs="+",
        default=[],
        help="Issue cache files (default: BUGREPORT_ISSUES_FILES)",
    )
    query_parser.add_argument(
        "--config",
        type=Path,
        nargs="+",
        default=[],
        help="Report configuration files (default: BUGREPORT_CONFIG_FILES)",
    )
    query_parser.add_argument(
        "--normalize",
        action="store_true",
        help="Print the normalized query and its GitHub search URLs",
    )
    query_parser.add_argument(
        "--validate",
        action="store_true",
        help="Warn about labels, milestones and users missing from the issues",
    )
    _add_common_arguments(query_parser)

    fetch_parser = subparsers.add_parser(
        "fetch", help="Download issues of all configured repositories"
    )
    fetch_parser.add_argument(
        "--config",
        type=Path,
        nargs="+",
        default=[],
        help="Report configuration files (default: BUGREPORT_CONFIG_FILES)",
    )
    fetch_parser.add_argument(
        "--output",
        type=Path,
        required=True,
        help="Issue cache file to write",
    )
    fetch_parser.add_argument(
        "--state",
        choices=sorted(VALID_STATES),
        default="open",
        help="Issue state to download (default: open)",
    )
    _add_common_arguments(fetch_parser)

    report_parser = subparsers.add_parser(
        "report", help="Render the HTML report of all alerts and query reports"
    )
    report_parser.add_argument(
        "--config",
        type=Path,
        nargs="+",
        default=[],
        help="Report configuration files (default: BUGREPORT_CONFIG_FILES)",
    )
    report_parser.add_argument(
        "--issues",
        type=Path,
        nargs="+",
        default=[],
        help="Issue cache files (default: BUGREPORT_ISSUES_FILES)",
    )
    report_parser.add_argument(
        "--output",
        type=Path,
        required=True,
        help="HTML file to write",
    )
    _add_common_arguments(report_parser)

    return parser.parse_args(args)


__all__ = ["parse_args"]
