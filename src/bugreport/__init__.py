"""bug-report - query language and reports for GitHub issue triage."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("bug-report")
except PackageNotFoundError:
    # Package is not installed (e.g., running from source without pip install)
    __version__ = "0.0.0.dev0"

# Re-export core public API
from bugreport.app import main
from bugreport.query import Expression, parse_query

# NOTE: Update this list when adding new exports to this module.
__all__ = [
    "__version__",
    "Expression",
    "main",
    "parse_query",
]
