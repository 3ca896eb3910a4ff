"""Translation of expressions into GitHub issue search syntax.

Only conjunctions of simple leaves can be expressed in GitHub's search box.
Disjunctions, regex patterns, ``is:untriaged`` and expressions spanning
several repositories are not representable; callers then fall back to
per-repository links or explicit issue-number lists.
"""

from __future__ import annotations

from bugreport.query.expressions import (
    FALSE,
    And,
    Assignee,
    Constant,
    Expression,
    IsIssueKind,
    IsOpen,
    Label,
    Leaf,
    Milestone,
    MultiRepo,
    Not,
    Or,
)
from bugreport.repository import Repository

__all__ = ["to_github_query"]


def _milestone_query(name: str) -> str:
    if " " in name:
        return f'milestone:"{name}"'
    return f"milestone:{name}"


def to_github_query(expr: Expression, repo: Repository | None = None) -> str | None:
    """Render an expression as a GitHub issue search query.

    Args:
        expr: Expression to render.
        repo: Repository the query is meant for. MultiRepo nodes are resolved
            for this repository first.

    Returns:
        The search query (an empty string for TRUE), or None when the
        expression cannot be expressed in GitHub search syntax.

    Example:
        >>> to_github_query(And([Label("bug"), IsOpen(True)]))
        'label:"bug" is:open'
    """
    match expr:
        case Constant():
            return "" if expr.value else None
        case Label(name=name):
            return f'label:"{name}"'
        case Milestone(name=None):
            return "no:milestone"
        case Milestone(name=str() as name):
            return _milestone_query(name)
        case Assignee(name=None):
            return "no:assignee"
        case Assignee(name=str() as name):
            return f"assignee:{name}"
        case IsIssueKind(is_issue=is_issue):
            return "is:issue" if is_issue else "is:pr"
        case IsOpen(is_open=is_open):
            return "is:open" if is_open else "is:closed"
        case Leaf():
            # Regex patterns and composite leaves
            return None
        case Not(operand=operand):
            return _negated_query(operand, repo)
        case And(operands=operands):
            fragments = [to_github_query(operand, repo) for operand in operands]
            if any(fragment is None for fragment in fragments):
                return None
            return " ".join(fragment for fragment in fragments if fragment)
        case Or():
            return None
        case MultiRepo():
            if repo is not None:
                return to_github_query(expr.get_expression(repo), repo)
            if len(expr.expressions) == 1 and expr.default is FALSE:
                (single_repo,) = expr.expressions
                return to_github_query(expr.expressions[single_repo], single_repo)
            return None
        case _:
            raise TypeError(f"Unsupported expression type: {type(expr).__name__}")


def _negated_query(operand: Expression, repo: Repository | None) -> str | None:
    match operand:
        case Constant():
            return None if operand.value else ""
        case Label() | Milestone() | Assignee():
            fragment = to_github_query(operand, repo)
            return f"-{fragment}" if fragment is not None else None
        case IsIssueKind(is_issue=is_issue):
            return to_github_query(IsIssueKind(not is_issue), repo)
        case IsOpen(is_open=is_open):
            return to_github_query(IsOpen(not is_open), repo)
        case Not(operand=inner):
            return to_github_query(inner, repo)
        case _:
            return None
