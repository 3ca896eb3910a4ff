"""The ``is:untriaged`` composite predicate.

An issue is untriaged when any of the following holds:
    - it carries one of the configured "untriaged" labels,
    - it has no milestone,
    - it has no area label, or more than one,
    - it has no issue-type label, or more than one.
"""

from __future__ import annotations

from collections.abc import Hashable, Iterable
from dataclasses import dataclass, field
from enum import IntFlag
from typing import TYPE_CHECKING

from bugreport.query.expressions import And, Expression, Leaf, MultiRepo, Not, Or

if TYPE_CHECKING:
    from bugreport.models import Issue
    from bugreport.repository import Repository

__all__ = [
    "Untriaged",
    "UntriagedFlags",
    "UntriagedLabels",
    "find_untriaged",
    "get_untriaged_reasons",
]


class UntriagedFlags(IntFlag):
    """Reasons for an issue being untriaged."""

    UNTRIAGED_LABEL = 0x1
    MISSING_MILESTONE = 0x2
    MISSING_AREA_LABEL = 0x4
    MISSING_ISSUE_TYPE_LABEL = 0x8
    MULTIPLE_ISSUE_TYPE_LABELS = 0x10
    MULTIPLE_AREA_LABELS = 0x20

    def describe(self) -> tuple[str, ...]:
        """Return a readable description of each set flag, in flag order."""
        return tuple(_FLAG_DESCRIPTIONS[flag] for flag in UntriagedFlags if flag in self)


_FLAG_DESCRIPTIONS = {
    UntriagedFlags.UNTRIAGED_LABEL: "untriaged label",
    UntriagedFlags.MISSING_MILESTONE: "no milestone",
    UntriagedFlags.MISSING_AREA_LABEL: "no area label",
    UntriagedFlags.MISSING_ISSUE_TYPE_LABEL: "no issue type label",
    UntriagedFlags.MULTIPLE_ISSUE_TYPE_LABELS: "multiple issue type labels",
    UntriagedFlags.MULTIPLE_AREA_LABELS: "multiple area labels",
}


def _folded(names: Iterable[str]) -> frozenset[str]:
    return frozenset(name.casefold() for name in names)


@dataclass(frozen=True)
class UntriagedLabels:
    """Label sets from the report configuration used to judge triage state.

    Attributes:
        area: Area labels; exactly one is expected on a triaged issue.
        issue_type: Issue-type labels; exactly one is expected.
        untriaged: Labels that explicitly mark an issue as untriaged.
    """

    area: frozenset[str] = field(default_factory=frozenset)
    issue_type: frozenset[str] = field(default_factory=frozenset)
    untriaged: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        object.__setattr__(self, "area", _folded(self.area))
        object.__setattr__(self, "issue_type", _folded(self.issue_type))
        object.__setattr__(self, "untriaged", _folded(self.untriaged))


@dataclass(frozen=True, eq=False)
class Untriaged(Leaf):
    """Matches issues for which :meth:`get_untriaged_flags` reports any reason."""

    labels: UntriagedLabels

    def get_untriaged_flags(self, issue: Issue) -> UntriagedFlags:
        """Return every reason why the issue is untriaged (empty if triaged)."""
        issue_labels = [label.casefold() for label in issue.labels]
        flags = UntriagedFlags(0)

        if any(label in self.labels.untriaged for label in issue_labels):
            flags |= UntriagedFlags.UNTRIAGED_LABEL

        if issue.milestone is None:
            flags |= UntriagedFlags.MISSING_MILESTONE

        area_count = sum(1 for label in issue_labels if label in self.labels.area)
        if area_count == 0:
            flags |= UntriagedFlags.MISSING_AREA_LABEL
        elif area_count > 1:
            flags |= UntriagedFlags.MULTIPLE_AREA_LABELS

        issue_type_count = sum(1 for label in issue_labels if label in self.labels.issue_type)
        if issue_type_count == 0:
            flags |= UntriagedFlags.MISSING_ISSUE_TYPE_LABEL
        elif issue_type_count > 1:
            flags |= UntriagedFlags.MULTIPLE_ISSUE_TYPE_LABELS

        return flags

    def evaluate(self, issue: Issue) -> bool:
        return bool(self.get_untriaged_flags(issue))

    def _key(self) -> Hashable:
        return self.labels

    def __str__(self) -> str:
        return "is:untriaged"


def find_untriaged(expression: Expression, repo: Repository | None = None) -> Untriaged | None:
    """Return the first ``is:untriaged`` leaf of an expression, if any.

    MultiRepo nodes are resolved for ``repo``.
    """
    match expression:
        case Untriaged():
            return expression
        case Not(operand=operand):
            return find_untriaged(operand, repo)
        case And(operands=operands) | Or(operands=operands):
            for operand in operands:
                found = find_untriaged(operand, repo)
                if found is not None:
                    return found
            return None
        case MultiRepo():
            return find_untriaged(expression.get_expression(repo), repo)
        case _:
            return None


def get_untriaged_reasons(expression: Expression, issue: Issue) -> tuple[str, ...]:
    """Describe why an issue is untriaged according to the query's ``is:untriaged`` leaf.

    Returns an empty tuple when the query has no such leaf or the issue is
    triaged.
    """
    untriaged = find_untriaged(expression, issue.repository)
    if untriaged is None:
        return ()
    return untriaged.get_untriaged_flags(issue).describe()
