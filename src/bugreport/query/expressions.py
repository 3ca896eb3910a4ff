"""Immutable expression tree of the issue query language.

Every node evaluates against a single :class:`~bugreport.models.Issue`. Nodes
are frozen; structural equality ignores operand order of ``And``/``Or`` and
compares label, milestone and assignee names case-insensitively.

Node kinds:
    Constant            TRUE / FALSE singletons
    Leaf                Label, LabelPattern, Milestone, MilestonePattern,
                        IsIssueKind, IsOpen, Assignee (and Untriaged)
    Not, And, Or        Logical connectives
    MultiRepo           Per-repository expressions with a default
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections import Counter
from collections.abc import Hashable, Iterable, Iterator, Mapping
from dataclasses import dataclass
from functools import cached_property
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from bugreport.logging import BugReportLogger, ContextAdapter, get_logger
from bugreport.query.exceptions import MultiRepoError
from bugreport.query.tokenizer import is_value_char

if TYPE_CHECKING:
    from bugreport.models import Issue, IssueCollection
    from bugreport.repository import Repository

logger = get_logger(__name__)

__all__ = [
    "FALSE",
    "TRUE",
    "And",
    "Assignee",
    "Constant",
    "Expression",
    "IsIssueKind",
    "IsOpen",
    "Label",
    "LabelPattern",
    "Leaf",
    "Milestone",
    "MilestonePattern",
    "MultiRepo",
    "Not",
    "Or",
    "RepoExpression",
]


def _fold(name: str | None) -> str | None:
    return name.casefold() if name is not None else None


def _quote(value: str) -> str:
    if not value or not all(is_value_char(char) for char in value):
        return f'"{value}"'
    return value


class Expression(ABC):
    """Base class of all query expression nodes."""

    @abstractmethod
    def evaluate(self, issue: Issue) -> bool:
        """Return True if the issue matches this expression."""

    @abstractmethod
    def _key(self) -> Hashable:
        """Return the value that structural equality and hashing are based on."""

    def filter(self, issues: Iterable[Issue]) -> list[Issue]:
        """Return the matching issues, preserving their order."""
        return [issue for issue in issues if self.evaluate(issue)]

    def validate(
        self,
        collection: IssueCollection,
        log: BugReportLogger | ContextAdapter | None = None,
    ) -> list[str]:
        """Check that names referenced by the expression exist in the collection.

        Validation is advisory: every problem is logged as a warning and
        returned, and evaluation results are never affected.

        Args:
            collection: Issues whose labels, milestones and assignees are
                considered known.
            log: Logger for the warnings, e.g. one carrying the query name
                as context. Defaults to this module's logger.

        Returns:
            List of warning messages, empty if everything was found.
        """
        warnings = list(self._find_unknown_names(collection))
        for warning in warnings:
            (log or logger).warning("Query '%s': %s", self, warning)
        return warnings

    def _find_unknown_names(self, collection: IssueCollection) -> Iterator[str]:
        return iter(())

    @cached_property
    def normalized(self) -> Expression:
        """Return the canonical ``MultiRepo? -> Or -> And -> Not -> Leaf`` form.

        Computed once per node; recomputation by concurrent readers yields
        the same result.
        """
        from bugreport.query.normalizer import normalize

        return normalize(self)

    @cached_property
    def is_normalized(self) -> bool:
        """Return True if the expression already has canonical shape."""
        from bugreport.query.normalizer import is_normalized

        return is_normalized(self)

    def to_github_query(self, repo: Repository | None = None) -> str | None:
        """Render as GitHub search syntax, or None if not representable."""
        from bugreport.query.github_query import to_github_query

        return to_github_query(self, repo)

    @cached_property
    def _cached_key(self) -> Hashable:
        return self._key()

    def __eq__(self, other: object) -> bool:
        if self is other:
            return True
        if not isinstance(other, Expression):
            return NotImplemented
        if type(self) is not type(other):
            return False
        return self._cached_key == other._cached_key

    def __hash__(self) -> int:
        return hash((type(self).__name__, self._cached_key))


class Constant(Expression):
    """Boolean constant; only the two singletons TRUE and FALSE exist.

    ``Constant(True) is TRUE`` always holds, so constants can be compared by
    identity.
    """

    _instances: dict[bool, Constant] = {}
    value: bool

    def __new__(cls, value: bool) -> Constant:
        value = bool(value)
        instance = cls._instances.get(value)
        if instance is None:
            instance = super().__new__(cls)
            instance.value = value
            cls._instances[value] = instance
        return instance

    def __reduce__(self) -> tuple[Any, ...]:
        return (Constant, (self.value,))

    def evaluate(self, issue: Issue) -> bool:
        return self.value

    def filter(self, issues: Iterable[Issue]) -> list[Issue]:
        return list(issues) if self.value else []

    def _key(self) -> Hashable:
        return self.value

    def __repr__(self) -> str:
        return "TRUE" if self.value else "FALSE"

    def __str__(self) -> str:
        return "true" if self.value else "false"


TRUE = Constant(True)
FALSE = Constant(False)


class Leaf(Expression):
    """Marker base for terminal predicates without sub-expressions."""


@dataclass(frozen=True, eq=False)
class Label(Leaf):
    """Matches issues carrying the label (case-insensitive)."""

    name: str

    def evaluate(self, issue: Issue) -> bool:
        return issue.has_label(self.name)

    def _find_unknown_names(self, collection: IssueCollection) -> Iterator[str]:
        if not collection.has_label(self.name):
            yield f"Label does not exist: {self.name}"

    def _key(self) -> Hashable:
        return self.name.casefold()

    def __str__(self) -> str:
        return f"label:{_quote(self.name)}"


class _PatternLeaf(Leaf):
    pattern: str

    @cached_property
    def regex(self) -> re.Pattern[str]:
        """The pattern anchored to match a whole name, ignoring case."""
        return re.compile(f"^{self.pattern}$", re.IGNORECASE)

    def matches(self, name: str) -> bool:
        return self.regex.match(name) is not None

    def _key(self) -> Hashable:
        return self.pattern


@dataclass(frozen=True, eq=False)
class LabelPattern(_PatternLeaf):
    """Matches issues with at least one label matching the regex pattern."""

    pattern: str

    def evaluate(self, issue: Issue) -> bool:
        return any(self.matches(label) for label in issue.labels)

    def _find_unknown_names(self, collection: IssueCollection) -> Iterator[str]:
        if not any(self.matches(label) for label in collection.labels):
            yield f"Label pattern does not match any label: {self.pattern}"

    def __str__(self) -> str:
        return f"label:{_quote(self.pattern)}"


@dataclass(frozen=True, eq=False)
class Milestone(Leaf):
    """Matches issues in the milestone; ``Milestone(None)`` matches issues without one."""

    name: str | None

    def evaluate(self, issue: Issue) -> bool:
        return issue.is_milestone(self.name)

    def _find_unknown_names(self, collection: IssueCollection) -> Iterator[str]:
        if not collection.has_milestone(self.name):
            yield f"Milestone does not exist: {self.name}"

    def _key(self) -> Hashable:
        return _fold(self.name)

    def __str__(self) -> str:
        if self.name is None:
            return "no:milestone"
        return f"milestone:{_quote(self.name)}"


@dataclass(frozen=True, eq=False)
class MilestonePattern(_PatternLeaf):
    """Matches issues whose milestone matches the regex pattern."""

    pattern: str

    def evaluate(self, issue: Issue) -> bool:
        return issue.milestone is not None and self.matches(issue.milestone)

    def _find_unknown_names(self, collection: IssueCollection) -> Iterator[str]:
        if not any(self.matches(milestone) for milestone in collection.milestones):
            yield f"Milestone pattern does not match any milestone: {self.pattern}"

    def __str__(self) -> str:
        return f"milestone:{_quote(self.pattern)}"


@dataclass(frozen=True, eq=False)
class IsIssueKind(Leaf):
    """``is:issue`` (issues and comments) or ``is:pr`` (pull requests)."""

    is_issue: bool

    def evaluate(self, issue: Issue) -> bool:
        return issue.is_issue_or_comment == self.is_issue

    def _key(self) -> Hashable:
        return self.is_issue

    def __str__(self) -> str:
        return "is:issue" if self.is_issue else "is:pr"


@dataclass(frozen=True, eq=False)
class IsOpen(Leaf):
    """``is:open`` or ``is:closed``."""

    is_open: bool

    def evaluate(self, issue: Issue) -> bool:
        return issue.is_open == self.is_open

    def _key(self) -> Hashable:
        return self.is_open

    def __str__(self) -> str:
        return "is:open" if self.is_open else "is:closed"


@dataclass(frozen=True, eq=False)
class Assignee(Leaf):
    """Matches issues assigned to the user; ``Assignee(None)`` matches unassigned issues."""

    name: str | None

    def evaluate(self, issue: Issue) -> bool:
        return issue.has_assignee(self.name)

    def _find_unknown_names(self, collection: IssueCollection) -> Iterator[str]:
        if not collection.has_user(self.name):
            yield f"Assignee does not exist: {self.name}"

    def _key(self) -> Hashable:
        return _fold(self.name)

    def __str__(self) -> str:
        if self.name is None:
            return "no:assignee"
        return f"assignee:{_quote(self.name)}"


@dataclass(frozen=True, eq=False)
class Not(Expression):
    """Logical negation."""

    operand: Expression

    def evaluate(self, issue: Issue) -> bool:
        return not self.operand.evaluate(issue)

    def _find_unknown_names(self, collection: IssueCollection) -> Iterator[str]:
        return self.operand._find_unknown_names(collection)

    def _key(self) -> Hashable:
        return self.operand

    def __str__(self) -> str:
        if isinstance(self.operand, (Leaf, Not)):
            return f"!{self.operand}"
        return f"!({self.operand})"


class _Connective(Expression):
    operands: tuple[Expression, ...]

    def _init_operands(self) -> None:
        operands = tuple(self.operands)
        if not operands:
            raise ValueError(f"{type(self).__name__} requires at least one operand")
        object.__setattr__(self, "operands", operands)

    def _find_unknown_names(self, collection: IssueCollection) -> Iterator[str]:
        for operand in self.operands:
            yield from operand._find_unknown_names(collection)

    def _key(self) -> Hashable:
        # Multiset of operands, so that order does not matter
        return frozenset(Counter(self.operands).items())


@dataclass(frozen=True, eq=False)
class And(_Connective):
    """Conjunction of one or more operands (short-circuiting)."""

    operands: tuple[Expression, ...]

    def __post_init__(self) -> None:
        self._init_operands()

    def evaluate(self, issue: Issue) -> bool:
        return all(operand.evaluate(issue) for operand in self.operands)

    def __str__(self) -> str:
        return " AND ".join(
            f"({operand})" if isinstance(operand, (Or, MultiRepo)) else str(operand)
            for operand in self.operands
        )


@dataclass(frozen=True, eq=False)
class Or(_Connective):
    """Disjunction of one or more operands (short-circuiting)."""

    operands: tuple[Expression, ...]

    def __post_init__(self) -> None:
        self._init_operands()

    def evaluate(self, issue: Issue) -> bool:
        return any(operand.evaluate(issue) for operand in self.operands)

    def __str__(self) -> str:
        return " OR ".join(
            f"({operand})" if isinstance(operand, MultiRepo) else str(operand)
            for operand in self.operands
        )


@dataclass(frozen=True)
class RepoExpression:
    """An expression bound to one repository, or the default when repo is None."""

    repo: Repository | None
    expr: Expression


@dataclass(frozen=True, eq=False)
class MultiRepo(Expression):
    """An expression whose meaning depends on the issue's repository.

    Issues from repositories without an entry are evaluated against the
    default expression, which is FALSE unless given explicitly.

    Attributes:
        expressions: Read-only mapping of repository to its expression.
        default: Expression for all other repositories.
    """

    expressions: Mapping[Repository, Expression]
    default: Expression = FALSE

    def __post_init__(self) -> None:
        object.__setattr__(self, "expressions", MappingProxyType(dict(self.expressions)))

    @classmethod
    def from_repo_expressions(cls, repo_expressions: Iterable[RepoExpression]) -> MultiRepo:
        """Build a MultiRepo from repository-bound expressions.

        Raises:
            MultiRepoError: If a repository appears twice or more than one
                default (repo None) is given.
        """
        expressions: dict[Repository, Expression] = {}
        default: Expression | None = None
        for entry in repo_expressions:
            if entry.repo is None:
                if default is not None:
                    raise MultiRepoError("Duplicate default query")
                default = entry.expr
            else:
                if entry.repo in expressions:
                    raise MultiRepoError(f"Duplicate query for repo {entry.repo.repo_name}")
                expressions[entry.repo] = entry.expr
        return cls(expressions, FALSE if default is None else default)

    @property
    def repos(self) -> tuple[Repository, ...]:
        return tuple(self.expressions)

    def get_expression(self, repo: Repository | None) -> Expression:
        """Return the repository's expression, falling back to the default."""
        if repo is None:
            return self.default
        return self.expressions.get(repo, self.default)

    def evaluate(self, issue: Issue) -> bool:
        return self.get_expression(issue.repository).evaluate(issue)

    def _find_unknown_names(self, collection: IssueCollection) -> Iterator[str]:
        for expr in self.expressions.values():
            yield from expr._find_unknown_names(collection)
        yield from self.default._find_unknown_names(collection)

    def _key(self) -> Hashable:
        return (frozenset(self.expressions.items()), self.default)

    def __str__(self) -> str:
        entries = [f"[{repo.repo_name}: {expr}]" for repo, expr in self.expressions.items()]
        entries.append(f"[default: {self.default}]")
        return "{ " + " / ".join(entries) + " }"

