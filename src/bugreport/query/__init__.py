"""Issue query language: tokenizer, parser, expression tree and normalizer."""

from bugreport.query.exceptions import MultiRepoError, QueryParseError
from bugreport.query.expressions import (
    FALSE,
    TRUE,
    And,
    Assignee,
    Constant,
    Expression,
    IsIssueKind,
    IsOpen,
    Label,
    LabelPattern,
    Leaf,
    Milestone,
    MilestonePattern,
    MultiRepo,
    Not,
    Or,
    RepoExpression,
)
from bugreport.query.github_query import to_github_query
from bugreport.query.normalizer import MAX_DISTRIBUTION_COMBINATIONS, is_normalized, normalize
from bugreport.query.parser import QueryParser, parse_query
from bugreport.query.untriaged import (
    Untriaged,
    UntriagedFlags,
    UntriagedLabels,
    find_untriaged,
    get_untriaged_reasons,
)

__all__ = [
    "FALSE",
    "MAX_DISTRIBUTION_COMBINATIONS",
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
    "MultiRepoError",
    "Not",
    "Or",
    "QueryParseError",
    "QueryParser",
    "RepoExpression",
    "Untriaged",
    "UntriagedFlags",
    "UntriagedLabels",
    "find_untriaged",
    "get_untriaged_reasons",
    "is_normalized",
    "normalize",
    "parse_query",
    "to_github_query",
]
