"""Rewrites expressions into the canonical ``MultiRepo? -> Or -> And -> Not -> Leaf`` shape.

The canonical shape is a disjunction of conjunctions of (possibly negated)
leaves, optionally split per repository at the top. Normalization:

1. pushes negation down to the leaves (De Morgan, double negation,
   constants, per-repository negation of MultiRepo),
2. flattens nested And/Or,
3. simplifies: folds constants, removes duplicates and collapses
   complementary pairs ``X`` / ``!X``,
4. distributes And over Or,
5. bubbles MultiRepo operands to the top.

Distribution is skipped when it would produce
``MAX_DISTRIBUTION_COMBINATIONS`` or more conjunctions. The result is then
equivalent to the input but not fully canonical, and :func:`is_normalized`
reports False for it.
"""

from __future__ import annotations

import itertools
import math
from collections.abc import Iterable, Iterator
from enum import IntEnum

from bugreport.logging import get_logger
from bugreport.query.expressions import (
    FALSE,
    TRUE,
    And,
    Constant,
    Expression,
    Leaf,
    MultiRepo,
    Not,
    Or,
)
from bugreport.repository import Repository

logger = get_logger(__name__)

__all__ = [
    "MAX_DISTRIBUTION_COMBINATIONS",
    "is_normalized",
    "normalize",
]

MAX_DISTRIBUTION_COMBINATIONS = 100


class _Level(IntEnum):
    """Nesting levels of the canonical shape, outermost first."""

    MULTI_REPO = 0
    OR = 1
    AND = 2
    NOT = 3
    LEAF = 4


def normalize(expr: Expression) -> Expression:
    """Return the canonical form of an expression.

    The result evaluates identically to ``expr`` on every issue. Normalizing a
    normalized expression returns it unchanged.

    Args:
        expr: Expression to normalize.

    Returns:
        The normalized expression.
    """
    if expr.is_normalized:
        return expr

    match expr:
        case Constant() | Leaf():
            return expr
        case Not(operand=operand):
            return _normalize_not(operand)
        case And(operands=operands):
            return _normalize_connective(And, operands)
        case Or(operands=operands):
            return _normalize_connective(Or, operands)
        case MultiRepo():
            return _normalize_multi_repo(expr.expressions.items(), expr.default)
        case _:
            raise TypeError(f"Unsupported expression type: {type(expr).__name__}")


def _normalize_not(operand: Expression) -> Expression:
    normalized = operand.normalized
    match normalized:
        case Constant():
            return Constant(not normalized.value)
        case Leaf():
            return Not(normalized)
        case Not(operand=inner):
            return inner
        case And(operands=operands):
            return normalize(Or([Not(op) for op in operands]))
        case Or(operands=operands):
            return normalize(And([Not(op) for op in operands]))
        case MultiRepo():
            return _normalize_multi_repo(
                ((repo, Not(expr)) for repo, expr in normalized.expressions.items()),
                Not(normalized.default),
            )
        case _:
            raise TypeError(f"Unsupported expression type: {type(normalized).__name__}")


def _flatten(cls: type[And] | type[Or], operands: Iterable[Expression]) -> Iterator[Expression]:
    # Iterative so that deeply nested chains do not grow the stack
    stack = [iter(operands)]
    while stack:
        for operand in stack[-1]:
            if type(operand) is cls:
                stack.append(iter(operand.operands))
                break
            yield operand
        else:
            stack.pop()


def _normalize_connective(cls: type[And] | type[Or], operands: Iterable[Expression]) -> Expression:
    identity, absorbing = (TRUE, FALSE) if cls is And else (FALSE, TRUE)

    items: list[Expression] = []
    for operand in _flatten(cls, operands):
        for item in _flatten(cls, [operand.normalized]):
            if item is absorbing:
                return absorbing
            if item is not identity:
                items.append(item)

    if any(isinstance(item, MultiRepo) for item in items):
        return _bubble_multi_repo(cls, items)

    unique = list(dict.fromkeys(items))
    members = set(unique)
    if any(isinstance(item, Not) and item.operand in members for item in unique):
        return absorbing
    if not unique:
        return identity
    if len(unique) == 1:
        return unique[0]

    if cls is And:
        return _distribute(unique)
    return Or(unique)


def _distribute(operands: list[Expression]) -> Expression:
    ors = [op for op in operands if isinstance(op, Or)]
    if not ors:
        return And(operands)

    combinations = math.prod(len(op.operands) for op in ors)
    if combinations >= MAX_DISTRIBUTION_COMBINATIONS:
        logger.debug(
            "Not distributing AND over %d OR operands: %d combinations reach the limit of %d",
            len(ors),
            combinations,
            MAX_DISTRIBUTION_COMBINATIONS,
        )
        return And(operands)

    others = [op for op in operands if not isinstance(op, Or)]
    branches = [
        normalize(And([*combination, *others]))
        for combination in itertools.product(*(op.operands for op in ors))
    ]
    return normalize(Or(branches))


def _bubble_multi_repo(cls: type[And] | type[Or], operands: list[Expression]) -> Expression:
    repos: dict[Repository, None] = {}
    for operand in operands:
        if isinstance(operand, MultiRepo):
            repos.update(dict.fromkeys(operand.expressions))

    def resolve(repo: Repository | None) -> Expression:
        return normalize(
            cls([op.get_expression(repo) if isinstance(op, MultiRepo) else op for op in operands])
        )

    return _normalize_multi_repo(((repo, resolve(repo)) for repo in repos), resolve(None))


def _normalize_multi_repo(
    entries: Iterable[tuple[Repository, Expression]], default: Expression
) -> Expression:
    expressions: dict[Repository, Expression] = {}
    for repo, expr in entries:
        normalized = expr.normalized
        if isinstance(normalized, MultiRepo):
            normalized = normalized.get_expression(repo)
        expressions[repo] = normalized

    normalized_default = default.normalized
    if isinstance(normalized_default, MultiRepo):
        # Repos only known to the nested default keep their own expression
        for repo, expr in normalized_default.expressions.items():
            expressions.setdefault(repo, expr)
        normalized_default = normalized_default.default

    if not expressions:
        return normalized_default
    return MultiRepo(expressions, normalized_default)


def is_normalized(expr: Expression) -> bool:
    """Return True if the expression has canonical shape and is simplified.

    Constants are only allowed at the top or as a per-repository expression.
    And/Or nodes must have at least two distinct operands, no constants and no
    complementary pair ``X`` / ``!X``. Not may only wrap a leaf.
    """
    return _is_normalized(expr, _Level.MULTI_REPO)


def _is_simplified(operands: tuple[Expression, ...]) -> bool:
    members = set(operands)
    if len(operands) < 2 or len(members) != len(operands):
        return False
    return not any(isinstance(op, Not) and op.operand in members for op in operands)


def _is_normalized(expr: Expression, min_level: _Level) -> bool:
    match expr:
        case Constant():
            return min_level <= _Level.OR
        case Leaf():
            return True
        case Not(operand=operand):
            return (
                min_level <= _Level.NOT
                and isinstance(operand, Leaf)
            )
        case And(operands=operands):
            return (
                min_level <= _Level.AND
                and _is_simplified(operands)
                and all(_is_normalized(op, _Level.NOT) for op in operands)
            )
        case Or(operands=operands):
            return (
                min_level <= _Level.OR
                and _is_simplified(operands)
                and all(_is_normalized(op, _Level.AND) for op in operands)
            )
        case MultiRepo():
            return (
                min_level <= _Level.MULTI_REPO
                and len(expr.expressions) > 0
                and all(_is_normalized(e, _Level.OR) for e in expr.expressions.values())
                and _is_normalized(expr.default, _Level.OR)
            )
        case _:
            raise TypeError(f"Unsupported expression type: {type(expr).__name__}")
