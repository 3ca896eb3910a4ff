"""Recursive-descent parser for the issue query language.

Grammar (keywords are case-insensitive)::

    query  := or
    or     := and ( ("OR" | "||") and )*
    and    := single ( ["AND" | "&&"] single )*
    single := ("!" | "NOT") single | "(" or ")" | key:value

Adjacent terms without an operator are combined with AND, so
``label:bug is:open`` is the same as ``label:bug AND is:open``.

Example queries:
    label:bug
    label:bug AND is:open
    (label:bug || label:regression) -label:"needs more info"
    milestone:2.0 !assignee:octocat
    label:"area-.*" no:milestone

Patterns contain characters outside ``[-_./a-zA-Z0-9]`` and therefore have
to be quoted.
"""

from __future__ import annotations

from collections.abc import Mapping

from bugreport.query.exceptions import QueryParseError
from bugreport.query.expressions import (
    And,
    Assignee,
    Expression,
    IsIssueKind,
    IsOpen,
    Label,
    LabelPattern,
    Milestone,
    MilestonePattern,
    Not,
    Or,
)
from bugreport.query.tokenizer import Token, TokenType, tokenize

__all__ = [
    "QueryParser",
    "is_pattern",
    "parse_query",
]

# Tokens that end an AND chain without consuming anything
_AND_TERMINATORS = frozenset(
    {TokenType.END_OF_QUERY, TokenType.OPERATOR_OR, TokenType.BRACKET_RIGHT}
)

_BUILTIN_IS_VALUES: dict[str, Expression] = {
    "issue": IsIssueKind(True),
    "pr": IsIssueKind(False),
    "open": IsOpen(True),
    "closed": IsOpen(False),
}

_NO_VALUES: dict[str, Expression] = {
    "milestone": Milestone(None),
    "assignee": Assignee(None),
}

_KNOWN_KEYS = "label|-label|milestone|is|no|assignee"


def is_pattern(value: str) -> bool:
    """Return True if a label or milestone value should be matched as a regex."""
    return ".*" in value or ".." in value


class QueryParser:
    """Parser producing an Expression tree from one query string.

    Args:
        custom_is_values: Optional table of extra ``is:<name>`` values mapped
            to pre-built expressions (e.g. ``untriaged``).

    Example:
        parser = QueryParser()
        expr = parser.parse("label:bug AND is:open")
        matches = expr.filter(issues)
    """

    def __init__(self, custom_is_values: Mapping[str, Expression] | None = None) -> None:
        self._custom_is_values: Mapping[str, Expression] = custom_is_values or {}
        self._query = ""
        self._tokens: list[Token] = []
        self._pos = 0

    def parse(self, query: str) -> Expression:
        """Parse a query string into an expression.

        Args:
            query: The query string to parse.

        Returns:
            The parsed expression.

        Raises:
            QueryParseError: If the query is empty or malformed.
        """
        self._query = query
        self._tokens = tokenize(query)
        self._pos = 0

        expr = self._parse_or()
        if expr is None:
            token = self._peek()
            if token.type is TokenType.BRACKET_RIGHT:
                raise self._error("Unmatched bracket ')'", token)
            raise QueryParseError("The query is empty", 0, query)

        token = self._peek()
        if token.type is not TokenType.END_OF_QUERY:
            # Only a ')' can stop the top-level OR chain early
            raise self._error("Unmatched bracket ')'", token)
        return expr

    def _parse_or(self) -> Expression | None:
        expr = self._parse_and()
        token = self._peek()
        if token.type is not TokenType.OPERATOR_OR:
            return expr
        if expr is None:
            raise self._error("Expression expected before OR operator", token)

        operands = [expr]
        while token.type is TokenType.OPERATOR_OR:
            self._advance()
            expr = self._parse_and()
            if expr is None:
                raise self._error("Expression expected after OR operator", token)
            operands.append(expr)
            token = self._peek()
        return Or(operands)

    def _parse_and(self) -> Expression | None:
        token = self._peek()
        if token.type in _AND_TERMINATORS:
            return None
        if token.type is TokenType.OPERATOR_AND:
            raise self._error("Expression expected before AND operator", token)

        operands = [self._parse_single()]
        while self._peek().type not in _AND_TERMINATORS:
            token = self._peek()
            if token.type is TokenType.OPERATOR_AND:
                self._advance()
                if self._peek().type in _AND_TERMINATORS | {TokenType.OPERATOR_AND}:
                    raise self._error("Expression expected after AND operator", token)
            operands.append(self._parse_single())

        if len(operands) == 1:
            return operands[0]
        return And(operands)

    def _parse_single(self) -> Expression:
        token = self._peek()

        if token.type is TokenType.OPERATOR_NOT:
            self._advance()
            if self._peek().type in _AND_TERMINATORS | {TokenType.OPERATOR_AND}:
                raise self._error("The sub-expression after NOT operator is empty", token)
            return Not(self._parse_single())

        if token.type is TokenType.BRACKET_LEFT:
            self._advance()
            expr = self._parse_or()
            if expr is None:
                if self._peek().type is TokenType.BRACKET_RIGHT:
                    raise self._error("The sub-expression in brackets is empty", token)
                raise self._error("Missing matching bracket ')'", token)
            if self._peek().type is not TokenType.BRACKET_RIGHT:
                raise self._error("Missing matching bracket ')'", token)
            self._advance()
            return expr

        if token.type is TokenType.KEY_VALUE_PAIR:
            expr = self._parse_key_value(token)
            self._advance()
            return expr

        raise self._error("Unexpected expression -- expected ! or ( or key-value pair", token)

    def _parse_key_value(self, token: Token) -> Expression:
        key = token.word
        value = token.value or ""

        if key == "label":
            return LabelPattern(value) if is_pattern(value) else Label(value)
        if key == "-label":
            return Not(LabelPattern(value) if is_pattern(value) else Label(value))
        if key == "milestone":
            return MilestonePattern(value) if is_pattern(value) else Milestone(value)
        if key == "assignee":
            return Assignee(value)
        if key == "is":
            if value in _BUILTIN_IS_VALUES:
                return _BUILTIN_IS_VALUES[value]
            expr = self._custom_is_values.get(value)
            if expr is None:
                expected = "|".join([*_BUILTIN_IS_VALUES, *self._custom_is_values])
                raise self._error(
                    f"Unexpected value '{token}' in key-value pair, expected: [{expected}]",
                    token,
                )
            return expr
        if key == "no":
            expr = _NO_VALUES.get(value)
            if expr is None:
                raise self._error(
                    f"Unexpected value '{token}' in key-value pair, expected: [milestone|assignee]",
                    token,
                )
            return expr
        raise self._error(
            f"Unexpected key '{token}' in key-value pair, expected: [{_KNOWN_KEYS}]",
            token,
        )

    def _peek(self) -> Token:
        return self._tokens[self._pos]

    def _advance(self) -> Token:
        token = self._tokens[self._pos]
        if token.type is not TokenType.END_OF_QUERY:
            self._pos += 1
        return token

    def _error(self, message: str, token: Token) -> QueryParseError:
        return QueryParseError(message, token.position, self._query)


def parse_query(
    query: str, custom_is_values: Mapping[str, Expression] | None = None
) -> Expression:
    """Parse a query string into an expression.

    Args:
        query: The query string to parse.
        custom_is_values: Optional table of extra ``is:<name>`` values.

    Returns:
        The parsed expression.

    Raises:
        QueryParseError: If the query is empty or malformed.
    """
    return QueryParser(custom_is_values).parse(query)
