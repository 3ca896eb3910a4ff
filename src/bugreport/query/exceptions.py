"""Exceptions raised by the query engine."""

from __future__ import annotations


class QueryParseError(ValueError):
    """Raised when a query string cannot be tokenized or parsed.

    Attributes:
        message: Human-readable description of the problem.
        position: 0-based character offset into the query string.
        query: The query string that failed to parse.
    """

    def __init__(self, message: str, position: int, query: str = "") -> None:
        super().__init__(f"{message} at position {position}")
        self.message = message
        self.position = position
        self.query = query


class MultiRepoError(ValueError):
    """Raised when a MultiRepo expression has a duplicate repository or default."""

    pass


__all__ = ["MultiRepoError", "QueryParseError"]
