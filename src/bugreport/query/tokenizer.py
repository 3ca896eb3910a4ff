"""Tokenizer for the issue query language.

Turns a raw query string such as ``label:bug AND (is:open || -label:"help wanted")``
into a flat list of typed tokens. Every token remembers the 0-based offset of its
first character so that the parser can report errors against the original string.

Recognized tokens:
    (  )              Brackets
    !  &&  ||         Operators (NOT, AND, OR)
    AND  OR  NOT      Operator keywords (case-insensitive bare words)
    word              Any other bare word
    key:value         Key-value pair; value is a bare run of [-_./a-zA-Z0-9]
                      or a double-quoted string which may contain spaces
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from bugreport.query.exceptions import QueryParseError

__all__ = [
    "QueryTokenizer",
    "Token",
    "TokenType",
    "is_value_char",
    "tokenize",
]


class TokenType(Enum):
    """Kinds of tokens produced by the tokenizer."""

    END_OF_QUERY = "end of query"
    BRACKET_LEFT = "("
    BRACKET_RIGHT = ")"
    WORD = "word"
    OPERATOR_NOT = "NOT"
    OPERATOR_AND = "AND"
    OPERATOR_OR = "OR"
    KEY_VALUE_PAIR = "key:value"


# Bare words that act as operators
_KEYWORDS: dict[str, TokenType] = {
    "AND": TokenType.OPERATOR_AND,
    "OR": TokenType.OPERATOR_OR,
    "NOT": TokenType.OPERATOR_NOT,
}


@dataclass(frozen=True)
class Token:
    """A single token of a query string.

    Attributes:
        type: The token kind.
        position: 0-based offset of the token's first character.
        word: Text of a WORD token, or the key of a KEY_VALUE_PAIR token.
        value: The value of a KEY_VALUE_PAIR token.
    """

    type: TokenType
    position: int
    word: str | None = None
    value: str | None = None

    def is_key_value_pair(self, key: str, value: str | None = None) -> bool:
        """Check whether this is a key-value pair with the given key (and value).

        Keys and values are compared case-sensitively.
        """
        if self.type is not TokenType.KEY_VALUE_PAIR or self.word != key:
            return False
        return value is None or self.value == value

    def __str__(self) -> str:
        if self.type is TokenType.KEY_VALUE_PAIR:
            return f"{self.word}:{self.value}"
        if self.type is TokenType.WORD:
            return self.word or ""
        return self.type.value


def _is_word_char(char: str | None) -> bool:
    return char is not None and (char.isalpha() or char in "-_.")


def is_value_char(char: str | None) -> bool:
    return char is not None and (char.isalnum() or char in "-_./")


def _is_word_end(char: str | None) -> bool:
    return char is None or char.isspace() or char == ")"


class QueryTokenizer:
    """Reads tokens one at a time from an in-memory query string.

    Example:
        tokenizer = QueryTokenizer("label:bug && is:open")
        tokens = tokenizer.tokenize()
    """

    _SINGLE_CHAR_TOKENS: dict[str, TokenType] = {
        "(": TokenType.BRACKET_LEFT,
        ")": TokenType.BRACKET_RIGHT,
        "!": TokenType.OPERATOR_NOT,
    }

    def __init__(self, query: str) -> None:
        self._query = query
        self._pos = 0

    def tokenize(self) -> list[Token]:
        """Read all remaining tokens.

        Returns:
            List of tokens, always terminated by an END_OF_QUERY token.

        Raises:
            QueryParseError: If the query contains an invalid character sequence.
        """
        tokens: list[Token] = []
        while True:
            token = self.read_next_token()
            tokens.append(token)
            if token.type is TokenType.END_OF_QUERY:
                return tokens

    def read_next_token(self) -> Token:
        """Read the next token, skipping leading whitespace.

        Raises:
            QueryParseError: If the query contains an invalid character sequence.
        """
        self._skip_whitespace()
        start = self._pos
        char = self._peek()

        if char is None:
            return Token(TokenType.END_OF_QUERY, start)

        if char in self._SINGLE_CHAR_TOKENS:
            self._read()
            return Token(self._SINGLE_CHAR_TOKENS[char], start)

        if char in "&|":
            self._read()
            if self._peek() != char:
                raise self._error(f"{char} expected after {char}", self._pos)
            self._read()
            token_type = TokenType.OPERATOR_AND if char == "&" else TokenType.OPERATOR_OR
            return Token(token_type, start)

        return self._read_word(start)

    def _read_word(self, start: int) -> Token:
        key_chars: list[str] = []
        if self._peek() == "-":
            key_chars.append(self._read())

        first = self._peek()
        if first is None or not first.isalpha():
            raise self._error("Expected [a-zA-Z] character", self._pos)
        while _is_word_char(self._peek()):
            key_chars.append(self._read())
        key = "".join(key_chars)

        next_char = self._peek()
        if _is_word_end(next_char):
            if key.startswith("-"):
                raise self._error("Expected ':' separator for words starting with -", start)
            keyword = _KEYWORDS.get(key.upper())
            if keyword is not None:
                return Token(keyword, start)
            return Token(TokenType.WORD, start, word=key)

        if next_char != ":":
            raise self._error("Expected ')' or ':' or whitespace after the word", self._pos)
        self._read()

        if self._peek() == '"':
            value = self._read_quoted_value()
        else:
            value = self._read_bare_value()

        if not _is_word_end(self._peek()):
            raise self._error("Expected ')' or whitespace after the value", self._pos)
        return Token(TokenType.KEY_VALUE_PAIR, start, word=key, value=value)

    def _read_quoted_value(self) -> str:
        quote_position = self._pos
        self._read()
        chars: list[str] = []
        while True:
            char = self._read()
            if not char:
                raise self._error("Unable to find matching '\"' character", quote_position)
            if char == '"':
                return "".join(chars)
            chars.append(char)

    def _read_bare_value(self) -> str:
        if not is_value_char(self._peek()):
            raise self._error("Expected [-_./a-zA-Z0-9] character after ':'", self._pos)
        chars: list[str] = []
        while is_value_char(self._peek()):
            chars.append(self._read())
        return "".join(chars)

    def _skip_whitespace(self) -> None:
        while (char := self._peek()) is not None and char.isspace():
            self._pos += 1

    def _peek(self) -> str | None:
        if self._pos < len(self._query):
            return self._query[self._pos]
        return None

    def _read(self) -> str:
        # Returns "" at the end of the query
        char = self._query[self._pos : self._pos + 1]
        if char:
            self._pos += 1
        return char

    def _error(self, message: str, position: int) -> QueryParseError:
        return QueryParseError(message, position, self._query)


def tokenize(query: str) -> list[Token]:
    """Tokenize a query string.

    Args:
        query: The query string.

    Returns:
        List of tokens terminated by an END_OF_QUERY token.

    Raises:
        QueryParseError: If the query contains an invalid character sequence.
    """
    return QueryTokenizer(query).tokenize()
