"""Token types for the rule grammar."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Any


class TokenKind(Enum):
    """Kind of a lexical token."""

    KEYWORD = auto()
    IDENTIFIER = auto()
    NUMBER = auto()
    STRING = auto()
    PUNCT = auto()
    OPERATOR = auto()
    NEWLINE = auto()
    EOF = auto()


KEYWORDS: frozenset[str] = frozenset({
    "must",
    "should",
    "be",
    "not",
    "in",
    "have",
    "match",
    "greater",
    "less",
    "than",
    "equal",
    "to",
    "or",
    "and",
    "between",
    "null",
    "human_name",
    "whitespace",
    "now",
    "a",
    "valid",
    "date",
    "with",
    "format",
})

PUNCTUATION: frozenset[str] = frozenset({"(", ")", "[", "]", ","})

# Longest first so "<=" wins over "<"
OPERATORS: tuple[str, ...] = ("<=", ">=", "==", "!=", "<", ">", "=")


@dataclass(frozen=True, slots=True)
class Token:
    """A lexical token with its source position.

    Attributes:
        kind: Token kind.
        value: Normalised value. Keywords are lower-cased, numbers are int or
            float, strings have their quotes and escapes resolved.
        text: The raw source text of the token.
        line: 1-based line number.
        column: 1-based column of the first character.
    """

    kind: TokenKind
    value: Any
    text: str
    line: int
    column: int

    def is_keyword(self, *words: str) -> bool:
        """True if this is a keyword token equal to one of ``words``."""
        return self.kind is TokenKind.KEYWORD and self.value in words

    def is_punct(self, *symbols: str) -> bool:
        return self.kind is TokenKind.PUNCT and self.value in symbols

    def describe(self) -> str:
        """Short description used in error messages."""
        if self.kind is TokenKind.EOF:
            return "end of input"
        if self.kind is TokenKind.NEWLINE:
            return "end of line"
        return f"{self.kind.name.lower()} '{self.text}'"

    def __str__(self) -> str:
        return f"{self.describe()} at {self.line}:{self.column}"
