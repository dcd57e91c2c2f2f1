"""Lexer for the rule grammar.

Turns rule text into a stream of tokens. The stream is produced lazily and a
``Lexer`` can be iterated any number of times; each iteration starts again
from the first character.

Example:
    >>> [t.text for t in tokenize("Person\\n  Name must be human_name")]
    ['Person', '\\n', 'Name', 'must', 'be', 'human_name', '']
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from dqgrammar.exceptions import LexError
from dqgrammar.grammar.tokens import KEYWORDS, OPERATORS, Token, TokenKind


if TYPE_CHECKING:
    from collections.abc import Iterator


_TOKEN_PATTERN = re.compile(
    r"""
    (?P<SPACE>[ \t\r\f]+)
  | (?P<COMMENT>\#[^\n]*)
  | (?P<NEWLINE>\n)
  | (?P<NUMBER>-?\d+(?:\.\d+)?(?![A-Za-z0-9_]))
  | (?P<STRING>"(?:[^"\\\n]|\\.)*"|'(?:[^'\\\n]|\\.)*')
  | (?P<OPERATOR>"""
    + "|".join(re.escape(op) for op in OPERATORS)
    + r""")
  | (?P<PUNCT>[()\[\],])
  | (?P<WORD>[A-Za-z_][A-Za-z0-9_]*)
    """,
    re.VERBOSE,
)

_ESCAPE = re.compile(r"\\(.)")


def _unquote(raw: str) -> str:
    quote = raw[0]
    body = raw[1:-1]

    def _replace(match: re.Match[str]) -> str:
        char = match.group(1)
        # Only quotes and backslashes are escapes; "\d" stays "\d" for patterns
        if char in (quote, "\\"):
            return char
        return match.group(0)

    return _ESCAPE.sub(_replace, body)


class Lexer:
    """Restartable token stream over a rule text.

    Args:
        text: The rule definition text.

    Raises:
        LexError: While iterating, on the first character sequence that does
            not form a token.
    """

    def __init__(self, text: str) -> None:
        self.text = text

    def __iter__(self) -> Iterator[Token]:
        return self._scan()

    def _scan(self) -> Iterator[Token]:
        text = self.text
        pos = 0
        line = 1
        line_start = 0

        while pos < len(text):
            match = _TOKEN_PATTERN.match(text, pos)
            column = pos - line_start + 1
            if match is None:
                raise self._error(text, pos, line, column)

            kind = match.lastgroup
            raw = match.group()
            pos = match.end()

            if kind in ("SPACE", "COMMENT"):
                continue
            if kind == "NEWLINE":
                yield Token(TokenKind.NEWLINE, "\n", raw, line, column)
                line += 1
                line_start = pos
            elif kind == "NUMBER":
                value: int | float = float(raw) if "." in raw else int(raw)
                yield Token(TokenKind.NUMBER, value, raw, line, column)
            elif kind == "STRING":
                yield Token(TokenKind.STRING, _unquote(raw), raw, line, column)
            elif kind == "OPERATOR":
                yield Token(TokenKind.OPERATOR, raw, raw, line, column)
            elif kind == "PUNCT":
                yield Token(TokenKind.PUNCT, raw, raw, line, column)
            else:
                lowered = raw.lower()
                if lowered in KEYWORDS:
                    yield Token(TokenKind.KEYWORD, lowered, raw, line, column)
                else:
                    yield Token(TokenKind.IDENTIFIER, raw, raw, line, column)

        yield Token(TokenKind.EOF, None, "", line, pos - line_start + 1)

    @staticmethod
    def _error(text: str, pos: int, line: int, column: int) -> LexError:
        char = text[pos]
        if char in ("'", '"'):
            return LexError(
                f"Unterminated string literal at line {line}, column {column}",
                text=text[pos:].split("\n", 1)[0],
                line=line,
                column_number=column,
            )
        fragment = re.match(r"\S+", text[pos:])
        snippet = fragment.group() if fragment else char
        return LexError(
            f"Unrecognized input {snippet!r} at line {line}, column {column}",
            text=snippet,
            line=line,
            column_number=column,
        )


def tokenize(text: str) -> Iterator[Token]:
    """Lazily tokenize rule text, ending with an EOF token.

    Raises:
        LexError: On unrecognised input, when the generator reaches it.
    """
    return iter(Lexer(text))

