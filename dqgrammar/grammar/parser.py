"""Recursive-descent parser for the rule grammar.

Grammar (one rule per line, blank lines and ``#`` comments ignored)::

    table_dq    := table_name NEWLINE column_dq (NEWLINE column_dq)*
    column_dq   := column_name severity ["not"] dq_check
    severity    := "must" | "should"
    dq_check    := "be" "in" set_literal
                 | "be" "between" literal "and" literal
                 | "be" comparator (literal | column_name | "now")
                 | "be" "null"
                 | "be" "human_name"
                 | "be" ["a"] "valid" "date" ["with" "format" STRING]
                 | "have" "whitespace"
                 | "match" STRING
    comparator  := "greater" "than" ["or" "equal" "to"]
                 | "less" "than" ["or" "equal" "to"]
                 | "equal" "to" | "<" | "<=" | ">" | ">=" | "=" | "==" | "!="

``be less than now`` is parsed as a past check.

The parser never recovers: the first mismatch raises ParseError and no
partial tree is returned.

Example:
    >>> table = parse("Person\\n  Name should be human_name")
    >>> table.rules[0].check
    HumanNameCheck()
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import polars as pl

from dqgrammar.base import Severity
from dqgrammar.exceptions import ParseError
from dqgrammar.grammar.ast import (
    CheckVariant,
    ColumnDQ,
    ColumnRef,
    Comparator,
    ComparisonCheck,
    DateValidityCheck,
    HumanNameCheck,
    Literal,
    MembershipCheck,
    NowRef,
    NullCheck,
    Operand,
    PastCheck,
    PatternCheck,
    RangeCheck,
    SourceLocation,
    TableDQ,
    WhitespaceCheck,
)
from dqgrammar.grammar.lexer import tokenize
from dqgrammar.grammar.tokens import Token, TokenKind
from dqgrammar.logging import get_logger


if TYPE_CHECKING:
    from collections.abc import Iterable


logger = get_logger(__name__)

_SYMBOLIC_COMPARATORS = {
    "<": Comparator.LT,
    "<=": Comparator.LE,
    ">": Comparator.GT,
    ">=": Comparator.GE,
    "=": Comparator.EQ,
    "==": Comparator.EQ,
    "!=": Comparator.NE,
}

_CHECK_STARTS = ("'be'", "'have'", "'match'")
_BE_FOLLOWERS = (
    "'in'",
    "'between'",
    "'greater'",
    "'less'",
    "'equal'",
    "comparison operator",
    "'null'",
    "'human_name'",
    "'valid'",
    "'a'",
)


class Parser:
    """Parser over an already tokenized rule definition.

    One parser instance parses one rule definition. The token iterator is
    consumed lazily, so a lexing error surfaces at the position where the
    parser reaches it.
    """

    def __init__(self, tokens: Iterable[Token]) -> None:
        self._tokens = iter(tokens)
        self._current: Token = self._next_token(None)
        self._table: str | None = None
        self._column: str | None = None

    # -- token helpers --------------------------------------------------------

    @property
    def current(self) -> Token:
        return self._current

    def _advance(self) -> Token:
        token = self._current
        if token.kind is not TokenKind.EOF:
            self._current = self._next_token(token)
        return token

    def _next_token(self, previous: Token | None) -> Token:
        if previous is None:
            end = Token(TokenKind.EOF, None, "", 1, 1)
        else:
            end = Token(TokenKind.EOF, None, "", previous.line, previous.column + len(previous.text))
        return next(self._tokens, end)

    def _error(self, message: str, expected: tuple[str, ...] = ()) -> ParseError:
        token = self._current
        if expected:
            message = f"{message}: expected {' or '.join(expected)}, found {token.describe()}"
        return ParseError(
            message,
            token=token,
            expected=expected,
            table=self._table,
            column=self._column,
        )

    def _expect_keyword(self, *words: str, context: str) -> Token:
        if not self._current.is_keyword(*words):
            raise self._error(context, tuple(f"'{w}'" for w in words))
        return self._advance()

    def _skip_newlines(self) -> None:
        while self._current.kind is TokenKind.NEWLINE:
            self._advance()

    def _name(self, what: str) -> Token:
        # Keywords are accepted as names so that a column called "date" works
        if self._current.kind in (TokenKind.IDENTIFIER, TokenKind.KEYWORD):
            return self._advance()
        raise self._error(f"Invalid {what}", (f"{what}",))

    # -- productions ----------------------------------------------------------

    def parse_table(self) -> TableDQ:
        """Parse ``table_dq`` and require the input to end afterwards."""
        self._skip_newlines()
        if self._current.kind is TokenKind.EOF:
            raise self._error("Empty rule definition", ("table name",))

        name_token = self._name("table name")
        self._table = name_token.text
        if self._current.kind not in (TokenKind.NEWLINE, TokenKind.EOF):
            raise self._error("Table name must be a single identifier", ("end of line",))

        rules: list[ColumnDQ] = []
        self._skip_newlines()
        while self._current.kind is not TokenKind.EOF:
            rules.append(self.parse_column_dq())
            if self._current.kind not in (TokenKind.NEWLINE, TokenKind.EOF):
                raise self._error("Unexpected input after rule", ("end of line",))
            self._skip_newlines()

        if not rules:
            raise self._error(f"Table '{self._table}' has no column rules", ("column rule",))

        return TableDQ(
            name=self._table,
            rules=tuple(rules),
            location=SourceLocation(name_token.line, name_token.column),
        )

    def parse_column_dq(self) -> ColumnDQ:
        """Parse ``column_name severity ["not"] dq_check``."""
        column_token = self._name("column name")
        self._column = column_token.text

        severity = self.parse_severity()
        negated = False
        if self._current.is_keyword("not"):
            self._advance()
            negated = True
        check = self.parse_check()

        rule = ColumnDQ(
            column=column_token.text,
            severity=severity,
            negated=negated,
            check=check,
            location=SourceLocation(column_token.line, column_token.column),
        )
        self._column = None
        return rule

    def parse_severity(self) -> Severity:
        token = self._expect_keyword("must", "should", context="Missing severity")
        return Severity.from_keyword(token.value)

    def parse_check(self) -> CheckVariant:
        token = self._current
        if token.is_keyword("be"):
            self._advance()
            return self._parse_be_check()
        if token.is_keyword("have"):
            self._advance()
            self._expect_keyword("whitespace", context="Invalid 'have' check")
            return WhitespaceCheck()
        if token.is_keyword("match"):
            self._advance()
            return PatternCheck(pattern=self._parse_pattern())
        raise self._error("Invalid check", _CHECK_STARTS)

    def _parse_be_check(self) -> CheckVariant:
        token = self._current

        if token.is_keyword("in"):
            self._advance()
            return MembershipCheck(values=self._parse_set_literal())
        if token.is_keyword("between"):
            self._advance()
            low = self._parse_literal()
            self._expect_keyword("and", context="Invalid range")
            high = self._parse_literal()
            if low.is_numeric != high.is_numeric:
                raise self._error("Range bounds must both be numbers or both be strings")
            if low.value > high.value:  # type: ignore[operator]
                raise self._error(f"Range lower bound {low.value!r} exceeds upper bound {high.value!r}")
            return RangeCheck(low=low, high=high)
        if token.is_keyword("null"):
            self._advance()
            return NullCheck()
        if token.is_keyword("human_name"):
            self._advance()
            return HumanNameCheck()
        if token.is_keyword("a", "valid"):
            return self._parse_date_validity()

        comparator = self._parse_comparator()
        if comparator is None:
            raise self._error("Invalid 'be' check", _BE_FOLLOWERS)

        operand = self._parse_operand()
        if comparator is Comparator.LT and isinstance(operand, NowRef):
            return PastCheck()
        return ComparisonCheck(comparator=comparator, operand=operand)

    def _parse_comparator(self) -> Comparator | None:
        token = self._current
        if token.kind is TokenKind.OPERATOR:
            self._advance()
            return _SYMBOLIC_COMPARATORS[token.value]
        if token.is_keyword("greater", "less"):
            self._advance()
            self._expect_keyword("than", context="Invalid comparison")
            strict, inclusive = (
                (Comparator.GT, Comparator.GE)
                if token.value == "greater"
                else (Comparator.LT, Comparator.LE)
            )
            if self._current.is_keyword("or"):
                self._advance()
                self._expect_keyword("equal", context="Invalid comparison")
                self._expect_keyword("to", context="Invalid comparison")
                return inclusive
            return strict
        if token.is_keyword("equal"):
            self._advance()
            self._expect_keyword("to", context="Invalid comparison")
            return Comparator.EQ
        return None

    def _parse_operand(self) -> Operand:
        token = self._current
        if token.is_keyword("now"):
            self._advance()
            return NowRef()
        if token.kind in (TokenKind.NUMBER, TokenKind.STRING):
            return self._parse_literal()
        if token.kind in (TokenKind.IDENTIFIER, TokenKind.KEYWORD):
            return ColumnRef(name=self._advance().text)
        raise self._error("Invalid comparison operand", ("literal", "column name", "'now'"))

    def _parse_literal(self) -> Literal:
        if self._current.kind in (TokenKind.NUMBER, TokenKind.STRING):
            return Literal(value=self._advance().value)
        raise self._error("Invalid literal", ("number", "string"))

    def _parse_set_literal(self) -> tuple[Literal, ...]:
        if not self._current.is_punct("(", "["):
            raise self._error("Invalid set", ("'('", "'['"))
        closing = ")" if self._advance().value == "(" else "]"

        values = [self._parse_literal()]
        while self._current.is_punct(","):
            self._advance()
            values.append(self._parse_literal())
        if not self._current.is_punct(closing):
            raise self._error("Unterminated set", ("','", f"'{closing}'"))
        self._advance()

        if len({v.is_numeric for v in values}) > 1:
            raise self._error("Set values must all be numbers or all be strings")
        return tuple(values)

    def _parse_pattern(self) -> str:
        token = self._current
        if token.kind is not TokenKind.STRING:
            raise self._error("Invalid pattern", ("quoted regular expression",))
        # Same regex engine as evaluation.
        try:
            pl.select(pl.lit("", dtype=pl.String).str.contains(token.value))
        except pl.exceptions.PolarsError as e:
            raise ParseError(
                f"Invalid regular expression {token.value!r}: {e}",
                token=token,
                table=self._table,
                column=self._column,
                cause=e,
            ) from e
        self._advance()
        return token.value

    def _parse_date_validity(self) -> DateValidityCheck:
        if self._current.is_keyword("a"):
            self._advance()
        self._expect_keyword("valid", context="Invalid date check")
        self._expect_keyword("date", context="Invalid date check")
        if not self._current.is_keyword("with"):
            return DateValidityCheck()
        self._advance()
        self._expect_keyword("format", context="Invalid date check")
        if self._current.kind is not TokenKind.STRING:
            raise self._error("Invalid date format", ("quoted format string",))
        return DateValidityCheck(date_format=self._advance().value)


def parse_tokens(tokens: Iterable[Token]) -> TableDQ:
    """Parse a token stream into a ``TableDQ`` tree.

    Raises:
        LexError: If the underlying token stream hits unrecognised input.
        ParseError: If the tokens do not match the grammar.
    """
    return Parser(tokens).parse_table()


def parse(text: str) -> TableDQ:
    """Parse rule text into a ``TableDQ`` tree.

    Raises:
        LexError: On unrecognised input.
        ParseError: On a grammar mismatch.
    """
    table = parse_tokens(tokenize(text))
    logger.debug("Parsed rule definition", table=table.name, rule_count=len(table.rules))
    return table


def parse_file(path: Path | str) -> TableDQ:
    """Parse a UTF-8 rule file."""
    return parse(Path(path).read_text(encoding="utf-8"))
