"""Rule grammar: tokens, lexer, AST and parser.

Example:
    >>> from dqgrammar.grammar import parse
    >>> table = parse('''
    ... Person
    ...   Name should be human_name
    ...   Name must not have whitespace
    ... ''')
    >>> [rule.column for rule in table.rules]
    ['Name', 'Name']
"""

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
from dqgrammar.grammar.lexer import Lexer, tokenize
from dqgrammar.grammar.parser import Parser, parse, parse_file, parse_tokens
from dqgrammar.grammar.tokens import KEYWORDS, Token, TokenKind


__all__ = [
    # Tokens
    "KEYWORDS",
    "Token",
    "TokenKind",
    # Lexer
    "Lexer",
    "tokenize",
    # AST
    "CheckVariant",
    "ColumnDQ",
    "ColumnRef",
    "Comparator",
    "ComparisonCheck",
    "DateValidityCheck",
    "HumanNameCheck",
    "Literal",
    "MembershipCheck",
    "NowRef",
    "NullCheck",
    "Operand",
    "PastCheck",
    "PatternCheck",
    "RangeCheck",
    "SourceLocation",
    "TableDQ",
    "WhitespaceCheck",
    # Parser
    "Parser",
    "parse",
    "parse_file",
    "parse_tokens",
]
