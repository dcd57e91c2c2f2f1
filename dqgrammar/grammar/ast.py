"""AST node definitions for the rule grammar.

All nodes are immutable dataclasses carrying the source location they were
parsed from. A ``TableDQ`` owns its ``ColumnDQ`` children, each of which owns
exactly one check node; the check nodes together form the closed
``CheckVariant`` union.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from dqgrammar.base import Severity


@dataclass(frozen=True, slots=True)
class SourceLocation:
    """Source location for error reporting."""

    line: int
    column: int

    def __str__(self) -> str:
        return f"{self.line}:{self.column}"


class Comparator(Enum):
    """Comparison operator of a comparison check.

    The value is the tag used in result column names.
    """

    LT = "lt"
    LE = "le"
    GT = "gt"
    GE = "ge"
    EQ = "eq"
    NE = "ne"


# =============================================================================
# Operands
# =============================================================================


@dataclass(frozen=True, slots=True)
class Literal:
    """A number or string literal."""

    value: int | float | str

    @property
    def is_numeric(self) -> bool:
        return not isinstance(self.value, str)


@dataclass(frozen=True, slots=True)
class ColumnRef:
    """Reference to a sibling column of the same table."""

    name: str


@dataclass(frozen=True, slots=True)
class NowRef:
    """The evaluation-time current timestamp."""


Operand = Literal | ColumnRef | NowRef


# =============================================================================
# Checks
# =============================================================================


@dataclass(frozen=True, slots=True)
class MembershipCheck:
    """``be in (v1, v2, ...)``"""

    values: tuple[Literal, ...]


@dataclass(frozen=True, slots=True)
class RangeCheck:
    """``be between low and high`` (inclusive)."""

    low: Literal
    high: Literal


@dataclass(frozen=True, slots=True)
class ComparisonCheck:
    """``be greater than 10``, ``be equal to OtherColumn``, ``be > now``..."""

    comparator: Comparator
    operand: Operand


@dataclass(frozen=True, slots=True)
class PastCheck:
    """``be less than now``"""


@dataclass(frozen=True, slots=True)
class PatternCheck:
    """``match "regex"``"""

    pattern: str


@dataclass(frozen=True, slots=True)
class WhitespaceCheck:
    """``have whitespace``"""


@dataclass(frozen=True, slots=True)
class NullCheck:
    """``be null``"""


@dataclass(frozen=True, slots=True)
class HumanNameCheck:
    """``be human_name``"""


@dataclass(frozen=True, slots=True)
class DateValidityCheck:
    """``be a valid date [with format "%d/%m/%Y"]``

    ``date_format`` is None when the rule declares no format.
    """

    date_format: str | None = None


CheckVariant = (
    MembershipCheck
    | RangeCheck
    | ComparisonCheck
    | PastCheck
    | PatternCheck
    | WhitespaceCheck
    | NullCheck
    | HumanNameCheck
    | DateValidityCheck
)


# =============================================================================
# Rules
# =============================================================================


@dataclass(frozen=True, slots=True)
class ColumnDQ:
    """One column rule: ``<column> <severity> [not] <check>``."""

    column: str
    severity: Severity
    negated: bool
    check: CheckVariant
    location: SourceLocation


@dataclass(frozen=True, slots=True)
class TableDQ:
    """Root node: a table name followed by at least one column rule."""

    name: str
    rules: tuple[ColumnDQ, ...]
    location: SourceLocation

    def __iter__(self):
        return iter(self.rules)

    def __len__(self) -> int:
        return len(self.rules)
