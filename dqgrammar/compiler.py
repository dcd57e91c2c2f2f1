"""Rule compiler: turns a parsed rule tree into named polars predicates.

Each column rule becomes one ``CompiledPredicate``: a boolean polars
expression bound to a deterministic result column name of the form
``{severity_prefix}_{column}_{check_type}``, for example
``dqw_Name_human_name`` or ``dqs_Name_not_whitespace``.

The traversal keeps no state on the compiler. The partially built rule is a
``_RuleDraft`` value passed into and returned from every visit step, and the
only accumulator is local to one ``compile`` call, so one compiler can serve
many threads.

Null handling:
    For every check except the null check, a null source value (or a null
    sibling operand) makes the check fail. ``not`` inverts that null-filled
    result, so ``must not X`` is the exact negation of ``must X`` on every row.
    A column polars types as ``Null`` (every value missing) is graded with
    each predicate's ``null_result`` instead of being evaluated.

Example:
    >>> ruleset = compile_rules('''
    ... Person
    ...   Name should be human_name
    ...   Name must not have whitespace
    ... ''')
    >>> list(ruleset)
    ['dqw_Name_human_name', 'dqs_Name_not_whitespace']
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from enum import Enum, auto
from typing import TYPE_CHECKING, assert_never

import polars as pl

from dqgrammar.base import Severity
from dqgrammar.config import GrammarConfig
from dqgrammar.exceptions import DuplicateRuleError, RuleCompilationError
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
from dqgrammar.grammar.parser import parse
from dqgrammar.logging import LogContext, get_logger, get_performance_logger


if TYPE_CHECKING:
    from polars.datatypes import DataType


logger = get_logger(__name__)

NOW_COLUMN = "__dq_now__"
HUMAN_NAME_PATTERN = r"^(?:[A-Za-z\-']+\s?)*$"
WHITESPACE_PATTERN = r"\s"

_TIME_DIRECTIVES = re.compile(r"%[HIMSfpTRz]")
_NON_WORD = re.compile(r"\W+")


# =============================================================================
# Column typing requirements
# =============================================================================


class ColumnKind(Enum):
    """Family of column dtypes a check can be applied to."""

    ANY = auto()
    TEXT = auto()
    NUMERIC = auto()
    TEMPORAL = auto()
    ORDERABLE = auto()  # numeric, text or temporal
    DATE_SOURCE = auto()  # text to parse, or already temporal

    def accepts(self, dtype: DataType) -> bool:
        """True if ``dtype`` belongs to this family."""
        family = dtype_family(dtype)
        if self is ColumnKind.ANY or dtype == pl.Null:
            return True
        if self is ColumnKind.ORDERABLE:
            return family in (ColumnKind.TEXT, ColumnKind.NUMERIC, ColumnKind.TEMPORAL)
        if self is ColumnKind.DATE_SOURCE:
            return family in (ColumnKind.TEXT, ColumnKind.TEMPORAL)
        return family is self

    def describe(self) -> str:
        return {
            ColumnKind.ANY: "any type",
            ColumnKind.TEXT: "a string column",
            ColumnKind.NUMERIC: "a numeric column",
            ColumnKind.TEMPORAL: "a date or datetime column",
            ColumnKind.ORDERABLE: "a numeric, string or temporal column",
            ColumnKind.DATE_SOURCE: "a string, date or datetime column",
        }[self]


def dtype_family(dtype: DataType) -> ColumnKind:
    """Classify a polars dtype as TEXT, NUMERIC, TEMPORAL or ANY (other)."""
    if dtype == pl.String:
        return ColumnKind.TEXT
    if dtype.is_numeric():
        return ColumnKind.NUMERIC
    if dtype.is_temporal() and dtype != pl.Duration and dtype != pl.Time:
        return ColumnKind.TEMPORAL
    return ColumnKind.ANY


@dataclass(frozen=True, slots=True)
class ColumnRequirement:
    """A column a predicate reads and the dtype family it needs.

    Attributes:
        column: Column name.
        kind: Required dtype family.
        same_family_as: For sibling comparisons, the column whose family
            this column must match.
    """

    column: str
    kind: ColumnKind
    same_family_as: str | None = None


# =============================================================================
# Compiled output
# =============================================================================


@dataclass(frozen=True, slots=True)
class CompiledPredicate:
    """A named boolean expression produced from one column rule.

    Attributes:
        name: Result column name, unique within a rule set.
        error_name: ``name`` without its severity prefix; reported in row
            summaries when the check fails.
        severity: Severity of the rule.
        source_column: Column the rule is written against.
        check_type: Check type tag, including a ``not_`` prefix if negated.
        expression: Non-null boolean polars expression; True means the row
            satisfies the check.
        requirements: Columns read by ``expression`` and their dtype needs.
        location: Where the rule was written.
        temporal_expression: Replacement expression used when the source
            column is already temporal (date validity checks and
            comparisons against ISO date strings).
        null_result: Outcome on rows where a column it reads is null;
            used when a column has the polars ``Null`` dtype.
    """

    name: str
    error_name: str
    severity: Severity
    source_column: str
    check_type: str
    expression: pl.Expr
    requirements: tuple[ColumnRequirement, ...]
    location: SourceLocation | None = None
    temporal_expression: pl.Expr | None = None
    null_result: bool = False

    @property
    def uses_now(self) -> bool:
        return NOW_COLUMN in self.expression.meta.root_names()

    def expression_for(self, schema: Mapping[str, DataType]) -> pl.Expr:
        """Return the expression to evaluate against a frame with ``schema``."""
        if any(schema[r.column] == pl.Null for r in self.requirements):
            return pl.lit(self.null_result).alias(self.name)
        source_dtype = schema[self.source_column]
        if self.temporal_expression is not None and dtype_family(source_dtype) is ColumnKind.TEMPORAL:
            return self.temporal_expression.alias(self.name)
        return self.expression.alias(self.name)


class CompiledRuleSet(Mapping[str, CompiledPredicate]):
    """Ordered, read-only mapping from result column name to predicate.

    Iteration order is the order the rules were written in.
    """

    __slots__ = ("_predicates", "table")

    def __init__(self, table: str, predicates: Mapping[str, CompiledPredicate]) -> None:
        self.table = table
        self._predicates = dict(predicates)

    def __getitem__(self, name: str) -> CompiledPredicate:
        return self._predicates[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._predicates)

    def __len__(self) -> int:
        return len(self._predicates)

    def __repr__(self) -> str:
        return f"CompiledRuleSet(table={self.table!r}, predicates={list(self._predicates)!r})"

    @property
    def predicates(self) -> tuple[CompiledPredicate, ...]:
        return tuple(self._predicates.values())

    def by_severity(self, severity: Severity) -> tuple[CompiledPredicate, ...]:
        return tuple(p for p in self._predicates.values() if p.severity is severity)

    def severe(self) -> tuple[CompiledPredicate, ...]:
        """Predicates of MUST rules, in compiled order."""
        return self.by_severity(Severity.MUST)

    def warnings(self) -> tuple[CompiledPredicate, ...]:
        """Predicates of SHOULD rules, in compiled order."""
        return self.by_severity(Severity.SHOULD)

    @property
    def source_columns(self) -> tuple[str, ...]:
        """Every dataset column read by any predicate, first use first."""
        seen: dict[str, None] = {}
        for predicate in self._predicates.values():
            for requirement in predicate.requirements:
                seen.setdefault(requirement.column, None)
        return tuple(seen)


# =============================================================================
# Compiler
# =============================================================================


@dataclass(frozen=True, slots=True)
class _RuleDraft:
    """Scratch value for the rule being compiled."""

    source_column: str
    location: SourceLocation
    severity: Severity | None = None
    check_type: str = ""
    expression: pl.Expr | None = None
    temporal_expression: pl.Expr | None = None
    requirements: tuple[ColumnRequirement, ...] = ()
    null_result: bool = False


def _render_operand(operand: Operand) -> str:
    match operand:
        case NowRef():
            return "now"
        case ColumnRef(name=name):
            return name
        case Literal(value=value):
            if isinstance(value, str):
                rendered = _NON_WORD.sub("_", value).strip("_")
                return rendered or "empty"
            text = repr(value)
            prefix = "minus_" if text.startswith("-") else ""
            return prefix + _NON_WORD.sub("_", text.lstrip("-"))
        case _:
            assert_never(operand)


def _literal_kind(literal: Literal) -> ColumnKind:
    return ColumnKind.NUMERIC if literal.is_numeric else ColumnKind.TEXT


def _iso_moment(literal: Literal) -> datetime | None:
    """Parse a string literal as an ISO date or datetime, naive UTC."""
    if literal.is_numeric:
        return None
    try:
        moment = datetime.fromisoformat(literal.value)
    except ValueError:
        return None
    if moment.tzinfo is not None:
        moment = moment.astimezone(UTC).replace(tzinfo=None)
    return moment


def _moment_lit(moment: datetime) -> pl.Expr:
    return pl.lit(moment, dtype=pl.Datetime("us"))


def _compare(left: pl.Expr, comparator: Comparator, right: pl.Expr) -> pl.Expr:
    match comparator:
        case Comparator.LT:
            return left < right
        case Comparator.LE:
            return left <= right
        case Comparator.GT:
            return left > right
        case Comparator.GE:
            return left >= right
        case Comparator.EQ:
            return left == right
        case Comparator.NE:
            return left != right
        case _:
            assert_never(comparator)


class RuleCompiler:
    """Compile ``TableDQ`` trees into ``CompiledRuleSet`` objects.

    Args:
        config: Supplies the result column prefixes and the default date
            format.

    Example:
        >>> compiler = RuleCompiler()
        >>> ruleset = compiler.compile(parse(rule_text))
    """

    def __init__(self, config: GrammarConfig | None = None) -> None:
        self._config = config or GrammarConfig()
        self._perf = get_performance_logger(__name__, slow_threshold_ms=self._config.slow_threshold_ms)

    @property
    def config(self) -> GrammarConfig:
        return self._config

    def compile(self, table: TableDQ) -> CompiledRuleSet:
        """Compile every column rule of ``table``.

        Raises:
            DuplicateRuleError: If two rules produce the same result column.
        """
        with LogContext(operation="compile", table=table.name), self._perf.timed(
            "compile", rule_count=len(table.rules)
        ):
            predicates: dict[str, CompiledPredicate] = {}
            try:
                for rule in table.rules:
                    predicate = self._compile_rule(table, rule)
                    if predicate.name in predicates:
                        first = predicates[predicate.name].location
                        raise DuplicateRuleError(
                            predicate.name,
                            table=table.name,
                            column=rule.column,
                            line=rule.location.line,
                            first_line=first.line if first else None,
                        )
                    predicates[predicate.name] = predicate
            except RuleCompilationError as e:
                logger.error("Rule compilation failed", exc_info=e, position=e.position)
                raise

            ruleset = CompiledRuleSet(table.name, predicates)
            logger.info(
                "Compiled rule definition",
                predicate_count=len(ruleset),
                severe_count=len(ruleset.severe()),
                warning_count=len(ruleset.warnings()),
            )
            return ruleset

    # -- per-rule traversal ---------------------------------------------------

    def _compile_rule(self, table: TableDQ, rule: ColumnDQ) -> CompiledPredicate:
        draft = _RuleDraft(source_column=rule.column, location=rule.location)
        draft = self._visit_severity(draft, rule.severity)
        draft = self._visit_check(draft, rule.check)
        if rule.negated:
            draft = self._visit_negation(draft, rule.check)
        return self._finish(draft)

    def _visit_severity(self, draft: _RuleDraft, severity: Severity) -> _RuleDraft:
        return replace(draft, severity=severity)

    def _visit_negation(self, draft: _RuleDraft, check: CheckVariant) -> _RuleDraft:
        assert draft.expression is not None
        if isinstance(check, NullCheck):
            expression = pl.col(draft.source_column).is_not_null()
        else:
            expression = ~draft.expression
        temporal = ~draft.temporal_expression if draft.temporal_expression is not None else None
        return replace(
            draft,
            check_type=f"not_{draft.check_type}",
            expression=expression,
            temporal_expression=temporal,
            null_result=not draft.null_result,
        )

    def _visit_check(self, draft: _RuleDraft, check: CheckVariant) -> _RuleDraft:
        source = pl.col(draft.source_column)
        column = draft.source_column

        match check:
            case MembershipCheck(values=values):
                kind = _literal_kind(values[0])
                members = [v.value for v in values]
                if any(isinstance(m, float) for m in members):
                    widened = pl.Series(members, dtype=pl.Float64, strict=False)
                    raw = source.cast(pl.Float64).is_in(widened)
                else:
                    raw = source.is_in(members)
                return self._with(draft, "in_set", raw, ColumnRequirement(column, kind))

            case RangeCheck(low=low, high=high):
                tag = f"between_{_render_operand(low)}_{_render_operand(high)}"
                raw = source.is_between(pl.lit(low.value), pl.lit(high.value), closed="both")
                start, end = _iso_moment(low), _iso_moment(high)
                if start is None or end is None:
                    return self._with(draft, tag, raw, ColumnRequirement(column, _literal_kind(low)))
                temporal = source.cast(pl.Datetime("us")).is_between(
                    _moment_lit(start), _moment_lit(end), closed="both"
                )
                requirement = ColumnRequirement(column, ColumnKind.DATE_SOURCE)
                return self._with(draft, tag, raw, requirement, temporal=temporal)

            case PastCheck():
                raw = source.cast(pl.Datetime("us")) < pl.col(NOW_COLUMN)
                return self._with(draft, "lt_now", raw, ColumnRequirement(column, ColumnKind.TEMPORAL))

            case ComparisonCheck(comparator=comparator, operand=operand):
                return self._visit_comparison(draft, comparator, operand)

            case PatternCheck(pattern=pattern):
                raw = source.str.contains(pattern)
                return self._with(draft, "pattern", raw, ColumnRequirement(column, ColumnKind.TEXT))

            case WhitespaceCheck():
                raw = source.str.contains(WHITESPACE_PATTERN)
                return self._with(draft, "whitespace", raw, ColumnRequirement(column, ColumnKind.TEXT))

            case NullCheck():
                return replace(
                    draft,
                    check_type="null",
                    expression=source.is_null(),
                    null_result=True,
                    requirements=(ColumnRequirement(column, ColumnKind.ANY),),
                )

            case HumanNameCheck():
                raw = source.str.contains(HUMAN_NAME_PATTERN)
                return self._with(draft, "human_name", raw, ColumnRequirement(column, ColumnKind.TEXT))

            case DateValidityCheck(date_format=date_format):
                fmt = date_format or self._config.date_format
                target = pl.Datetime if _TIME_DIRECTIVES.search(fmt) else pl.Date
                parsed = source.str.strptime(target, fmt, strict=False)
                return replace(
                    draft,
                    check_type="valid_date",
                    expression=parsed.is_not_null(),
                    temporal_expression=source.is_not_null(),
                    requirements=(ColumnRequirement(column, ColumnKind.DATE_SOURCE),),
                )

            case _:
                assert_never(check)

    def _visit_comparison(
        self,
        draft: _RuleDraft,
        comparator: Comparator,
        operand: Operand,
    ) -> _RuleDraft:
        source = pl.col(draft.source_column)
        column = draft.source_column
        tag = f"{comparator.value}_{_render_operand(operand)}"

        match operand:
            case Literal() as literal:
                raw = _compare(source, comparator, pl.lit(literal.value))
                moment = _iso_moment(literal)
                if moment is None:
                    return self._with(draft, tag, raw, ColumnRequirement(column, _literal_kind(literal)))
                temporal = _compare(source.cast(pl.Datetime("us")), comparator, _moment_lit(moment))
                requirement = ColumnRequirement(column, ColumnKind.DATE_SOURCE)
                return self._with(draft, tag, raw, requirement, temporal=temporal)
            case ColumnRef(name=other):
                kind = ColumnKind.ANY if comparator in (Comparator.EQ, Comparator.NE) else ColumnKind.ORDERABLE
                raw = _compare(source, comparator, pl.col(other))
                return self._with(
                    draft,
                    tag,
                    raw,
                    ColumnRequirement(column, kind),
                    ColumnRequirement(other, kind, same_family_as=column),
                )
            case NowRef():
                raw = _compare(source.cast(pl.Datetime("us")), comparator, pl.col(NOW_COLUMN))
                return self._with(draft, tag, raw, ColumnRequirement(column, ColumnKind.TEMPORAL))
            case _:
                assert_never(operand)

    @staticmethod
    def _with(
        draft: _RuleDraft,
        check_type: str,
        raw: pl.Expr,
        *requirements: ColumnRequirement,
        temporal: pl.Expr | None = None,
    ) -> _RuleDraft:
        return replace(
            draft,
            check_type=check_type,
            expression=raw.fill_null(False),
            temporal_expression=temporal.fill_null(False) if temporal is not None else None,
            requirements=requirements,
        )

    def _finish(self, draft: _RuleDraft) -> CompiledPredicate:
        assert draft.severity is not None and draft.expression is not None
        prefix = (
            self._config.severe_prefix if draft.severity is Severity.MUST else self._config.warning_prefix
        )
        error_name = f"{draft.source_column}_{draft.check_type}"
        return CompiledPredicate(
            name=f"{prefix}{error_name}",
            error_name=error_name,
            severity=draft.severity,
            source_column=draft.source_column,
            check_type=draft.check_type,
            expression=draft.expression,
            requirements=draft.requirements,
            location=draft.location,
            temporal_expression=draft.temporal_expression,
            null_result=draft.null_result,
        )


def compile_rules(text: str, config: GrammarConfig | None = None) -> CompiledRuleSet:
    """Parse and compile rule text in one step.

    Raises:
        LexError, ParseError, DuplicateRuleError: Before any data is touched.
    """
    return RuleCompiler(config).compile(parse(text))
