"""Evaluation engine: applies a compiled rule set to tabular data.

All predicates are evaluated in one vectorised ``with_columns`` pass. Every
check runs on every row, and each predicate yields one non-null boolean
column named after its result column.

Before anything is evaluated the engine checks that each column read by a
predicate exists and has a dtype the check can be applied to. A missing or
ill-typed column raises ``CheckEvaluationError``. That error reports a broken
rule/data pairing; it is never reported as a data quality failure.

Example:
    >>> engine = EvaluationEngine()
    >>> evaluated = engine.evaluate(frame, ruleset, now=datetime(2024, 1, 1))
    >>> evaluated.select("dqw_Name_human_name").to_series().to_list()
    [True, False]
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import polars as pl

from dqgrammar.compiler import NOW_COLUMN, ColumnKind, CompiledRuleSet, dtype_family
from dqgrammar.config import GrammarConfig
from dqgrammar.exceptions import CheckEvaluationError, wrap_exception
from dqgrammar.logging import LogContext, get_logger, get_performance_logger


if TYPE_CHECKING:
    from dqgrammar.compiler import CompiledPredicate


logger = get_logger(__name__)

FrameLike = pl.DataFrame | pl.LazyFrame


# =============================================================================
# Input conversion
# =============================================================================


def to_frame(data: Any, columns: Sequence[str] = ()) -> FrameLike:
    """Convert supported inputs to a polars frame.

    Accepted inputs are polars DataFrame and LazyFrame (returned as is), a
    mapping of column name to values, a sequence of row mappings, and pandas
    DataFrames. An empty row sequence becomes a zero-row frame with one
    ``Null`` column per name in ``columns``.

    Raises:
        CheckEvaluationError: If the input type is not supported or cannot
            be converted.
    """
    if isinstance(data, pl.DataFrame | pl.LazyFrame):
        return data
    try:
        if isinstance(data, Mapping):
            return pl.DataFrame(dict(data))
        if isinstance(data, Sequence) and not isinstance(data, str | bytes):
            if all(isinstance(row, Mapping) for row in data):
                if not data:
                    return pl.DataFrame(schema={name: pl.Null for name in columns})
                return pl.from_dicts(list(data))
        if hasattr(data, "to_pandas") and hasattr(data, "columns"):
            return pl.from_pandas(data.to_pandas())
        if hasattr(data, "iloc") and hasattr(data, "columns"):
            return pl.from_pandas(data)
    except (TypeError, ValueError, pl.exceptions.PolarsError) as e:
        raise wrap_exception(
            e,
            CheckEvaluationError,
            f"Cannot convert {type(data).__name__} to a data frame: {e}",
        ) from e
    raise CheckEvaluationError(
        f"Unsupported data type: {type(data).__name__}",
        expected="polars DataFrame/LazyFrame, pandas DataFrame, column mapping or row mappings",
        actual=type(data).__name__,
    )


def _normalize_now(now: datetime | None) -> datetime:
    if now is None:
        return datetime.now(UTC).replace(tzinfo=None)
    if now.tzinfo is not None:
        return now.astimezone(UTC).replace(tzinfo=None)
    return now


# =============================================================================
# Engine
# =============================================================================


class EvaluationEngine:
    """Evaluate compiled predicates against a frame.

    The engine keeps no per-call state and may be shared across threads.

    Args:
        config: Only ``slow_threshold_ms`` is read here.
    """

    def __init__(self, config: GrammarConfig | None = None) -> None:
        self._config = config or GrammarConfig()
        self._perf = get_performance_logger(__name__, slow_threshold_ms=self._config.slow_threshold_ms)

    @property
    def config(self) -> GrammarConfig:
        return self._config

    def evaluate(
        self,
        data: Any,
        ruleset: CompiledRuleSet,
        now: datetime | None = None,
    ) -> FrameLike:
        """Add one boolean column per predicate to ``data``.

        Args:
            data: Frame or frame-like input; see ``to_frame``.
            ruleset: Compiled rules.
            now: Timestamp the ``now`` operand resolves to. Defaults to the
                current UTC time. Aware datetimes are converted to naive UTC.

        Returns:
            A LazyFrame if ``data`` was a LazyFrame, otherwise a DataFrame.
            The input columns are kept unchanged.

        Raises:
            CheckEvaluationError: On a missing or ill-typed column, or if
                polars fails while computing the checks.
        """
        frame = to_frame(data, ruleset.source_columns)
        with LogContext(operation="evaluate", table=ruleset.table):
            schema = frame.collect_schema()
            self.check_schema(schema, ruleset)

            uses_now = any(predicate.uses_now for predicate in ruleset.predicates)
            if uses_now and NOW_COLUMN in schema:
                raise CheckEvaluationError(
                    f"Input already has a column named {NOW_COLUMN!r}",
                    column=NOW_COLUMN,
                )

            expressions = [
                predicate.expression_for(schema)
                for predicate in ruleset.predicates
            ]
            lazy = frame.lazy()
            if uses_now:
                lazy = lazy.with_columns(
                    pl.lit(_normalize_now(now), dtype=pl.Datetime("us")).alias(NOW_COLUMN)
                )
            lazy = lazy.with_columns(expressions)
            if uses_now:
                lazy = lazy.drop(NOW_COLUMN)

            if isinstance(frame, pl.LazyFrame):
                logger.debug("Prepared lazy evaluation", predicate_count=len(ruleset))
                return lazy

            with self._perf.timed("evaluate", rows=frame.height, predicates=len(ruleset)):
                try:
                    result = lazy.collect()
                except pl.exceptions.PolarsError as e:
                    logger.error("Check evaluation failed", exc_info=e)
                    raise wrap_exception(
                        e,
                        CheckEvaluationError,
                        f"Failed to evaluate checks for table '{ruleset.table}': {e}",
                    ) from e
            logger.debug("Evaluated checks", rows=result.height, predicate_count=len(ruleset))
            return result

    def check_schema(self, schema: Mapping[str, pl.DataType], ruleset: CompiledRuleSet) -> None:
        """Verify every column a predicate reads exists with a usable dtype.

        Raises:
            CheckEvaluationError: For the first predicate that cannot be
                applied, naming the check, the column and the dtype found.
        """
        for predicate in ruleset.predicates:
            self._check_predicate(schema, predicate)

    @staticmethod
    def _check_predicate(schema: Mapping[str, pl.DataType], predicate: CompiledPredicate) -> None:
        for requirement in predicate.requirements:
            if requirement.column not in schema:
                raise CheckEvaluationError(
                    f"Check '{predicate.name}' references missing column '{requirement.column}'",
                    rule_name=predicate.name,
                    column=requirement.column,
                    expected=requirement.kind.describe(),
                    actual="missing column",
                )
            dtype = schema[requirement.column]
            if not requirement.kind.accepts(dtype):
                raise CheckEvaluationError(
                    f"Check '{predicate.name}' needs {requirement.kind.describe()} "
                    f"but column '{requirement.column}' is {dtype}",
                    rule_name=predicate.name,
                    column=requirement.column,
                    expected=requirement.kind.describe(),
                    actual=str(dtype),
                )
            sibling = requirement.same_family_as
            if sibling is not None and sibling in schema:
                if dtype == pl.Null or schema[sibling] == pl.Null:
                    continue
                family = dtype_family(dtype)
                mismatched = family is not dtype_family(schema[sibling]) or (
                    family is ColumnKind.ANY and dtype != schema[sibling]
                )
                if mismatched:
                    raise CheckEvaluationError(
                        f"Check '{predicate.name}' compares '{sibling}' ({schema[sibling]}) "
                        f"with '{requirement.column}' ({dtype})",
                        rule_name=predicate.name,
                        column=requirement.column,
                        expected=f"same type family as {schema[sibling]}",
                        actual=str(dtype),
                    )
