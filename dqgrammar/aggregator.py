"""Result aggregation: folds per-check booleans into a per-row summary.

The summary column (``DataQualityResult`` by default) is a struct with the
layout::

    SevereCount: Int32
    WarningCount: Int32
    SevereErrors: List[String]
    WarningErrors: List[String]

Error lists hold the names of the failed checks in compiled order. A name is
the check's result column name without its severity prefix, for example
``Name_human_name``. Each count is the length of its list.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

import polars as pl

from dqgrammar.base import (
    CheckFailure,
    RowGradeSummary,
    SummaryStatus,
    ValidationSummary,
)
from dqgrammar.config import GrammarConfig
from dqgrammar.exceptions import CheckEvaluationError
from dqgrammar.logging import LogContext, get_logger


if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from dqgrammar.compiler import CompiledPredicate, CompiledRuleSet
    from dqgrammar.engine import FrameLike


logger = get_logger(__name__)

RESULT_DTYPE = pl.Struct(
    {
        "SevereCount": pl.Int32,
        "WarningCount": pl.Int32,
        "SevereErrors": pl.List(pl.String),
        "WarningErrors": pl.List(pl.String),
    }
)


def _error_names(predicates: Sequence[CompiledPredicate]) -> pl.Expr:
    # The leading null keeps the list typed and non-empty to build when
    # there are no predicates of this severity; drop_nulls removes it.
    items = [pl.lit(None, dtype=pl.String)]
    items.extend(
        pl.when(pl.col(p.name)).then(pl.lit(None, dtype=pl.String)).otherwise(pl.lit(p.error_name))
        for p in predicates
    )
    return pl.concat_list(items).list.drop_nulls()


def _any_failed(predicates: Sequence[CompiledPredicate]) -> pl.Expr:
    if not predicates:
        return pl.lit(False)
    return pl.any_horizontal([~pl.col(p.name) for p in predicates])


class ResultAggregator:
    """Build the per-row summary column and dataset-level summaries.

    Args:
        config: Supplies ``result_column``, ``keep_check_columns`` and
            ``sample_size``.
    """

    def __init__(self, config: GrammarConfig | None = None) -> None:
        self._config = config or GrammarConfig()

    @property
    def config(self) -> GrammarConfig:
        return self._config

    def summary_expression(self, ruleset: CompiledRuleSet) -> pl.Expr:
        """Expression producing the summary struct from the check columns."""
        severe = _error_names(ruleset.severe())
        warning = _error_names(ruleset.warnings())
        return pl.struct(
            SevereCount=severe.list.len().cast(pl.Int32),
            WarningCount=warning.list.len().cast(pl.Int32),
            SevereErrors=severe,
            WarningErrors=warning,
        ).alias(self._config.result_column)

    def aggregate(self, evaluated: FrameLike, ruleset: CompiledRuleSet) -> FrameLike:
        """Add the summary column to an evaluated frame.

        The per-check columns are dropped unless ``keep_check_columns`` is
        set. LazyFrames stay lazy.

        Raises:
            CheckEvaluationError: If a check column is missing from
                ``evaluated``.
        """
        self._require_check_columns(evaluated, ruleset)
        result = evaluated.with_columns(self.summary_expression(ruleset))
        if not self._config.keep_check_columns:
            result = result.drop(list(ruleset))
        logger.debug(
            "Aggregated check results",
            table=ruleset.table,
            result_column=self._config.result_column,
        )
        return result

    def iter_row_summaries(self, frame: FrameLike) -> Iterator[RowGradeSummary]:
        """Yield a ``RowGradeSummary`` per row of an aggregated frame."""
        if isinstance(frame, pl.LazyFrame):
            frame = frame.select(self._config.result_column).collect()
        for value in frame.get_column(self._config.result_column):
            yield RowGradeSummary.from_dict(value)

    def summarize(
        self,
        evaluated: FrameLike,
        ruleset: CompiledRuleSet,
        *,
        execution_time_ms: float | None = None,
    ) -> ValidationSummary:
        """Roll an evaluated frame up into a ``ValidationSummary``.

        ``evaluated`` must still carry the per-check columns, as returned by
        ``EvaluationEngine.evaluate``.
        """
        start = time.perf_counter()
        self._require_check_columns(evaluated, ruleset)
        frame = evaluated.collect() if isinstance(evaluated, pl.LazyFrame) else evaluated

        with LogContext(operation="summarize", table=ruleset.table):
            severe = ruleset.severe()
            warnings = ruleset.warnings()
            counts = frame.select(
                pl.len().alias("__rows__"),
                _any_failed(severe).sum().alias("__severe_rows__"),
                _any_failed(warnings).sum().alias("__warning_rows__"),
                (~_any_failed(ruleset.predicates)).sum().alias("__clean_rows__"),
                *[(~pl.col(p.name)).sum().alias(p.name) for p in ruleset.predicates],
            ).row(0, named=True)

            total = int(counts["__rows__"])
            checks = tuple(
                self._check_failure(frame, predicate, int(counts[predicate.name]), total)
                for predicate in ruleset.predicates
            )
            rows_with_severe = int(counts["__severe_rows__"])
            rows_with_warnings = int(counts["__warning_rows__"])

            if rows_with_severe:
                status = SummaryStatus.FAILED
            elif rows_with_warnings:
                status = SummaryStatus.WARNING
            else:
                status = SummaryStatus.PASSED

            if execution_time_ms is None:
                execution_time_ms = (time.perf_counter() - start) * 1000
            summary = ValidationSummary(
                table=ruleset.table,
                status=status,
                total_rows=total,
                rows_with_severe=rows_with_severe,
                rows_with_warnings=rows_with_warnings,
                clean_rows=int(counts["__clean_rows__"]),
                checks=checks,
                execution_time_ms=execution_time_ms,
            )
            logger.info(
                "Validation summary",
                status=status.name,
                total_rows=total,
                rows_with_severe=rows_with_severe,
                rows_with_warnings=rows_with_warnings,
            )
            return summary

    def _check_failure(
        self,
        frame: pl.DataFrame,
        predicate: CompiledPredicate,
        failed: int,
        total: int,
    ) -> CheckFailure:
        samples: tuple[Any, ...] = ()
        if failed and self._config.sample_size:
            samples = tuple(
                frame.filter(~pl.col(predicate.name))
                .get_column(predicate.source_column)
                .head(self._config.sample_size)
                .to_list()
            )
        return CheckFailure(
            rule_name=predicate.name,
            error_name=predicate.error_name,
            column=predicate.source_column,
            severity=predicate.severity,
            failed_count=failed,
            total_count=total,
            sample_values=samples,
        )

    @staticmethod
    def _require_check_columns(evaluated: FrameLike, ruleset: CompiledRuleSet) -> None:
        schema = evaluated.collect_schema()
        missing = [name for name in ruleset if name not in schema]
        if missing:
            raise CheckEvaluationError(
                f"Evaluated frame is missing check columns: {', '.join(missing)}",
                rule_name=missing[0],
                expected="boolean check column",
                actual="missing column",
            )

