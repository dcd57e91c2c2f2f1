"""High-level validator tying compiler, engine and aggregator together.

Example:
    >>> validator = DataQualityValidator.from_text('''
    ... Person
    ...   Name should be human_name
    ...   Name must not have whitespace
    ... ''')
    >>> result = validator.validate({"Name": ["John", "Gle9 X"]})
    >>> result.get_column("DataQualityResult").to_list()[1]["WarningErrors"]
    ['Name_human_name']
"""

from __future__ import annotations

import time
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING, Any

from dqgrammar.aggregator import ResultAggregator
from dqgrammar.compiler import CompiledRuleSet, RuleCompiler
from dqgrammar.config import GrammarConfig, require_valid_config
from dqgrammar.engine import EvaluationEngine
from dqgrammar.grammar.parser import parse
from dqgrammar.logging import LogContext, get_logger, get_performance_logger


if TYPE_CHECKING:
    from collections.abc import Iterator
    from datetime import datetime

    from dqgrammar.base import RowGradeSummary, ValidationSummary
    from dqgrammar.engine import FrameLike


logger = get_logger(__name__)


class DataQualityValidator:
    """Compiled rule definition ready to validate data.

    Rules are compiled once, at construction. The validator holds no mutable
    state afterwards and can be shared between threads.

    Args:
        ruleset: Compiled rules.
        config: Configuration shared with the engine and the aggregator.
    """

    def __init__(self, ruleset: CompiledRuleSet, config: GrammarConfig | None = None) -> None:
        self._config = config or GrammarConfig()
        require_valid_config(self._config)
        self._ruleset = ruleset
        self._engine = EvaluationEngine(self._config)
        self._aggregator = ResultAggregator(self._config)
        self._perf = get_performance_logger(__name__, slow_threshold_ms=self._config.slow_threshold_ms)

    @classmethod
    def from_text(cls, text: str, config: GrammarConfig | None = None) -> DataQualityValidator:
        """Parse and compile rule text.

        Raises:
            LexError, ParseError, DuplicateRuleError: On an invalid definition.
        """
        config = config or GrammarConfig()
        require_valid_config(config)
        return cls(RuleCompiler(config).compile(parse(text)), config)

    @classmethod
    def from_file(cls, path: Path | str, config: GrammarConfig | None = None) -> DataQualityValidator:
        """Parse and compile a UTF-8 rule file."""
        logger.debug("Loading rule file", path=str(path))
        return cls.from_text(Path(path).read_text(encoding="utf-8"), config)

    @property
    def ruleset(self) -> CompiledRuleSet:
        return self._ruleset

    @property
    def config(self) -> GrammarConfig:
        return self._config

    @property
    def table(self) -> str:
        return self._ruleset.table

    def evaluate(self, data: Any, now: datetime | None = None) -> FrameLike:
        """Evaluate the checks, keeping one boolean column per check."""
        return self._engine.evaluate(data, self._ruleset, now=now)

    def validate(self, data: Any, now: datetime | None = None) -> FrameLike:
        """Return ``data`` with the summary column added.

        Raises:
            CheckEvaluationError: If a check cannot be applied to ``data``.
        """
        with LogContext(operation="validate", table=self.table), self._perf.timed("validate"):
            evaluated = self._engine.evaluate(data, self._ruleset, now=now)
            return self._aggregator.aggregate(evaluated, self._ruleset)

    def iter_row_summaries(self, data: Any, now: datetime | None = None) -> Iterator[RowGradeSummary]:
        """Validate ``data`` and yield one summary per row."""
        return self._aggregator.iter_row_summaries(self.validate(data, now=now))

    def report(self, data: Any, now: datetime | None = None) -> ValidationSummary:
        """Validate ``data`` and return a dataset-level summary."""
        start = time.perf_counter()
        with LogContext(operation="report", table=self.table):
            evaluated = self._engine.evaluate(data, self._ruleset, now=now)
            summary = self._aggregator.summarize(evaluated, self._ruleset)
        return replace(summary, execution_time_ms=(time.perf_counter() - start) * 1000)


def validate(
    rule_text: str,
    data: Any,
    now: datetime | None = None,
    config: GrammarConfig | None = None,
) -> FrameLike:
    """Compile ``rule_text`` and validate ``data`` in one call."""
    return DataQualityValidator.from_text(rule_text, config).validate(data, now=now)
