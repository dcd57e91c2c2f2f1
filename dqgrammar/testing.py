"""Testing utilities for the Data Quality Grammar.

This module provides helpers for testing rule definitions and code built on
top of them. It includes:
- Sample rule texts and DataFrame builders
- Row summary factories
- Assertion helpers for validated frames and dataset summaries
- GrammarTestContext: captures log records for the duration of a test

Example:
    >>> from dqgrammar.testing import PERSON_RULES, create_person_dataframe
    >>> result = validate(PERSON_RULES, create_person_dataframe())
    >>> assert_result_consistent(result)
"""

from __future__ import annotations

import random
from datetime import date, timedelta
from typing import TYPE_CHECKING, Any

import polars as pl

from dqgrammar.base import RowGradeSummary, SummaryStatus
from dqgrammar.config import DEFAULT_RESULT_COLUMN
from dqgrammar.logging import BufferingHandler, LogLevel, configure_logging, reset_logging


if TYPE_CHECKING:
    from collections.abc import Sequence

    from dqgrammar.base import ValidationSummary


# =============================================================================
# Sample Rules and Data
# =============================================================================


PERSON_RULES = """\
Person
  Name should be human_name
  Name must not have whitespace
  BirthDate must be less than now
"""

PERSON_NAMES = ("John", "Gle9 X", "Mary-Jane", "O'Brien", "Anne Marie", "R2D2")


def create_person_dataframe(
    names: Sequence[str | None] = PERSON_NAMES,
    birth_dates: Sequence[date | None] | None = None,
) -> pl.DataFrame:
    """Create a small ``Person`` frame with ``Name`` and ``BirthDate`` columns.

    Birth dates default to one per name, spaced a year apart from
    1990-01-01.

    Example:
        >>> df = create_person_dataframe(["John"])
        >>> df.columns
        ['Name', 'BirthDate']
    """
    if birth_dates is None:
        birth_dates = [date(1990 + i, 1, 1) for i in range(len(names))]
    return pl.DataFrame(
        {"Name": list(names), "BirthDate": list(birth_dates)},
        schema={"Name": pl.String, "BirthDate": pl.Date},
    )


def create_sample_dataframe(
    rows: int = 100,
    include_nulls: bool = False,
    null_rate: float = 0.1,
    seed: int = 42,
) -> pl.DataFrame:
    """Create a mixed-type frame for exercising every check kind.

    Columns: ``Id`` (Int64), ``Name`` (String), ``Age`` (Int64), ``Score``
    (Float64), ``Status`` (String), ``SignupDate`` (String, ``%Y-%m-%d``),
    ``LastSeen`` (Date).

    Args:
        rows: Number of rows.
        include_nulls: Whether to replace some values with nulls. ``Id`` is
            never null.
        null_rate: Rate of null values (0.0-1.0).
        seed: Seed for the random generator, so frames are reproducible.
    """
    rng = random.Random(seed)
    names = ["John", "Mary", "Gle9 X", "Anne Marie", "O'Brien", "  ", "Zoë"]
    statuses = ["active", "inactive", "pending", "unknown"]
    base = date(2020, 1, 1)

    data: dict[str, list[Any]] = {
        "Id": list(range(rows)),
        "Name": [rng.choice(names) for _ in range(rows)],
        "Age": [rng.randint(-5, 120) for _ in range(rows)],
        "Score": [round(rng.uniform(0, 100), 2) for _ in range(rows)],
        "Status": [rng.choice(statuses) for _ in range(rows)],
        "SignupDate": [
            (base + timedelta(days=rng.randint(0, 1500))).isoformat()
            if rng.random() > 0.1
            else "2021-02-30"
            for _ in range(rows)
        ],
        "LastSeen": [base + timedelta(days=rng.randint(0, 3000)) for _ in range(rows)],
    }

    if include_nulls:
        for column, values in data.items():
            if column == "Id":
                continue
            for i in range(rows):
                if rng.random() < null_rate:
                    values[i] = None

    return pl.DataFrame(
        data,
        schema={
            "Id": pl.Int64,
            "Name": pl.String,
            "Age": pl.Int64,
            "Score": pl.Float64,
            "Status": pl.String,
            "SignupDate": pl.String,
            "LastSeen": pl.Date,
        },
    )


# =============================================================================
# Result Factories
# =============================================================================


def create_row_summary(
    *,
    severe: Sequence[str] = (),
    warning: Sequence[str] = (),
) -> RowGradeSummary:
    """Create a ``RowGradeSummary`` from error name lists.

    Example:
        >>> create_row_summary(warning=["Name_human_name"]).warning_count
        1
    """
    return RowGradeSummary(severe_errors=tuple(severe), warning_errors=tuple(warning))


# =============================================================================
# Assertion Helpers
# =============================================================================


def row_summaries(frame: pl.DataFrame, result_column: str = DEFAULT_RESULT_COLUMN) -> list[RowGradeSummary]:
    """Read every row's summary from a validated frame."""
    return [RowGradeSummary.from_dict(value) for value in frame.get_column(result_column)]


def assert_result_consistent(frame: pl.DataFrame, result_column: str = DEFAULT_RESULT_COLUMN) -> None:
    """Assert every stored count equals the length of its error list.

    Raises:
        AssertionError: If a row's counts disagree with its lists.
    """
    for index, value in enumerate(frame.get_column(result_column).to_list()):
        assert value["SevereCount"] == len(value["SevereErrors"]), (
            f"Row {index}: SevereCount={value['SevereCount']}, "
            f"SevereErrors={value['SevereErrors']}"
        )
        assert value["WarningCount"] == len(value["WarningErrors"]), (
            f"Row {index}: WarningCount={value['WarningCount']}, "
            f"WarningErrors={value['WarningErrors']}"
        )


def assert_row_summary(
    frame: pl.DataFrame,
    row: int,
    *,
    severe: Sequence[str] | None = None,
    warning: Sequence[str] | None = None,
    result_column: str = DEFAULT_RESULT_COLUMN,
) -> None:
    """Assert the error lists of one row of a validated frame.

    Args:
        frame: Validated frame.
        row: Row index.
        severe: Expected severe error names, in order. None skips the check.
        warning: Expected warning error names, in order. None skips the check.
        result_column: Name of the summary column.

    Raises:
        AssertionError: If expectations not met.

    Example:
        >>> assert_row_summary(result, 1, warning=["Name_human_name"])
    """
    value = frame.get_column(result_column)[row]
    if severe is not None:
        assert value["SevereErrors"] == list(severe), (
            f"Row {row}: expected SevereErrors={list(severe)}, got {value['SevereErrors']}"
        )
        assert value["SevereCount"] == len(severe)
    if warning is not None:
        assert value["WarningErrors"] == list(warning), (
            f"Row {row}: expected WarningErrors={list(warning)}, got {value['WarningErrors']}"
        )
        assert value["WarningCount"] == len(warning)


def assert_validation_summary(
    summary: ValidationSummary,
    *,
    expected_status: SummaryStatus | None = None,
    expected_rows: int | None = None,
    expected_clean_rows: int | None = None,
    max_rows_with_severe: int | None = None,
) -> None:
    """Assert a ``ValidationSummary`` matches expectations.

    Raises:
        AssertionError: If expectations not met.
    """
    if expected_status is not None:
        assert summary.status is expected_status, (
            f"Expected status={expected_status.name}, got {summary.status.name}"
        )

    if expected_rows is not None:
        assert summary.total_rows == expected_rows, (
            f"Expected total_rows={expected_rows}, got {summary.total_rows}"
        )

    if expected_clean_rows is not None:
        assert summary.clean_rows == expected_clean_rows, (
            f"Expected clean_rows={expected_clean_rows}, got {summary.clean_rows}"
        )

    if max_rows_with_severe is not None:
        assert summary.rows_with_severe <= max_rows_with_severe, (
            f"Expected rows_with_severe <= {max_rows_with_severe}, got {summary.rows_with_severe}"
        )


# =============================================================================
# Test Context
# =============================================================================


class GrammarTestContext:
    """Context manager that captures package log records.

    Example:
        >>> with GrammarTestContext() as ctx:
        ...     compile_rules(PERSON_RULES)
        ...     assert "Compiled rule definition" in ctx.messages()
    """

    def __init__(self, level: LogLevel = LogLevel.DEBUG, capacity: int = 1000) -> None:
        self._level = level
        self._capacity = capacity
        self._handler: BufferingHandler | None = None

    @property
    def handler(self) -> BufferingHandler:
        if self._handler is None:
            raise RuntimeError("Context not entered")
        return self._handler

    def messages(self, level: LogLevel | None = None) -> list[str]:
        return self.handler.messages(level)

    def __enter__(self) -> GrammarTestContext:
        self._handler = BufferingHandler(capacity=self._capacity)
        configure_logging(level=self._level, handlers=[self._handler])
        return self

    def __exit__(self, *args: Any) -> None:
        reset_logging()
        self._handler = None
