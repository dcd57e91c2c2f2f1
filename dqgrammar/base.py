"""Core enums and result types for the Data Quality Grammar.

All result types are frozen dataclasses: a summary is computed once from the
evaluated checks and never changes afterwards.

Key Components:
    - Enums: Severity, SummaryStatus
    - Per row: RowGradeSummary
    - Per dataset: CheckFailure, ValidationSummary

Example:
    >>> summary = RowGradeSummary(warning_errors=("Name_human_name",))
    >>> summary.warning_count
    1
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, auto
from typing import TYPE_CHECKING, Any, Self


if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping


# =============================================================================
# Enums
# =============================================================================


class Severity(Enum):
    """Severity of a rule.

    Attributes:
        MUST: A failing check is severe.
        SHOULD: A failing check is a warning.
    """

    MUST = "must"
    SHOULD = "should"

    @property
    def weight(self) -> int:
        """Numeric weight for ordering (higher = more severe)."""
        return 100 if self is Severity.MUST else 50

    @property
    def label(self) -> str:
        """Label used in summaries: ``severe`` or ``warning``."""
        return "severe" if self is Severity.MUST else "warning"

    @classmethod
    def from_keyword(cls, keyword: str) -> Severity:
        """Map a rule keyword (``must``/``should``, any case) to a severity.

        Raises:
            ValueError: If the keyword is not a severity keyword.
        """
        return cls(keyword.lower())

    def __lt__(self, other: Severity) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.weight < other.weight


class SummaryStatus(Enum):
    """Overall outcome of validating a dataset.

    Attributes:
        PASSED: No check failed on any row.
        WARNING: Only SHOULD checks failed.
        FAILED: At least one MUST check failed.
    """

    PASSED = auto()
    WARNING = auto()
    FAILED = auto()

    def is_success(self) -> bool:
        """PASSED and WARNING both count as success."""
        return self is not SummaryStatus.FAILED


# =============================================================================
# Row Grade Summary
# =============================================================================


@dataclass(frozen=True, slots=True)
class RowGradeSummary:
    """Failed checks of a single row.

    The counts are derived from the error sequences, so
    ``severe_count == len(severe_errors)`` always holds.

    Attributes:
        severe_errors: Names of failed MUST checks, in compiled order.
        warning_errors: Names of failed SHOULD checks, in compiled order.
    """

    severe_errors: tuple[str, ...] = ()
    warning_errors: tuple[str, ...] = ()

    @property
    def severe_count(self) -> int:
        return len(self.severe_errors)

    @property
    def warning_count(self) -> int:
        return len(self.warning_errors)

    @property
    def is_clean(self) -> bool:
        """True when no check failed for the row."""
        return not self.severe_errors and not self.warning_errors

    def to_dict(self) -> dict[str, Any]:
        """Convert to the ``DataQualityResult`` column layout."""
        return {
            "SevereCount": self.severe_count,
            "WarningCount": self.warning_count,
            "SevereErrors": list(self.severe_errors),
            "WarningErrors": list(self.warning_errors),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        """Create from a ``DataQualityResult`` struct value.

        Raises:
            ValueError: If a stored count disagrees with its error list.
        """
        severe = tuple(data.get("SevereErrors") or ())
        warning = tuple(data.get("WarningErrors") or ())
        for count_key, errors in (("SevereCount", severe), ("WarningCount", warning)):
            count = data.get(count_key)
            if count is not None and count != len(errors):
                raise ValueError(f"{count_key}={count} does not match {len(errors)} errors")
        return cls(severe_errors=severe, warning_errors=warning)


# =============================================================================
# Dataset Summary
# =============================================================================


def _utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


@dataclass(frozen=True, slots=True)
class CheckFailure:
    """Dataset-level outcome of one compiled check.

    Attributes:
        rule_name: Result column name of the check (``dqs_Name_human_name``).
        error_name: Name reported in row summaries (``Name_human_name``).
        column: Source column of the check.
        severity: Severity of the rule.
        failed_count: Number of rows failing the check.
        total_count: Number of rows checked.
        sample_values: A few failing source values for debugging.
    """

    rule_name: str
    error_name: str
    column: str
    severity: Severity
    failed_count: int = 0
    total_count: int = 0
    sample_values: tuple[Any, ...] = ()

    @property
    def failure_rate(self) -> float:
        """Failure rate as a percentage."""
        if self.total_count == 0:
            return 0.0
        return (self.failed_count / self.total_count) * 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_name": self.rule_name,
            "error_name": self.error_name,
            "column": self.column,
            "severity": self.severity.name,
            "failed_count": self.failed_count,
            "total_count": self.total_count,
            "failure_rate": self.failure_rate,
            "sample_values": list(self.sample_values),
        }


@dataclass(frozen=True, slots=True)
class ValidationSummary:
    """Dataset-level roll-up of a validation run.

    Attributes:
        table: Table name from the rule definition.
        status: Overall status.
        total_rows: Number of rows validated.
        rows_with_severe: Rows with at least one failed MUST check.
        rows_with_warnings: Rows with at least one failed SHOULD check.
        clean_rows: Rows where no check failed.
        checks: Per-check outcomes, in compiled order.
        execution_time_ms: Wall time spent evaluating and aggregating.
        timestamp: ISO timestamp of the run.

    Example:
        >>> summary = validator.report(frame)
        >>> summary.status.is_success()
        True
    """

    table: str
    status: SummaryStatus
    total_rows: int = 0
    rows_with_severe: int = 0
    rows_with_warnings: int = 0
    clean_rows: int = 0
    checks: tuple[CheckFailure, ...] = ()
    execution_time_ms: float = 0.0
    timestamp: str = field(default_factory=_utc_now_iso)

    def iter_failures(self, severity: Severity | None = None) -> Iterator[CheckFailure]:
        """Yield checks that failed on at least one row.

        Args:
            severity: Restrict to one severity. None includes both.
        """
        for check in self.checks:
            if check.failed_count and (severity is None or check.severity is severity):
                yield check

    def to_dict(self) -> dict[str, Any]:
        return {
            "table": self.table,
            "status": self.status.name,
            "total_rows": self.total_rows,
            "rows_with_severe": self.rows_with_severe,
            "rows_with_warnings": self.rows_with_warnings,
            "clean_rows": self.clean_rows,
            "checks": [c.to_dict() for c in self.checks],
            "execution_time_ms": self.execution_time_ms,
            "timestamp": self.timestamp,
            "is_success": self.status.is_success(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)
