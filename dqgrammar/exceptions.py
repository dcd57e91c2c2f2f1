"""Exception hierarchy for the Data Quality Grammar.

Every error raised by the grammar, the compiler and the evaluation engine
inherits from DataQualityGrammarError so callers can catch the whole family
at a single point while still telling the individual failure kinds apart.

Exception Hierarchy:
    DataQualityGrammarError (base)
    ├── ConfigurationError
    │   ├── InvalidConfigValueError
    │   └── MissingConfigError
    ├── RuleCompilationError
    │   ├── LexError
    │   ├── ParseError
    │   └── DuplicateRuleError
    └── CheckEvaluationError

Compilation errors are raised before any row is evaluated. All of them carry
the position of the offending rule (table, column, line) so that the person
who wrote the rule text can correct it.

Example:
    >>> try:
    ...     validator = DataQualityValidator.from_text(rule_text)
    ... except RuleCompilationError as e:
    ...     print(f"Fix line {e.line}: {e.message}")
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from collections.abc import Sequence

    from dqgrammar.grammar.tokens import Token


class DataQualityGrammarError(Exception):
    """Base exception for all Data Quality Grammar errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional error context.
        cause: Optional original exception that caused this error.

    Example:
        >>> try:
        ...     raise DataQualityGrammarError("Something went wrong", details={"key": "value"})
        ... except DataQualityGrammarError as e:
        ...     print(f"Error: {e.message}, Details: {e.details}")
    """

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            details: Optional dictionary with additional error context.
            cause: Optional original exception that caused this error.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        """Return string representation with details if present."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def __repr__(self) -> str:
        """Return detailed representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"cause={self.cause!r})"
        )

    def with_context(self, **kwargs: Any) -> DataQualityGrammarError:
        """Create a new base exception with additional context details.

        The original exception is left untouched.

        Args:
            **kwargs: Additional context to add to details.

        Returns:
            New exception instance with merged details.

        Example:
            >>> e = DataQualityGrammarError("Error", details={"key": "value"})
            >>> e.with_context(table="Person").details
            {'key': 'value', 'table': 'Person'}
        """
        merged_details = {**self.details, **kwargs}
        return DataQualityGrammarError(self.message, details=merged_details, cause=self.cause)


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(DataQualityGrammarError):
    """Exception for configuration-related errors.

    Attributes:
        config_key: Optional key that caused the configuration error.
    """

    def __init__(
        self,
        message: str,
        *,
        config_key: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if config_key:
            details["config_key"] = config_key
        super().__init__(message, details=details, cause=cause)
        self.config_key = config_key


class InvalidConfigValueError(ConfigurationError):
    """Exception for invalid configuration values.

    Attributes:
        config_key: The configuration key with invalid value.
        value: The invalid value that was provided.
        expected: Description of what was expected.
    """

    def __init__(
        self,
        message: str,
        *,
        config_key: str,
        value: Any = None,
        expected: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        details["value"] = value
        if expected:
            details["expected"] = expected
        super().__init__(message, config_key=config_key, details=details, cause=cause)
        self.value = value
        self.expected = expected


class MissingConfigError(ConfigurationError):
    """Exception for a missing required configuration key."""

    def __init__(
        self,
        config_key: str,
        *,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        message = f"Required configuration key '{config_key}' is missing"
        super().__init__(message, config_key=config_key, details=details, cause=cause)


# =============================================================================
# Compilation Errors
# =============================================================================


class RuleCompilationError(DataQualityGrammarError):
    """Base exception for failures while turning rule text into predicates.

    Raised by the lexer, the parser and the compiler. The position fields
    point at the rule the author has to fix.

    Attributes:
        table: Name of the table being compiled, when already known.
        column: Name of the column rule being compiled, when already known.
        line: 1-based line of the offending text.
        column_number: 1-based character offset within the line.
    """

    def __init__(
        self,
        message: str,
        *,
        table: str | None = None,
        column: str | None = None,
        line: int | None = None,
        column_number: int | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if table:
            details["table"] = table
        if column:
            details["column"] = column
        if line is not None:
            details["line"] = line
        if column_number is not None:
            details["column_number"] = column_number
        super().__init__(message, details=details, cause=cause)
        self.table = table
        self.column = column
        self.line = line
        self.column_number = column_number

    @property
    def position(self) -> str:
        """Return a compact ``table.column@line:col`` description."""
        target = ".".join(part for part in (self.table, self.column) if part)
        where = ""
        if self.line is not None:
            where = f"line {self.line}"
            if self.column_number is not None:
                where += f":{self.column_number}"
        if target and where:
            return f"{target} ({where})"
        return target or where


class LexError(RuleCompilationError):
    """Raised when the rule text contains a character sequence with no token.

    Attributes:
        text: The unrecognised text fragment.
    """

    def __init__(
        self,
        message: str,
        *,
        text: str = "",
        line: int,
        column_number: int,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if text:
            details["text"] = text
        super().__init__(message, line=line, column_number=column_number, details=details)
        self.text = text


class ParseError(RuleCompilationError):
    """Raised when the token stream does not match the rule grammar.

    Attributes:
        token: The token at which parsing failed.
        expected: Descriptions of the alternatives that would have matched.
    """

    def __init__(
        self,
        message: str,
        *,
        token: Token | None = None,
        expected: Sequence[str] = (),
        table: str | None = None,
        column: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        self.token = token
        self.expected = tuple(expected)
        if self.expected:
            details["expected"] = list(self.expected)
        if token is not None:
            details["found"] = token.text or token.kind.name
        super().__init__(
            message,
            table=table,
            column=column,
            line=token.line if token is not None else None,
            column_number=token.column if token is not None else None,
            details=details,
            cause=cause,
        )


class DuplicateRuleError(RuleCompilationError):
    """Raised when two rules compile to the same result column name.

    Attributes:
        result_column: The colliding result column name.
    """

    def __init__(
        self,
        result_column: str,
        *,
        table: str | None = None,
        column: str | None = None,
        line: int | None = None,
        first_line: int | None = None,
    ) -> None:
        details: dict[str, Any] = {"result_column": result_column}
        if first_line is not None:
            details["first_defined_on_line"] = first_line
        super().__init__(
            f"Duplicate rule: '{result_column}' is already defined",
            table=table,
            column=column,
            line=line,
            details=details,
        )
        self.result_column = result_column


# =============================================================================
# Evaluation Errors
# =============================================================================


class CheckEvaluationError(DataQualityGrammarError):
    """Raised when a compiled check cannot be applied to the supplied data.

    Typical causes are a missing source column or a column whose type does
    not fit the check, such as a date validity check on a numeric column.
    This is an execution failure, not a data quality failure.

    Attributes:
        rule_name: Result column name of the failing check.
        column: Column the check could not be applied to.
        expected: Description of the column type the check needs.
        actual: Description of what was found.
    """

    def __init__(
        self,
        message: str,
        *,
        rule_name: str | None = None,
        column: str | None = None,
        expected: str | None = None,
        actual: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if rule_name:
            details["rule_name"] = rule_name
        if column:
            details["column"] = column
        if expected:
            details["expected"] = expected
        if actual:
            details["actual"] = actual
        super().__init__(message, details=details, cause=cause)
        self.rule_name = rule_name
        self.column = column
        self.expected = expected
        self.actual = actual


# =============================================================================
# Utility Functions
# =============================================================================


def wrap_exception(
    exception: Exception,
    wrapper_class: type[DataQualityGrammarError] = DataQualityGrammarError,
    message: str | None = None,
    **kwargs: Any,
) -> DataQualityGrammarError:
    """Wrap an arbitrary exception in the grammar exception hierarchy.

    Args:
        exception: The original exception to wrap.
        wrapper_class: The exception class to wrap with.
        message: Optional custom message. Defaults to the original message.
        **kwargs: Additional arguments for the wrapper class.

    Returns:
        A new exception instance with the original kept as ``cause``.

    Example:
        >>> try:
        ...     frame.collect()
        ... except pl.exceptions.ComputeError as e:
        ...     raise wrap_exception(e, CheckEvaluationError, rule_name="dqs_Age_gt_0")
    """
    msg = message if message is not None else str(exception)
    return wrapper_class(msg, cause=exception, **kwargs)
