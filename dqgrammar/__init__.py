"""Data Quality Grammar.

A small rule language for per-row data quality checks. A rule definition
names a table and lists column rules; each rule compiles to a polars
predicate, and every row of the validated data gets a ``DataQualityResult``
struct listing the checks it failed.

Quick Start:
    >>> from dqgrammar import validate
    >>> result = validate('''
    ... Person
    ...   Name should be human_name
    ...   Name must not have whitespace
    ... ''', {"Name": ["John", "Gle9 X"]})
    >>> result.get_column("DataQualityResult").to_list()[1]
    {'SevereCount': 1, 'WarningCount': 1, 'SevereErrors': ['Name_not_whitespace'], 'WarningErrors': ['Name_human_name']}

Reusable Validator:
    >>> from dqgrammar import DataQualityValidator
    >>> validator = DataQualityValidator.from_file("rules/person.dq")
    >>> summary = validator.report(frame)
    >>> summary.status
    <SummaryStatus.WARNING: 2>

Logging:
    >>> from dqgrammar import configure_logging
    >>> configure_logging(level="DEBUG", format="json")

Components:
    - Grammar: tokenize, parse, parse_file, TableDQ, ColumnDQ and check nodes
    - Compiler: RuleCompiler, CompiledRuleSet, CompiledPredicate, compile_rules
    - Engine: EvaluationEngine, to_frame
    - Aggregator: ResultAggregator
    - Facade: DataQualityValidator, validate
    - Results: Severity, RowGradeSummary, ValidationSummary, CheckFailure
    - Exceptions: DataQualityGrammarError and subclasses
    - Configuration: GrammarConfig, EnvReader
    - Logging: GrammarLogger, LogContext, PerformanceLogger
"""

__version__ = "0.1.0"

from dqgrammar.aggregator import RESULT_DTYPE, ResultAggregator
from dqgrammar.base import (
    CheckFailure,
    RowGradeSummary,
    Severity,
    SummaryStatus,
    ValidationSummary,
)
from dqgrammar.compiler import (
    NOW_COLUMN,
    ColumnKind,
    ColumnRequirement,
    CompiledPredicate,
    CompiledRuleSet,
    RuleCompiler,
    compile_rules,
)
from dqgrammar.config import (
    EnvReader,
    GrammarConfig,
    apply_logging_config,
    require_valid_config,
    validate_config,
)
from dqgrammar.engine import EvaluationEngine, to_frame
from dqgrammar.exceptions import (
    CheckEvaluationError,
    ConfigurationError,
    DataQualityGrammarError,
    DuplicateRuleError,
    InvalidConfigValueError,
    LexError,
    MissingConfigError,
    ParseError,
    RuleCompilationError,
    wrap_exception,
)
from dqgrammar.grammar import (
    ColumnDQ,
    TableDQ,
    Token,
    TokenKind,
    parse,
    parse_file,
    tokenize,
)
from dqgrammar.logging import (
    GrammarLogger,
    LogContext,
    LogLevel,
    PerformanceLogger,
    configure_logging,
    get_logger,
    reset_logging,
)
from dqgrammar.validator import DataQualityValidator, validate


__all__ = [
    "__version__",
    # Grammar
    "ColumnDQ",
    "TableDQ",
    "Token",
    "TokenKind",
    "parse",
    "parse_file",
    "tokenize",
    # Compiler
    "NOW_COLUMN",
    "ColumnKind",
    "ColumnRequirement",
    "CompiledPredicate",
    "CompiledRuleSet",
    "RuleCompiler",
    "compile_rules",
    # Engine
    "EvaluationEngine",
    "to_frame",
    # Aggregator
    "RESULT_DTYPE",
    "ResultAggregator",
    # Facade
    "DataQualityValidator",
    "validate",
    # Results
    "CheckFailure",
    "RowGradeSummary",
    "Severity",
    "SummaryStatus",
    "ValidationSummary",
    # Exceptions
    "CheckEvaluationError",
    "ConfigurationError",
    "DataQualityGrammarError",
    "DuplicateRuleError",
    "InvalidConfigValueError",
    "LexError",
    "MissingConfigError",
    "ParseError",
    "RuleCompilationError",
    "wrap_exception",
    # Configuration
    "EnvReader",
    "GrammarConfig",
    "apply_logging_config",
    "require_valid_config",
    "validate_config",
    # Logging
    "GrammarLogger",
    "LogContext",
    "LogLevel",
    "PerformanceLogger",
    "configure_logging",
    "get_logger",
    "reset_logging",
]
