"""Structured logging for the Data Quality Grammar.

Loggers emit structured records that carry the active context (the table
being compiled, the operation in progress) alongside free-form fields.
Records flow through filters into handlers, which format them as text or
JSON.

Design Principles:
    1. Protocol-based: handlers, formatters and filters are structural types
    2. Context-aware: LogContext scopes propagate through contextvars, so
       concurrent compiles on different threads keep separate contexts
    3. Quiet by default: nothing is written until a handler is configured

Example:
    >>> from dqgrammar.logging import get_logger, LogContext
    >>> logger = get_logger(__name__)
    >>> with LogContext(operation="compile", table="Person"):
    ...     logger.info("Compiled rules", rule_count=2)
"""

from __future__ import annotations

import json
import sys
import time
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    Protocol,
    Self,
    TextIO,
    runtime_checkable,
)


if TYPE_CHECKING:
    from collections.abc import Mapping


class LogLevel(Enum):
    """Log severity levels, numerically aligned with the stdlib levels."""

    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50

    @classmethod
    def from_string(cls, level: str) -> LogLevel:
        """Create from a level name, falling back to INFO."""
        try:
            return cls[level.upper()]
        except KeyError:
            return cls.INFO


# =============================================================================
# Context Management
# =============================================================================


@dataclass(frozen=True, slots=True)
class LogContextData:
    """Immutable container for log context data.

    Attributes:
        operation: Current operation name (compile, evaluate, aggregate).
        table: Table whose rules are being processed.
        extra: Additional context fields.
    """

    operation: str | None = None
    table: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def merge(self, other: LogContextData) -> LogContextData:
        """Create a new context where ``other`` takes precedence."""
        return LogContextData(
            operation=other.operation or self.operation,
            table=other.table or self.table,
            extra={**self.extra, **other.extra},
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result: dict[str, Any] = {}
        if self.operation:
            result["operation"] = self.operation
        if self.table:
            result["table"] = self.table
        result.update(self.extra)
        return result


_log_context: ContextVar[LogContextData] = ContextVar("dq_log_context", default=LogContextData())


class LogContext:
    """Context manager that scopes context fields onto every log record.

    Nested scopes merge with the enclosing one.

    Example:
        >>> with LogContext(operation="evaluate", table="Person"):
        ...     logger.info("Evaluating")
        ...     with LogContext(rows=2):
        ...         logger.debug("Batch")  # carries operation, table and rows
    """

    def __init__(
        self,
        *,
        operation: str | None = None,
        table: str | None = None,
        **extra: Any,
    ) -> None:
        self._new_context = LogContextData(operation=operation, table=table, extra=extra)
        self._token: Any = None

    def __enter__(self) -> Self:
        merged = _log_context.get().merge(self._new_context)
        self._token = _log_context.set(merged)
        return self

    def __exit__(self, *args: Any) -> None:
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None


def get_current_context() -> LogContextData:
    """Get the current log context."""
    return _log_context.get()


# =============================================================================
# Records and Protocols
# =============================================================================


@dataclass(slots=True)
class LogRecord:
    """Structured log record.

    Attributes:
        level: Log severity level.
        message: Log message.
        logger_name: Name of the logger.
        timestamp: When the record was created.
        context: Context active when the record was created.
        extra: Additional structured fields.
        exc_info: Exception attached to the record, if any.
    """

    level: LogLevel
    message: str
    logger_name: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    context: LogContextData = field(default_factory=LogContextData)
    extra: dict[str, Any] = field(default_factory=dict)
    exc_info: BaseException | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        result = {
            "level": self.level.name,
            "message": self.message,
            "logger": self.logger_name,
            "timestamp": self.timestamp.isoformat(),
            **self.context.to_dict(),
            **self.extra,
        }
        if self.exc_info:
            result["exception"] = str(self.exc_info)
            result["exception_type"] = type(self.exc_info).__name__
        return result


@runtime_checkable
class LogHandler(Protocol):
    """Protocol for log handlers."""

    def handle(self, record: LogRecord) -> None:
        """Process a log record."""
        ...

    def flush(self) -> None:
        """Flush any buffered records."""
        ...


@runtime_checkable
class LogFormatter(Protocol):
    """Protocol for log formatters."""

    def format(self, record: LogRecord) -> str:
        """Format a log record as a string."""
        ...


@runtime_checkable
class LogFilter(Protocol):
    """Protocol for log filters."""

    def filter(self, record: LogRecord) -> bool:
        """Return True if the record should be logged."""
        ...


# =============================================================================
# Formatters
# =============================================================================


class TextFormatter:
    """Human-readable ``timestamp LEVEL logger: message key=value`` lines."""

    def __init__(self, *, include_timestamp: bool = True, include_context: bool = True) -> None:
        self._include_timestamp = include_timestamp
        self._include_context = include_context

    def format(self, record: LogRecord) -> str:
        parts: list[str] = []
        if self._include_timestamp:
            parts.append(record.timestamp.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3])
        parts.append(f"{record.level.name:<8}")
        parts.append(f"{record.logger_name}:")
        parts.append(record.message)

        fields: dict[str, Any] = {}
        if self._include_context:
            fields.update(record.context.to_dict())
        fields.update(record.extra)
        if fields:
            parts.append(" ".join(f"{key}={value!r}" for key, value in fields.items()))
        if record.exc_info:
            parts.append(f"exception={type(record.exc_info).__name__}: {record.exc_info}")
        return " ".join(parts)


class JSONFormatter:
    """One JSON object per record."""

    def __init__(self, *, sort_keys: bool = False) -> None:
        self._sort_keys = sort_keys

    def format(self, record: LogRecord) -> str:
        return json.dumps(record.to_dict(), default=str, sort_keys=self._sort_keys)


# =============================================================================
# Handlers and Filters
# =============================================================================


class StreamHandler:
    """Write formatted records to a stream (stderr by default)."""

    def __init__(
        self,
        stream: TextIO | None = None,
        formatter: LogFormatter | None = None,
        level: LogLevel = LogLevel.DEBUG,
    ) -> None:
        self._stream = stream or sys.stderr
        self._formatter = formatter or TextFormatter()
        self._level = level

    def handle(self, record: LogRecord) -> None:
        if record.level.value < self._level.value:
            return
        self._stream.write(self._formatter.format(record) + "\n")

    def flush(self) -> None:
        self._stream.flush()


class BufferingHandler:
    """Keep records in memory; mostly useful in tests."""

    def __init__(self, capacity: int = 1000) -> None:
        self._capacity = capacity
        self.records: list[LogRecord] = []

    def handle(self, record: LogRecord) -> None:
        self.records.append(record)
        if len(self.records) > self._capacity:
            self.records.pop(0)

    def flush(self) -> None:
        self.records.clear()

    def messages(self, level: LogLevel | None = None) -> list[str]:
        """Return buffered messages, optionally restricted to one level."""
        return [r.message for r in self.records if level is None or r.level is level]


class NullHandler:
    """Discard every record."""

    def handle(self, record: LogRecord) -> None:
        pass

    def flush(self) -> None:
        pass


class LevelFilter:
    """Pass records at or above a minimum level."""

    def __init__(self, min_level: LogLevel) -> None:
        self._min_level = min_level

    def filter(self, record: LogRecord) -> bool:
        return record.level.value >= self._min_level.value


# =============================================================================
# Logger
# =============================================================================


class GrammarLogger:
    """Logger with structured fields and context propagation.

    Example:
        >>> logger = GrammarLogger("dqgrammar.compiler")
        >>> logger.info("Compiled", rule_count=3)
    """

    def __init__(
        self,
        name: str,
        level: LogLevel = LogLevel.INFO,
        handlers: list[LogHandler] | None = None,
        filters: list[LogFilter] | None = None,
    ) -> None:
        self.name = name
        self.level = level
        self.handlers: list[LogHandler] = handlers if handlers is not None else []
        self._filters: list[LogFilter] = filters or []
        self.disabled = False

    def add_handler(self, handler: LogHandler) -> None:
        if handler not in self.handlers:
            self.handlers.append(handler)

    def remove_handler(self, handler: LogHandler) -> None:
        if handler in self.handlers:
            self.handlers.remove(handler)

    def add_filter(self, log_filter: LogFilter) -> None:
        if log_filter not in self._filters:
            self._filters.append(log_filter)

    def is_enabled_for(self, level: LogLevel) -> bool:
        return not self.disabled and level.value >= self.level.value

    def _log(
        self,
        level: LogLevel,
        message: str,
        exc_info: BaseException | None = None,
        **kwargs: Any,
    ) -> None:
        if not self.is_enabled_for(level):
            return

        record = LogRecord(
            level=level,
            message=message,
            logger_name=self.name,
            context=get_current_context(),
            extra=kwargs,
            exc_info=exc_info,
        )
        if not all(log_filter.filter(record) for log_filter in self._filters):
            return

        for handler in self.handlers:
            try:
                handler.handle(record)
            except Exception:  # noqa: BLE001
                pass

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.WARNING, message, **kwargs)

    def error(self, message: str, exc_info: BaseException | None = None, **kwargs: Any) -> None:
        self._log(LogLevel.ERROR, message, exc_info=exc_info, **kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log at ERROR level with the exception currently being handled."""
        self._log(LogLevel.ERROR, message, exc_info=sys.exc_info()[1], **kwargs)

    def log(self, level: LogLevel, message: str, **kwargs: Any) -> None:
        self._log(level, message, **kwargs)


class LoggerRegistry:
    """Registry handing out one logger per name.

    Loggers created before ``configure`` share the root handler list, so a
    later ``configure`` call reaches them as well.
    """

    def __init__(self) -> None:
        self._loggers: dict[str, GrammarLogger] = {}
        self._root_handlers: list[LogHandler] = []
        self._root_level = LogLevel.INFO

    def get_logger(self, name: str, level: LogLevel | None = None) -> GrammarLogger:
        if name not in self._loggers:
            self._loggers[name] = GrammarLogger(
                name=name,
                level=level or self._root_level,
                handlers=self._root_handlers,
            )
        return self._loggers[name]

    def configure(
        self,
        level: LogLevel = LogLevel.INFO,
        handlers: list[LogHandler] | None = None,
        format: str = "text",
    ) -> None:
        """Configure level and handlers for every logger.

        Args:
            level: Level applied to all loggers.
            handlers: Handlers replacing the current root handlers. When
                omitted a stderr StreamHandler is installed.
            format: Formatter for the default handler, ``text`` or ``json``.
        """
        self._root_level = level
        if handlers is None:
            formatter: LogFormatter = JSONFormatter() if format == "json" else TextFormatter()
            handlers = [StreamHandler(formatter=formatter, level=level)]
        self._root_handlers[:] = handlers
        for logger in self._loggers.values():
            logger.level = level

    def reset(self) -> None:
        """Drop all handlers and restore the default level."""
        self._root_handlers.clear()
        self._root_level = LogLevel.INFO
        for logger in self._loggers.values():
            logger.level = LogLevel.INFO


_registry = LoggerRegistry()


def get_logger(name: str, level: LogLevel | None = None) -> GrammarLogger:
    """Get a logger by name (typically ``__name__``)."""
    return _registry.get_logger(name, level)


def configure_logging(
    level: LogLevel | str = LogLevel.INFO,
    handlers: list[LogHandler] | None = None,
    format: str = "text",
) -> None:
    """Configure global logging settings.

    Example:
        >>> configure_logging(level="DEBUG", format="json")
    """
    if isinstance(level, str):
        level = LogLevel.from_string(level)
    _registry.configure(level=level, handlers=handlers, format=format)


def reset_logging() -> None:
    """Remove every configured handler."""
    _registry.reset()


# =============================================================================
# Performance Logging
# =============================================================================


@dataclass(slots=True)
class TimingResult:
    """Result of a timed operation."""

    operation: str
    duration_ms: float
    success: bool = True
    metadata: dict[str, Any] = field(default_factory=dict)


class PerformanceLogger:
    """Time operations and log their duration.

    Durations above ``slow_threshold_ms`` are logged at WARNING, failures at
    ERROR.

    Example:
        >>> perf = PerformanceLogger(get_logger(__name__))
        >>> with perf.timed("evaluate", rows=1000):
        ...     engine.evaluate(frame, rules)
    """

    def __init__(
        self,
        logger: GrammarLogger,
        log_level: LogLevel = LogLevel.DEBUG,
        slow_threshold_ms: float = 1000.0,
    ) -> None:
        self._logger = logger
        self._log_level = log_level
        self._slow_threshold_ms = slow_threshold_ms

    class _TimedContext:
        def __init__(self, perf_logger: PerformanceLogger, operation: str, **metadata: Any) -> None:
            self._perf_logger = perf_logger
            self._operation = operation
            self._metadata = metadata
            self._start_time = 0.0
            self.result: TimingResult | None = None

        def __enter__(self) -> PerformanceLogger._TimedContext:
            self._start_time = time.perf_counter()
            return self

        def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
            self.result = TimingResult(
                operation=self._operation,
                duration_ms=(time.perf_counter() - self._start_time) * 1000,
                success=exc_type is None,
                metadata=self._metadata,
            )
            self._perf_logger._log_timing(self.result)

    def timed(self, operation: str, **metadata: Any) -> _TimedContext:
        """Create a context manager timing ``operation``."""
        return self._TimedContext(self, operation, **metadata)

    def _log_timing(self, result: TimingResult) -> None:
        level = self._log_level
        message = f"{result.operation} completed in {result.duration_ms:.2f}ms"
        if result.duration_ms > self._slow_threshold_ms:
            level = LogLevel.WARNING
            message = (
                f"{result.operation} SLOW: {result.duration_ms:.2f}ms "
                f"(threshold: {self._slow_threshold_ms}ms)"
            )
        if not result.success:
            level = LogLevel.ERROR
            message = f"{result.operation} FAILED after {result.duration_ms:.2f}ms"
        self._logger.log(
            level,
            message,
            duration_ms=result.duration_ms,
            success=result.success,
            **result.metadata,
        )


def get_performance_logger(name: str, slow_threshold_ms: float = 1000.0) -> PerformanceLogger:
    """Get a performance logger wrapping ``get_logger(name)``."""
    return PerformanceLogger(get_logger(name), slow_threshold_ms=slow_threshold_ms)
