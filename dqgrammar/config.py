"""Configuration for the Data Quality Grammar.

Configuration can come from explicit values, environment variables or a
JSON/YAML file.

Configuration Precedence (highest to lowest):
    1. Explicit overrides (``with_overrides``)
    2. Environment variables (``DQ_GRAMMAR_*``)
    3. Configuration file
    4. Default values

Example:
    >>> from dqgrammar.config import GrammarConfig
    >>> config = GrammarConfig.load()
    >>> config = config.with_overrides(date_format="%d/%m/%Y")
"""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Self

import yaml

from dqgrammar.exceptions import ConfigurationError, InvalidConfigValueError, MissingConfigError
from dqgrammar.logging import configure_logging


DEFAULT_ENV_PREFIX = "DQ_GRAMMAR"
CONFIG_FILE_NAMES = ("dq_grammar.json", "dq_grammar.yaml", "dq_grammar.yml", ".dq_grammar.json")

DEFAULT_RESULT_COLUMN = "DataQualityResult"
DEFAULT_SEVERE_PREFIX = "dqs_"
DEFAULT_WARNING_PREFIX = "dqw_"
DEFAULT_DATE_FORMAT = "%Y-%m-%d"

_VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_VALID_LOG_FORMATS = ("text", "json")
_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


# =============================================================================
# Environment Variable Utilities
# =============================================================================


class EnvReader:
    """Typed accessors for prefixed environment variables.

    Example:
        >>> reader = EnvReader(prefix="DQ_GRAMMAR")
        >>> reader.get_bool("KEEP_CHECK_COLUMNS", default=False)
        False
    """

    def __init__(self, prefix: str = DEFAULT_ENV_PREFIX) -> None:
        self.prefix = prefix

    def _make_key(self, name: str) -> str:
        if self.prefix:
            return f"{self.prefix}_{name}"
        return name

    def get(self, name: str, default: str | None = None) -> str | None:
        """Get a string environment variable."""
        return os.environ.get(self._make_key(name), default)

    def get_required(self, name: str) -> str:
        """Get a required string environment variable.

        Raises:
            MissingConfigError: If the variable is not set.
        """
        key = self._make_key(name)
        value = os.environ.get(key)
        if value is None:
            raise MissingConfigError(key)
        return value

    def get_int(self, name: str, default: int | None = None) -> int | None:
        """Get an integer environment variable.

        Raises:
            InvalidConfigValueError: If the value is not an integer.
        """
        value = self.get(name)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError as e:
            raise InvalidConfigValueError(
                f"Invalid integer value for {self._make_key(name)}",
                config_key=self._make_key(name),
                value=value,
                expected="integer",
                cause=e,
            ) from e

    def get_float(self, name: str, default: float | None = None) -> float | None:
        """Get a float environment variable.

        Raises:
            InvalidConfigValueError: If the value is not a number.
        """
        value = self.get(name)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError as e:
            raise InvalidConfigValueError(
                f"Invalid float value for {self._make_key(name)}",
                config_key=self._make_key(name),
                value=value,
                expected="float",
                cause=e,
            ) from e

    def get_bool(self, name: str, default: bool | None = None) -> bool | None:
        """Get a boolean environment variable.

        Truthy values are ``1, true, yes, on`` and falsy values
        ``0, false, no, off`` (case-insensitive).

        Raises:
            InvalidConfigValueError: If the value is not a recognised boolean.
        """
        value = self.get(name)
        if value is None:
            return default
        lower_value = value.lower()
        if lower_value in ("1", "true", "yes", "on"):
            return True
        if lower_value in ("0", "false", "no", "off"):
            return False
        raise InvalidConfigValueError(
            f"Invalid boolean value for {self._make_key(name)}",
            config_key=self._make_key(name),
            value=value,
            expected="boolean (1/0, true/false, yes/no, on/off)",
        )


# =============================================================================
# File Configuration Utilities
# =============================================================================


def _load_yaml(path: Path) -> dict[str, Any]:
    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Failed to parse YAML configuration: {path}",
            details={"path": str(path)},
            cause=e,
        ) from e
    return data if isinstance(data, dict) else {}


def _load_json(path: Path) -> dict[str, Any]:
    try:
        with path.open(encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            f"Failed to parse JSON configuration: {path}",
            details={"path": str(path)},
            cause=e,
        ) from e
    return data if isinstance(data, dict) else {}


def load_config_file(path: Path) -> dict[str, Any]:
    """Load configuration from a JSON or YAML file.

    Raises:
        ConfigurationError: If the file is missing, unreadable or of an
            unsupported format.
    """
    if not path.exists():
        raise ConfigurationError(
            f"Configuration file not found: {path}",
            details={"path": str(path)},
        )

    suffix = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        return _load_yaml(path)
    if suffix == ".json":
        return _load_json(path)
    raise ConfigurationError(
        f"Unsupported configuration file format: {suffix}",
        details={"path": str(path), "suffix": suffix},
    )


def find_config_file(start_dir: Path | None = None, max_depth: int = 5) -> Path | None:
    """Search upward from ``start_dir`` (default: cwd) for a config file."""
    current = start_dir or Path.cwd()
    for _ in range(max_depth):
        for name in CONFIG_FILE_NAMES:
            config_path = current / name
            if config_path.is_file():
                return config_path
        parent = current.parent
        if parent == current:
            break
        current = parent
    return None


# =============================================================================
# Main Configuration Class
# =============================================================================


@dataclass(frozen=True, slots=True)
class GrammarConfig:
    """Settings shared by the compiler, the evaluation engine and the aggregator.

    Attributes:
        log_level: Logging level name.
        log_format: ``text`` or ``json``.
        result_column: Name of the nested summary column added per row.
        severe_prefix: Result column prefix for MUST rules.
        warning_prefix: Result column prefix for SHOULD rules.
        date_format: strftime format used by date validity checks that do
            not declare their own.
        keep_check_columns: Keep the per-check boolean columns next to the
            summary column instead of dropping them.
        sample_size: Number of failing values kept per check in the
            dataset summary.
        slow_threshold_ms: Duration above which timings are logged as slow.
        extra: Free-form additional settings.

    Example:
        >>> config = GrammarConfig(keep_check_columns=True)
        >>> config.severe_prefix
        'dqs_'
    """

    log_level: str = "INFO"
    log_format: str = "text"
    result_column: str = DEFAULT_RESULT_COLUMN
    severe_prefix: str = DEFAULT_SEVERE_PREFIX
    warning_prefix: str = DEFAULT_WARNING_PREFIX
    date_format: str = DEFAULT_DATE_FORMAT
    keep_check_columns: bool = False
    sample_size: int = 5
    slow_threshold_ms: float = 1000.0
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Create a config from a dictionary.

        Unknown top-level keys are collected into ``extra``.
        """
        known = {f.name for f in fields(cls)}
        unknown = {k: v for k, v in data.items() if k not in known}
        values = {k: v for k, v in data.items() if k in known}
        if unknown:
            values["extra"] = {**unknown, **values.get("extra", {})}
        return cls(**values)

    @classmethod
    def from_env(cls, prefix: str = DEFAULT_ENV_PREFIX) -> Self:
        """Create configuration from environment variables.

        Environment Variables:
            {PREFIX}_LOG_LEVEL, {PREFIX}_LOG_FORMAT, {PREFIX}_RESULT_COLUMN,
            {PREFIX}_SEVERE_PREFIX, {PREFIX}_WARNING_PREFIX,
            {PREFIX}_DATE_FORMAT, {PREFIX}_KEEP_CHECK_COLUMNS (bool),
            {PREFIX}_SAMPLE_SIZE (int), {PREFIX}_SLOW_THRESHOLD_MS (float)
        """
        env = EnvReader(prefix)
        defaults = cls()
        return cls(
            log_level=env.get("LOG_LEVEL") or defaults.log_level,
            log_format=env.get("LOG_FORMAT") or defaults.log_format,
            result_column=env.get("RESULT_COLUMN") or defaults.result_column,
            severe_prefix=env.get("SEVERE_PREFIX") or defaults.severe_prefix,
            warning_prefix=env.get("WARNING_PREFIX") or defaults.warning_prefix,
            date_format=env.get("DATE_FORMAT") or defaults.date_format,
            keep_check_columns=env.get_bool("KEEP_CHECK_COLUMNS", defaults.keep_check_columns),
            sample_size=env.get_int("SAMPLE_SIZE", defaults.sample_size),
            slow_threshold_ms=env.get_float("SLOW_THRESHOLD_MS", defaults.slow_threshold_ms),
        )

    @classmethod
    def from_file(cls, path: Path | str) -> Self:
        """Create configuration from a JSON or YAML file."""
        return cls.from_dict(load_config_file(Path(path)))

    @classmethod
    def load(
        cls,
        config_file: Path | str | None = None,
        env_prefix: str = DEFAULT_ENV_PREFIX,
        search_config: bool = True,
    ) -> Self:
        """Load configuration from a file merged with environment variables.

        Environment variables that are set win over file values.

        Args:
            config_file: Explicit config file path.
            env_prefix: Environment variable prefix.
            search_config: Whether to search for a config file when
                ``config_file`` is not given.
        """
        file_path: Path | None = None
        if config_file:
            file_path = Path(config_file)
        elif search_config:
            file_path = find_config_file()

        file_data = load_config_file(file_path) if file_path else {}
        base = cls.from_dict(file_data)

        env = EnvReader(env_prefix)
        env_config = cls.from_env(env_prefix)
        overrides: dict[str, Any] = {}
        for f in fields(cls):
            if f.name == "extra":
                continue
            if env.get(f.name.upper()) is not None:
                overrides[f.name] = getattr(env_config, f.name)
        return replace(base, **overrides)

    def with_overrides(self, **kwargs: Any) -> GrammarConfig:
        """Return a copy with the given fields replaced.

        Example:
            >>> GrammarConfig().with_overrides(result_column="DQ").result_column
            'DQ'
        """
        return replace(self, **kwargs)


# =============================================================================
# Validation Utilities
# =============================================================================


def validate_config(config: GrammarConfig) -> list[str]:
    """Validate configuration and return a list of issues (empty if valid)."""
    issues: list[str] = []

    if config.log_level.upper() not in _VALID_LOG_LEVELS:
        issues.append(
            f"Invalid log_level: {config.log_level}. "
            f"Must be one of: {', '.join(_VALID_LOG_LEVELS)}"
        )
    if config.log_format not in _VALID_LOG_FORMATS:
        issues.append(
            f"Invalid log_format: {config.log_format}. "
            f"Must be one of: {', '.join(_VALID_LOG_FORMATS)}"
        )
    if not _IDENTIFIER.match(config.result_column):
        issues.append(f"Invalid result_column: {config.result_column!r}. Must be an identifier.")
    for name in ("severe_prefix", "warning_prefix"):
        value = getattr(config, name)
        if not value or not _IDENTIFIER.match(value):
            issues.append(f"Invalid {name}: {value!r}. Must be a non-empty identifier prefix.")
    if config.severe_prefix == config.warning_prefix:
        issues.append("severe_prefix and warning_prefix must differ.")
    elif config.severe_prefix.startswith(config.warning_prefix) or config.warning_prefix.startswith(
        config.severe_prefix
    ):
        issues.append("severe_prefix and warning_prefix must not be prefixes of each other.")
    if "%" not in config.date_format:
        issues.append(f"Invalid date_format: {config.date_format!r}. Expected strftime directives.")
    if config.sample_size < 0:
        issues.append(f"Invalid sample_size: {config.sample_size}. Must be non-negative.")
    if config.slow_threshold_ms <= 0:
        issues.append(f"Invalid slow_threshold_ms: {config.slow_threshold_ms}. Must be positive.")

    return issues


def require_valid_config(config: GrammarConfig) -> None:
    """Validate configuration and raise if invalid.

    Raises:
        ConfigurationError: If configuration is invalid.
    """
    issues = validate_config(config)
    if issues:
        raise ConfigurationError("Invalid configuration", details={"issues": issues})


def apply_logging_config(config: GrammarConfig) -> None:
    """Configure package logging from ``log_level`` and ``log_format``.

    Raises:
        ConfigurationError: If configuration is invalid.
    """
    require_valid_config(config)
    configure_logging(level=config.log_level, format=config.log_format)
