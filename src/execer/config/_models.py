# pyright: reportExplicitAny=false, reportAny=false
"""Configuration models.

This module provides the Pydantic models for execer settings and the
Config container that loads them from defaults, a TOML file, and the
environment.
"""

from enum import StrEnum
from pathlib import Path
from typing import Any, ClassVar, Self

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from execer.exceptions import ConfigValidationError

from ._loader import deep_merge, parse_env_vars, read_toml_file


class LogLevel(StrEnum):
    """Log level threshold values."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class LogFormat(StrEnum):
    """Log output format values."""

    JSON = "json"
    TEXT = "text"


class LoggingConfig(BaseModel):
    """Logging configuration section.

    Attributes:
        level: Log level threshold.
        format: Log output format.
        file: Path to log file (empty logs to stderr).
        max_bytes: Rotate the log file once it reaches this size.
        backup_count: Number of rotated log files to keep. Rotation is
            enabled only when both max_bytes and backup_count are set.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.JSON
    file: str = ""
    max_bytes: int | None = Field(default=None, gt=0)
    backup_count: int | None = Field(default=None, ge=0)


class ExecerSettings(BaseModel):
    """Process supervision settings.

    Attributes:
        grace_period: Seconds a cancelled process gets to exit after SIGTERM.
        output_drain_timeout: Seconds to wait for buffered output after exit.
        duplicate_wait: Seconds to wait for a duplicate run to finish.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    grace_period: float = Field(default=30.0, ge=0)
    output_drain_timeout: float = Field(default=1.0, ge=0)
    duplicate_wait: float = Field(default=5.0, ge=0)


class Config(BaseModel):
    """Execer configuration.

    Use from_dict(), from_file(), or load() rather than the constructor
    when values come from user input.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    execer: ExecerSettings = Field(default_factory=ExecerSettings)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, source: str | None = None) -> Self:
        """Create configuration from a dictionary.

        Raises:
            ConfigValidationError: If a value is invalid.
        """
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            where = f" in {source}" if source else ""
            msg = f"Invalid configuration{where}: {e}"
            raise ConfigValidationError(msg, source=source) from e

    @classmethod
    def from_file(cls, path: Path) -> Self:
        """Create configuration from a TOML file.

        Raises:
            FileNotFoundError: If the file does not exist.
            ConfigLoadError: If the file cannot be parsed.
            ConfigValidationError: If a value is invalid.
        """
        return cls.from_dict(read_toml_file(path), source=str(path))

    @classmethod
    def load(
        cls,
        path: Path | None = None,
        *,
        include_env: bool = True,
        overrides: dict[str, Any] | None = None,
    ) -> Self:
        """Load configuration from all sources.

        Precedence, lowest to highest: defaults, the TOML file at ``path``,
        EXECER_* environment variables, ``overrides``.

        Args:
            path: Optional TOML file. Must exist when given.
            include_env: Whether to read EXECER_* environment variables.
            overrides: Explicit values, e.g. from CLI flags.

        Returns:
            The merged configuration.
        """
        data: dict[str, Any] = {}
        if path is not None:
            data = deep_merge(data, read_toml_file(path))
        if include_env:
            data = deep_merge(data, parse_env_vars())
        if overrides:
            data = deep_merge(data, overrides)
        return cls.from_dict(data, source=str(path) if path is not None else None)
