"""Execer exceptions."""

from pathlib import Path


class ExecerError(Exception):
    """Base exception for execer errors."""


class ConfigError(ExecerError):
    """Base exception for configuration errors."""


class ConfigLoadError(ConfigError):
    """Raised when configuration cannot be loaded or parsed."""

    def __init__(
        self,
        message: str,
        *,
        path: Path | None = None,
        line: int | None = None,
        column: int | None = None,
    ) -> None:
        """Initialize with error message and optional location context."""
        super().__init__(message)
        self.path: Path | None = path
        self.line: int | None = line
        self.column: int | None = column


class ConfigValidationError(ConfigError):
    """Raised when configuration values fail validation.

    Attributes:
        source: Where the invalid values came from (a path, "env", "overrides").
    """

    def __init__(self, message: str, *, source: str | None = None) -> None:
        """Initialize with error message and source context."""
        super().__init__(message)
        self.source: str | None = source


# =============================================================================
# Process Exceptions
# =============================================================================


class ProcessError(ExecerError):
    """Base exception for process lifecycle errors.

    Attributes:
        command: Identity string of the command involved, if known.
        cause: The underlying exception that caused the failure.
    """

    def __init__(
        self,
        message: str,
        *,
        command: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize with error message and command context.

        Args:
            message: Human-readable error message.
            command: Identity string of the command involved.
            cause: The underlying exception that caused the failure.
        """
        super().__init__(message)
        self.command: str | None = command
        self.cause: Exception | None = cause


class CommandBuildError(ProcessError):
    """Raised when a command cannot be turned into a runnable form."""


class SpawnError(ProcessError):
    """Raised when the OS refuses to create the process."""


class ProcessWaitError(ProcessError):
    """Raised when waiting on a spawned process fails."""


class GracefulStopError(ProcessError):
    """Raised when a process group cannot be asked to stop gracefully.

    Attributes:
        pid: Process ID of the group leader that could not be signalled.
    """

    def __init__(
        self,
        message: str,
        *,
        pid: int,
        command: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize with error message and process context.

        Args:
            message: Human-readable error message.
            pid: Process ID of the group leader.
            command: Identity string of the command involved.
            cause: The underlying exception that caused the failure.
        """
        super().__init__(message, command=command, cause=cause)
        self.pid: int = pid


class DuplicateCommandError(ProcessError):
    """Raised when a command with the same identity is already running."""


class ProcessNotFoundError(ProcessError, KeyError):
    """Raised when no active process matches a command identity."""
