"""Data models for the execer status channel.

This module defines the core data types emitted to callers:
- ExecState: Lifecycle states reported for a supervised process
- StatusEvent: Immutable status update records
"""

from dataclasses import dataclass, field
from enum import StrEnum

# Exit code reported when a run ends because the caller cancelled it.
KILLED_EXIT_CODE = 137
KILLED_REASON = "killed"


def _get_timestamp() -> str:
    """Get current timestamp in ISO 8601 format."""
    import pendulum  # noqa: PLC0415

    return pendulum.now("UTC").to_iso8601_string()


class ExecState(StrEnum):
    """States reported on the status channel.

    - RUNNING: The process was spawned and is running
    - DONE: The run ended because the caller cancelled it
    - ERROR: The run ended abnormally (any natural exit, or a failure to start)
    """

    RUNNING = "running"
    DONE = "done"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class StatusEvent:
    """Immutable status update for one process run.

    Attributes:
        state: Reported lifecycle state.
        exit_code: Exit code for terminal events, 0 while running.
        pid: Process ID once spawned, 0 if the process never started.
        reason: Human-readable explanation for terminal events.
        timestamp: ISO 8601 formatted timestamp.
    """

    state: ExecState
    exit_code: int = 0
    pid: int = 0
    reason: str = ""
    timestamp: str = field(default_factory=_get_timestamp, compare=False)

    @property
    def is_terminal(self) -> bool:
        """Return True for DONE and ERROR events."""
        return self.state != ExecState.RUNNING
