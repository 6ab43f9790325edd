"""Protocol definitions for execer.

This module defines the interfaces that decouple the supervisor from its
callers:
- OutputSink: Protocol for consuming raw process output
- Execer: Protocol for anything that runs a command and reports status
"""

from typing import Protocol, runtime_checkable

import anyio
import anyio.abc
from anyio.streams.memory import MemoryObjectReceiveStream

from ._command import Command
from ._models import StatusEvent


@runtime_checkable
class OutputSink(Protocol):
    """Protocol for consuming the combined stdout/stderr of a process.

    The sink receives raw bytes in the order the process wrote them. The
    caller owns the sink's lifetime; execers only write to it.
    """

    async def write(self, data: bytes) -> None:
        """Append a chunk of process output.

        Args:
            data: Raw bytes, not necessarily aligned to line boundaries.
        """
        ...


@runtime_checkable
class Execer(Protocol):
    """Protocol for running one command and streaming its status.

    The returned stream yields exactly one RUNNING event (or a single ERROR
    if the command could not be started) followed by exactly one terminal
    event, and is closed right after the terminal event.
    """

    async def start(
        self,
        task_group: anyio.abc.TaskGroup,
        command: Command,
        output_sink: OutputSink,
        cancel: anyio.Event,
    ) -> MemoryObjectReceiveStream[StatusEvent]:
        """Start supervising a command.

        Args:
            task_group: Task group the supervision task is started in.
            command: The command to run.
            output_sink: Sink for the process's combined output.
            cancel: Event the caller sets to request shutdown.

        Returns:
            Stream of status events for this run.

        Raises:
            DuplicateCommandError: If a registry is in use and the same
                command is still running.
        """
        ...
