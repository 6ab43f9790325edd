"""Supervise one external process at a time with graceful shutdown.

Key Components:
    - Command: Immutable description of what to run
    - CommandBuilder: Turns a Command into a spawnable form
    - StatusEvent / ExecState: The status stream a run reports on
    - ProcessExecer: Runs a command as a process-group leader
    - GracefulShutdown: SIGTERM, staged waits, then SIGKILL
    - ProcessRegistry: Optional table rejecting duplicate concurrent runs
    - OutputSink: Protocol for consuming raw process output

Example:
    >>> import anyio
    >>> from execer import BufferOutputSink, Command, ProcessExecer
    >>> async def main() -> None:
    ...     cancel = anyio.Event()
    ...     async with anyio.create_task_group() as tg:
    ...         events = await ProcessExecer().start(
    ...             tg, Command(argv=("sleep", "60")), BufferOutputSink(), cancel
    ...         )
    ...         async for event in events:
    ...             if event.state == "running":
    ...                 cancel.set()
"""

from ._command import Command, CommandBuilder, PreparedCommand
from ._execer import ProcessExecer
from ._models import KILLED_EXIT_CODE, KILLED_REASON, ExecState, StatusEvent
from ._output import BufferOutputSink, ConsoleOutputSink
from ._procutil import ProcessHandle
from ._protocol import Execer, OutputSink
from ._race import first_of
from ._registry import ProcessRegistry, RegistryEntry
from ._shutdown import (
    DEFAULT_GRACE_PERIOD,
    GracefulShutdown,
    ShutdownState,
    grace_checkpoints,
)

__all__ = [
    "DEFAULT_GRACE_PERIOD",
    "KILLED_EXIT_CODE",
    "KILLED_REASON",
    "BufferOutputSink",
    "Command",
    "CommandBuilder",
    "ConsoleOutputSink",
    "ExecState",
    "Execer",
    "GracefulShutdown",
    "OutputSink",
    "PreparedCommand",
    "ProcessExecer",
    "ProcessHandle",
    "ProcessRegistry",
    "RegistryEntry",
    "ShutdownState",
    "StatusEvent",
    "first_of",
    "grace_checkpoints",
]
