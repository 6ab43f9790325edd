"""In-memory execer for tests.

FakeExecer honours the same status-stream contract as ProcessExecer
without spawning anything. Tests decide when a fake process exits by
calling stop(); setting the cancel event behaves like a cancelled run.
Runs are tracked by command identity and duplicates are rejected, using
an explicit ProcessRegistry.
"""

import itertools
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import final

import anyio
import anyio.abc
import structlog
from anyio.streams.memory import (
    MemoryObjectReceiveStream,
    MemoryObjectSendStream,
)
from structlog.typing import FilteringBoundLogger

from execer.exceptions import DuplicateCommandError, ProcessNotFoundError

from ._command import Command
from ._models import KILLED_EXIT_CODE, KILLED_REASON, ExecState, StatusEvent
from ._protocol import OutputSink
from ._race import first_of
from ._registry import ProcessRegistry, RegistryEntry

_FAKE_PID_BASE = 10000


@dataclass(slots=True)
class FakeProcess:
    """A fake run that tests can inspect and stop.

    Attributes:
        identity: Identity string of the command.
        pid: Fake process ID reported in status events.
        workdir: Working directory the command asked for.
        env: Environment entries the command asked for.
        start_time: anyio clock time the run started.
    """

    identity: str
    pid: int
    workdir: Path | None
    env: tuple[str, ...]
    start_time: float
    exit_send: MemoryObjectSendStream[int] = field(repr=False)
    exit_receive: MemoryObjectReceiveStream[int] = field(repr=False)


@final
class FakeExecer:
    """Execer double that never spawns real processes."""

    __slots__ = ("_duplicate_wait", "_lock", "_log", "_pids", "_processes", "registry")

    def __init__(
        self,
        registry: ProcessRegistry | None = None,
        *,
        duplicate_wait: float = 5.0,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the fake.

        Args:
            registry: Table of active runs. A private one is created if None.
            duplicate_wait: Seconds to wait for a duplicate run to finish.
            logger: Logger for diagnostics.
        """
        self.registry = registry if registry is not None else ProcessRegistry()
        self._duplicate_wait = duplicate_wait
        self._log: FilteringBoundLogger = logger or structlog.get_logger("execer.testing")
        self._processes: dict[str, FakeProcess] = {}
        self._lock = threading.Lock()
        self._pids = itertools.count(_FAKE_PID_BASE)

    async def start(
        self,
        task_group: anyio.abc.TaskGroup,
        command: Command,
        output_sink: OutputSink,
        cancel: anyio.Event,
    ) -> MemoryObjectReceiveStream[StatusEvent]:
        """Start a fake run.

        Raises:
            DuplicateCommandError: If the same command is still running
                after the duplicate wait.
        """
        identity = str(command)
        entry = await self.registry.register(identity, wait=self._duplicate_wait)
        if entry is None:
            self._log.info(
                "internal error: fake execer only supports one instance of each "
                f"unique command at a time. tried to start a second instance of {identity!r}"
            )
            msg = f"command {identity!r} is already running"
            raise DuplicateCommandError(msg, command=identity)

        exit_send, exit_receive = anyio.create_memory_object_stream[int](1)
        process = FakeProcess(
            identity=identity,
            pid=next(self._pids),
            workdir=command.dir,
            env=command.env,
            start_time=anyio.current_time(),
            exit_send=exit_send,
            exit_receive=exit_receive,
        )
        with self._lock:
            self._processes[identity] = process

        send, receive = anyio.create_memory_object_stream[StatusEvent]()
        task_group.start_soon(self._run, command, output_sink, cancel, send, process, entry)
        return receive

    async def _run(  # noqa: PLR0913
        self,
        command: Command,
        output_sink: OutputSink,
        cancel: anyio.Event,
        send: MemoryObjectSendStream[StatusEvent],
        process: FakeProcess,
        entry: RegistryEntry,
    ) -> None:
        exit_code = 0

        async def _exit() -> None:
            nonlocal exit_code
            exit_code = await process.exit_receive.receive()

        try:
            async with send, process.exit_receive:
                await output_sink.write(f"Starting cmd {command}\n".encode())
                await send.send(StatusEvent(ExecState.RUNNING, pid=process.pid))

                if await first_of(cancel.wait, _exit) == 0:
                    await output_sink.write(f"cmd {command} canceled\n".encode())
                    # Cleaned up at the caller's request, so not an error.
                    await send.send(
                        StatusEvent(
                            ExecState.DONE,
                            exit_code=KILLED_EXIT_CODE,
                            pid=process.pid,
                            reason=KILLED_REASON,
                        )
                    )
                else:
                    await output_sink.write(
                        f"cmd {command} exited with code {exit_code}\n".encode()
                    )
                    # Even an exit code of 0 is an error: services aren't supposed to exit.
                    reason = (
                        "exited with code 0" if exit_code == 0 else f"exit status {exit_code}"
                    )
                    await send.send(
                        StatusEvent(
                            ExecState.ERROR,
                            exit_code=exit_code,
                            pid=process.pid,
                            reason=reason,
                        )
                    )
        finally:
            with self._lock:
                if self._processes.get(process.identity) is process:
                    del self._processes[process.identity]
            process.exit_send.close()
            self.registry.release(entry)

    async def stop(self, identity: str, exit_code: int) -> None:
        """Make a fake process exit with the given code.

        Raises:
            ProcessNotFoundError: If no run with this identity is active.
        """
        with self._lock:
            process = self._processes.pop(identity, None)
        if process is None:
            msg = f"no such process {identity!r}"
            raise ProcessNotFoundError(msg, command=identity)
        try:
            await process.exit_send.send(exit_code)
        except (anyio.BrokenResourceError, anyio.ClosedResourceError) as e:
            msg = f"process {identity!r} already finished"
            raise ProcessNotFoundError(msg, command=identity, cause=e) from e

    def get_process(self, identity: str) -> FakeProcess | None:
        """Return the active fake process for an identity, if any."""
        with self._lock:
            return self._processes.get(identity)

    def assert_no_known_process(self, identity: str) -> None:
        """Fail if a run with this identity is still tracked."""
        assert identity not in self.registry, (  # noqa: S101
            f"FakeExecer should not be tracking any process with cmd {identity!r}, but it is"
        )
