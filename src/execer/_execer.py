"""Process supervisor.

ProcessExecer starts one command per call, reports its lifecycle on a
status stream, and shuts it down gracefully when the caller cancels.
"""

import os
from dataclasses import dataclass
from typing import final

import anyio
import anyio.abc
import structlog
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from structlog.typing import FilteringBoundLogger

from execer.config import Config
from execer.exceptions import (
    CommandBuildError,
    DuplicateCommandError,
    ProcessWaitError,
    SpawnError,
)

from . import _procutil
from ._command import Command, CommandBuilder
from ._models import KILLED_EXIT_CODE, KILLED_REASON, ExecState, StatusEvent
from ._procutil import ProcessHandle
from ._protocol import OutputSink
from ._race import first_of
from ._registry import ProcessRegistry, RegistryEntry
from ._shutdown import DEFAULT_GRACE_PERIOD, GracefulShutdown

_READ_SIZE = 65536


@dataclass(slots=True)
class _ExitResult:
    exit_code: int = 0
    error: ProcessWaitError | None = None


@final
class ProcessExecer:
    """Runs commands as process-group leaders and reports their status.

    Every call to start() is an independent run with its own status stream.
    A natural exit is always reported as ERROR (supervised commands are
    expected to run until cancelled); a cancelled run always ends with
    DONE, exit code 137, reason "killed".
    """

    __slots__ = (
        "_builder",
        "_duplicate_wait",
        "_grace_period",
        "_log",
        "_output_drain_timeout",
        "_registry",
    )

    def __init__(  # noqa: PLR0913
        self,
        builder: CommandBuilder | None = None,
        *,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        registry: ProcessRegistry | None = None,
        logger: FilteringBoundLogger | None = None,
        output_drain_timeout: float = 1.0,
        duplicate_wait: float = 5.0,
    ) -> None:
        """Initialize the execer.

        Args:
            builder: Turns commands into spawnable form. Uses CommandBuilder if None.
            grace_period: Seconds between SIGTERM and SIGKILL on cancellation.
            registry: Optional table used to reject concurrent duplicate runs.
            logger: Logger for lifecycle messages.
            output_drain_timeout: Seconds to wait for remaining output after exit.
            duplicate_wait: Seconds to wait for a duplicate run to finish.
        """
        self._builder = builder or CommandBuilder()
        self._grace_period = grace_period
        self._registry = registry
        self._log: FilteringBoundLogger = logger or structlog.get_logger("execer")
        self._output_drain_timeout = output_drain_timeout
        self._duplicate_wait = duplicate_wait

    @classmethod
    def from_config(
        cls,
        config: Config,
        *,
        builder: CommandBuilder | None = None,
        registry: ProcessRegistry | None = None,
        logger: FilteringBoundLogger | None = None,
    ) -> "ProcessExecer":
        settings = config.execer
        return cls(
            builder,
            grace_period=settings.grace_period,
            registry=registry,
            logger=logger,
            output_drain_timeout=settings.output_drain_timeout,
            duplicate_wait=settings.duplicate_wait,
        )

    @property
    def grace_period(self) -> float:
        return self._grace_period

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
            output_sink: Sink for the process's combined stdout and stderr.
            cancel: Event the caller sets to request shutdown.

        Returns:
            Stream of status events, closed after the terminal event.

        Raises:
            DuplicateCommandError: If a registry is in use and the same
                command is still running after the duplicate wait.
        """
        entry: RegistryEntry | None = None
        if self._registry is not None:
            identity = str(command)
            entry = await self._registry.register(identity, wait=self._duplicate_wait)
            if entry is None:
                msg = f"command {identity!r} is already running"
                raise DuplicateCommandError(msg, command=identity)

        send, receive = anyio.create_memory_object_stream[StatusEvent]()
        task_group.start_soon(self._supervise, command, output_sink, cancel, send, entry)
        return receive

    async def _supervise(
        self,
        command: Command,
        output_sink: OutputSink,
        cancel: anyio.Event,
        send: MemoryObjectSendStream[StatusEvent],
        entry: RegistryEntry | None,
    ) -> None:
        log = self._log.bind(cmd=str(command))
        try:
            async with send:
                await self._run(command, output_sink, cancel, send, log)
        finally:
            if entry is not None and self._registry is not None:
                self._registry.release(entry)

    async def _emit(
        self,
        send: MemoryObjectSendStream[StatusEvent],
        event: StatusEvent,
        log: FilteringBoundLogger,
    ) -> None:
        try:
            await send.send(event)
        except (anyio.BrokenResourceError, anyio.ClosedResourceError):
            log.debug("Status stream closed by consumer", state=event.state.value)

    async def _run(
        self,
        command: Command,
        output_sink: OutputSink,
        cancel: anyio.Event,
        send: MemoryObjectSendStream[StatusEvent],
        log: FilteringBoundLogger,
    ) -> None:
        log.info(f"Running cmd: {command}")
        try:
            prepared = self._builder.build(command)
        except CommandBuildError as e:
            log.error(f"{str(command)!r} invalid cmd: {e}")
            event = StatusEvent(ExecState.ERROR, exit_code=1, reason=f"invalid cmd: {e}")
            await self._emit(send, event, log)
            return

        read_fd, write_fd = _procutil.open_output_pipe()
        try:
            handle = await _procutil.spawn(prepared, write_fd)
        except SpawnError as e:
            os.close(read_fd)
            log.error(f"{command} failed to start: {e}")
            event = StatusEvent(ExecState.ERROR, exit_code=1, reason=f"failed to start: {e}")
            await self._emit(send, event, log)
            return
        except BaseException:
            os.close(read_fd)
            raise
        finally:
            # The child holds its own copy; ours must go so EOF can arrive.
            os.close(write_fd)

        log = log.bind(pid=handle.pid)
        try:
            await self._monitor(handle, read_fd, output_sink, cancel, send, log)
        except anyio.get_cancelled_exc_class():
            # The caller's task group is going away; the group must not outlive it.
            _procutil.force_kill(handle)
            raise

    async def _monitor(  # noqa: PLR0913
        self,
        handle: ProcessHandle,
        read_fd: int,
        output_sink: OutputSink,
        cancel: anyio.Event,
        send: MemoryObjectSendStream[StatusEvent],
        log: FilteringBoundLogger,
    ) -> None:
        pid = handle.pid
        exited = anyio.Event()
        output_done = anyio.Event()
        result = _ExitResult()

        async with anyio.create_task_group() as tg:
            tg.start_soon(self._pump_output, read_fd, output_sink, output_done, log)
            tg.start_soon(self._wait_for_exit, handle, exited, result)

            await self._emit(send, StatusEvent(ExecState.RUNNING, pid=pid), log)

            if await first_of(exited.wait, cancel.wait) == 0:
                await self._settle(output_done)
                event = self._exit_event(result, pid, log)
            else:
                shutdown = GracefulShutdown(
                    handle,
                    exited,
                    grace_period=self._grace_period,
                    logger=log,
                )
                state = await shutdown.run()
                log.debug("Shutdown finished", shutdown_state=state.value)
                await self._settle(exited, output_done)
                event = StatusEvent(
                    ExecState.DONE,
                    exit_code=KILLED_EXIT_CODE,
                    pid=pid,
                    reason=KILLED_REASON,
                )

            await self._emit(send, event, log)
            # Readers left behind by descendants that escaped the group.
            tg.cancel_scope.cancel()

    async def _settle(self, *events: anyio.Event) -> None:
        with anyio.move_on_after(self._output_drain_timeout):
            for event in events:
                await event.wait()

    def _exit_event(
        self,
        result: _ExitResult,
        pid: int,
        log: FilteringBoundLogger,
    ) -> StatusEvent:
        if result.error is not None:
            log.error(f"error execing: {result.error}")
            return StatusEvent(
                ExecState.ERROR,
                exit_code=1,
                pid=pid,
                reason=str(result.error),
            )

        exit_code = result.exit_code
        log.error(f"exited with exit code {exit_code}", exit_code=exit_code)
        # Even a zero exit is an error: supervised commands are not supposed to exit.
        reason = "exited with code 0" if exit_code == 0 else f"exit status {exit_code}"
        return StatusEvent(ExecState.ERROR, exit_code=exit_code, pid=pid, reason=reason)

    async def _wait_for_exit(
        self,
        handle: ProcessHandle,
        exited: anyio.Event,
        result: _ExitResult,
    ) -> None:
        try:
            result.exit_code = await _procutil.wait(handle)
        except ProcessWaitError as e:
            result.error = e
        exited.set()

    async def _pump_output(
        self,
        read_fd: int,
        output_sink: OutputSink,
        done: anyio.Event,
        log: FilteringBoundLogger,
    ) -> None:
        os.set_blocking(read_fd, False)
        try:
            while True:
                await anyio.wait_readable(read_fd)
                try:
                    data = os.read(read_fd, _READ_SIZE)
                except BlockingIOError:
                    continue
                if not data:
                    break
                try:
                    await output_sink.write(data)
                except Exception as e:  # noqa: BLE001
                    # Output sink errors should not crash the run
                    log.warning("Output sink write failed", error=str(e))
        finally:
            os.close(read_fd)
            done.set()
