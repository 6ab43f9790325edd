"""Process-group primitives.

Processes are started as the leader of a new session, and therefore of a
new process group whose id equals the leader's pid. Signals are always
delivered to the whole group so that descendants do not outlive the run.

The spawned process writes stdout and stderr to a pipe owned by the caller
rather than to pipes owned by the process transport. Waiting on the direct
child therefore never blocks on grandchildren that keep the output open.
"""

import os
import signal
import subprocess
from dataclasses import dataclass

import anyio
import anyio.abc

from execer.exceptions import GracefulStopError, ProcessWaitError, SpawnError

from ._command import PreparedCommand


@dataclass(slots=True)
class ProcessHandle:
    """A spawned process and the process group it leads.

    Attributes:
        process: The anyio process object.
        pid: Process ID of the direct child.
        pgid: Process group ID (equal to pid for a group leader).
        identity: Identity string of the command that was spawned.
    """

    process: anyio.abc.Process
    pid: int
    pgid: int
    identity: str = ""


def open_output_pipe() -> tuple[int, int]:
    """Create the pipe a spawned process writes its combined output to.

    Returns:
        Tuple of (read_fd, write_fd).
    """
    return os.pipe()


def exit_code_from_returncode(returncode: int) -> int:
    """Convert a return code to a shell-style exit code.

    Children terminated by a signal report ``-signum``; these become
    ``128 + signum``, matching what a shell would report.
    """
    if returncode < 0:
        return 128 - returncode
    return returncode


async def spawn(prepared: PreparedCommand, output_fd: int) -> ProcessHandle:
    """Start a process as the leader of a new process group.

    Args:
        prepared: The command to spawn.
        output_fd: Writable file descriptor receiving stdout and stderr.

    Returns:
        Handle for the spawned process.

    Raises:
        SpawnError: If the OS refuses to create the process or rejects
            its arguments.
    """
    try:
        process = await anyio.open_process(
            list(prepared.argv),
            cwd=prepared.cwd,
            env=prepared.env,
            stdin=subprocess.DEVNULL,
            stdout=output_fd,
            stderr=output_fd,
            start_new_session=True,
        )
    except (OSError, ValueError) as e:
        # ValueError covers arguments the OS cannot represent, e.g. NUL bytes.
        raise SpawnError(str(e), command=prepared.identity, cause=e) from e

    return ProcessHandle(
        process=process,
        pid=process.pid,
        pgid=process.pid,
        identity=prepared.identity,
    )


def request_graceful_stop(handle: ProcessHandle) -> None:
    """Send SIGTERM to the process group.

    Raises:
        GracefulStopError: If the group is gone or the OS refuses the signal.
    """
    try:
        os.killpg(handle.pgid, signal.SIGTERM)
    except OSError as e:
        msg = f"unable to send SIGTERM to process group {handle.pgid}: {e}"
        raise GracefulStopError(
            msg, pid=handle.pid, command=handle.identity, cause=e
        ) from e


def force_kill(handle: ProcessHandle) -> None:
    """Send SIGKILL to the process group.

    Safe to call any number of times; a group that no longer exists is
    ignored.
    """
    try:
        os.killpg(handle.pgid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        # Group already gone. On macOS a group with only zombies left
        # reports EPERM.
        pass


async def wait(handle: ProcessHandle) -> int:
    """Wait for the direct child to exit, then kill the rest of its group.

    Returns:
        The child's exit code (signal deaths as 128 + signum).

    Raises:
        ProcessWaitError: If waiting on the child fails.
    """
    try:
        returncode = await handle.process.wait()
    except OSError as e:
        force_kill(handle)
        msg = f"wait on pid {handle.pid} failed: {e}"
        raise ProcessWaitError(msg, command=handle.identity, cause=e) from e

    force_kill(handle)
    return exit_code_from_returncode(returncode)
