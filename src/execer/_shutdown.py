"""Graceful shutdown escalation for a cancelled process.

When a run is cancelled the process group first receives SIGTERM. The
sequencer then waits for the process to exit, logging at checkpoints
G/20 and G/3 of the grace period G, and sends SIGKILL to the group once G
has elapsed. Any wait ends early the moment the process exits.
"""

from enum import StrEnum
from typing import final

import anyio
import structlog
from structlog.typing import FilteringBoundLogger

from execer.exceptions import GracefulStopError

from . import _procutil
from ._procutil import ProcessHandle
from ._race import deadline_waiter, first_of

# Same default Kubernetes gives pods to clean up.
DEFAULT_GRACE_PERIOD = 30.0


class ShutdownState(StrEnum):
    """States of the shutdown escalation.

    - REQUESTED: SIGTERM is being sent to the group
    - WAITING_SHORT: Waiting until the first checkpoint (G/20)
    - WAITING_MEDIUM: Waiting until the second checkpoint (G/3)
    - WAITING_FINAL: Waiting until the grace period (G) runs out
    - FORCED_KILL: Grace period exhausted, SIGKILL sent (terminal)
    - EXITED_EARLY: Process exited while waiting (terminal)
    - REJECTED: SIGTERM could not be sent, SIGKILL sent at once (terminal)
    """

    REQUESTED = "requested"
    WAITING_SHORT = "waiting_short"
    WAITING_MEDIUM = "waiting_medium"
    WAITING_FINAL = "waiting_final"
    FORCED_KILL = "forced_kill"
    EXITED_EARLY = "exited_early"
    REJECTED = "rejected"


def grace_checkpoints(grace_period: float) -> tuple[float, float, float]:
    """Return the checkpoint offsets (G/20, G/3, G) for a grace period."""
    return (grace_period / 20, grace_period / 3, grace_period)


def _format_duration(seconds: float) -> str:
    return f"{seconds:g}s"


@final
class GracefulShutdown:
    """Escalating shutdown of one process group.

    Attributes:
        state: Current escalation state.
        history: Every state entered, in order.
    """

    __slots__ = ("_exited", "_grace_period", "_handle", "_log", "history", "state")

    def __init__(
        self,
        handle: ProcessHandle,
        exited: anyio.Event,
        *,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the sequencer.

        Args:
            handle: The process group to shut down.
            exited: Event set once the direct child has exited.
            grace_period: Seconds to wait before sending SIGKILL.
            logger: Logger for progress messages.
        """
        if grace_period < 0:
            msg = f"grace_period must not be negative, got {grace_period}"
            raise ValueError(msg)
        self._handle = handle
        self._exited = exited
        self._grace_period = grace_period
        self._log: FilteringBoundLogger = logger or structlog.get_logger("execer")
        self.state = ShutdownState.REQUESTED
        self.history: list[ShutdownState] = [ShutdownState.REQUESTED]

    @property
    def grace_period(self) -> float:
        return self._grace_period

    def _enter(self, state: ShutdownState) -> None:
        self.state = state
        self.history.append(state)

    async def _exited_before(self, deadline: float) -> bool:
        if self._exited.is_set():
            return True
        index = await first_of(self._exited.wait, deadline_waiter(deadline))
        return index == 0

    async def run(self) -> ShutdownState:
        """Run the escalation to completion.

        Returns:
            The terminal state: EXITED_EARLY, FORCED_KILL, or REJECTED.
        """
        pid = self._handle.pid
        self._log.debug("About to gracefully shut down process", pid=pid)
        try:
            _procutil.request_graceful_stop(self._handle)
        except GracefulStopError as e:
            self._log.debug(
                "Unable to gracefully kill process, sending SIGKILL to the process group",
                pid=pid,
                error=str(e),
            )
            _procutil.force_kill(self._handle)
            self._enter(ShutdownState.REJECTED)
            return self.state

        start = anyio.current_time()
        short, medium, final_ = grace_checkpoints(self._grace_period)

        self._enter(ShutdownState.WAITING_SHORT)
        if await self._exited_before(start + short):
            self._enter(ShutdownState.EXITED_EARLY)
            return self.state
        self._log.info(
            f"Waiting {_format_duration(self._grace_period)} for process to exit... (pid: {pid})",
            pid=pid,
        )

        self._enter(ShutdownState.WAITING_MEDIUM)
        if await self._exited_before(start + medium):
            self._enter(ShutdownState.EXITED_EARLY)
            return self.state
        self._log.info(f"Still waiting on exit... (pid: {pid})", pid=pid)

        self._enter(ShutdownState.WAITING_FINAL)
        if await self._exited_before(start + final_):
            self._enter(ShutdownState.EXITED_EARLY)
            return self.state
        self._log.info(f"Time is up! Sending {pid} a kill signal", pid=pid)
        _procutil.force_kill(self._handle)
        self._enter(ShutdownState.FORCED_KILL)
        return self.state
