"""Wait for the first of several signal sources.

Each source is an async callable that returns once its condition holds
(a process exit, a cancellation event, a deadline). The first to return
wins; the rest are cancelled and abandoned.
"""

from collections.abc import Awaitable, Callable

import anyio

Waiter = Callable[[], Awaitable[object]]


async def first_of(*waiters: Waiter) -> int:
    """Run waiters concurrently and return the index of the first to finish.

    Args:
        waiters: Async callables to race.

    Returns:
        Index (in argument order) of the winning waiter.

    Raises:
        ValueError: If no waiters are given.
    """
    if not waiters:
        msg = "first_of() needs at least one waiter"
        raise ValueError(msg)

    winner: int | None = None

    async with anyio.create_task_group() as tg:

        async def _run(index: int, waiter: Waiter) -> None:
            nonlocal winner
            _ = await waiter()
            if winner is None:
                winner = index
                tg.cancel_scope.cancel()

        for index, waiter in enumerate(waiters):
            tg.start_soon(_run, index, waiter)

    # The task group only exits normally after some waiter finished.
    assert winner is not None  # noqa: S101
    return winner


def deadline_waiter(deadline: float) -> Waiter:
    """Return a waiter that finishes at the given anyio clock time."""

    async def _wait() -> None:
        await anyio.sleep_until(deadline)

    return _wait
