"""Tests for execer._shutdown module."""

from unittest.mock import MagicMock

import anyio
import pytest
from pytest_mock import MockerFixture
from structlog.testing import capture_logs

from execer import GracefulShutdown, ShutdownState, grace_checkpoints
from execer.exceptions import GracefulStopError


@pytest.fixture
def handle() -> MagicMock:
    mock = MagicMock()
    mock.pid = 4242
    mock.pgid = 4242
    return mock


@pytest.fixture
def stop(mocker: MockerFixture) -> MagicMock:
    return mocker.patch("execer._procutil.request_graceful_stop")


@pytest.fixture
def kill(mocker: MockerFixture) -> MagicMock:
    return mocker.patch("execer._procutil.force_kill")


class TestGraceCheckpoints:
    def test_default_grace_period(self) -> None:
        assert grace_checkpoints(30.0) == (1.5, 10.0, 30.0)

    def test_zero_grace_period(self) -> None:
        assert grace_checkpoints(0.0) == (0.0, 0.0, 0.0)


class TestConstruction:
    def test_negative_grace_period_is_rejected(self, handle: MagicMock) -> None:
        with pytest.raises(ValueError, match="must not be negative"):
            _ = GracefulShutdown(handle, anyio.Event(), grace_period=-1.0)

    def test_starts_in_requested_state(self, handle: MagicMock) -> None:
        shutdown = GracefulShutdown(handle, anyio.Event(), grace_period=2.0)

        assert shutdown.state == ShutdownState.REQUESTED
        assert shutdown.history == [ShutdownState.REQUESTED]
        assert shutdown.grace_period == 2.0


@pytest.mark.anyio
class TestRun:
    async def test_already_exited(
        self, handle: MagicMock, stop: MagicMock, kill: MagicMock
    ) -> None:
        exited = anyio.Event()
        exited.set()

        state = await GracefulShutdown(handle, exited, grace_period=30.0).run()

        assert state == ShutdownState.EXITED_EARLY
        stop.assert_called_once_with(handle)
        kill.assert_not_called()

    async def test_exit_during_medium_wait(
        self, handle: MagicMock, stop: MagicMock, kill: MagicMock
    ) -> None:
        exited = anyio.Event()
        # Checkpoints at 0.15s and 1s.
        shutdown = GracefulShutdown(handle, exited, grace_period=3.0)

        async def _exit_later() -> None:
            await anyio.sleep(0.4)
            exited.set()

        with anyio.fail_after(5):
            async with anyio.create_task_group() as tg:
                tg.start_soon(_exit_later)
                state = await shutdown.run()

        assert state == ShutdownState.EXITED_EARLY
        assert shutdown.history == [
            ShutdownState.REQUESTED,
            ShutdownState.WAITING_SHORT,
            ShutdownState.WAITING_MEDIUM,
            ShutdownState.EXITED_EARLY,
        ]
        kill.assert_not_called()

    async def test_forced_kill_after_grace_period(
        self, handle: MagicMock, stop: MagicMock, kill: MagicMock
    ) -> None:
        shutdown = GracefulShutdown(handle, anyio.Event(), grace_period=0.3)

        started = anyio.current_time()
        with anyio.fail_after(5):
            state = await shutdown.run()
        elapsed = anyio.current_time() - started

        assert state == ShutdownState.FORCED_KILL
        assert shutdown.history == [
            ShutdownState.REQUESTED,
            ShutdownState.WAITING_SHORT,
            ShutdownState.WAITING_MEDIUM,
            ShutdownState.WAITING_FINAL,
            ShutdownState.FORCED_KILL,
        ]
        assert elapsed >= 0.28
        kill.assert_called_once_with(handle)

    async def test_zero_grace_period_kills_without_waiting(
        self, handle: MagicMock, stop: MagicMock, kill: MagicMock
    ) -> None:
        with anyio.fail_after(1):
            state = await GracefulShutdown(handle, anyio.Event(), grace_period=0.0).run()

        assert state == ShutdownState.FORCED_KILL
        stop.assert_called_once_with(handle)
        kill.assert_called_once_with(handle)

    async def test_rejected_stop_kills_immediately(
        self, handle: MagicMock, mocker: MockerFixture, kill: MagicMock
    ) -> None:
        _ = mocker.patch(
            "execer._procutil.request_graceful_stop",
            side_effect=GracefulStopError("no such process", pid=handle.pid),
        )
        shutdown = GracefulShutdown(handle, anyio.Event(), grace_period=30.0)

        with anyio.fail_after(1):
            state = await shutdown.run()

        assert state == ShutdownState.REJECTED
        assert shutdown.history == [ShutdownState.REQUESTED, ShutdownState.REJECTED]
        kill.assert_called_once_with(handle)

    async def test_logs_progress_messages(
        self, handle: MagicMock, stop: MagicMock, kill: MagicMock
    ) -> None:
        with capture_logs() as logs:
            _ = await GracefulShutdown(handle, anyio.Event(), grace_period=0.3).run()

        events = [entry["event"] for entry in logs if entry["log_level"] == "info"]
        assert events == [
            "Waiting 0.3s for process to exit... (pid: 4242)",
            "Still waiting on exit... (pid: 4242)",
            "Time is up! Sending 4242 a kill signal",
        ]
