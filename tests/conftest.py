"""Shared test fixtures for execer tests."""

import sys
from dataclasses import dataclass, field
from pathlib import Path
from textwrap import dedent

import anyio
import pytest

from execer import Command, StatusEvent
from execer._protocol import Execer, OutputSink


_DIRECTORY_MARKERS = {
    "unit": pytest.mark.unit,
    "properties": pytest.mark.property,
}


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    root = Path(__file__).parent
    for item in items:
        path = Path(item.path)
        if not path.is_relative_to(root):
            continue
        marker = _DIRECTORY_MARKERS.get(path.relative_to(root).parts[0])
        if marker is not None:
            item.add_marker(marker)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def py_command(source: str, *, dir: Path | None = None) -> Command:  # noqa: A002
    """Build a command that runs a Python snippet with the test interpreter."""
    return Command(argv=(sys.executable, "-c", dedent(source)), dir=dir)


@dataclass(slots=True)
class WatchSink:
    """Output sink that records bytes and flags when a marker shows up."""

    marker: bytes = b"ready"
    data: bytearray = field(default_factory=bytearray)
    seen: anyio.Event = field(default_factory=anyio.Event)

    async def write(self, data: bytes) -> None:
        self.data.extend(data)
        if self.marker in self.data:
            self.seen.set()

    def text(self) -> str:
        return self.data.decode("utf-8", errors="replace")


@dataclass(slots=True)
class RunRecord:
    """Events and timings collected from one run."""

    events: list[StatusEvent]
    started_at: float
    cancelled_at: float | None
    finished_at: float

    @property
    def terminal(self) -> StatusEvent:
        return self.events[-1]

    @property
    def shutdown_seconds(self) -> float:
        assert self.cancelled_at is not None
        return self.finished_at - self.cancelled_at


async def collect_run(
    execer: Execer,
    command: Command,
    sink: OutputSink,
    *,
    cancel_after_marker: bool = False,
    timeout: float = 15.0,
) -> RunRecord:
    """Run a command to completion and collect every status event.

    With cancel_after_marker, the run is cancelled once a WatchSink has seen
    its marker.
    """
    cancel = anyio.Event()
    events: list[StatusEvent] = []
    cancelled_at: float | None = None

    with anyio.fail_after(timeout):
        async with anyio.create_task_group() as tg:
            started_at = anyio.current_time()
            stream = await execer.start(tg, command, sink, cancel)

            async def _cancel_on_marker() -> None:
                nonlocal cancelled_at
                assert isinstance(sink, WatchSink)
                await sink.seen.wait()
                cancelled_at = anyio.current_time()
                cancel.set()

            if cancel_after_marker:
                tg.start_soon(_cancel_on_marker)

            async with stream:
                async for event in stream:
                    events.append(event)
            finished_at = anyio.current_time()
            tg.cancel_scope.cancel()

    return RunRecord(
        events=events,
        started_at=started_at,
        cancelled_at=cancelled_at,
        finished_at=finished_at,
    )
