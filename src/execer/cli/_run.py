# pyright: reportUnusedCallResult=false
"""Run one command under supervision."""

import signal
import sys
from functools import partial
from pathlib import Path
from typing import Annotated, Literal

import anyio
from cyclopts import App, Parameter
from rich.console import Console
from rich.style import Style
from rich.text import Text
from structlog.typing import FilteringBoundLogger

from execer._command import Command
from execer._execer import ProcessExecer
from execer._protocol import Execer
from execer._models import ExecState, StatusEvent
from execer._output import ConsoleOutputSink
from execer.config import Config
from execer.exceptions import ConfigError
from execer.utils import create_logger

app = App(name="run", help="Run a command until it exits or is interrupted.")

LogLevelName = Literal["debug", "info", "warning", "error"]
LogFormatName = Literal["json", "text"]

_STATE_STYLES: dict[ExecState, Style] = {
    ExecState.RUNNING: Style(color="green", bold=True),
    ExecState.DONE: Style(color="yellow"),
    ExecState.ERROR: Style(color="red", bold=True),
}


def format_event(event: StatusEvent) -> Text:
    """Render a status event as a single styled line."""
    text = Text()
    _ = text.append(event.state.value.upper(), style=_STATE_STYLES[event.state])
    if event.pid:
        _ = text.append(f" (pid={event.pid})", style=Style(dim=True))
    if event.is_terminal:
        _ = text.append(f" exit_code={event.exit_code}", style=Style(dim=True))
    if event.reason:
        _ = text.append(f" - {event.reason}")
    return text


async def run_command(
    command: Command,
    execer: Execer,
    *,
    console: Console,
    cancel: anyio.Event | None = None,
    handle_signals: bool = True,
) -> StatusEvent:
    """Run a command to completion, printing output and status events.

    SIGINT and SIGTERM set the cancel event, which starts the graceful
    shutdown of the process group.

    Returns:
        The terminal status event.
    """
    cancel = cancel or anyio.Event()
    sink = ConsoleOutputSink(console, prefix=command.argv[0] if command.argv else "")
    terminal: StatusEvent | None = None

    async def _watch_signals() -> None:
        with anyio.open_signal_receiver(signal.SIGINT, signal.SIGTERM) as signals:
            async for _ in signals:
                cancel.set()
                break

    async with anyio.create_task_group() as tg:
        if handle_signals:
            tg.start_soon(_watch_signals)

        events = await execer.start(tg, command, sink, cancel)
        async with events:
            async for event in events:
                console.print(format_event(event))
                if event.is_terminal:
                    terminal = event
        sink.flush()
        tg.cancel_scope.cancel()

    # The stream always ends with a terminal event.
    assert terminal is not None  # noqa: S101
    return terminal


@app.default
def run(  # noqa: PLR0913
    *argv: Annotated[
        str,
        Parameter(allow_leading_hyphen=True, help="Command and arguments to run."),
    ],
    shell: Annotated[
        bool,
        Parameter(help="Run the arguments as a single /bin/sh script."),
    ] = False,
    grace_period: Annotated[
        float | None,
        Parameter(help="Seconds between SIGTERM and SIGKILL when interrupted."),
    ] = None,
    cwd: Annotated[
        Path | None,
        Parameter(help="Working directory for the command."),
    ] = None,
    env: Annotated[
        list[str] | None,
        Parameter(name="--env", help="Extra environment entry, KEY=VALUE. Repeatable."),
    ] = None,
    config: Annotated[
        Path | None,
        Parameter(name="--config", help="Path to a TOML config file."),
    ] = None,
    log_level: Annotated[
        LogLevelName | None,
        Parameter(help="Log level."),
    ] = None,
    log_format: Annotated[
        LogFormatName | None,
        Parameter(help="Log format."),
    ] = None,
    log_file: Annotated[
        str | None,
        Parameter(help="Log file (stderr if empty)."),
    ] = None,
) -> None:
    """Run a command, stream its output, and exit with its exit code."""
    console = Console()
    error_console = Console(stderr=True)

    overrides: dict[str, object] = {}
    if grace_period is not None:
        overrides["execer"] = {"grace_period": grace_period}
    logging_overrides = {
        key: value
        for key, value in (
            ("level", log_level),
            ("format", log_format),
            ("file", log_file),
        )
        if value is not None
    }
    if logging_overrides:
        overrides["logging"] = logging_overrides

    try:
        loaded = Config.load(config, overrides=overrides)
    except (ConfigError, FileNotFoundError) as e:
        error_console.print(f"Error: {e}", markup=False, highlight=False)
        sys.exit(2)

    logger: FilteringBoundLogger = create_logger(
        level=loaded.logging.level.value,
        log_format=loaded.logging.format.value,  # type: ignore[arg-type]
        log_file=loaded.logging.file,
        max_bytes=loaded.logging.max_bytes,
        backup_count=loaded.logging.backup_count,
    )
    if shell:
        command = Command.from_shell(" ".join(argv), dir=cwd, env=tuple(env or ()))
    else:
        command = Command(argv=tuple(argv), dir=cwd, env=tuple(env or ()))
    execer = ProcessExecer.from_config(loaded, logger=logger)

    terminal = anyio.run(partial(run_command, command, execer, console=console))
    sys.exit(terminal.exit_code)
