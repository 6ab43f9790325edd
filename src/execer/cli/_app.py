"""The command-line interface for execer."""

from cyclopts import App
from rich.console import Console

from ._run import app as run_app


def create_app(
    console: Console | None = None,
    error_console: Console | None = None,
    *,
    exit_on_error: bool = True,
) -> App:
    if console is None:
        console = Console()
    if error_console is None:
        error_console = Console(stderr=True)
    app = App(
        name="execer",
        help="Supervise a process with graceful shutdown.",
        help_on_error=True,
        console=console,
        error_console=error_console,
        exit_on_error=exit_on_error,
    )
    app.command(run_app)
    return app


app = create_app()


def main() -> None:
    app()
