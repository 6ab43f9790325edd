"""Utilities used by the execer CLI."""

from ._app import app, create_app, main
from ._run import format_event, run_command

__all__ = ["app", "create_app", "format_event", "main", "run_command"]
