"""Command descriptions and the default command builder.

A Command is the caller's immutable description of what to run. The
CommandBuilder turns it into a PreparedCommand, the exact argv, working
directory, and environment handed to the OS.
"""

import os
import shlex
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import final

from execer.exceptions import CommandBuildError


@dataclass(frozen=True, slots=True)
class Command:
    """Immutable description of a command to run.

    Attributes:
        argv: Executable and arguments.
        dir: Working directory, or None to inherit the current one.
        env: Extra environment entries in KEY=VALUE form.
    """

    argv: tuple[str, ...]
    dir: Path | None = None
    env: tuple[str, ...] = ()

    @classmethod
    def from_shell(
        cls,
        script: str,
        *,
        dir: Path | None = None,  # noqa: A002
        env: tuple[str, ...] = (),
    ) -> "Command":
        """Build a command that runs a script through /bin/sh."""
        return cls(argv=("sh", "-c", script), dir=dir, env=env)

    def __str__(self) -> str:
        return shlex.join(str(arg) for arg in self.argv)

    def is_empty(self) -> bool:
        return len(self.argv) == 0


@dataclass(frozen=True, slots=True)
class PreparedCommand:
    """A command ready to be spawned.

    Attributes:
        argv: Executable and arguments.
        cwd: Working directory for the process.
        env: Complete environment for the process.
        identity: Human-readable identity of the source command.
    """

    argv: tuple[str, ...]
    cwd: Path | None
    env: dict[str, str] = field(default_factory=dict)
    identity: str = ""


@final
class CommandBuilder:
    """Default command builder.

    Validates the argv and env entries of a Command and merges its env
    on top of a base environment (os.environ unless one is supplied).
    """

    __slots__ = ("_base_env",)

    def __init__(self, base_env: Mapping[str, str] | None = None) -> None:
        self._base_env = dict(base_env) if base_env is not None else None

    def build(self, command: Command) -> PreparedCommand:
        """Prepare a command for spawning.

        Args:
            command: The command to prepare.

        Returns:
            The prepared command.

        Raises:
            CommandBuildError: If the argv is empty or an entry is malformed.
        """
        identity = str(command)
        if command.is_empty():
            msg = "empty cmd"
            raise CommandBuildError(msg, command=identity)

        for arg in command.argv:
            if not isinstance(arg, str):
                msg = f"argument {arg!r} is not a string"
                raise CommandBuildError(msg, command=identity)
            if "\x00" in arg:
                msg = f"argument {arg!r} contains a NUL byte"
                raise CommandBuildError(msg, command=identity)
        if not command.argv[0]:
            msg = "executable name is empty"
            raise CommandBuildError(msg, command=identity)

        base = self._base_env if self._base_env is not None else os.environ
        env = dict(base)
        for entry in command.env:
            if not isinstance(entry, str):
                msg = f"env entry {entry!r} is not a string"
                raise CommandBuildError(msg, command=identity)
            key, sep, value = entry.partition("=")
            if not sep or not key:
                msg = f"malformed env entry {entry!r}, expected KEY=VALUE"
                raise CommandBuildError(msg, command=identity)
            if "\x00" in entry:
                msg = f"env entry {entry!r} contains a NUL byte"
                raise CommandBuildError(msg, command=identity)
            env[key] = value

        return PreparedCommand(
            argv=tuple(command.argv),
            cwd=command.dir,
            env=env,
            identity=identity,
        )
