"""Registry of active runs keyed by command identity.

Used by execers that must reject concurrent runs of the same command. The
registry is an explicit object handed to each execer that needs it; the
lock guards dictionary mutations only and is never held across an await.
"""

import threading
from dataclasses import dataclass, field
from typing import final

import anyio


@dataclass(slots=True)
class RegistryEntry:
    """One active run.

    Attributes:
        identity: Identity string of the running command.
        closed: Event set once the run has closed its status stream.
    """

    identity: str
    closed: anyio.Event = field(default_factory=anyio.Event)


@final
class ProcessRegistry:
    """Lock-guarded table of active runs."""

    __slots__ = ("_entries", "_lock")

    def __init__(self) -> None:
        self._entries: dict[str, RegistryEntry] = {}
        self._lock = threading.Lock()

    def __contains__(self, identity: object) -> bool:
        with self._lock:
            return identity in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, identity: str) -> RegistryEntry | None:
        """Return the active entry for an identity, if any."""
        with self._lock:
            return self._entries.get(identity)

    def try_register(self, identity: str) -> tuple[RegistryEntry, bool]:
        """Register a run unless one with the same identity is active.

        Args:
            identity: Identity string of the command.

        Returns:
            Tuple of (entry, created). When created is False, entry is the
            run that is already active.
        """
        with self._lock:
            existing = self._entries.get(identity)
            if existing is not None:
                return existing, False
            entry = RegistryEntry(identity=identity)
            self._entries[identity] = entry
            return entry, True

    def release(self, entry: RegistryEntry) -> None:
        """Remove an entry and signal anyone waiting for it to close.

        Only removes the table slot if it still belongs to this entry.
        """
        with self._lock:
            if self._entries.get(entry.identity) is entry:
                del self._entries[entry.identity]
        entry.closed.set()

    async def register(self, identity: str, *, wait: float) -> RegistryEntry | None:
        """Register a run, waiting up to ``wait`` seconds for a duplicate to close.

        Args:
            identity: Identity string of the command.
            wait: Seconds to wait for an active run with the same identity.

        Returns:
            The new entry, or None if the duplicate was still active.
        """
        with anyio.move_on_after(wait):
            while True:
                entry, created = self.try_register(identity)
                if created:
                    return entry
                await entry.closed.wait()
        return None

    def identities(self) -> list[str]:
        """Return the identities of all active runs."""
        with self._lock:
            return sorted(self._entries)
