"""Hook interfaces — abstract base classes for swappable storage.

The progression engine never touches disk, a database, or the network. It
hands complete sets of record envelopes to a StateStore and asks for them
back. Two implementations ship: an in-memory stub (tests, ephemeral dev
servers) and a local JSON file store (the default for a single device).

Tier 1 leaf module: imports only from abc and typing (stdlib).

TEAM: To back progression with something else (SQLite, a key-value store,
a sync service), subclass StateStore and implement every abstract method.
Python will raise TypeError at instantiation if any method is missing.
Then run the contract tests against it (see tests/contracts/conftest.py).

Usage:
    from focusflow.hooks.interfaces import PersistenceError, StateStore
"""

from abc import ABC, abstractmethod
from typing import Any


class PersistenceError(Exception):
    """A store could not read or write records.

    Raised by StateStore implementations for I/O failures only. Bad *data*
    is not an error at this layer; the record codec repairs it.

    Attributes:
        user_id: The player whose records were being accessed.
        operation: ``"load"``, ``"save"`` or ``"delete"``.
    """

    def __init__(self, user_id: str, operation: str, message: str) -> None:
        self.user_id = user_id
        self.operation = operation
        super().__init__(message)


class StateStore(ABC):
    """Persists one player's record envelopes as a unit.

    A "record set" is a dict of record key → JSON-compatible envelope, as
    produced by ``focusflow.engine.records.dump_records``. The store treats
    the envelopes as opaque JSON; it never validates or migrates them.

    Guarantees every implementation must give:
    - ``save_records`` is all-or-nothing: after a failure, a later
      ``load_records`` returns the previous complete set, never a mix.
    - ``load_records`` returns data equal to what was saved, but never the
      same mutable objects (callers may not alias stored state).
    """

    @abstractmethod
    async def load_records(self, user_id: str) -> dict[str, Any] | None:
        """Returns the player's last saved record set.

        Args:
            user_id: The player.

        Returns:
            The record set, or None if nothing was ever saved. Individual
            entries may be None or arbitrary JSON if stored data was damaged.

        Raises:
            PersistenceError: If the backing storage cannot be read.
        """
        ...

    @abstractmethod
    async def save_records(self, user_id: str, records: dict[str, Any]) -> None:
        """Replaces the player's record set atomically.

        Args:
            user_id: The player.
            records: Complete record set. Keys absent here are removed.

        Raises:
            PersistenceError: If the write could not be completed. The
                previous record set must still be intact.
        """
        ...

    @abstractmethod
    async def delete_records(self, user_id: str) -> None:
        """Removes everything stored for the player. Idempotent.

        Raises:
            PersistenceError: If the backing storage cannot be modified.
        """
        ...
