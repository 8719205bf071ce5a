"""In-memory state store — development stub for StateStore.

Dict-backed storage for record sets. Data lives only in memory and is lost
on restart. Record sets are held as serialized JSON text, so every load
hands back fresh objects and nothing the engine holds can alias stored
state.

TEAM: Use this for tests and throwaway dev servers. For anything that
must survive a restart, use LocalFileStore (focusflow.hooks.storage) or
your own StateStore.

Tier 2 service module: imports from focusflow.hooks.interfaces (Tier 1).

Usage:
    from focusflow.hooks.database import InMemoryStore

    store = InMemoryStore()
    await store.save_records("user-1", records)
    await store.load_records("user-1")
"""

import json
from typing import Any

from focusflow.hooks.interfaces import PersistenceError, StateStore


class InMemoryStore(StateStore):
    """STUB — dict-backed storage, loses data on restart.

    Record sets are keyed by user_id and stored as JSON text.
    """

    def __init__(self) -> None:
        """Initialises an empty store."""
        self._records: dict[str, str] = {}

    async def load_records(self, user_id: str) -> dict[str, Any] | None:
        """Returns a fresh copy of the user's record set, or None."""
        stored = self._records.get(user_id)
        if stored is None:
            return None
        return json.loads(stored)

    async def save_records(self, user_id: str, records: dict[str, Any]) -> None:
        """Replaces the user's record set.

        Serializes before touching the dict, so an unserializable record
        set leaves the previous one in place.
        """
        try:
            encoded = json.dumps(records)
        except (TypeError, ValueError) as exc:
            raise PersistenceError(user_id, "save", f"Record set is not JSON-serializable: {exc}") from exc
        self._records[user_id] = encoded

    async def delete_records(self, user_id: str) -> None:
        """Removes the user's record set. No error if it doesn't exist."""
        self._records.pop(user_id, None)

    # -- Stub-only helpers (not part of the StateStore ABC) ----------------

    def seed_records(self, user_id: str, records: Any) -> None:
        """Stores arbitrary JSON as the user's record set, bypassing checks.

        Used by tests to plant damaged or legacy data.
        """
        self._records[user_id] = json.dumps(records)
