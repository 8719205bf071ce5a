"""Local file state store — one JSON document per player on local disk.

Each player's record set lives in ``{base_path}/{user_id}.json``. Saves
write a temporary file in the same directory and ``os.replace`` it over
the old one, so a crash mid-write leaves either the old set or the new
set on disk, never half of each.

A file that exists but isn't valid JSON is treated as "nothing saved"
(logged, and moved aside as ``{user_id}.json.corrupt`` so the next save
doesn't destroy the evidence).

Tier 2 service module: imports from focusflow.hooks.interfaces (Tier 1).

Usage:
    from focusflow.hooks.storage import LocalFileStore

    store = LocalFileStore()                       # default: data/
    store = LocalFileStore(base_path="/tmp/ff")    # custom path
    await store.save_records("user-1", records)
"""

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any

from focusflow.hooks.interfaces import PersistenceError, StateStore

logger = logging.getLogger("focusflow.hooks.storage")

# Same rule the API enforces on path parameters; keeps ids usable as filenames.
USER_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,63}$")


class LocalFileStore(StateStore):
    """Stores record sets as JSON files under a base directory.

    TEAM: Fine for a single device. For multi-device sync, implement
    StateStore against your backend instead.
    """

    def __init__(self, base_path: str | Path = "data") -> None:
        """Initialises with a base directory (created lazily on first save).

        Args:
            base_path: Directory holding one ``<user_id>.json`` per player.
        """
        self._base_path = Path(base_path)

    def _path_for(self, user_id: str, operation: str) -> Path:
        if not USER_ID_RE.match(user_id):
            raise PersistenceError(user_id, operation, f"Invalid user id: {user_id!r}")
        return self._base_path / f"{user_id}.json"

    async def load_records(self, user_id: str) -> dict[str, Any] | None:
        """Reads the player's file. None if absent or unreadable JSON."""
        path = self._path_for(user_id, "load")
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise PersistenceError(user_id, "load", f"Cannot read {path}: {exc}") from exc

        try:
            return json.loads(text)
        except json.JSONDecodeError:
            logger.warning("Corrupt state file %s, starting from defaults", path)
            self._quarantine(path)
            return None

    async def save_records(self, user_id: str, records: dict[str, Any]) -> None:
        """Atomically replaces the player's file."""
        path = self._path_for(user_id, "save")
        try:
            payload = json.dumps(records, indent=2, sort_keys=True)
        except (TypeError, ValueError) as exc:
            raise PersistenceError(user_id, "save", f"Record set is not JSON-serializable: {exc}") from exc

        tmp_name: str | None = None
        try:
            self._base_path.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self._base_path,
                prefix=f".{user_id}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                tmp_name = handle.name
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        except OSError as exc:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            raise PersistenceError(user_id, "save", f"Cannot write {path}: {exc}") from exc

    async def delete_records(self, user_id: str) -> None:
        """Deletes the player's file. No error if it doesn't exist."""
        path = self._path_for(user_id, "delete")
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise PersistenceError(user_id, "delete", f"Cannot delete {path}: {exc}") from exc

    @staticmethod
    def _quarantine(path: Path) -> None:
        try:
            os.replace(path, path.with_name(path.name + ".corrupt"))
        except OSError:
            logger.warning("Could not move corrupt state file %s aside", path)
