"""Multi-file auth state persisted in a session directory.

Layout inside the session directory::

    creds.json               account credentials ("registered" flag and keys)
    <type>-<id>.json         one file per conduit key

The conduit reads and mutates :attr:`MultiFileAuthState.creds` and calls
:meth:`MultiFileAuthState.keys` getters and setters; the orchestrator saves
``creds.json`` whenever the conduit emits ``creds.update``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from pathlib import Path
from typing import Any

from pairgate.storage.credentials import CREDENTIALS_FILENAME
from pairgate.storage.errors import StorageCorruptedError, StorageNotFoundError
from pairgate.storage.file import FileStorage

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[/\\:]")


def _key_filename(key_type: str, key_id: str) -> str:
    return _UNSAFE_FILENAME_CHARS.sub("_", f"{key_type}-{key_id}") + ".json"


def _load_json(storage: FileStorage, path: Path) -> Any:
    """Load JSON from file, None if the file does not exist."""
    try:
        content = storage.load(path)
    except StorageNotFoundError:
        return None
    try:
        return json.loads(content.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise StorageCorruptedError(f"Invalid JSON in {path}: {e}") from e


def _save_json(storage: FileStorage, path: Path, data: Any) -> None:
    storage.save(path, json.dumps(data, indent=2, ensure_ascii=False))


class KeyStore:
    """Per-type key files in the session directory."""

    def __init__(self, folder: Path, storage: FileStorage):
        self._folder = folder
        self._storage = storage

    def get(self, key_type: str, ids: list[str]) -> dict[str, Any]:
        """Return stored values for ``ids``; missing keys are left out."""
        found: dict[str, Any] = {}
        for key_id in ids:
            value = _load_json(self._storage, self._folder / _key_filename(key_type, key_id))
            if value is not None:
                found[key_id] = value
        return found

    def set(self, data: dict[str, dict[str, Any]]) -> None:
        """Write ``{type: {id: value}}``; a None value deletes the key file."""
        for key_type, entries in data.items():
            for key_id, value in entries.items():
                path = self._folder / _key_filename(key_type, key_id)
                if value is None:
                    self._storage.remove_tree(path)
                else:
                    _save_json(self._storage, path, value)


class MultiFileAuthState:
    """Auth state backed by a session directory.

    Example:
        ```python
        state = MultiFileAuthState.load(sessions_dir / session_id)
        if not state.registered:
            ...
        await state.save_creds()
        ```
    """

    def __init__(
        self,
        folder: Path,
        creds: dict[str, Any] | None = None,
        storage: FileStorage | None = None,
    ):
        self.folder = folder
        self.creds: dict[str, Any] = creds if creds is not None else {"registered": False}
        self._storage = storage or FileStorage()
        self.keys = KeyStore(folder, self._storage)

    @classmethod
    def load(cls, folder: Path, storage: FileStorage | None = None) -> MultiFileAuthState:
        """Load auth state from ``folder``, creating the directory if needed.

        Raises:
            StorageCorruptedError: If creds.json exists but is not a JSON object
            StorageError: If the directory cannot be created or read
        """
        storage = storage or FileStorage()
        storage.ensure_dir(folder)

        creds = _load_json(storage, folder / CREDENTIALS_FILENAME)
        if creds is None:
            logger.debug(f"No saved credentials in {folder.name}, starting fresh")
        elif not isinstance(creds, dict):
            raise StorageCorruptedError(f"{CREDENTIALS_FILENAME} must contain a JSON object")
        else:
            creds.setdefault("registered", False)

        return cls(folder, creds, storage)

    @classmethod
    async def aload(cls, folder: Path, storage: FileStorage | None = None) -> MultiFileAuthState:
        return await asyncio.to_thread(cls.load, folder, storage)

    @property
    def registered(self) -> bool:
        return bool(self.creds.get("registered", False))

    def save_creds_sync(self) -> None:
        _save_json(self._storage, self.folder / CREDENTIALS_FILENAME, self.creds)

    async def save_creds(self) -> None:
        """Atomically write creds.json."""
        await asyncio.to_thread(self.save_creds_sync)
        logger.debug(f"Saved credentials for {self.folder.name}")
