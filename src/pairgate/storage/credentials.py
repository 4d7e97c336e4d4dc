"""Credential store adapter over the per-session directories.

Each pairing session owns ``<root>/<session id>/``. The messaging conduit
writes its credential file there once linking completes; the orchestrator
only checks for it, reads it once, and removes the whole directory at the
end of the session.

The blocking methods have ``a*`` counterparts that run in a worker thread
so one session's disk access never stalls the event loop.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from pairgate.storage.errors import StorageError, StorageNotFoundError
from pairgate.storage.file import FileStorage

logger = logging.getLogger(__name__)

CREDENTIALS_FILENAME = "creds.json"
DEFAULT_MIN_CREDENTIAL_BYTES = 100


class CredentialStore:
    """Filesystem facade used by the pairing orchestrator."""

    def __init__(self, root: Path, storage: FileStorage | None = None) -> None:
        self.root = root
        self._storage = storage or FileStorage()

    def session_dir(self, session_id: str) -> Path:
        """Directory that holds a session's auth state.

        Raises:
            ValueError: If the identifier would escape the store root
        """
        if not session_id or "/" in session_id or "\\" in session_id or session_id in {".", ".."}:
            raise ValueError(f"Invalid session directory name: {session_id!r}")
        return self.root / session_id

    def credentials_path(self, session_id: str) -> Path:
        return self.session_dir(session_id) / CREDENTIALS_FILENAME

    def exists(self, path: Path) -> bool:
        return self._storage.exists(path)

    def read_all(self, path: Path) -> bytes:
        """Read a file completely.

        Raises:
            StorageNotFoundError: If the file does not exist
            StorageError: On other I/O failures
        """
        return self._storage.load(path)

    def remove_tree(self, path: Path) -> None:
        """Recursively remove a path; a missing path is not an error.

        Raises:
            StorageError: If the path exists but cannot be removed
        """
        if self._storage.remove_tree(path):
            logger.info(f"Removed session directory {path.name}")
        else:
            logger.debug(f"Session directory already absent: {path.name}")

    def read_credentials(
        self, session_id: str, min_bytes: int = DEFAULT_MIN_CREDENTIAL_BYTES
    ) -> bytes | None:
        """Return the credential bytes once they are fully written.

        A file that is missing or not larger than ``min_bytes`` is treated as
        not yet written.

        Args:
            session_id: Session identifier
            min_bytes: Size the file must exceed to be accepted

        Returns:
            Credential bytes, or None if not available yet

        Raises:
            StorageError: If the file exists but cannot be read
        """
        path = self.credentials_path(session_id)
        if not self.exists(path):
            return None

        try:
            data = self.read_all(path)
        except StorageNotFoundError:
            # Removed between the existence check and the read
            return None

        if len(data) <= min_bytes:
            logger.debug(f"Credential file has {len(data)} bytes, waiting for more")
            return None
        return data

    async def aexists(self, path: Path) -> bool:
        return await asyncio.to_thread(self.exists, path)

    async def aread_all(self, path: Path) -> bytes:
        return await asyncio.to_thread(self.read_all, path)

    async def aremove_tree(self, path: Path) -> None:
        await asyncio.to_thread(self.remove_tree, path)

    async def aread_credentials(
        self, session_id: str, min_bytes: int = DEFAULT_MIN_CREDENTIAL_BYTES
    ) -> bytes | None:
        return await asyncio.to_thread(self.read_credentials, session_id, min_bytes)


__all__ = [
    "CREDENTIALS_FILENAME",
    "DEFAULT_MIN_CREDENTIAL_BYTES",
    "CredentialStore",
    "StorageError",
]
