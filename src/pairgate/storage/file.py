"""File operations on session directories.

Writes are atomic (temp file in the same directory, fsync, rename), so a
reader polling for ``creds.json`` never sees a half-written file. Removal
is idempotent: a path that is already gone counts as removed.
"""

from __future__ import annotations

import atexit
import contextlib
import logging
import os
import shutil
import tempfile
from collections.abc import Iterator
from pathlib import Path

from pairgate.storage.errors import (
    StorageError,
    StorageNotFoundError,
    StoragePermissionError,
)

logger = logging.getLogger(__name__)

# Glob for temp files left behind by an interrupted atomic write
TEMP_FILE_PATTERN = ".*.tmp"

_pending_temp_files: set[Path] = set()


@atexit.register
def _remove_pending_temp_files() -> None:
    for temp_path in list(_pending_temp_files):
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)


@contextlib.contextmanager
def _os_errors(action: str, path: Path) -> Iterator[None]:
    """Translate OSError raised while performing ``action`` on ``path``."""
    try:
        yield
    except FileNotFoundError as e:
        raise StorageNotFoundError(f"File not found: {path}", path) from e
    except IsADirectoryError as e:
        raise StorageError(f"Not a file: {path}", path) from e
    except PermissionError as e:
        raise StoragePermissionError(f"Cannot {action} {path}: permission denied", path) from e
    except OSError as e:
        raise StorageError(f"Failed to {action} {path}: {e}", path) from e


class FileStorage:
    """Byte-level access to files inside session directories.

    Example:
        ```python
        storage = FileStorage()
        storage.save(folder / "creds.json", b"{}")
        data = storage.load(folder / "creds.json")
        storage.remove_tree(folder)
        ```
    """

    def save(self, path: Path, content: bytes | str) -> None:
        """Atomically replace ``path`` with ``content`` (str is UTF-8 encoded).

        Raises:
            StoragePermissionError: If the directory is not writable
            StorageError: If the write fails
        """
        data = content.encode("utf-8") if isinstance(content, str) else content
        self.ensure_dir(path.parent)

        tmp_path: Path | None = None
        with _os_errors("write", path):
            try:
                fd, name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
                tmp_path = Path(name)
                _pending_temp_files.add(tmp_path)
                with os.fdopen(fd, "wb") as tmp_file:
                    tmp_file.write(data)
                    tmp_file.flush()
                    os.fsync(tmp_file.fileno())
                tmp_path.replace(path)
            finally:
                if tmp_path is not None:
                    _pending_temp_files.discard(tmp_path)
                    with contextlib.suppress(OSError):
                        tmp_path.unlink(missing_ok=True)

        logger.debug(f"Wrote {len(data)} bytes to {path.name}")

    def load(self, path: Path) -> bytes:
        """Read the whole file.

        Raises:
            StorageNotFoundError: If the file does not exist
            StoragePermissionError: If the file is not readable
            StorageError: If ``path`` is a directory or the read fails
        """
        with _os_errors("read", path):
            return path.read_bytes()

    def exists(self, path: Path) -> bool:
        return path.exists()

    def ensure_dir(self, path: Path) -> None:
        """Create ``path`` and its parents if missing."""
        with _os_errors("create directory", path):
            path.mkdir(parents=True, exist_ok=True)

    def remove_tree(self, path: Path) -> bool:
        """Remove a file, or a directory with everything in it.

        Returns:
            True if something was removed, False if the path was already absent

        Raises:
            StoragePermissionError: If deletion is not permitted
            StorageError: If deletion fails
        """
        if not path.exists() and not path.is_symlink():
            return False

        try:
            with _os_errors("delete", path):
                if path.is_dir() and not path.is_symlink():
                    shutil.rmtree(path)
                else:
                    path.unlink()
        except StorageNotFoundError:
            # Removed concurrently
            return False

        logger.debug(f"Removed {path}")
        return True
