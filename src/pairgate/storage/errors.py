"""Exceptions raised by session directory storage."""

from __future__ import annotations

from pathlib import Path


class StorageError(Exception):
    """A session file or directory operation failed.

    Attributes:
        path: The file or directory involved, when known
    """

    def __init__(self, message: str, path: Path | None = None):
        super().__init__(message)
        self.path = path


class StorageNotFoundError(StorageError):
    """The file does not exist (yet)."""


class StoragePermissionError(StorageError):
    """The process may not read, write or delete the path."""


class StorageCorruptedError(StorageError):
    """A conduit-written file is not valid JSON of the expected shape."""
