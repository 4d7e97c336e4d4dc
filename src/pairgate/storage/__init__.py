"""Storage layer for session directories.

Provides:
- Atomic writes for consistency
- Centralized error handling
- Credential store used by the pairing orchestrator
- Multi-file auth state handed to the messaging conduit

Example:
    ```python
    from pairgate.storage import CredentialStore

    store = CredentialStore(settings.sessions_dir)
    creds = await store.aread_credentials(session_id)
    await store.aremove_tree(store.session_dir(session_id))
    ```
"""

from __future__ import annotations

from pairgate.storage.auth_state import MultiFileAuthState
from pairgate.storage.credentials import CredentialStore
from pairgate.storage.errors import (
    StorageCorruptedError,
    StorageError,
    StorageNotFoundError,
    StoragePermissionError,
)
from pairgate.storage.file import FileStorage

__all__ = [
    # Implementations
    "FileStorage",
    "CredentialStore",
    "MultiFileAuthState",
    # Exceptions
    "StorageError",
    "StorageNotFoundError",
    "StoragePermissionError",
    "StorageCorruptedError",
]
