"""Cleanup of resources orphaned by crashes or SIGKILL.

Pairing sessions remove their own directory on every exit path, but a killed
process never reaches that point. Session state does not survive a restart,
so at startup every leftover session directory is orphaned and is removed,
together with temp files from interrupted atomic writes.

Usage:
    Called automatically during application startup in the lifespan handler:

    ```python
    from pairgate.utils.cleanup import cleanup_orphaned_resources

    stats = cleanup_orphaned_resources(settings.data_dir, settings.sessions_dir)
    print(f"Removed {stats.orphaned_sessions} session directories")
    ```
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from pairgate.storage.errors import StorageError
from pairgate.storage.file import TEMP_FILE_PATTERN, FileStorage

logger = logging.getLogger(__name__)


@dataclass
class CleanupStats:
    """Statistics from cleanup operation."""

    temp_files: int = 0
    orphaned_sessions: int = 0
    errors: int = 0

    @property
    def total(self) -> int:
        return self.temp_files + self.orphaned_sessions


def cleanup_orphaned_temp_files(data_dir: Path, stats: CleanupStats | None = None) -> int:
    """Remove ``.*.tmp`` files left behind by interrupted atomic writes.

    Args:
        data_dir: Directory to search recursively
        stats: Optional stats object to record failures in

    Returns:
        Number of temp files removed
    """
    if not data_dir.exists() or not data_dir.is_dir():
        return 0

    cleaned = 0
    try:
        for temp_file in data_dir.rglob(TEMP_FILE_PATTERN):
            if not temp_file.is_file():
                continue
            try:
                temp_file.unlink()
                logger.debug(f"Removed orphaned temp file: {temp_file.name}")
                cleaned += 1
            except OSError as e:
                logger.warning(f"Failed to remove temp file {temp_file}: {e}")
                if stats is not None:
                    stats.errors += 1
    except OSError as e:
        logger.warning(f"Error scanning directory {data_dir} for temp files: {e}")

    return cleaned


def cleanup_orphaned_sessions(
    sessions_dir: Path,
    keep: set[str] | None = None,
    stats: CleanupStats | None = None,
) -> int:
    """Remove session directories that no running session owns.

    Args:
        sessions_dir: Directory containing one subdirectory per session
        keep: Session identifiers to leave alone
        stats: Optional stats object to record failures in

    Returns:
        Number of session directories removed
    """
    if not sessions_dir.exists() or not sessions_dir.is_dir():
        return 0

    keep = keep or set()
    storage = FileStorage()
    removed = 0

    for entry in sessions_dir.iterdir():
        if not entry.is_dir() or entry.name in keep:
            continue
        try:
            if storage.remove_tree(entry):
                removed += 1
        except StorageError as e:
            logger.warning(f"Failed to remove orphaned session directory: {e}")
            if stats is not None:
                stats.errors += 1

    return removed


def cleanup_orphaned_resources(
    data_dir: Path,
    sessions_dir: Path,
    purge_sessions: bool = True,
) -> CleanupStats:
    """Startup cleanup of everything a crashed process may have left behind.

    Args:
        data_dir: Application data directory
        sessions_dir: Session directories root
        purge_sessions: Also remove leftover session directories

    Returns:
        CleanupStats with counts of cleaned resources
    """
    stats = CleanupStats()
    stats.temp_files = cleanup_orphaned_temp_files(data_dir, stats)
    if purge_sessions:
        stats.orphaned_sessions = cleanup_orphaned_sessions(sessions_dir, stats=stats)

    if stats.total or stats.errors:
        logger.info(
            f"Startup cleanup: {stats.temp_files} temp files, "
            f"{stats.orphaned_sessions} orphaned sessions, {stats.errors} errors"
        )
    return stats
