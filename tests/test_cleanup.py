"""Tests for startup cleanup of orphaned session state (SIGKILL recovery)."""

from __future__ import annotations

from pathlib import Path

import pytest

from pairgate.utils.cleanup import (
    CleanupStats,
    cleanup_orphaned_resources,
    cleanup_orphaned_sessions,
    cleanup_orphaned_temp_files,
)


@pytest.fixture
def temp_data_dir(tmp_path: Path) -> Path:
    """Create a temporary data directory."""
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    return data_dir


@pytest.fixture
def temp_sessions_dir(temp_data_dir: Path) -> Path:
    """Create a sessions directory with two leftover sessions."""
    sessions_dir = temp_data_dir / "sessions"
    for name in ("PAIRG~aaaaaaaaaaa#one", "PAIRG~bbbbbbbbbbb#two"):
        session_dir = sessions_dir / name
        session_dir.mkdir(parents=True)
        (session_dir / "creds.json").write_text('{"registered": true}')
    return sessions_dir


class TestCleanupOrphanedTempFiles:
    """Tests for cleanup_orphaned_temp_files()."""

    def test_removes_temp_files_recursively(self, temp_data_dir: Path) -> None:
        subdir = temp_data_dir / "subdir"
        subdir.mkdir()
        (temp_data_dir / ".creds.json.abc.tmp").write_text("orphaned")
        (subdir / ".pre-key-1.json.def.tmp").write_text("orphaned")
        (temp_data_dir / "normal.txt").write_text("keep this")

        cleaned = cleanup_orphaned_temp_files(temp_data_dir)

        assert cleaned == 2
        assert (temp_data_dir / "normal.txt").exists()
        assert list(temp_data_dir.rglob(".*.tmp")) == []

    def test_missing_directory(self, tmp_path: Path) -> None:
        assert cleanup_orphaned_temp_files(tmp_path / "missing") == 0


class TestCleanupOrphanedSessions:
    """Tests for cleanup_orphaned_sessions()."""

    def test_removes_all_session_dirs(self, temp_sessions_dir: Path) -> None:
        (temp_sessions_dir / "README.txt").write_text("not a session")

        removed = cleanup_orphaned_sessions(temp_sessions_dir)

        assert removed == 2
        assert [p.name for p in temp_sessions_dir.iterdir()] == ["README.txt"]

    def test_keeps_requested_sessions(self, temp_sessions_dir: Path) -> None:
        removed = cleanup_orphaned_sessions(temp_sessions_dir, keep={"PAIRG~aaaaaaaaaaa#one"})

        assert removed == 1
        assert (temp_sessions_dir / "PAIRG~aaaaaaaaaaa#one").exists()

    def test_missing_directory(self, tmp_path: Path) -> None:
        assert cleanup_orphaned_sessions(tmp_path / "missing") == 0


class TestCleanupOrphanedResources:
    """Tests for cleanup_orphaned_resources()."""

    def test_startup_cleanup(self, temp_data_dir: Path, temp_sessions_dir: Path) -> None:
        (temp_data_dir / ".settings.json.x.tmp").write_text("orphaned")

        stats = cleanup_orphaned_resources(temp_data_dir, temp_sessions_dir)

        assert stats == CleanupStats(temp_files=1, orphaned_sessions=2, errors=0)
        assert stats.total == 3
        assert list(temp_sessions_dir.iterdir()) == []

    def test_purge_disabled_keeps_sessions(
        self, temp_data_dir: Path, temp_sessions_dir: Path
    ) -> None:
        stats = cleanup_orphaned_resources(
            temp_data_dir, temp_sessions_dir, purge_sessions=False
        )

        assert stats.orphaned_sessions == 0
        assert len(list(temp_sessions_dir.iterdir())) == 2

    def test_nothing_to_clean(self, tmp_path: Path) -> None:
        stats = cleanup_orphaned_resources(tmp_path, tmp_path / "sessions")
        assert stats.total == 0
