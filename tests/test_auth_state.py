"""Tests for the multi-file auth state handed to conduits."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from pairgate.storage import MultiFileAuthState, StorageCorruptedError


class TestLoad:
    def test_fresh_state(self, isolated_tmp_dir: Path) -> None:
        folder = isolated_tmp_dir / "session"

        state = MultiFileAuthState.load(folder)

        assert folder.is_dir()
        assert state.creds == {"registered": False}
        assert not state.registered
        assert not (folder / "creds.json").exists()

    def test_loads_saved_creds(self, isolated_tmp_dir: Path) -> None:
        (isolated_tmp_dir / "creds.json").write_text(
            json.dumps({"registered": True, "me": {"id": "abc"}})
        )

        state = MultiFileAuthState.load(isolated_tmp_dir)

        assert state.registered
        assert state.creds["me"] == {"id": "abc"}

    def test_missing_registered_flag_defaults_false(self, isolated_tmp_dir: Path) -> None:
        (isolated_tmp_dir / "creds.json").write_text(json.dumps({"noise_key": "n"}))

        state = MultiFileAuthState.load(isolated_tmp_dir)

        assert state.creds["registered"] is False

    def test_invalid_json(self, isolated_tmp_dir: Path) -> None:
        (isolated_tmp_dir / "creds.json").write_text("{not json")

        with pytest.raises(StorageCorruptedError, match="Invalid JSON"):
            MultiFileAuthState.load(isolated_tmp_dir)

    def test_non_object_json(self, isolated_tmp_dir: Path) -> None:
        (isolated_tmp_dir / "creds.json").write_text("[1, 2]")

        with pytest.raises(StorageCorruptedError, match="JSON object"):
            MultiFileAuthState.load(isolated_tmp_dir)

    @pytest.mark.asyncio
    async def test_aload(self, isolated_tmp_dir: Path) -> None:
        state = await MultiFileAuthState.aload(isolated_tmp_dir / "async")
        assert state.folder == isolated_tmp_dir / "async"


class TestSaveCreds:
    @pytest.mark.asyncio
    async def test_save_and_reload(self, isolated_tmp_dir: Path) -> None:
        state = MultiFileAuthState.load(isolated_tmp_dir)
        state.creds["registered"] = True
        state.creds["noise_key"] = "n" * 32

        await state.save_creds()

        reloaded = MultiFileAuthState.load(isolated_tmp_dir)
        assert reloaded.registered
        assert reloaded.creds["noise_key"] == "n" * 32


class TestKeyStore:
    def test_set_get_delete(self, isolated_tmp_dir: Path) -> None:
        state = MultiFileAuthState.load(isolated_tmp_dir)

        state.keys.set({"pre-key": {"1": {"public": "p1"}, "2": {"public": "p2"}}})
        assert state.keys.get("pre-key", ["1", "2", "3"]) == {
            "1": {"public": "p1"},
            "2": {"public": "p2"},
        }

        state.keys.set({"pre-key": {"1": None}})
        assert state.keys.get("pre-key", ["1", "2"]) == {"2": {"public": "p2"}}
        assert not (isolated_tmp_dir / "pre-key-1.json").exists()

    def test_unsafe_ids_stay_in_folder(self, isolated_tmp_dir: Path) -> None:
        state = MultiFileAuthState.load(isolated_tmp_dir)

        state.keys.set({"session": {"user/device:1": {"v": 1}}})

        assert (isolated_tmp_dir / "session-user_device_1.json").exists()
        assert state.keys.get("session", ["user/device:1"]) == {"user/device:1": {"v": 1}}

    def test_deleting_missing_key_is_noop(self, isolated_tmp_dir: Path) -> None:
        state = MultiFileAuthState.load(isolated_tmp_dir)
        state.keys.set({"pre-key": {"9": None}})
        assert state.keys.get("pre-key", ["9"]) == {}
