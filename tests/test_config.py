"""Tests for configuration loading and validation."""

from __future__ import annotations

import socket
from pathlib import Path

import pytest
from pydantic import ValidationError

from pairgate.config import Settings, get_settings, reset_settings
from pairgate.pairing.retry import RetryPolicy


@pytest.fixture(autouse=True)
def clear_settings_cache() -> None:
    reset_settings()


class TestSettingsDefaults:
    def test_defaults(self, tmp_path: Path) -> None:
        settings = Settings(data_dir=tmp_path)

        assert settings.port == 50900
        assert settings.debug is False
        assert settings.session_prefix == "PAIRG"
        assert settings.min_credential_bytes == 100
        assert settings.response_timeout == 90.0
        assert settings.conduit_factory is None
        assert settings.sessions_dir == tmp_path / "sessions"

    def test_timing_policies(self, tmp_path: Path) -> None:
        settings = Settings(
            data_dir=tmp_path,
            credential_poll_attempts=3,
            credential_poll_interval=0.5,
            max_reconnects=1,
        )

        timings = settings.timing_policies()

        assert timings.credential_poll == RetryPolicy(3, 0.5)
        assert timings.reconnect == RetryPolicy(1, 5.0)
        assert timings.transmit == RetryPolicy(5, 3.0)
        assert timings.link_settle_delay == 50.0


class TestEnvironment:
    def test_env_prefix(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("PAIRGATE_PORT", "9100")
        monkeypatch.setenv("PAIRGATE_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("PAIRGATE_CONDUIT_FACTORY", "my_conduit:Factory")
        monkeypatch.setenv("PAIRGATE_LINK_BUTTONS", '{"Docs": "https://example.com"}')

        settings = get_settings()

        assert settings.port == 9100
        assert settings.data_dir == tmp_path
        assert settings.conduit_factory == "my_conduit:Factory"
        assert settings.link_buttons == {"Docs": "https://example.com"}

    def test_get_settings_is_cached(self) -> None:
        assert get_settings() is get_settings()

    def test_cli_overrides_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PAIRGATE_PORT", "9100")
        assert Settings(port=9200).port == 9200


class TestValidation:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"log_level": "LOUD"},
            {"log_format": "xml"},
            {"port": 0},
            {"session_prefix": "lower"},
            {"payload_prefix": "HAS~TILDE"},
            {"response_timeout": 0},
            {"credential_poll_attempts": 0},
            {"max_reconnects": -1},
        ],
    )
    def test_rejects_invalid_values(self, kwargs: dict[str, object]) -> None:
        with pytest.raises(ValidationError):
            Settings(**kwargs)  # type: ignore[arg-type]

    def test_normalizes_log_settings(self, tmp_path: Path) -> None:
        settings = Settings(data_dir=tmp_path, log_level="debug", log_format="JSON")

        assert settings.log_level == "DEBUG"
        assert settings.log_format == "json"

    def test_check_warnings(self, tmp_path: Path) -> None:
        settings = Settings(
            data_dir=tmp_path,
            debug=True,
            host="0.0.0.0",  # nosec B104
            response_timeout=1.0,
            pre_request_delay=1.5,
        )

        warnings = settings.check()

        assert any("conduit factory" in w for w in warnings)
        assert any("Debug mode" in w for w in warnings)
        assert any("response_timeout" in w for w in warnings)

    def test_check_clean(self, tmp_path: Path) -> None:
        settings = Settings(
            data_dir=tmp_path, host="127.0.0.1", conduit_factory="my_conduit:Factory"
        )
        assert settings.check() == []

    def test_check_data_path_is_file(self, tmp_path: Path) -> None:
        data_file = tmp_path / "data"
        data_file.write_text("not a dir")

        warnings = Settings(data_dir=data_file, conduit_factory="m:F").check()

        assert any("not a directory" in w for w in warnings)

    def test_validate_port_in_use(self, tmp_path: Path) -> None:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind(("127.0.0.1", 0))
            sock.listen(1)
            port = sock.getsockname()[1]

            errors = Settings(data_dir=tmp_path, host="127.0.0.1", port=port).validate()

        assert any(f"Port {port} is already in use" in e for e in errors)

    def test_ensure_data_dirs(self, tmp_path: Path) -> None:
        settings = Settings(data_dir=tmp_path / "data", log_dir=tmp_path / "logs", log_to_file=True)

        assert settings.ensure_data_dirs() == []
        assert settings.sessions_dir.is_dir()
        assert (tmp_path / "logs").is_dir()

    def test_print_config(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        Settings(data_dir=tmp_path).print_config()

        output = capsys.readouterr().out
        assert "PairGate Configuration:" in output
        assert "Conduit Factory: not configured" in output
