"""Configuration management for PairGate.

Supports layered configuration with priority: CLI args > ENV vars > .env file > defaults
"""

from __future__ import annotations

import logging
import tempfile
from functools import lru_cache
from pathlib import Path

import platformdirs
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from pairgate.pairing.identifiers import DEFAULT_SESSION_PREFIX
from pairgate.pairing.retry import RetryPolicy, TimingPolicies

logger = logging.getLogger(__name__)


def _get_default_data_dir() -> Path:
    """Get platform-appropriate default data directory using platformdirs.

    Uses OS-specific conventions:
    - macOS: ~/Library/Application Support/PairGate
    - Windows: %APPDATA%/PairGate
    - Linux: ~/.local/share/pairgate
    """
    return Path(platformdirs.user_data_dir("PairGate", "PairGate"))


def get_user_log_dir() -> Path:
    """Get platform-appropriate user logs directory."""
    return Path(platformdirs.user_log_dir("PairGate", "PairGate"))


class Settings(BaseSettings):
    """Application settings with layered configuration support.

    Configuration is loaded in the following priority (highest to lowest):
    1. CLI arguments (passed directly to Settings())
    2. Environment variables (prefixed with PAIRGATE_)
    3. .env file (if present in current directory)
    4. Default values

    Example:
        ```python
        settings = get_settings()
        settings = Settings(host="0.0.0.0", port=9000)
        print(settings.sessions_dir)
        ```

    Environment variables:
        PAIRGATE_HOST: Server host (default: 0.0.0.0)
        PAIRGATE_PORT: Server port (default: 50900)
        PAIRGATE_DEBUG: Enable debug mode (default: false)
        PAIRGATE_DATA_DIR: Data directory path
        PAIRGATE_LOG_LEVEL: Logging level (default: INFO)
        PAIRGATE_CONDUIT_FACTORY: Conduit factory import path ("module:attr")
    """

    model_config = SettingsConfigDict(
        env_prefix="PAIRGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Server settings
    host: str = Field(
        default="0.0.0.0",  # nosec B104
        description="Server host to bind to",
    )
    port: int = Field(
        default=50900,
        ge=1,
        le=65535,
        description="Server port to bind to",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode (exception details in error responses)",
    )

    # Paths
    data_dir: Path = Field(
        default_factory=_get_default_data_dir,
        description="Base directory for application data",
    )
    log_dir: Path = Field(
        default_factory=get_user_log_dir,
        description="Directory for log files",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    log_to_file: bool = Field(
        default=False,
        description="Enable logging to file (in addition to console)",
    )
    log_file_max_bytes: int = Field(
        default=10 * 1024 * 1024,  # 10 MB
        ge=1024 * 1024,
        le=100 * 1024 * 1024,
        description="Maximum size of each log file before rotation",
    )
    log_file_backup_count: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Number of backup log files to keep",
    )
    log_format: str = Field(
        default="text",
        description="Log format: 'text' for human-readable, 'json' for structured logging",
    )
    log_module_levels: dict[str, str] = Field(
        default_factory=dict,
        description="Per-module log levels (e.g., {'pairgate.pairing': 'DEBUG'})",
    )

    # Branding
    project_name: str = Field(default="PairGate", description="Name shown in responses")
    signature: str = Field(default="PairGate pairing service", description="X-Signature header")
    powered_by: str = Field(default="PairGate", description="X-Powered-By header")
    session_prefix: str = Field(
        default=DEFAULT_SESSION_PREFIX,
        pattern=r"^[A-Z][A-Z0-9_]*$",
        description="Prefix of generated session identifiers",
    )
    payload_prefix: str = Field(
        default=DEFAULT_SESSION_PREFIX,
        pattern=r"^[A-Z][A-Z0-9_]*$",
        description="Prefix of the transmitted credential payload",
    )
    footer_text: str = Field(default="> Powered by PairGate", description="Message footer")
    link_buttons: dict[str, str] = Field(
        default_factory=dict,
        description="Extra message buttons: display text -> URL",
    )

    # Messaging conduit
    conduit_factory: str | None = Field(
        default=None,
        description="Import path of the conduit factory ('package.module:attribute')",
    )
    client_identity: str = Field(default="PairGate/1.0", description="Client identity string")
    browser: tuple[str, str, str] = Field(
        default=("macOS", "Safari", "17.0"),
        description="Browser descriptor reported to the messaging network",
    )
    connect_timeout_ms: int = Field(default=60_000, ge=1000, le=600_000)
    keepalive_interval_ms: int = Field(default=30_000, ge=1000, le=600_000)
    max_listeners: int = Field(
        default=5000,
        ge=1,
        description="Listener count per conduit event before a leak warning",
    )

    # Pairing timings (seconds)
    pre_request_delay: float = Field(default=1.5, ge=0.0)
    link_settle_delay: float = Field(default=50.0, ge=0.0)
    credential_poll_interval: float = Field(default=8.0, ge=0.0)
    credential_poll_attempts: int = Field(default=15, ge=1, le=1000)
    credential_read_error_delay: float = Field(default=2.0, ge=0.0)
    transmit_settle_delay: float = Field(default=5.0, ge=0.0)
    transmit_attempts: int = Field(default=5, ge=1, le=100)
    transmit_interval: float = Field(default=3.0, ge=0.0)
    close_delay: float = Field(default=3.0, ge=0.0)
    reconnect_delay: float = Field(default=5.0, ge=0.0)
    max_reconnects: int = Field(default=5, ge=0, le=100)
    min_credential_bytes: int = Field(
        default=100,
        ge=0,
        description="Credential file must be larger than this to be accepted",
    )
    response_timeout: float = Field(
        default=90.0,
        gt=0.0,
        le=600.0,
        description="Seconds the pairing endpoint waits for a code",
    )

    # Startup cleanup
    purge_orphans_on_startup: bool = Field(
        default=True,
        description="Remove session directories left over from a previous run",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a known level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of: {', '.join(valid_levels)}")
        return v_upper

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format is supported."""
        valid_formats = {"text", "json"}
        v_lower = v.lower()
        if v_lower not in valid_formats:
            raise ValueError(f"Invalid log format: {v}. Must be one of: {', '.join(valid_formats)}")
        return v_lower

    @property
    def sessions_dir(self) -> Path:
        """Directory holding one subdirectory per active pairing session."""
        return self.data_dir / "sessions"

    @property
    def log_file_path(self) -> Path:
        """Path to the main log file."""
        return self.log_dir / "pairgate.log"

    def timing_policies(self) -> TimingPolicies:
        """Build the named waits used by the pairing orchestrator."""
        return TimingPolicies(
            pre_request_delay=self.pre_request_delay,
            link_settle_delay=self.link_settle_delay,
            credential_poll=RetryPolicy(
                max_attempts=self.credential_poll_attempts,
                interval=self.credential_poll_interval,
            ),
            credential_read_error_delay=self.credential_read_error_delay,
            transmit_settle_delay=self.transmit_settle_delay,
            transmit=RetryPolicy(
                max_attempts=self.transmit_attempts,
                interval=self.transmit_interval,
            ),
            close_delay=self.close_delay,
            reconnect=RetryPolicy(
                max_attempts=self.max_reconnects,
                interval=self.reconnect_delay,
            ),
        )

    def ensure_data_dirs(self) -> list[str]:
        """Create data directories if they don't exist.

        Returns:
            List of error messages (empty if all successful)
        """
        errors = []
        dirs_to_create = [("data", self.data_dir), ("sessions", self.sessions_dir)]
        if self.log_to_file:
            dirs_to_create.append(("log", self.log_dir))

        for dir_name, dir_path in dirs_to_create:
            try:
                dir_path.mkdir(parents=True, exist_ok=True)
            except PermissionError:
                errors.append(
                    f"Permission denied creating {dir_name} directory: {dir_path}\n"
                    f"  → Use --data-dir flag or grant write permissions"
                )
            except OSError as e:
                errors.append(f"Failed to create {dir_name} directory: {dir_path} ({e})")

        return errors

    def check(self) -> list[str]:
        """Validate configuration and return any warnings.

        Returns:
            List of warning messages (empty if all is well)
        """
        warnings = []

        if self.data_dir.exists() and not self.data_dir.is_dir():
            warnings.append(
                f"Data path exists but is not a directory: {self.data_dir}\n"
                f"  → Use --data-dir to specify a different location"
            )

        if not self.conduit_factory:
            warnings.append(
                "No conduit factory configured - every pairing request will fail\n"
                "  → Set PAIRGATE_CONDUIT_FACTORY=package.module:attribute"
            )

        if self.debug and self.host == "0.0.0.0":  # nosec B104
            warnings.append(
                "Debug mode enabled with public host binding - not recommended for production"
            )

        if self.response_timeout <= self.pre_request_delay:
            warnings.append(
                f"response_timeout ({self.response_timeout}s) does not exceed "
                f"pre_request_delay ({self.pre_request_delay}s); callers will time out"
            )

        return warnings

    def validate(self) -> list[str]:  # type: ignore[override]
        """Strict validation for startup - fails fast with all errors at once.

        Validates:
        - Data directory is writable
        - Port is not already in use

        Returns:
            List of error messages (empty if validation passes)
        """
        errors = []

        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(dir=self.data_dir, delete=True):
                pass
        except PermissionError:
            errors.append(
                f"Cannot write to data directory: {self.data_dir}\n"
                f"  → Fix: Grant write permissions or use a different location:\n"
                f"         pairgate --data-dir ~/PairGate"
            )
        except OSError as e:
            errors.append(
                f"Cannot use data directory: {self.data_dir}\n"
                f"  → Error: {e}\n"
                f"  → Tip: Use --data-dir to specify a different location"
            )

        from pairgate.utils.ports import port_conflict

        conflict = port_conflict(self.host, self.port)
        if conflict:
            errors.append(conflict)

        return errors

    def print_config(self) -> None:
        """Print current configuration to stdout."""
        print("PairGate Configuration:")
        print(f"  Host: {self.host}")
        print(f"  Port: {self.port}")
        print(f"  Debug: {self.debug}")
        print(f"  Log Level: {self.log_level}")
        print(f"  Log Format: {self.log_format}")
        print(f"  Log to File: {self.log_to_file}")
        if self.log_to_file:
            print(f"  Log File: {self.log_file_path}")
            print(f"  Log Max Size: {self.log_file_max_bytes / (1024 * 1024):.1f} MB")
            print(f"  Log Backup Count: {self.log_file_backup_count}")
        if self.log_module_levels:
            print(f"  Module Log Levels: {self.log_module_levels}")
        print(f"  Data Directory: {self.data_dir}")
        print(f"  Sessions Directory: {self.sessions_dir}")
        print(f"  Conduit Factory: {self.conduit_factory or 'not configured'}")
        print(f"  Session Prefix: {self.session_prefix}")
        print(f"  Response Timeout: {self.response_timeout}s")
        print(f"  Link Settle Delay: {self.link_settle_delay}s")
        print(
            f"  Credential Polling: {self.credential_poll_attempts} x "
            f"{self.credential_poll_interval}s"
        )
        print(f"  Transmission: {self.transmit_attempts} x {self.transmit_interval}s")
        print(f"  Max Reconnects: {self.max_reconnects} ({self.reconnect_delay}s apart)")


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Settings are loaded once and cached. To reload settings,
    call reset_settings() first.
    """
    return Settings()


def reset_settings() -> None:
    """Clear settings cache to force reload on next get_settings() call."""
    get_settings.cache_clear()
