"""Command line entry point: logging setup and the ``pairgate`` server command."""

from __future__ import annotations

import argparse
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, NoReturn

from pairgate import __version__
from pairgate.config import Settings
from pairgate.utils.logging import (
    CorrelationIDFilter,
    JSONFormatter,
    LogSanitizer,
    SanitizingFormatter,
    SessionContextFilter,
    configure_module_levels,
)

TEXT_FORMAT = (
    "%(asctime)s [%(levelname)s] [%(correlation_id)s] [%(session_id)s] %(name)s: %(message)s"
)


def setup_logging(
    level: str = "INFO",
    debug: bool = False,
    log_to_file: bool = False,
    log_file_path: Path | None = None,
    log_file_max_bytes: int = 10 * 1024 * 1024,
    log_file_backup_count: int = 5,
    log_format: str = "text",
    module_levels: dict[str, str] | None = None,
) -> None:
    """Replace the root logger's handlers with sanitizing console/file handlers.

    Each handler masks phone numbers, session keys and credential payloads
    and tags lines with the request correlation ID and session label.
    ``debug`` forces DEBUG regardless of ``level``.
    """
    effective_level = logging.DEBUG if debug else getattr(logging, level.upper(), logging.INFO)
    formatter: logging.Formatter = (
        JSONFormatter()
        if log_format == "json"
        else SanitizingFormatter(TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    file_error: OSError | None = None
    if log_to_file and log_file_path:
        try:
            log_file_path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(
                RotatingFileHandler(
                    log_file_path,
                    maxBytes=log_file_max_bytes,
                    backupCount=log_file_backup_count,
                    encoding="utf-8",
                )
            )
        except OSError as e:
            file_error = e

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(effective_level)
    for handler in handlers:
        handler.setLevel(effective_level)
        handler.setFormatter(formatter)
        # Handler filters also see records propagated from child loggers
        for log_filter in (LogSanitizer(), CorrelationIDFilter(), SessionContextFilter()):
            handler.addFilter(log_filter)
        root.addHandler(handler)

    if file_error is not None:
        logging.warning(f"File logging disabled, console only: {file_error}")
    elif len(handlers) > 1:
        logging.info(f"Logging to {log_file_path} (rotating, {log_file_backup_count} backups)")

    if module_levels:
        configure_module_levels(module_levels)


def build_parser() -> argparse.ArgumentParser:
    """CLI flags. Unset flags fall back to ``PAIRGATE_*`` env vars and defaults."""
    parser = argparse.ArgumentParser(
        prog="pairgate", description="PairGate - pairing code service for linked devices"
    )
    parser.add_argument("--host", help="Address to bind (env: PAIRGATE_HOST)")
    parser.add_argument("--port", type=int, help="Port to bind (env: PAIRGATE_PORT)")
    parser.add_argument(
        "--debug", action="store_true", default=None, help="Debug mode (env: PAIRGATE_DEBUG)"
    )
    parser.add_argument(
        "--data-dir", type=Path, help="Session and log storage root (env: PAIRGATE_DATA_DIR)"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (env: PAIRGATE_LOG_LEVEL)",
    )
    parser.add_argument(
        "--conduit-factory",
        metavar="MODULE:ATTR",
        help="Conduit factory import path (env: PAIRGATE_CONDUIT_FACTORY)",
    )
    parser.add_argument(
        "--validate", action="store_true", help="Check the configuration and exit"
    )
    parser.add_argument("--version", action="version", version=f"PairGate {__version__}")
    return parser


def settings_from_args(args: argparse.Namespace) -> Settings:
    overrides: dict[str, Any] = {
        name: value
        for name, value in vars(args).items()
        if name != "validate" and value is not None
    }
    return Settings(**overrides)


def _exit_with_errors(errors: list[str], hint: str | None = None) -> NoReturn:
    print("Configuration validation failed:")
    for error in errors:
        print(f"\n{error}")
    if hint:
        print(f"\n{hint}")
    sys.exit(1)


def _validate_only(settings: Settings) -> NoReturn:
    settings.print_config()
    print()

    errors = settings.validate()
    if errors:
        _exit_with_errors(errors)

    warnings = settings.check()
    if warnings:
        print("Configuration warnings:")
        for warning in warnings:
            print(f"  • {warning}")
        print()

    print("Configuration is valid")
    sys.exit(0)


def main() -> None:
    """Run the PairGate web service."""
    import uvicorn

    args = build_parser().parse_args()
    settings = settings_from_args(args)
    if args.validate:
        _validate_only(settings)

    setup_logging(
        level=settings.log_level,
        debug=settings.debug,
        log_to_file=settings.log_to_file,
        log_file_path=settings.log_file_path,
        log_file_max_bytes=settings.log_file_max_bytes,
        log_file_backup_count=settings.log_file_backup_count,
        log_format=settings.log_format,
        module_levels=settings.log_module_levels,
    )

    errors = settings.validate()
    if errors:
        _exit_with_errors(errors, "Run with --validate to check the configuration alone")
    for warning in settings.check():
        logging.warning(warning)
    for error in settings.ensure_data_dirs():
        logging.warning(f"{error}; pairing sessions may fail")

    base_url = f"http://{settings.host}:{settings.port}"
    print(f"PairGate v{__version__} on {base_url}")
    print(f"  Pairing:  {base_url}/pair?number=<phone>")
    print(f"  Sessions: {settings.sessions_dir}")
    print(f"  Conduit:  {settings.conduit_factory or 'not configured'}")

    from pairgate.web.app import create_app

    # An app instance rather than an import string, so CLI overrides apply
    uvicorn.run(
        create_app(settings=settings),
        host=settings.host,
        port=settings.port,
        log_level="debug" if settings.debug else "info",
    )


if __name__ == "__main__":
    main()
