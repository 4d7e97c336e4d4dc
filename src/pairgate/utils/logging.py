"""Logging helpers: masking of pairing secrets, request/session context, JSON output.

Everything a pairing session handles is sensitive: the phone number, the key
segment of the session identifier, and above all the credential payload. The
filters and formatters here mask those before a line reaches any handler:

- ``LogSanitizer`` masks the message and its arguments
- ``SanitizingFormatter`` masks the formatted line, tracebacks included
- ``CorrelationIDFilter`` / ``SessionContextFilter`` tag lines with the
  request and the pairing session they belong to
- ``JSONFormatter`` emits one JSON object per line for log aggregators
"""

from __future__ import annotations

import contextvars
import json
import logging
import re
import time
from datetime import UTC, datetime
from typing import Any, ClassVar

# Request correlation ID, set by RequestIDMiddleware
correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id", default=None
)

# Session identifier of the orchestrator run owning the current task
session_id_context: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "session_id", default=None
)

_SECRET_KEY_PATTERN = (
    r"(secret[_-]?key|private[_-]?key|noise[_-]?key)['\"]?\s*[:=]\s*['\"]?"
    r"([A-Za-z0-9+/_=-]{20,})"
)

# Order matters: payloads contain digit runs that would otherwise look like phones
SENSITIVE_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    # Credential payload: "<PREFIX>~" + base64 of gzip data (always starts with H4sI)
    (re.compile(r"([A-Z][A-Z0-9_]*~)H4sI[A-Za-z0-9+/=]{16,}"), r"\1***PAYLOAD***"),
    # Key segment of a session identifier
    (re.compile(r"#[A-Za-z0-9_\-]{43,44}(?![A-Za-z0-9_\-])"), "#***"),
    (re.compile(r"\+?[1-9]\d{7,14}\b"), "***PHONE***"),
    (
        re.compile(r"(password|passwd|pwd)['\"]?\s*[:=]\s*['\"]?([^\s'\"]{3,})"),
        r"\1=***PASSWORD***",
    ),
    (re.compile(_SECRET_KEY_PATTERN), r"\1=***SECRET***"),
    (re.compile(r"(Authorization|Bearer)\s*:\s*([A-Za-z0-9_\-\.=]+)"), r"\1: ***AUTH***"),
]


def sanitize_text(text: str) -> str:
    """Mask every sensitive pattern in ``text``."""
    for pattern, replacement in SENSITIVE_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def _sanitize_value(value: Any) -> Any:
    """Mask strings, recursing into dicts, lists and tuples."""
    if isinstance(value, str):
        return sanitize_text(value)
    if isinstance(value, dict):
        return {k: _sanitize_value(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return type(value)(_sanitize_value(item) for item in value)
    return value


def mask_phone_number(number: str) -> str:
    """Keep the last three digits of a phone number, e.g. ``*******890``."""
    digits = "".join(c for c in number if c.isdigit())
    if len(digits) <= 3:
        return "*" * len(digits)
    return "*" * (len(digits) - 3) + digits[-3:]


def short_session_label(session_id: str) -> str:
    """Session identifier without its key segment, safe to log."""
    return session_id.split("#", 1)[0]


class LogSanitizer(logging.Filter):
    """Mask sensitive data in a record's message and arguments.

    Tracebacks are only rendered at format time; SanitizingFormatter
    covers those.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if record.msg:
            record.msg = sanitize_text(str(record.msg))
        if isinstance(record.args, dict | tuple):
            record.args = _sanitize_value(record.args)
        return True


class SanitizingFormatter(logging.Formatter):
    """Mask the fully formatted line, including exception text."""

    def format(self, record: logging.LogRecord) -> str:
        return sanitize_text(super().format(record))


def set_correlation_id(cid: str) -> None:
    correlation_id.set(cid)


def clear_correlation_id() -> None:
    correlation_id.set(None)


class CorrelationIDFilter(logging.Filter):
    """Add ``record.correlation_id`` (``-`` outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id.get() or "-"
        return True


def get_session_id() -> str | None:
    return session_id_context.get()


def set_session_id(session_id: str | None) -> contextvars.Token[str | None]:
    """Bind a pairing session to the current task.

    Only the part before ``#`` is ever written to logs.

    Returns:
        Token for :func:`reset_session_id`
    """
    return session_id_context.set(session_id)


def reset_session_id(token: contextvars.Token[str | None]) -> None:
    session_id_context.reset(token)


class SessionContextFilter(logging.Filter):
    """Add ``record.session_id``: the short session label, or ``-``."""

    def filter(self, record: logging.LogRecord) -> bool:
        sid = session_id_context.get()
        record.session_id = short_session_label(sid) if sid else "-"
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record.

    Keys: ``timestamp`` (ISO 8601, UTC), ``level``, ``logger``, ``message``,
    ``correlation_id``, ``session_id`` (only inside a pairing session),
    ``exception`` when present, plus any ``extra`` fields. Values are
    sanitized unless ``sanitize=False``.
    """

    RESERVED_ATTRS: ClassVar[frozenset[str]] = frozenset(
        vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
    ) | {"message", "correlation_id", "session_id"}

    def __init__(self, sanitize: bool = True) -> None:
        super().__init__()
        self.sanitize = sanitize

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if hasattr(record, "correlation_id"):
            entry["correlation_id"] = record.correlation_id
        if getattr(record, "session_id", "-") != "-":
            entry["session_id"] = record.session_id
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        for key, value in vars(record).items():
            if key in self.RESERVED_ATTRS or key.startswith("_"):
                continue
            try:
                json.dumps(value)
            except (TypeError, ValueError):
                value = str(value)
            entry[key] = value

        if self.sanitize:
            entry = _sanitize_value(entry)
        return json.dumps(entry, ensure_ascii=False, default=str)


class TimingContext:
    """Log how long a block took when it exits.

    Logs at INFO on success and WARNING when the block raised; the record
    carries ``operation``, ``duration_ms`` and ``success`` extras.

    Usage:
        with TimingContext("Pairing session", logger):
            await run()
    """

    def __init__(self, operation_name: str, logger: logging.Logger | None = None) -> None:
        self.operation_name = operation_name
        self.logger = logger
        self.start_time: float | None = None
        self.end_time: float | None = None

    def __enter__(self) -> TimingContext:
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.end_time = time.perf_counter()
        if self.logger is None:
            return
        self.logger.log(
            logging.WARNING if exc_type else logging.INFO,
            f"{self.operation_name} finished in {self.duration_ms / 1000:.1f}s",
            extra={
                "operation": self.operation_name,
                "duration_ms": round(self.duration_ms, 2),
                "success": exc_type is None,
            },
        )

    @property
    def duration_ms(self) -> float:
        """Elapsed milliseconds (up to now while the block is running)."""
        if self.start_time is None:
            return 0.0
        end = self.end_time or time.perf_counter()
        return (end - self.start_time) * 1000


def configure_module_levels(config: dict[str, str]) -> None:
    """Set per-logger levels, e.g. ``{"pairgate.pairing": "DEBUG"}``.

    Unknown level names fall back to INFO.
    """
    for module_name, level in config.items():
        logging.getLogger(module_name).setLevel(getattr(logging, level.upper(), logging.INFO))
