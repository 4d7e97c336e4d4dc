"""Session identifier, communion code and timestamp helpers.

Session identifiers have the fixed two-segment format::

    <PREFIX>~<file id: 11-12 chars>#<key: 43-44 chars>

The file id uses ``[A-Za-z0-9]`` and the key uses the Base64URL alphabet
``[A-Za-z0-9_-]``. The body after ``<PREFIX>~`` is 55-57 characters long.
Segment lengths are chosen before the random fill, so a generated identifier
always passes :func:`validate_session_id`.

All helpers here are pure: no I/O, no shared state.
"""

from __future__ import annotations

import logging
import re
import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

logger = logging.getLogger(__name__)

DEFAULT_SESSION_PREFIX = "PAIRG"
SEPARATOR = "#"
PREFIX_DELIMITER = "~"

FILE_ID_ALPHABET = string.ascii_letters + string.digits
KEY_ALPHABET = string.ascii_letters + string.digits + "-_"
COMMUNION_ALPHABET = string.ascii_uppercase + string.digits

FILE_ID_LENGTHS = (11, 12)
KEY_LENGTHS = (43, 44)
TOTAL_LENGTH_RANGE = (55, 57)

COMMUNION_CODE_LENGTH = 8
COMMUNION_GROUP_SIZE = 4

_FILE_ID_RE = re.compile(r"^[A-Za-z0-9]+$")
_KEY_RE = re.compile(r"^[A-Za-z0-9_-]+$")


class ValidationIssue(str, Enum):
    """Reason a session identifier failed validation.

    Members are listed in the order the checks run.
    """

    EMPTY = "empty"
    MISSING_PREFIX = "missing_prefix"
    MISSING_SEPARATOR = "missing_separator"
    INVALID_PARTS = "invalid_parts"
    INVALID_FILE_ID_LENGTH = "invalid_file_id_length"
    INVALID_FILE_ID_CHARS = "invalid_file_id_chars"
    INVALID_KEY_LENGTH = "invalid_key_length"
    INVALID_KEY_CHARS = "invalid_key_chars"
    INVALID_TOTAL_LENGTH = "invalid_total_length"


@dataclass(frozen=True)
class SessionIdValidation:
    """Result of validating a session identifier."""

    valid: bool
    message: str
    issue: ValidationIssue | None = None
    total_length: int = 0
    file_id_length: int = 0
    key_length: int = 0
    details: dict[str, str] = field(default_factory=dict)


def _weighted_length(lengths: tuple[int, int], first_weight: float) -> int:
    """Pick the first length with probability ``first_weight``, else the second."""
    roll = secrets.randbelow(1000) / 1000
    return lengths[0] if roll < first_weight else lengths[1]


def _random_string(alphabet: str, length: int) -> str:
    return "".join(secrets.choice(alphabet) for _ in range(length))


def generate_session_id(prefix: str = DEFAULT_SESSION_PREFIX) -> str:
    """Generate a session identifier.

    The file id is 11 characters 70% of the time and 12 otherwise; the key is
    43 characters 60% of the time and 44 otherwise.

    Args:
        prefix: Identifier prefix (without the ``~`` delimiter)

    Returns:
        A new session identifier
    """
    file_id = _random_string(FILE_ID_ALPHABET, _weighted_length(FILE_ID_LENGTHS, 0.7))
    key = _random_string(KEY_ALPHABET, _weighted_length(KEY_LENGTHS, 0.6))
    session_id = f"{prefix}{PREFIX_DELIMITER}{file_id}{SEPARATOR}{key}"

    logger.debug(
        f"Generated session id {prefix}{PREFIX_DELIMITER}{file_id}#... "
        f"(file id {len(file_id)} chars, key {len(key)} chars, total {len(session_id)})"
    )
    return session_id


def validate_session_id(
    value: str | None, prefix: str = DEFAULT_SESSION_PREFIX
) -> SessionIdValidation:
    """Validate a session identifier.

    Checks run in a fixed order and the first failure is reported:
    non-empty, prefix, separator present, exactly two segments, file id
    length, file id characters, key length, key characters, total length.

    Args:
        value: Candidate identifier
        prefix: Expected prefix (without the ``~`` delimiter)

    Returns:
        SessionIdValidation describing the outcome (never raises)
    """
    if not value:
        return SessionIdValidation(
            valid=False, message="Session ID is empty", issue=ValidationIssue.EMPTY
        )

    total_length = len(value)
    full_prefix = f"{prefix}{PREFIX_DELIMITER}"

    if not value.startswith(full_prefix):
        return SessionIdValidation(
            valid=False,
            message=f"Must start with '{full_prefix}'",
            issue=ValidationIssue.MISSING_PREFIX,
            total_length=total_length,
        )

    # Lengths from here on are measured without the "<prefix>~" part.
    body = value[len(full_prefix) :]
    total_length = len(body)
    if SEPARATOR not in body:
        return SessionIdValidation(
            valid=False,
            message=f"Must contain '{SEPARATOR}' separator",
            issue=ValidationIssue.MISSING_SEPARATOR,
            total_length=total_length,
        )

    parts = body.split(SEPARATOR)
    if len(parts) != 2:
        return SessionIdValidation(
            valid=False,
            message=f"Must have exactly two parts separated by '{SEPARATOR}'",
            issue=ValidationIssue.INVALID_PARTS,
            total_length=total_length,
        )

    file_id, key = parts
    lengths = {
        "total_length": total_length,
        "file_id_length": len(file_id),
        "key_length": len(key),
    }

    if len(file_id) not in FILE_ID_LENGTHS:
        return SessionIdValidation(
            valid=False,
            message=f"File ID must be 11-12 chars (got {len(file_id)})",
            issue=ValidationIssue.INVALID_FILE_ID_LENGTH,
            **lengths,
        )

    if not _FILE_ID_RE.match(file_id):
        return SessionIdValidation(
            valid=False,
            message="File ID contains invalid characters",
            issue=ValidationIssue.INVALID_FILE_ID_CHARS,
            **lengths,
        )

    if len(key) not in KEY_LENGTHS:
        return SessionIdValidation(
            valid=False,
            message=f"Key must be 43-44 chars (got {len(key)})",
            issue=ValidationIssue.INVALID_KEY_LENGTH,
            **lengths,
        )

    if not _KEY_RE.match(key):
        return SessionIdValidation(
            valid=False,
            message="Key contains invalid characters",
            issue=ValidationIssue.INVALID_KEY_CHARS,
            **lengths,
        )

    low, high = TOTAL_LENGTH_RANGE
    if not low <= total_length <= high:
        return SessionIdValidation(
            valid=False,
            message=f"Total length must be {low}-{high} chars (got {total_length})",
            issue=ValidationIssue.INVALID_TOTAL_LENGTH,
            **lengths,
        )

    return SessionIdValidation(
        valid=True,
        message="Valid session ID",
        details={
            "summary": (
                f"File ID: {len(file_id)} chars, Key: {len(key)} chars, "
                f"Total: {total_length} chars"
            )
        },
        **lengths,
    )


def generate_session_ids(
    count: int = 3, prefix: str = DEFAULT_SESSION_PREFIX
) -> list[str]:
    """Generate several session identifiers.

    Args:
        count: Number of identifiers to generate
        prefix: Identifier prefix

    Returns:
        List of ``count`` distinct identifiers

    Raises:
        ValueError: If count is negative
    """
    if count < 0:
        raise ValueError(f"count must be non-negative (got {count})")

    ids: set[str] = set()
    while len(ids) < count:
        ids.add(generate_session_id(prefix))
    return sorted(ids)


def generate_short_code(length: int = 6, prefix: str = DEFAULT_SESSION_PREFIX) -> str:
    """Generate a short uppercase code like ``PAIRG-AB12CD``."""
    if length <= 0:
        raise ValueError(f"length must be positive (got {length})")
    return f"{prefix}-{_random_string(COMMUNION_ALPHABET, length)}"


def generate_communion_code() -> str:
    """Generate the code passed to the conduit with a pairing request.

    Returns:
        Eight uppercase alphanumeric characters as two groups: ``XXXX-XXXX``
    """
    raw = _random_string(COMMUNION_ALPHABET, COMMUNION_CODE_LENGTH)
    groups = [
        raw[i : i + COMMUNION_GROUP_SIZE] for i in range(0, len(raw), COMMUNION_GROUP_SIZE)
    ]
    return "-".join(groups)


def format_chronicle_timestamp(now: datetime | None = None) -> str:
    """Format a local timestamp as ``YYYYMMDD-HHMM``."""
    now = now or datetime.now()
    return now.strftime("%Y%m%d-%H%M")


def normalize_phone_number(number: str) -> str:
    """Strip every non-digit character from a phone number."""
    return "".join(c for c in number if c.isdigit())
