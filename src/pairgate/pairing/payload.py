"""Transmission payload: prefixed base64 of gzip-compressed credentials."""

from __future__ import annotations

import base64
import binascii
import gzip
import logging

from pairgate.conduit.protocol import InteractiveButton, InteractiveMessage
from pairgate.pairing.identifiers import DEFAULT_SESSION_PREFIX, PREFIX_DELIMITER

logger = logging.getLogger(__name__)

COPY_BUTTON_TEXT = "Copy Session"


def payload_prefix(prefix: str = DEFAULT_SESSION_PREFIX) -> str:
    return f"{prefix}{PREFIX_DELIMITER}"


def build_payload(credentials: bytes, prefix: str = DEFAULT_SESSION_PREFIX) -> str:
    """Compress and encode credential bytes.

    Args:
        credentials: Raw credential file content
        prefix: Payload prefix (without the ``~`` delimiter)

    Returns:
        ``<prefix>~<base64(gzip(credentials))>``
    """
    encoded = base64.b64encode(gzip.compress(credentials)).decode("ascii")
    logger.debug(f"Packaged {len(credentials)} credential bytes into {len(encoded)} chars")
    return f"{payload_prefix(prefix)}{encoded}"


def decode_payload(payload: str, prefix: str = DEFAULT_SESSION_PREFIX) -> bytes:
    """Recover credential bytes from a payload.

    Raises:
        ValueError: If the prefix is missing or the body is not valid base64 gzip data
    """
    marker = payload_prefix(prefix)
    if not payload.startswith(marker):
        raise ValueError(f"Payload must start with '{marker}'")

    body = payload[len(marker) :]
    try:
        return gzip.decompress(base64.b64decode(body, validate=True))
    except (binascii.Error, OSError, EOFError) as e:
        raise ValueError(f"Payload body is not valid base64 gzip data: {e}") from e


def build_interactive_message(
    payload: str,
    footer: str = "",
    link_buttons: dict[str, str] | None = None,
) -> InteractiveMessage:
    """Wrap the payload in the message sent to the linked account.

    The payload is both the body text and the value of a copy button;
    ``link_buttons`` maps display text to URL.
    """
    buttons = [InteractiveButton("cta_copy", COPY_BUTTON_TEXT, payload)]
    for display_text, url in (link_buttons or {}).items():
        buttons.append(InteractiveButton("cta_url", display_text, url))
    return InteractiveMessage(text=payload, footer=footer, buttons=tuple(buttons))
