"""Port checks run before the server binds."""

from __future__ import annotations

import socket

# How far above a busy port to look for a free one to suggest
SUGGESTION_RANGE = 100


def can_bind(host: str, port: int) -> bool:
    """True if a TCP listener could bind ``host:port`` right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def port_conflict(host: str, port: int) -> str | None:
    """Describe why ``host:port`` cannot be used, or None if it is free.

    The message suggests the next free port when there is one nearby.
    """
    if can_bind(host, port):
        return None

    message = f"Port {port} is already in use on {host}"
    last = min(port + SUGGESTION_RANGE, 65535)
    free = next((p for p in range(port + 1, last + 1) if can_bind(host, p)), None)
    if free is None:
        return message + "\n  → Fix: Stop the process using this port or pass --port"
    return message + f"\n  → Fix: pairgate --port {free}"
