"""Resolve the configured conduit factory from an import path."""

from __future__ import annotations

import importlib
import logging

from pairgate.conduit.protocol import ConduitFactory

logger = logging.getLogger(__name__)


class ConduitLoadError(Exception):
    """Configured conduit factory could not be loaded."""


def load_conduit_factory(spec: str | None) -> ConduitFactory | None:
    """Load a conduit factory from ``"package.module:attribute"``.

    A class is instantiated with no arguments; any other object is used as is.

    Args:
        spec: Import path, or None/empty when no conduit is configured

    Returns:
        The factory, or None if ``spec`` is empty

    Raises:
        ConduitLoadError: If the path is malformed, cannot be imported,
            or does not resolve to a conduit factory
    """
    if not spec:
        logger.warning("No conduit factory configured; pairing requests will fail")
        return None

    module_name, sep, attr_path = spec.partition(":")
    if not sep or not module_name or not attr_path:
        raise ConduitLoadError(
            f"Invalid conduit factory path {spec!r}; expected 'package.module:attribute'"
        )

    try:
        obj = importlib.import_module(module_name)
    except ImportError as e:
        raise ConduitLoadError(f"Cannot import conduit module {module_name!r}: {e}") from e

    for part in attr_path.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError as e:
            raise ConduitLoadError(f"{module_name!r} has no attribute {attr_path!r}") from e

    if isinstance(obj, type):
        obj = obj()

    if not isinstance(obj, ConduitFactory):
        raise ConduitLoadError(
            f"{spec!r} does not provide fetch_latest_version() and connect()"
        )

    logger.info(f"Loaded conduit factory {spec}")
    return obj
