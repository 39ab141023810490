"""Logging setup shared by the CLI and the HTTP adapter."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging(level: str | int = "INFO") -> None:
    """Install a single stream handler on the ``pagewalker`` logger.

    Calling this repeatedly only adjusts the level.
    """

    if isinstance(level, str):
        resolved = logging.getLevelName(level.strip().upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level '{level}'")
    else:
        resolved = level

    package_logger = logging.getLogger("pagewalker")
    package_logger.setLevel(resolved)
    if not any(
        getattr(handler, "_pagewalker_handler", False)
        for handler in package_logger.handlers
    ):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._pagewalker_handler = True  # type: ignore[attr-defined]
        package_logger.addHandler(handler)


__all__ = ["LOG_FORMAT", "configure_logging"]
