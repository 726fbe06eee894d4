"""Logging helpers shared by the CLI, the service and every pipeline stage."""

from __future__ import annotations

import logging
from pathlib import Path

_LOGGER_NAME = "pipegen"
_CONSOLE_FORMAT = "[pipegen] %(levelname)s %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a stage logger such as ``pipegen.probe``."""
    return logging.getLogger(f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME)


def _level(verbose: bool, quiet: bool) -> int:
    if verbose:
        return logging.DEBUG
    if quiet:
        return logging.WARNING
    return logging.INFO


def configure_logging(
    *, verbose: bool = False, quiet: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Attach console (and optionally file) handlers to the ``pipegen`` logger.

    Existing handlers are replaced, so calling this twice in one process does
    not duplicate output.
    """
    level = _level(verbose, quiet)
    root = logging.getLogger(_LOGGER_NAME)
    root.setLevel(level)
    root.propagate = False
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    root.addHandler(console)

    if log_file is not None:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        sink = logging.FileHandler(log_file, encoding="utf-8")
        # The file always records the full stage trace.
        sink.setLevel(logging.DEBUG)
        sink.setFormatter(logging.Formatter(_FILE_FORMAT))
        root.addHandler(sink)
        root.setLevel(logging.DEBUG)

    return root


__all__ = ["configure_logging", "get_logger"]
