"""Logging setup for assetmin: one ``assetmin`` logger tree fed by every component."""

from __future__ import annotations

import logging
from pathlib import Path

_LOGGER_NAME = "assetmin"
_CONSOLE_FORMAT = "[assetmin] %(levelname)s %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return ``assetmin.<name>`` (e.g. ``assetmin.compress``), or the package logger itself."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def _level_for(verbose: bool, quiet: bool) -> int:
    if verbose:
        return logging.DEBUG
    if quiet:
        return logging.WARNING
    return logging.INFO


def configure_logging(
    *, verbose: bool = False, quiet: bool = False, log_file: Path | str | None = None
) -> logging.Logger:
    """Install console (and optionally file) handlers on the ``assetmin`` logger.

    ``verbose`` wins over ``quiet``. The per-file size lines and the run totals
    are logged at INFO, so ``quiet`` leaves only diagnostics and failures on the
    console. The file sink, when given, records at the same level with
    timestamps and logger names.
    """
    level = _level_for(verbose, quiet)
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    # Reconfiguring replaces the handlers of the previous invocation.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    logger.addHandler(console)

    if log_file is not None:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.addHandler(file_handler)

    return logger


__all__ = ["configure_logging", "get_logger"]
