"""Logging helpers shared by every pressurefield module."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional, Union

ROOT_LOGGER_NAME = "pressurefield"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_configured = False
_file_handler: Optional[logging.FileHandler] = None


def _configure_root() -> logging.Logger:
    global _configured
    root = logging.getLogger(ROOT_LOGGER_NAME)
    if not _configured:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
        root.setLevel(logging.INFO)
        _configured = True
    return root


def get_logger(name: str) -> logging.Logger:
    """Return a logger nested under the ``pressurefield`` namespace."""
    root = _configure_root()
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return root.getChild(name)


def set_level(level: Union[int, str]) -> None:
    _configure_root().setLevel(level)


def add_file_handler(path: Union[str, Path]) -> logging.FileHandler:
    """Mirror all pressurefield log records into ``path``.

    Only one session file is active at a time; a previous handler is detached
    and closed first.
    """
    global _file_handler
    root = _configure_root()
    remove_file_handler()
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    _file_handler = handler
    return handler


def remove_file_handler() -> None:
    global _file_handler
    if _file_handler is None:
        return
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.removeHandler(_file_handler)
    _file_handler.close()
    _file_handler = None
