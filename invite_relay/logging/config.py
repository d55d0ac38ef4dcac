"""Centralized logging configuration.

Every module logs through ``logging.getLogger(__name__)``; this module wires
the handlers once at startup, either from explicit values or from parsed CLI
arguments.

Examples
--------
.. code-block:: python

    from invite_relay.logging.config import setup_logging

    setup_logging(level="DEBUG", log_file="relay.log", log_dir="logs")
"""

from __future__ import annotations

import argparse
import logging
import logging.config
import pathlib
from typing import Any, Dict, Optional

__all__: list[str] = [
    "DEFAULT_LOG_FORMAT",
    "setup_logging",
    "add_logging_arguments",
    "setup_logging_from_args",
]

DEFAULT_LOG_FORMAT = "%(asctime)s [%(levelname)8s] %(name)s: %(message)s"
LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def _build_config(level: str, log_format: str, log_path: Optional[pathlib.Path]) -> Dict[str, Any]:
    handlers: Dict[str, Any] = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "stream": "ext://sys.stdout",
            "level": level,
        }
    }
    if log_path is not None:
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "formatter": "default",
            "filename": str(log_path),
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 5,
            "encoding": "utf-8",
            "level": level,
        }

    handler_names = list(handlers)
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {"format": log_format},
        },
        "handlers": handlers,
        "loggers": {
            "": {  # root logger
                "handlers": handler_names,
                "level": level,
            },
            # Reduce noise from external libraries
            "uvicorn.access": {"level": "WARNING"},
            "httpx": {"level": "WARNING"},
            "httpcore": {"level": "WARNING"},
        },
    }


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    log_dir: Optional[str] = None,
    log_format: Optional[str] = None,
) -> None:
    """Configure root logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: File name for a rotating log file. No file logging if None.
        log_dir: Directory for ``log_file``; created when missing.
        log_format: ``logging`` format string. Defaults to DEFAULT_LOG_FORMAT.
    """
    log_path: Optional[pathlib.Path] = None
    if log_file:
        log_path = pathlib.Path(log_file)
        if log_dir and not log_path.is_absolute():
            log_path = pathlib.Path(log_dir) / log_path
        log_path.parent.mkdir(parents=True, exist_ok=True)

    logging.config.dictConfig(_build_config(level.upper(), log_format or DEFAULT_LOG_FORMAT, log_path))


def add_logging_arguments(parser: argparse.ArgumentParser) -> argparse.ArgumentParser:
    """Add the shared ``--log-*`` options to a parser and return it."""
    parser.add_argument(
        "--log-level",
        default=None,
        type=str.upper,
        choices=LOG_LEVELS,
        help="Logging level (default: LOG_LEVEL setting, else INFO)",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Write logs to this file as well as stdout (default: LOG_FILE setting)",
    )
    parser.add_argument(
        "--log-dir",
        default=None,
        help="Directory for --log-file when it is relative (default: LOG_DIR setting)",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        help="Log message format (default: LOG_FORMAT setting, else timestamp, level, logger name, message)",
    )
    return parser


def setup_logging_from_args(args: Any, settings: Any = None) -> None:
    """Apply logging options parsed by a parser prepared with :func:`add_logging_arguments`.

    Options left unset on the command line fall back to the ``log_*`` fields
    of ``settings`` (the ``LOG_LEVEL``, ``LOG_FILE``, ``LOG_DIR`` and
    ``LOG_FORMAT`` values) when given.
    """

    def _pick(name: str) -> Any:
        value = getattr(args, name, None)
        if value is None and settings is not None:
            value = getattr(settings, name, None)
        return value

    level = _pick("log_level") or "INFO"
    setup_logging(
        level=getattr(level, "value", level),
        log_file=_pick("log_file"),
        log_dir=_pick("log_dir"),
        log_format=_pick("log_format"),
    )
