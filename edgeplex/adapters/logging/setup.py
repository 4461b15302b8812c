from __future__ import annotations

import logging
from pathlib import Path
import sys

from logfmter import Logfmter

from edgeplex.adapters.config.schema import LoggingConfig

ROOT_LOGGER = "edgeplex"


def configure_logging(config: LoggingConfig) -> logging.Logger:
    """Routes the ``edgeplex`` logger tree to the log file and, optionally, stderr.

    stdout is reserved for the MCP stdio transport, so nothing is ever
    written there.
    """
    formatter = build_formatter(config)
    logger = logging.getLogger(ROOT_LOGGER)
    level = logging.getLevelName(config.log_level.upper())
    logger.setLevel(level if isinstance(level, int) else logging.INFO)

    handlers: list[logging.Handler] = [_file_handler(Path(config.log_dir) / config.log_file, formatter)]
    if config.console_enabled:
        handlers.insert(0, _stderr_handler(formatter))
    logger.handlers = handlers
    logger.propagate = False
    return logger


def build_formatter(config: LoggingConfig) -> logging.Formatter:
    if not config.logfmt_enabled:
        return logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    return Logfmter(
        keys=["at", "when", "name", "msg"],
        mapping={"at": "levelname", "when": "asctime"},
        datefmt="%Y%m%d %H:%M:%S",
    )


def detach_console(logger: logging.Logger) -> None:
    """Keeps only file handlers, for commands that own the terminal."""
    logger.handlers = [handler for handler in logger.handlers if isinstance(handler, logging.FileHandler)]


def _stderr_handler(formatter: logging.Formatter) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    return handler


def _file_handler(path: Path, formatter: logging.Formatter) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(formatter)
    return handler
