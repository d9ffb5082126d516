"""Logging setup with rich console output."""

import logging
from pathlib import Path
from typing import Optional, Union

from rich.console import Console
from rich.logging import RichHandler

FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

_stderr_console = Console(stderr=True)


def setup_logger(
    name: str,
    level: Union[str, int] = "INFO",
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """
    Configure a logger with a rich console handler and an optional log file.

    Calling this again for the same logger only adjusts the level and adds
    the file handler if it is not attached yet.

    Args:
        name: Logger name (usually the top-level package)
        level: Log level name or number
        log_file: Optional path of a plain-text log file

    Returns:
        Configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        console_handler = RichHandler(
            console=_stderr_console,
            show_path=False,
            rich_tracebacks=True,
        )
        console_handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(console_handler)

    if log_file is not None:
        log_file = Path(log_file)
        attached = {
            Path(h.baseFilename)
            for h in logger.handlers
            if isinstance(h, logging.FileHandler)
        }
        if log_file.resolve() not in attached:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
            file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
            logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a module logger; handlers are attached by setup_logger on a parent."""
    return logging.getLogger(name)


def shutdown_logging(name: str) -> None:
    """Flush and close every handler attached to the named logger."""
    logger = logging.getLogger(name)
    for handler in list(logger.handlers):
        handler.flush()
        if isinstance(handler, logging.FileHandler):
            handler.close()
            logger.removeHandler(handler)
