"""Logging setup for command-line runs.

Everything is logged twice: to the terminal through rich at the chosen
level, and to the run's log file at DEBUG.
"""

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Marker attribute so repeated setup replaces only our own handlers
_HANDLER_MARK = "_wlanpi_kbuild"


def configure_logging(
    log_file: Path | None = None,
    level: str = "INFO",
    console: Console | None = None,
) -> None:
    """Install terminal and file handlers on the root logger.

    Args:
        log_file: File receiving the full log (truncated per run).
        level: Terminal log level name.
        console: Rich console for terminal output.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_MARK, False):
            root.removeHandler(handler)
            handler.close()

    root.setLevel(logging.DEBUG)

    terminal = RichHandler(
        console=console,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    terminal.setLevel(level)
    setattr(terminal, _HANDLER_MARK, True)
    root.addHandler(terminal)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="w", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter(FILE_FORMAT, datefmt=FILE_DATE_FORMAT)
        )
        setattr(file_handler, _HANDLER_MARK, True)
        root.addHandler(file_handler)


__all__ = ["configure_logging"]
