"""
Logging setup for the command-line tool.

Log records go to stderr (and optionally a file), never to stdout, which
carries the remote shell's output.
"""

from __future__ import annotations
import logging
import sys
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def setup_logging(verbose: int = 0, log_file: Union[str, Path, None] = None) -> logging.Logger:
    """
    Configure the ``termlink`` logger.

    Args:
        verbose: 0 = warnings only, 1 = info, 2+ = debug (paramiko included)
        log_file: Optional file receiving debug-level records

    Returns:
        The package logger
    """
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose >= 2:
        level = logging.DEBUG

    root = logging.getLogger("termlink")
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    root.addHandler(console)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(file_handler)

    # paramiko logs every transport event at INFO/DEBUG
    logging.getLogger("paramiko").setLevel(logging.DEBUG if verbose >= 2 else logging.WARNING)

    return root
