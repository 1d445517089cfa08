# -*- coding: utf-8 -*-
"""
Log setup for wavescope sessions, wrapping loguru.

Every module logs through loguru's global ``logger``; this module only decides
where records go (a file under ``~/.wavescope``, stderr, or both) and at which
level. Wire traffic is logged at TRACE, so a file sink at TRACE is the usual
way to capture an instrument conversation for later inspection.
"""

import pathlib
import sys
import traceback
from typing import Optional

from loguru import logger

from .defaults import DEFAULT_LOGLEVEL, SINGLE_LINE_ERR_LOG

_LOG_FORMAT = (
    "{time:HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"
)

# path of the active file sink, "" when logging to the console only
_log_path = ""


def format_error_response() -> str:
    """The current exception's traceback, for logging from an except block."""
    err_str = traceback.format_exc()
    if SINGLE_LINE_ERR_LOG:
        return "\t".join(line.strip() for line in err_str.splitlines())
    return err_str


def start_client_log(
    log_to_file: bool = True,
    log_to_stdout: bool = False,
    log_path: Optional[str] = None,
    clear_prev: bool = True,
    log_level: str = DEFAULT_LOGLEVEL,
):
    """Replace all loguru sinks with a file and/or console sink.

    Parameters
    ----------
    log_to_file : bool
        Write records to ``log_path``.
    log_to_stdout : bool
        Write colourised records to the console (stderr, so that command
        output on stdout stays clean).
    log_path : str, optional
        Defaults to ``log_default_path_client()``.
    clear_prev : bool
        Delete the previous file before starting.
    log_level : str
        Minimum level for every sink.
    """
    global _log_path
    path = pathlib.Path(log_path).resolve() if log_path else pathlib.Path(
        log_default_path_client()
    )

    logger.remove()
    _log_path = ""

    if log_to_file:
        if clear_prev:
            clear_log(str(path))
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(path, level=log_level, format=_LOG_FORMAT, enqueue=True, colorize=False)
        _log_path = str(path)
    if log_to_stdout:
        logger.add(sys.stderr, level=log_level, enqueue=True, colorize=True)

    if _log_path:
        logger.info("Client log started at {}", _log_path)
    else:
        logger.info("Client log started")


def log_default_path_client() -> str:
    return str(pathlib.Path.home() / ".wavescope" / "client.log")


def clear_log(log_path: str):
    """
    Delete the log file at the given path, if it exists.

    Arguments
    ---------
    log_path : str
        The path to the log file. The default is available from
        log_default_path_client().
    """
    path = pathlib.Path(log_path)
    try:
        path.unlink(missing_ok=True)
    except PermissionError:
        logger.error("Could not clear log file {}, permission denied", log_path)


def shutdown_client_log():
    """Flush queued records and remove every sink."""
    global _log_path
    logger.info("Closing client log")
    logger.complete()
    logger.remove()
    _log_path = ""


def get_log_filename() -> str:
    """Path of the active log file, or "" when not logging to a file."""
    return _log_path
