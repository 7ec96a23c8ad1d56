"""Logging for PyEcosystem.

Every module logs to a child of the ``pyecosystem`` logger. The console
only shows warnings (integrator fallbacks, for instance) unless the level
is lowered; ``set_log_level(logging.DEBUG)`` shows the Ecopath iteration
trace and the simulation progress. Long simulations can also be logged
to a file with :func:`log_to_file`.
"""

import logging
import sys
from pathlib import Path
from typing import Union

LOGGER_NAME = 'pyecosystem'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

logger = logging.getLogger(LOGGER_NAME)
logger.setLevel(logging.DEBUG)

_formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)


def _attach(handler: logging.Handler, level) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(_formatter)
    logger.addHandler(handler)
    return handler


console_handler = _attach(logging.StreamHandler(sys.stdout), logging.WARNING)


def set_log_level(level) -> None:
    """Set the console verbosity of the package logger.

    Parameters
    ----------
    level : int or str
        Logging level, e.g. ``logging.DEBUG`` or ``"INFO"``
    """
    console_handler.setLevel(level)


def log_to_file(path: Union[str, Path], level=logging.DEBUG) -> logging.FileHandler:
    """Copy package log records to a file.

    Parameters
    ----------
    path : str or Path
        Log file; parent directories are created
    level : int or str
        Lowest level written to the file

    Returns
    -------
    logging.FileHandler
        The new handler; pass it to ``logger.removeHandler`` and close it
        to stop logging to the file
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return _attach(logging.FileHandler(path), level)


def get_logger(name: str = None) -> logging.Logger:
    """Logger for a part of the package, e.g. ``get_logger('ecosim')``.

    Returns the package logger itself when ``name`` is empty.
    """
    if name:
        return logging.getLogger(f'{LOGGER_NAME}.{name}')
    return logger
