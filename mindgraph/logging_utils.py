from __future__ import annotations

"""Centralized logging utilities for MindGraph.

Every entry point requesting a logger gets a consistent format and rotating
file behavior. Library modules log through ``logging.getLogger(__name__)`` and
inherit the handlers installed here on the ``mindgraph`` logger.
"""

import logging
import logging.handlers
import os
import pathlib
from typing import Optional

# Cache created loggers so repeated calls don't duplicate handlers
_LOGGER_CACHE = {}


def get_logger(
    name: str = "mindgraph",
    log_dir: Optional[str] = None,
    level: int = logging.INFO,
    console: bool = True,
) -> logging.Logger:
    """Return a configured :class:`logging.Logger`.

    Parameters
    ----------
    name:
        Logger name (also used in log filename: ``{name}.log``).
    log_dir:
        Directory where log files should be written. Created if missing.
    level:
        Threshold for both handlers.
    console:
        Attach a console handler. The interactive CLI turns this off so log
        lines don't interleave with the chat transcript.

    Behavior
    --------
    * Rotating file handler (5MB x5 backups) + optional console handler.
    * Reuses cached logger on subsequent calls.
    """
    if name in _LOGGER_CACHE:
        return _LOGGER_CACHE[name]

    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Guard against double-adding handlers if the interpreter reloads modules
    if logger.handlers:
        return logger

    if log_dir is None:
        log_dir = "logs"
    pathlib.Path(log_dir).mkdir(parents=True, exist_ok=True)
    log_path = os.path.join(log_dir, f"{name}.log")

    # Rotating file --------------------------------------------------------
    fh = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=5_000_000, backupCount=5, encoding="utf-8"
    )
    fh.setLevel(level)
    fh.setFormatter(
        logging.Formatter("%(asctime)s - %(levelname)s - %(name)s - %(message)s")
    )
    logger.addHandler(fh)

    # Console --------------------------------------------------------------
    if console:
        ch = logging.StreamHandler()
        ch.setLevel(level)
        ch.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(ch)

    _LOGGER_CACHE[name] = logger
    return logger
