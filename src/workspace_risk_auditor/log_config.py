"""Logging setup: module loggers rendered through the shared rich console.

Call setup_logging() once at startup.
"""

from __future__ import annotations

import logging

from rich.logging import RichHandler

from .display import console

PACKAGE_LOGGER = "workspace_risk_auditor"


def verbosity_level(verbose: int, default: str = "WARNING") -> int:
    """Map a ``-v`` count onto a log level: 0 keeps the default, 1 INFO, 2+ DEBUG."""
    if verbose >= 2:
        return logging.DEBUG
    if verbose == 1:
        return logging.INFO
    return logging.getLevelName(default.upper())


def setup_logging(level: int | str = logging.WARNING) -> None:
    """Attach a RichHandler to the package logger.

    Safe to call more than once; only the level changes on later calls.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)

    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(console=console, show_path=False, rich_tracebacks=True)
        handler.setFormatter(logging.Formatter("%(name)s  %(message)s", datefmt="%H:%M:%S"))
        logger.addHandler(handler)

    for handler in logger.handlers:
        handler.setLevel(level)

    # Suppress noisy third-party loggers
    for name in ("googleapiclient", "googleapiclient.discovery_cache", "google_auth_oauthlib", "urllib3"):
        logging.getLogger(name).setLevel(logging.WARNING)
