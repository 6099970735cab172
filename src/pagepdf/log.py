"""Console logging for the pagepdf package."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_PACKAGE_LOGGER = "pagepdf"


def configure_logging(
    level: int = logging.INFO,
    *,
    console: Console | None = None,
) -> logging.Logger:
    """Send pagepdf log records to a rich console handler.

    Calling this again only updates the level.
    """
    logger = logging.getLogger(_PACKAGE_LOGGER)
    logger.setLevel(level)

    for handler in logger.handlers:
        if isinstance(handler, RichHandler):
            handler.setLevel(level)
            return logger

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setLevel(level)
    logger.addHandler(handler)
    return logger
