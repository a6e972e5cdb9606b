"""Logging setup for resource commands"""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

# stdout is reserved for the response document
stderr_console = Console(stderr=True, force_terminal=True)


def setup_logging(level: str = "INFO", console: Optional[Console] = None) -> None:
    """Route the ctr loggers to a coloured stderr handler

    Args:
        level: Log level name
        console: Console to log through (defaults to the stderr console)
    """
    handler = RichHandler(
        console=console or stderr_console,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger = logging.getLogger("ctr")
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
