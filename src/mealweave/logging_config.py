"""Logging setup for the CLI and embedding applications."""

from __future__ import annotations

import logging
from typing import Optional, Union

from rich.console import Console
from rich.logging import RichHandler

# Third-party loggers that are noisy at INFO
EXTERNAL_LOGGERS = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "asyncio": logging.WARNING,
}


def setup_logging(
    level: Union[str, int] = "WARNING",
    use_rich: bool = True,
    console: Optional[Console] = None,
) -> logging.Logger:
    """Configure the ``mealweave`` logger.

    Args:
        level: Level name or number for mealweave loggers
        use_rich: Use a RichHandler; otherwise a plain StreamHandler
        console: Console for the RichHandler (defaults to stderr)

    Returns:
        The package logger
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING

    if use_rich:
        handler: logging.Handler = RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        )
        handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(name)s] [%(levelname)s] %(message)s")
        )

    logger = logging.getLogger("mealweave")
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False

    for name, external_level in EXTERNAL_LOGGERS.items():
        logging.getLogger(name).setLevel(external_level)

    return logger
