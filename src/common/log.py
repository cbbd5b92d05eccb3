from __future__ import annotations

import logging
from typing import Optional, Union


ROOT_LOGGER_NAME = "ludolio"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logger(
    name: Optional[str] = None,
    level: Union[int, str] = logging.INFO,
) -> logging.Logger:
    """Attach a console handler to the SDK loggers (once).

    SDK modules log through `logging.getLogger(__name__)`; the package names
    (`common`, `session`, `stats`, `achievements`) are configured alongside
    the `ludolio` root so host applications see SDK diagnostics by default.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    formatter = logging.Formatter(LOG_FORMAT)
    names = [name] if name else [ROOT_LOGGER_NAME, "common", "session", "stats", "achievements"]
    for n in names:
        logger = logging.getLogger(n)
        logger.setLevel(level)
        if not logger.handlers:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(level)
            console_handler.setFormatter(formatter)
            logger.addHandler(console_handler)
    return logging.getLogger(names[0])


__all__ = ["setup_logger", "LOG_FORMAT"]
