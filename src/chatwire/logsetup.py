from __future__ import annotations
import logging
import os
import sys
from typing import Optional, Union

LOGGER_NAME = "chatwire"
_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
_HANDLER_ATTR = "_chatwire_console_handler"


def _parse_level(value: Union[str, int, None], default: int) -> int:
    if value is None or value == "":
        return default
    if isinstance(value, int):
        return value
    level = logging.getLevelName(str(value).strip().upper())
    return level if isinstance(level, int) else default


def configure_logging(level: Union[str, int, None] = None) -> logging.Logger:
    """
    Attach one stderr handler to the 'chatwire' logger.
    Level: argument, else CHATWIRE_LOG_LEVEL, else WARNING. Calling again only updates the level.
    """
    resolved = _parse_level(level, _parse_level(os.getenv("CHATWIRE_LOG_LEVEL"), logging.WARNING))
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(resolved)

    handler: Optional[logging.Handler] = next(
        (h for h in logger.handlers if getattr(h, _HANDLER_ATTR, False)), None
    )
    if handler is None:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(_FORMAT))
        setattr(handler, _HANDLER_ATTR, True)
        logger.addHandler(handler)
    handler.setLevel(resolved)
    return logger
