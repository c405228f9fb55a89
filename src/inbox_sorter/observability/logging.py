from __future__ import annotations

import logging
import os
from typing import Final, Optional

_FORMAT: Final[str] = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_DATEFMT: Final[str] = "%Y-%m-%d %H:%M:%S"
_HANDLER_NAME: Final[str] = "inbox_sorter"

# Third-party loggers that are chatty at INFO.
_QUIET_LOGGERS: Final[tuple] = ("googleapiclient.discovery_cache", "httpx", "google_genai")


def resolve_level(level: Optional[str] = None) -> int:
    """Explicit level first, then INBOX_SORTER_LOG_LEVEL, then INFO."""
    name = (level or os.getenv("INBOX_SORTER_LOG_LEVEL") or "INFO").strip().upper()
    value = logging.getLevelName(name)
    return value if isinstance(value, int) else logging.INFO


def configure_logging(level: Optional[str] = None) -> int:
    """
    Attach one stream handler to the root logger and set the root level.

    Safe to call repeatedly: the handler is added once, the level is
    re-applied on every call.
    """
    root = logging.getLogger()
    resolved = resolve_level(level)

    if not any(h.get_name() == _HANDLER_NAME for h in root.handlers):
        handler = logging.StreamHandler()
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATEFMT))
        root.addHandler(handler)
    root.setLevel(resolved)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved, logging.WARNING))
    return resolved


def get_logger(name: str) -> logging.Logger:
    # Module loggers carry no level of their own; the root level set by configure_logging applies.
    return logging.getLogger(name)
