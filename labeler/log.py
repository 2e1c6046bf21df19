from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install one stderr handler on the ``labeler`` logger. Safe to call twice."""
    logger = logging.getLogger("labeler")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    if any(getattr(h, "_labeler_handler", False) for h in logger.handlers):
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._labeler_handler = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
