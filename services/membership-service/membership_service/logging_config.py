"""Root logger configuration for the membership service."""

from __future__ import annotations

import logging


def setup_logging(level: str = "INFO") -> None:
    """Attach a console handler to the root logger unless one is already present.

    Parameters
    ----------
    level:
        Logging level name such as ``"DEBUG"`` or ``"info"``. Unknown names fall
        back to ``INFO``.
    """
    root = logging.getLogger()
    if root.handlers:
        # uvicorn and pytest install their own handlers
        return

    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root.addHandler(handler)
