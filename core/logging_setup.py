"""Logging bootstrap for the memory engine."""

from __future__ import annotations

import logging
from typing import Any

DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(config: dict[str, Any] | None = None) -> logging.Logger:
    """Configure the `mem` logger tree from the `logging` config section."""
    cfg = (config or {}).get("logging", {})
    level_name = str(cfg.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger("mem")
    root.setLevel(level)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(cfg.get("format", DEFAULT_FORMAT)))
        root.addHandler(handler)
    return root
