"""
Logging categories (coarse grained, opt-in / opt-out).

  Set LOG_ALL=0 to disable all unless explicitly enabled.
  Set LOG_ALL=1 to enable all unless explicitly disabled.
  Per-category env vars override: LOG_FFMPEG, LOG_PHASH, LOG_DUPES, LOG_API
  Values: 1 enable, 0 disable. Default: follow LOG_ALL (which defaults to 1).
"""
from __future__ import annotations

import logging
import os

logger = logging.getLogger("dupecheck")


def log_enabled(cat: str) -> bool:
    base = os.environ.get("LOG_ALL", "1")
    base_on = str(base).lower() not in ("0", "false", "no")
    specific = os.environ.get(f"LOG_{cat.upper()}")
    if specific is not None:
        return str(specific).lower() in ("1", "true", "yes")
    return base_on


def log(cat: str, msg: str, *args, level: int = logging.INFO) -> None:
    """Emit an application log line for a given category."""
    if not log_enabled(cat):
        return
    logger.log(level, "[%s] " + msg, cat, *args)
