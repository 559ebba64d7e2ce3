"""
Apply log level from the command line or env.

Single log level for every logger in the process.
An explicit --log-level takes precedence over the RFID_LOG_LEVEL env.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _parse_level(raw: str) -> int:
    if not raw or not str(raw).strip():
        return logging.INFO
    raw = str(raw).strip().upper()
    if raw.isdigit():
        return int(raw)
    level = getattr(logging, raw, logging.INFO)
    return level if isinstance(level, int) else logging.INFO


def resolve_level(explicit: Optional[str] = None) -> int:
    """
    Resolve log level: explicit value if given, else RFID_LOG_LEVEL env, else INFO.
    """
    if explicit:
        return _parse_level(explicit)
    raw = os.environ.get("RFID_LOG_LEVEL", "").strip()
    return _parse_level(raw) if raw else logging.INFO


def apply_log_level(level: int) -> None:
    """Set root logger level so all loggers use this level."""
    logging.getLogger().setLevel(level)


def configure_logging(explicit: Optional[str] = None) -> int:
    """Install the console handler and apply the resolved level. Returns the level."""
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    level = resolve_level(explicit)
    apply_log_level(level)
    return level
