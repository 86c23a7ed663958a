"""Logging utilities for baishify."""

from __future__ import annotations

import logging
import os
import re
from typing import Mapping, Optional

LOG_LEVEL_ENV = "BAISHIFY_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def sanitize_error_message(error_msg: str) -> str:
    """Sanitize error messages to remove sensitive information."""
    sanitized = re.sub(r"sk-ant-[A-Za-z0-9_-]{10,}", "[REDACTED_API_KEY]", error_msg)
    sanitized = re.sub(r"sk-(?:or-|proj-)?[A-Za-z0-9_-]{10,}", "[REDACTED_API_KEY]", sanitized)
    sanitized = re.sub(r"vck_[A-Za-z0-9_-]{10,}", "[REDACTED_API_KEY]", sanitized)
    sanitized = re.sub(
        r"Bearer\s+[A-Za-z0-9_\-\.]{8,}",
        "Bearer [REDACTED_TOKEN]",
        sanitized,
    )
    return sanitized


def mask_key(key: Optional[str]) -> str:
    """Mask an API key for display, showing first 4 and last 4 characters."""
    if not key:
        return "(none)"
    if len(key) > 12:
        return key[:4] + "..." + key[-4:]
    return "***"


def setup_logging(environment: Optional[Mapping[str, str]] = None) -> None:
    """Configure the ``baishify`` logger to write to stderr.

    The level comes from ``BAISHIFY_LOG_LEVEL`` (default ``WARNING``),
    so a normal run prints nothing besides the tool's own output.
    """
    environment = os.environ if environment is None else environment
    level_name = environment.get(LOG_LEVEL_ENV, "WARNING").strip().upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.WARNING

    logger = logging.getLogger("baishify")
    logger.setLevel(level)
    if not any(getattr(h, "_baishify", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._baishify = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    logger.propagate = False
