"""TOGGLES FILE PURPOSE
Purpose: logging setup with strict debug gating, plus compact flag batch rendering for log lines.
Hot path: yes (store/notify paths log failures; default is quiet).
Feature flags: TOGGLES_DEBUG, TOGGLES_LOG_LEVEL.
Failure mode: never crash due to logging; unknown level name => WARNING.
"""

from __future__ import annotations

import logging
from typing import Iterable

from core.config import log_level

_SUMMARY_LIMIT = 5


def _configure() -> logging.Logger:
    logger = logging.getLogger("feature_toggles")
    if logger.handlers:
        return logger

    handler = logging.StreamHandler()
    fmt = "%(asctime)s %(levelname)s %(name)s %(message)s"
    handler.setFormatter(logging.Formatter(fmt))
    logger.addHandler(handler)
    level = logging.getLevelName(log_level())
    logger.setLevel(level if isinstance(level, int) else logging.WARNING)
    return logger


logger = _configure()


def flag_summary(flags: Iterable[object]) -> str:
    """Render a batch as `name[service]=raw,...` for log lines, truncated after a few flags."""
    parts: list[str] = []
    total = 0
    for f in flags:
        total += 1
        if total > _SUMMARY_LIMIT:
            continue
        name = getattr(f, "name", "?")
        service = getattr(f, "service_name", "")
        label = f"{name}[{service}]" if service else name
        parts.append(f"{label}={getattr(f, 'raw_value', '')}")
    if total > _SUMMARY_LIMIT:
        parts.append(f"+{total - _SUMMARY_LIMIT} more")
    return ",".join(parts)
