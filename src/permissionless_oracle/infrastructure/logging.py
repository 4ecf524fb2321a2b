"""
Logging utilities for the API and CLI runtime.
"""

from __future__ import annotations

import logging
import time

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

_NOISY_LOGGERS = ("uvicorn", "uvicorn.error", "httpx", "httpcore", "openai", "asyncio")


class HealthLiveAccessFilter(logging.Filter):
    """Throttle /health/live access log entries to reduce log noise."""

    def __init__(self, min_interval_seconds: float = 120.0) -> None:
        super().__init__()
        self._min_interval_seconds = min_interval_seconds
        self._last_logged: float | None = None

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if "/health/live" not in message:
            return True

        now = time.monotonic()
        if self._last_logged is None or (now - self._last_logged) >= self._min_interval_seconds:
            self._last_logged = now
            return True

        return False


def configure_logging(level: str = "INFO", *, force: bool = False) -> None:
    """Configure the root logger with the structured pipe-separated format."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        force=force,
    )

    access_logger = logging.getLogger("uvicorn.access")
    if not any(isinstance(f, HealthLiveAccessFilter) for f in access_logger.filters):
        access_logger.addFilter(HealthLiveAccessFilter(min_interval_seconds=120.0))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("permissionless_oracle").setLevel(getattr(logging, level.upper(), logging.INFO))
