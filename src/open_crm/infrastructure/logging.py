"""
Logging utilities for the CLI and API runtime.
"""

from __future__ import annotations

import logging
import time
from contextvars import ContextVar

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(request_id)s%(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)


class RequestIdFilter(logging.Filter):
    """Stamp records with the id of the HTTP request being served, if any."""

    def filter(self, record: logging.LogRecord) -> bool:
        request_id = request_id_var.get()
        record.request_id = f"[{request_id}] " if request_id else ""
        return True


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


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once; later calls only change the level."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    if any(isinstance(f, RequestIdFilter) for h in root.handlers for f in h.filters):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    handler.addFilter(RequestIdFilter())
    root.addHandler(handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").addFilter(HealthLiveAccessFilter(min_interval_seconds=120.0))
