"""Structured logging configuration for Appointly."""

from __future__ import annotations

import logging
import sys

from appointly.tenancy.middleware import current_tenant
from appointly.utils.time import utc_now

_CONTEXT_KEYS = ("request_id", "tenant", "method", "path", "status_code", "duration_ms")


class StructuredFormatter(logging.Formatter):
    """Formats log records as key=value lines carrying request context."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": utc_now().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)

        # Include request context if middleware injects it.
        for key in _CONTEXT_KEYS:
            value = getattr(record, key, None)
            if value is not None:
                log_entry[key] = value

        # Records emitted while a tenant request is in flight carry its domain.
        if "tenant" not in log_entry:
            tenant = current_tenant.get()
            if tenant is not None:
                log_entry["tenant"] = tenant.domain

        parts = [
            f"[{log_entry['level']:<7}]",
            f"{log_entry['timestamp']}",
            f"{log_entry['logger']}:",
            f"{log_entry['message']}",
        ]
        for key in _CONTEXT_KEYS:
            if key in log_entry:
                parts.append(f"{key}={log_entry[key]}")

        if "exception" in log_entry:
            parts.append(f"\n{log_entry['exception']}")

        return " ".join(parts)


def setup_logging(level: str = "INFO") -> None:
    """Configure structured logging for the application."""
    root_logger = logging.getLogger()

    # Avoid adding handlers multiple times
    if root_logger.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter())
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Quiet noisy third-party loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
