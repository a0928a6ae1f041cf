"""METRICSNAP — Structured JSON Logging.

Every module logs through ``get_logger("<area>")``; all of them share one
stdout handler on the ``metricsnap`` logger. Refresh context travels as
``extra={...}`` and is flattened into the JSON line.
"""

import json
import logging
import sys
from datetime import datetime, timezone

from metricsnap.config import settings

ROOT_LOGGER = "metricsnap"

EXTRA_FIELDS = (
    "snapshot_id",
    "refresh_type",
    "account",
    "batch",
    "duration_ms",
    "status_code",
)


class JSONFormatter(logging.Formatter):
    """One JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in EXTRA_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_entry[key] = value
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def _configure_root() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
        root.addHandler(handler)
        root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    return root


def get_logger(name: str) -> logging.Logger:
    """Return ``metricsnap.<name>``, logging JSON to stdout."""
    _configure_root()
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
