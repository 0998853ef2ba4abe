"""
Structured logging for jobaudit.

Modules log through ``logging.getLogger(__name__)``; this module only wires
a handler onto the ``jobaudit`` logger. With JSON output enabled each record
becomes one JSON object carrying the known structured extras.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Optional

STRUCTURED_FIELDS = (
    "template_id",
    "pack_id",
    "input_hash_short",
    "decision",
    "confidence",
    "outcome",
    "duration_ms",
    "cache_key_short",
    "run_id",
    "fixture_id",
)


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in STRUCTURED_FIELDS:
            if hasattr(record, name):
                log_entry[name] = getattr(record, name)
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def configure_logging(level: str = "INFO", json_output: bool = False,
                      handler: Optional[logging.Handler] = None) -> logging.Logger:
    """Attach a single handler to the package logger and set its level."""
    logger = logging.getLogger("jobaudit")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
    handler = handler or logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
    logger.addHandler(handler)
    return logger
