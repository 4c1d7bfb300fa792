"""Structured logging setup for the API process.

Log calls keep their human-readable message and attach context with
``extra=``; every extra key ends up as a top-level JSON field:

    logger.info(f"Credited {amount} credits", extra={"user_id": user_id, "balance": 12})
"""

import json
import logging
from datetime import datetime, timezone

from roomvision.core.config import settings

# Attributes every LogRecord has; anything else on a record came from ``extra=``
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """Render a record as one JSON object per line."""

    def __init__(self, service: str = ""):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self.service:
            entry["service"] = self.service

        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRS and not key.startswith("_"):
                entry[key] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


def configure_logging() -> None:
    """Install a single JSON stream handler on the root logger."""
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter(service=settings.PROJECT_NAME.lower()))
    root = logging.getLogger()
    root.setLevel(settings.LOG_LEVEL.upper())
    root.handlers = [handler]
