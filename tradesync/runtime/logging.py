from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any

from tradesync.common.logging import sanitize_text, sanitize_value

RESERVED_RECORD_FIELDS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """One JSON object per line; ``extra`` fields are copied alongside the message."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": sanitize_text(record.getMessage()),
        }
        payload.update(
            (key, sanitize_value(value))
            for key, value in vars(record).items()
            if key not in RESERVED_RECORD_FIELDS and not key.startswith("_")
        )
        if record.exc_info:
            payload["exception"] = sanitize_text(self.formatException(record.exc_info))

        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logger(level: str | None = None) -> logging.Logger:
    logger = logging.getLogger("tradesync")
    resolved = (level or os.getenv("LOG_LEVEL", "INFO")).strip().upper()
    logger.setLevel(getattr(logging, resolved, logging.INFO))

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())

    logger.handlers.clear()
    logger.addHandler(handler)
    logger.propagate = False

    return logger
