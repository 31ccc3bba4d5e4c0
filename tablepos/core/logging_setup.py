from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import IO, Optional

from tablepos.core.config import LOG_LEVEL
from tablepos.core.request_context import get_request_id, get_table_id

# (pattern, replacement) pairs applied to every rendered message
_MASKS = [
    (re.compile(r"(authorization\s*[:=]\s*bearer\s+)[^\s\"]+", re.IGNORECASE), r"\1***"),
    (re.compile(r"((?:token|password|secret|cvv|cvc)\s*[:=]\s*)[^\s\",}]+", re.IGNORECASE), r"\1***"),
    # card numbers keep their last four digits
    (re.compile(r"\b(?:\d[ -]?){9,15}(\d{4})\b"), r"****\1"),
]

# attributes passed through ``extra=`` by the access log and the ordering flow
_EXTRA_FIELDS = ("endpoint", "method", "status_code", "duration_ms", "order_id", "event")


def mask_sensitive(text: str) -> str:
    for pattern, replacement in _MASKS:
        text = pattern.sub(replacement, text)
    return text


class JsonFormatter(logging.Formatter):
    """One JSON object per record, tagged with the current request and table."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.name,
            "request_id": getattr(record, "request_id", None) or get_request_id(),
            "table_id": getattr(record, "table_id", None) or get_table_id(),
            "message": mask_sensitive(record.getMessage()),
        }
        entry.update(
            (name, getattr(record, name)) for name in _EXTRA_FIELDS if getattr(record, name, None) is not None
        )
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def configure_logging(level: Optional[str] = None, stream: Optional[IO[str]] = None) -> None:
    level = (level or LOG_LEVEL).upper()
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers[:] = [handler]
    root_logger.setLevel(level)
    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(logger_name).setLevel(level)
