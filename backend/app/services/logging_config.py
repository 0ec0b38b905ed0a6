"""Structured logging configuration for the Dowee profitability API."""
import logging
import json
import sys
from datetime import datetime, timezone

# Attributes copied from ``extra={...}`` into the JSON line when present.
_EXTRA_FIELDS = (
    "request_id",
    "duration_ms",
    "function",
    "http_method",
    "http_path",
    "http_status",
    "employee_id",
    "scope",
)


class JSONFormatter(logging.Formatter):
    """JSON structured log formatter for production."""
    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        for name in _EXTRA_FIELDS:
            if hasattr(record, name):
                log_entry[name] = getattr(record, name)
        return json.dumps(log_entry, default=str)


def setup_logging(level: str = "INFO", json_output: bool = True):
    """Configure application logging."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
        ))

    root.handlers = [handler]

    for name in ["uvicorn.access", "httpcore", "httpx", "sqlalchemy.engine"]:
        logging.getLogger(name).setLevel(logging.WARNING)
