"""
Logging configuration.

- Local runs: human-readable format
- Deployed: JSON format (LOG_JSON=true)
- Log level: controlled via LOG_LEVEL env variable
"""

import json
import logging
import sys
from datetime import datetime, timezone


class JSONFormatter(logging.Formatter):
    """JSON log formatter for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        for key in ("job_id", "instance_id", "session_id", "config_id"):
            val = getattr(record, key, None)
            if val is not None:
                log_entry[key] = val
        return json.dumps(log_entry, ensure_ascii=False)


class ReadableFormatter(logging.Formatter):
    """Human-readable formatter for local development."""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.now().strftime("%H:%M:%S")
        base = f"{ts} {record.levelname:<8} {record.name}: {record.getMessage()}"
        if record.exc_info and record.exc_info[0] is not None:
            base += "\n" + self.formatException(record.exc_info)
        return base


def configure_logging(level_name: str = "INFO", json_logs: bool = False) -> None:
    level = getattr(logging, level_name.upper(), logging.INFO)

    root = logging.getLogger()
    # Remove existing handlers to prevent duplicates on reload
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if json_logs else ReadableFormatter())
    handler.setLevel(level)
    root.addHandler(handler)
    root.setLevel(level)

    # Quieten noisy libraries
    for noisy in ("sqlalchemy.engine", "apscheduler", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    root.info("Logging configured: level=%s format=%s", level_name, "JSON" if json_logs else "readable")
