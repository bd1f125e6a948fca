"""JSON-lines logging for the messaging API, the sim and the message store."""

import json
import logging
import logging.config
import os
from datetime import datetime, timezone
from pathlib import Path

from .config import LOGS_DIR

# Record attributes copied into the JSON line when a call passes them via extra=
CONTEXT_FIELDS = ("user_id", "conversation_id", "message_id", "source")

# Chatty dependencies pinned to WARNING
QUIET_LOGGERS = ("httpx", "httpcore", "aiosqlite", "multipart")


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str, ensure_ascii=False)


def setup_logging(
    log_level: str | None = None,
    log_name: str = "app",
    console: bool = True,
) -> Path:
    """
    Configure root logging to write JSON lines to 04_logs/<log_name>.log.

    Args:
        log_level: Root level. Defaults to LOG_LEVEL env var or INFO.
        log_name: Log file stem, so the API and the sim keep separate files.
        console: Also echo records to stdout.

    Returns:
        Path of the log file.
    """
    level = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_path = LOGS_DIR / f"{log_name}.log"
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handlers = {
        "file": {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": str(log_path),
            "maxBytes": 10 * 1024 * 1024,  # 10 MB
            "backupCount": 5,
            "formatter": "json",
            "encoding": "utf-8",
        },
    }
    if console:
        handlers["console"] = {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "stream": "ext://sys.stdout",
        }

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"json": {"()": JSONFormatter}},
            "handlers": handlers,
            "loggers": {name: {"level": "WARNING"} for name in QUIET_LOGGERS},
            "root": {"level": level, "handlers": list(handlers)},
        }
    )
    return log_path


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
