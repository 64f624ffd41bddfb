"""Logging setup: JSON records to a rotating file, JSON or plain text to stdout."""

import json
import logging
import logging.config
import os
from datetime import datetime, timezone
from pathlib import Path

from .config import DEFAULT_LOG_PATH

CONSOLE_FORMATS = ("json", "text")
TEXT_FORMAT = "%(asctime)s %(levelname)-7s [%(threadName)s] %(name)s: %(message)s"

# Chatty third-party loggers and the level they are capped at
QUIET_LOGGERS = {
    "paho": "WARNING",  # every PUBLISH/PUBACK at DEBUG
    "uvicorn.access": "WARNING",
}


class JSONFormatter(logging.Formatter):
    """One JSON object per record; ``extra={"context": {...}}`` is kept as a nested object."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        context = getattr(record, "context", None)
        if context:
            entry["context"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        # metrics may carry non-JSON values such as enums
        return json.dumps(entry, default=str)


def setup_logging(
    log_level: str | None = None,
    log_file: str | None = None,
    console_format: str | None = None,
) -> None:
    """
    Configure the root logger for a connector run.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL.
                   Defaults to LOG_LEVEL env var or INFO.
        log_file: Rotating JSON log file. Defaults to LOG_FILE env var or
                  04_logs/cloud-connector.log.
        console_format: "json" or "text" for stdout.
                        Defaults to LOG_FORMAT env var or text.
    """
    log_level = (log_level or os.getenv("LOG_LEVEL") or "INFO").upper()
    log_file = log_file or os.getenv("LOG_FILE") or str(DEFAULT_LOG_PATH)
    console_format = (console_format or os.getenv("LOG_FORMAT") or "text").lower()
    if console_format not in CONSOLE_FORMATS:
        raise ValueError(
            f"Unknown console log format {console_format!r}, expected one of {', '.join(CONSOLE_FORMATS)}"
        )

    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {"()": "cloud_connector.logging_config.JSONFormatter"},
                "text": {"format": TEXT_FORMAT},
            },
            "handlers": {
                "file": {
                    "class": "logging.handlers.RotatingFileHandler",
                    "filename": log_file,
                    "maxBytes": 5 * 1024 * 1024,
                    "backupCount": 3,
                    "formatter": "json",
                    "encoding": "utf-8",
                },
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": console_format,
                    "stream": "ext://sys.stdout",
                },
            },
            "loggers": {name: {"level": level} for name, level in QUIET_LOGGERS.items()},
            "root": {"level": log_level, "handlers": ["file", "console"]},
        }
    )


def get_logger(name: str) -> logging.Logger:
    """Module logger; handlers live on the root logger."""
    return logging.getLogger(name)
