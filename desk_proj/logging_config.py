"""
Logging configuration.

Development gets human-readable console lines, production gets one JSON
object per line on stdout.

Environment variables:
- LOG_FORMAT: "json" or "console" (default: json unless DEBUG)
- LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO, DEBUG when DEBUG)
"""
import json
import logging
import os
from datetime import datetime, timezone

APP_LOGGERS = ("gateway", "journal", "api")

STANDARD_ATTRS = {
    "name", "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "lineno", "funcName", "created",
    "msecs", "relativeCreated", "thread", "threadName", "taskName",
    "processName", "process", "exc_info", "exc_text", "stack_info",
    "message",
}


def get_logging_config(debug: bool = False) -> dict:
    """Build Django's LOGGING dict."""
    log_level = os.environ.get("LOG_LEVEL", "DEBUG" if debug else "INFO")
    log_format = os.environ.get("LOG_FORMAT", "console" if debug else "json")

    config = {
        "version": 1,
        "disable_existing_loggers": False,
    }

    if log_format == "json":
        config["formatters"] = {"json": {"()": "desk_proj.logging_config.JsonFormatter"}}
        handler = {"class": "logging.StreamHandler", "formatter": "json", "stream": "ext://sys.stdout"}
    else:
        config["formatters"] = {
            "verbose": {"format": "[{asctime}] {levelname} {name} {message}", "style": "{"},
        }
        handler = {"class": "logging.StreamHandler", "formatter": "verbose"}
    config["handlers"] = {"console": handler, "null": {"class": "logging.NullHandler"}}

    config["loggers"] = {
        "": {"handlers": ["console"], "level": log_level},
        "django": {"handlers": ["console"], "level": log_level, "propagate": False},
        "django.request": {
            "handlers": ["console"],
            "level": log_level if debug else "ERROR",
            "propagate": False,
        },
        "django.db.backends": {"handlers": ["null"], "level": "INFO", "propagate": False},
    }
    for name in APP_LOGGERS:
        config["loggers"][name] = {"handlers": ["console"], "level": log_level, "propagate": False}

    return config


class JsonFormatter(logging.Formatter):
    """One JSON object per record; ``extra=`` fields go under ``"extra"``."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        extras = {}
        for key, value in record.__dict__.items():
            if key in STANDARD_ATTRS:
                continue
            try:
                json.dumps(value)
                extras[key] = value
            except (TypeError, ValueError):
                extras[key] = str(value)
        if extras:
            entry["extra"] = extras

        return json.dumps(entry, default=str)
