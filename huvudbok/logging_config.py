"""
Loggkonfiguration

- console: läsbar utskrift för utveckling
- json: en JSON-rad per händelse för loggaggregering

Styrs av LOG_LEVEL och LOG_FORMAT (se huvudbok.config).

Biblioteket konfigurerar aldrig loggning själv; tjänsterna loggar bara
via logging.getLogger(__name__). configure_logging() anropas en gång av
den applikation som använder huvudboken, t.ex. vid uppstart av en
webbtjänst eller ett skript. Utan anropet gäller applikationens egen
loggkonfiguration.
"""
import json
import logging
import logging.config
from datetime import datetime
from typing import Optional

from huvudbok.config import LOG_LEVEL, LOG_FORMAT

# Attribut som alltid finns på en LogRecord
_STANDARD_ATTRS = {
    "name", "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "lineno", "funcName", "created",
    "msecs", "relativeCreated", "thread", "threadName", "taskName",
    "processName", "process", "exc_info", "exc_text", "stack_info",
    "message",
}


class JsonFormatter(logging.Formatter):
    """
    JSON-formatterare

    Fält: timestamp, level, logger, message samt eventuella
    extra-fält (t.ex. period_id, actor_id).
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extras = {}
        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS:
                continue
            try:
                json.dumps(value)
                extras[key] = value
            except (TypeError, ValueError):
                extras[key] = str(value)

        if extras:
            log_entry["extra"] = extras

        return json.dumps(log_entry, default=str)


def get_logging_config(level: Optional[str] = None, fmt: Optional[str] = None) -> dict:
    """Bygg en dictConfig för applikationens loggers"""
    level = (level or LOG_LEVEL).upper()
    fmt = fmt or LOG_FORMAT

    if fmt == "json":
        formatters = {"default": {"()": "huvudbok.logging_config.JsonFormatter"}}
    else:
        formatters = {
            "default": {
                "format": "[{asctime}] {levelname} {name} {message}",
                "style": "{",
            }
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "huvudbok": {
                "handlers": ["console"],
                "level": level,
                "propagate": False,
            },
            "sqlalchemy.engine": {
                "handlers": ["console"],
                "level": "WARNING",
                "propagate": False,
            },
        },
    }


def configure_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> None:
    """Aktivera loggkonfigurationen"""
    logging.config.dictConfig(get_logging_config(level, fmt))
