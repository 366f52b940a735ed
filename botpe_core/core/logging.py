"""
Logging Setup

One stdlib root handler for the whole process. API and persistence code
logs through ``logging`` with ``extra=...``; the WhatsApp and security
modules use structlog, which is routed through the same handler.

Formats:
    json    one JSON object per line, for log shipping
    pretty  colored single lines for local development
    simple  plain single lines, used by the test suite
"""

import json
import logging
import os
import sys
import traceback
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

import structlog


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    JSON = "json"
    PRETTY = "pretty"
    SIMPLE = "simple"


SERVICE_NAME = os.getenv("SERVICE_NAME", "botpe-api")
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

# Tenant and resource ids lifted to the top level of JSON records
CONTEXT_FIELDS = ("request_id", "user_id", "organization_id", "bot_id", "account_id")

# Everything a bare LogRecord has; other attributes arrived through ``extra``
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

_NOISY_LOGGERS = ("httpx", "httpcore", "asyncio", "aiosqlite", "sqlalchemy.engine")


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }


# =============================================================================
# Formatters
# =============================================================================


class JSONFormatter(logging.Formatter):
    """Render a record as a single JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        extra = _extra_fields(record)
        entry: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": SERVICE_NAME,
            "environment": ENVIRONMENT,
        }
        for key in CONTEXT_FIELDS:
            value = extra.pop(key, None)
            if value:
                entry[key] = value
        if extra:
            entry["context"] = extra

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, _ = record.exc_info
            entry["error"] = {"type": exc_type.__name__, "message": str(exc_value)}
            entry["stack_trace"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(entry, default=str)


class PrettyFormatter(logging.Formatter):
    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"
    DIM = "\033[90m"

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.utcnow().strftime("%H:%M:%S.%f")[:-3]
        color = self.COLORS.get(record.levelname, "")
        line = (
            f"{timestamp} {color}{record.levelname:<8}{self.RESET} "
            f"{self.DIM}{record.name}{self.RESET} {record.getMessage()}"
        )

        extra = _extra_fields(record)
        if extra:
            line += "  " + " ".join(f"{k}={v}" for k, v in extra.items())
        if record.exc_info:
            line += "\n" + "".join(traceback.format_exception(*record.exc_info))
        return line


class SimpleFormatter(logging.Formatter):
    def __init__(self):
        super().__init__("%(asctime)s [%(levelname)s] %(name)s: %(message)s")


_FORMATTERS = {
    LogFormat.JSON: JSONFormatter,
    LogFormat.PRETTY: PrettyFormatter,
    LogFormat.SIMPLE: SimpleFormatter,
}


# =============================================================================
# Setup
# =============================================================================


def _configure_structlog(log_format: LogFormat) -> None:
    if log_format == LogFormat.JSON:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=log_format == LogFormat.PRETTY)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def setup_logging(
    level: str = "INFO",
    format: str = "pretty",
    service_name: Optional[str] = None,
) -> None:
    """
    Configure process-wide logging.

    Safe to call more than once; the root handler is replaced each time.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        format: json, pretty or simple (unknown values fall back to simple)
        service_name: Overrides ``SERVICE_NAME`` in JSON records
    """
    global SERVICE_NAME
    if service_name:
        SERVICE_NAME = service_name

    try:
        log_format = LogFormat(getattr(format, "value", format).lower())
    except ValueError:
        log_format = LogFormat.SIMPLE
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_FORMATTERS[log_format]())

    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(log_level)

    _configure_structlog(log_format)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root.debug(
        "Logging configured",
        extra={"level": logging.getLevelName(log_level), "format": log_format.value},
    )


__all__ = [
    "LogLevel",
    "LogFormat",
    "JSONFormatter",
    "PrettyFormatter",
    "SimpleFormatter",
    "setup_logging",
]
