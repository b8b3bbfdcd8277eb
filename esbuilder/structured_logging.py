"""Logging configuration.

Modules log through ``logging.getLogger(__name__)``; this module only
decides where those records go and in what format.
"""

from __future__ import annotations

import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Loggers that get DEBUG level when settings.DEBUG is on.
DEBUG_LOGGERS = ("esbuilder", "elastic_transport")


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(
        self,
        service_name: str = "esbuilder",
        include_stack_trace: bool = True,
    ):
        super().__init__()
        self.service_name = service_name
        self.include_stack_trace = include_stack_trace

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
        }

        log_entry["location"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
        }

        if hasattr(record, "extra_fields"):
            log_entry["extra"] = record.extra_fields

        if record.exc_info and self.include_stack_trace:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "stacktrace": traceback.format_exception(*record.exc_info),
            }

        return json.dumps(log_entry, default=str)


def setup_structured_logging(
    service_name: str = "esbuilder",
    level: int = logging.INFO,
    json_output: bool = True,
    logger_name: str = "esbuilder",
) -> logging.Logger:
    """Attach one stdout handler to ``logger_name`` and return the logger."""
    target = logging.getLogger(logger_name)
    target.setLevel(level)

    for handler in target.handlers[:]:
        target.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)

    if json_output:
        formatter: logging.Formatter = StructuredFormatter(service_name=service_name)
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    console_handler.setFormatter(formatter)
    target.addHandler(console_handler)
    return target


def configure_from_settings(settings: Optional[Any] = None) -> None:
    """Apply ``LOG_LEVEL``/``LOG_JSON``/``DEBUG`` from settings.

    DEBUG also turns on the transport logger so each request to the
    cluster is traced.
    """
    if settings is None:
        from esbuilder.config import get_settings

        settings = get_settings()

    level = logging.getLevelName(str(settings.LOG_LEVEL).upper())
    if not isinstance(level, int):
        level = logging.INFO

    if settings.DEBUG:
        level = logging.DEBUG
        for name in DEBUG_LOGGERS:
            logging.getLogger(name).setLevel(logging.DEBUG)

    if settings.LOG_JSON:
        setup_structured_logging(level=level, json_output=True)
    else:
        logging.getLogger("esbuilder").setLevel(level)
