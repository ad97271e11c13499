"""Logging helpers for the dish exporter."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from logging import Handler
from logging.config import dictConfig
from logging.handlers import SysLogHandler
from pathlib import Path
from typing import Any

import msgspec

from .settings import RuntimeConfig

SYSLOG_SOCKET = Path("/dev/log")

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


def _serialise_value(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (tuple, list)):
        # Peer addresses arrive as (host, port) tuples.
        return [_serialise_value(item) for item in value]
    return str(value)


class StructuredLogFormatter(logging.Formatter):
    """One JSON object per line; ``dishexporter.`` is dropped from logger names."""

    PREFIX = "dishexporter."

    def format(self, record: logging.LogRecord) -> str:
        name = record.name.removeprefix(self.PREFIX)
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: dict[str, Any] = {
            "ts": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": name,
            "message": record.getMessage(),
        }

        extra = {
            key: _serialise_value(value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        }
        if extra:
            payload["extra"] = extra
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return msgspec.json.encode(payload).decode("utf-8")


def _build_handler(use_syslog: bool = False) -> Handler:
    if use_syslog and SYSLOG_SOCKET.exists():
        handler = SysLogHandler(address=str(SYSLOG_SOCKET), facility=SysLogHandler.LOG_DAEMON)
        handler.ident = "dishexporter "
        return handler
    return logging.StreamHandler()


def configure_logging(config: RuntimeConfig) -> None:
    """Install the structured handler on the root logger."""

    level_name = "DEBUG" if config.debug_logging else "INFO"

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structured": {
                    "()": "dishexporter.config.logging.StructuredLogFormatter",
                }
            },
            "handlers": {
                "dishexporter": {
                    "()": _build_handler,
                    "use_syslog": config.log_syslog,
                    "level": level_name,
                    "formatter": "structured",
                }
            },
            "root": {
                "level": level_name,
                "handlers": ["dishexporter"],
            },
        }
    )

    logging.getLogger("dishexporter").info("Logging configured at level %s", level_name)
