"""
Logging setup for the parallel CSV bulk loader.

Most log lines come from worker threads, so the console format carries the
thread name next to the logger. `--json-logs` switches to one JSON object per
line, with any `extra=` fields lifted to the top level. Logs always go to
stderr so `bulk-loader load --json` can keep stdout for the result.

Usage:
    from bulk_loader.utils.logging import configure_logging, get_logger

    configure_logging(level="DEBUG", json_logs=True)
    log = get_logger(__name__)
    log.info("[LOAD START] table=records", extra={"workers": 8})
"""

from __future__ import annotations

import json
import logging
import logging.config
from typing import Any, Dict, Optional

CONSOLE_FORMAT = "%(asctime)s | %(levelname)s | %(threadName)s | %(name)s | %(message)s"
CONSOLE_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Loggers that are too chatty at the application level.
_QUIET_LOGGERS = ("psycopg.pool",)

# Attributes every LogRecord carries; anything else arrived through `extra=`.
_STANDARD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime", "taskName"}


def _json_formatter(record: logging.LogRecord) -> str:
    """Serialize one record; `extra=` keys and a nested `record.extra` dict are merged in."""
    payload: Dict[str, Any] = {
        "level": record.levelname,
        "logger": record.name,
        "thread": record.threadName,
        "message": record.getMessage(),
    }
    payload.update(
        (key, value)
        for key, value in vars(record).items()
        if key not in _STANDARD_ATTRS and key != "extra"
    )
    nested = getattr(record, "extra", None)
    if isinstance(nested, dict):
        payload.update(nested)
    if record.exc_info:
        payload["exc_info"] = logging.Formatter().formatException(record.exc_info)
    if record.stack_info:
        payload["stack_info"] = record.stack_info
    return json.dumps(payload, default=str)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        return _json_formatter(record)


def _build_config(level: str, json_logs: bool) -> Dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {"format": CONSOLE_FORMAT, "datefmt": CONSOLE_DATEFMT},
            "json": {"()": JsonFormatter},
        },
        "handlers": {
            "stderr": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stderr",
                "formatter": "json" if json_logs else "console",
                "level": level,
            }
        },
        "root": {"handlers": ["stderr"], "level": level},
        "loggers": {name: {"level": "WARNING"} for name in _QUIET_LOGGERS},
    }


def configure_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """
    Install the root handler.

    Parameters
    ----------
    level : str
        Level name such as "DEBUG" or "INFO"; `Settings.effective_log_level`
        already folds the `debug` flag into it.
    json_logs : bool
        Emit JSON lines instead of the console format.
    """
    logging.config.dictConfig(_build_config(level.upper(), json_logs))


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger", "JsonFormatter"]
