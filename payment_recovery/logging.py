"""Logging setup and entity-scoped loggers for payment-recovery.

Records can carry the ids of the attempt, payment or batch they concern.
``get_logger(__name__, batch_id=...)`` returns an adapter that attaches
those ids to every record under ``entity``; both formatters render them.
"""

import json
import logging
import sys
from collections.abc import MutableMapping
from datetime import datetime, timezone
from typing import Any, TextIO

PACKAGE_LOGGER = "payment_recovery"

# Held at WARNING whatever the configured level
QUIET_LOGGERS = ("confluent_kafka", "faker")

STANDARD_FORMAT = "%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s | %(message)s"
STANDARD_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _entity_fields(record: logging.LogRecord) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    # ``extra={"extra": {...}}`` from callers that bypass the adapter
    fields.update(getattr(record, "extra", None) or {})
    fields.update(getattr(record, "entity", None) or {})
    return fields


class EntityFormatter(logging.Formatter):
    """Line formatter that appends entity ids as ``[key=value ...]``."""

    def __init__(self) -> None:
        super().__init__(fmt=STANDARD_FORMAT, datefmt=STANDARD_DATEFMT)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = _entity_fields(record)
        if not fields:
            return line
        tags = " ".join(f"{key}={value}" for key, value in sorted(fields.items()))
        head, sep, tail = line.partition("\n")
        return f"{head} [{tags}]{sep}{tail}"


class JsonFormatter(logging.Formatter):
    """One JSON object per record, entity ids as top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        log_data.update(_entity_fields(record))
        return json.dumps(log_data, default=str)


class EntityLogger(logging.LoggerAdapter):
    """Adapter binding entity ids to every record it emits."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra["entity"] = {**self.extra, **(extra.get("entity") or {})}
        kwargs["extra"] = extra
        return msg, kwargs

    def bind(self, **entity: Any) -> "EntityLogger":
        """Return a child adapter with additional ids."""
        return EntityLogger(self.logger, {**self.extra, **entity})


def get_logger(name: str, **entity: Any) -> EntityLogger:
    """Get a logger tagged with the given entity ids.

    Parameters
    ----------
    name : str
        Logger name (usually __name__).
    **entity
        Ids such as ``batch_id`` or ``attempt_id`` added to every record.

    Returns
    -------
    EntityLogger
        Adapter over ``logging.getLogger(name)``.
    """
    return EntityLogger(logging.getLogger(name), entity)


def setup_logging(
    level: str = "INFO",
    format_type: str = "standard",
    stream: TextIO | None = None,
) -> None:
    """Configure logging for payment-recovery.

    Parameters
    ----------
    level : str
        Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL). Unknown names
        fall back to INFO.
    format_type : str
        Format type: "standard" or "json".
    stream : TextIO, optional
        Destination, stdout by default.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    formatter: logging.Formatter = JsonFormatter() if format_type == "json" else EntityFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    logging.getLogger(PACKAGE_LOGGER).setLevel(log_level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
