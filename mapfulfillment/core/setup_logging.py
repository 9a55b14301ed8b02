# mapfulfillment/core/setup_logging.py
"""
Logging configuration module for the map fulfillment pipeline.

Order context (order id, line item id, configuration id, strategy) is passed
per call through ``extra`` and rendered by both the text and the JSON
formatters. Several orders may be processed concurrently, so the context is
never stored globally.
"""

import json
import logging
import os
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler, SysLogHandler
from typing import Any, Dict, Optional

from mapfulfillment.core.config import config

PACKAGE_LOGGER = "mapfulfillment"

# Extra fields rendered when present on a record
CONTEXT_FIELDS = ("order_id", "line_item_id", "config_id", "strategy")

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(module)s:%(lineno)d] - %(message)s"


def _record_context(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        field: getattr(record, field)
        for field in CONTEXT_FIELDS
        if getattr(record, field, None) is not None
    }


def log_context(order=None, line_item=None, **fields: Any) -> Dict[str, Any]:
    """
    Build the ``extra`` mapping of a log call.

    Args:
        order: Order being processed (its ``id`` is used)
        line_item: Line item being processed (its ``id`` is used)
        **fields: Other context fields (config_id, strategy)
    """
    context = {key: value for key, value in fields.items() if value is not None}
    if order is not None:
        context["order_id"] = order.id
    if line_item is not None:
        context["line_item_id"] = line_item.id
    return context


class ContextFormatter(logging.Formatter):
    """Text formatter appending the order context as ``key=value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = _record_context(record)
        if not context:
            return message
        return f"{message} [{' '.join(f'{k}={v}' for k, v in context.items())}]"


class JSONFormatter(logging.Formatter):
    """
    Structured formatter emitting one JSON object per record.

    The order context fields are top-level keys so log pipelines can filter
    on an order or a configuration id.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }
        entry.update(_record_context(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging(
    name: str,
    log_file: Optional[str] = None,
    json_format: bool = False,
    log_level: Any = logging.INFO,
    max_file_size: int = 10 * 1024 * 1024,
    backup_count: int = 10,
) -> logging.Logger:
    """
    Configure a logger with console, rotating file and (when available) syslog output.

    Calling it again replaces the handlers of the logger.

    Args:
        name: Logger name
        log_file: File name inside LOG_DIRECTORY (defaults to ``<name>.log``)
        json_format: Emit JSON records instead of text
        log_level: Logger level
        max_file_size: Size in bytes before the file is rotated
        backup_count: Number of rotated files kept

    Returns:
        logging.Logger: Configured logger

    Raises:
        OSError: If the log directory cannot be created or the file opened
    """
    log_dir = config.LOG_DIRECTORY
    try:
        os.makedirs(log_dir, exist_ok=True)
    except OSError as e:
        raise OSError(f"Failed to create log directory {log_dir}: {e}") from e

    logger = logging.getLogger(name)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = False
    logger.setLevel(log_level)

    formatter = JSONFormatter() if json_format else ContextFormatter(TEXT_FORMAT)
    log_path = os.path.join(log_dir, log_file or f"{name.replace('.', '_')}.log")

    _add_console_handler(logger, formatter)
    _add_file_handler(logger, formatter, log_path, max_file_size, backup_count)
    _add_syslog_handler(logger, formatter)
    return logger


def _add_console_handler(logger: logging.Logger, formatter: logging.Formatter) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def _add_file_handler(
    logger: logging.Logger,
    formatter: logging.Formatter,
    log_path: str,
    max_bytes: int,
    backup_count: int,
) -> None:
    handler = RotatingFileHandler(
        filename=log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def _add_syslog_handler(
    logger: logging.Logger, formatter: logging.Formatter, address: str = "/dev/log"
) -> None:
    # Syslog is optional (containers, macOS)
    if not os.path.exists(address):
        return
    try:
        handler = SysLogHandler(address=address)
    except OSError as e:
        logger.debug(f"Syslog handler could not be configured: {e}")
        return
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def setup_default_logging(json_format: Optional[bool] = None) -> logging.Logger:
    """
    Get the package logger configured from LOG_LEVEL and LOG_JSON_FORMAT.

    The logger is configured on first use only; later calls return it as is.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    if logger.handlers and json_format is None:
        return logger
    if json_format is None:
        json_format = config.LOG_JSON_FORMAT
    return setup_logging(PACKAGE_LOGGER, json_format=json_format, log_level=config.LOG_LEVEL)
