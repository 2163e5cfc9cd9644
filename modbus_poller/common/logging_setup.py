"""
Structured Logging Setup

Every module gets its logger from get_service_logger(); records carry
a `service` field and are written to stdout as JSON lines (default)
or plain text.

Environment:
    MODBUS_POLLER_LOG_LEVEL   DEBUG | INFO | WARNING | ERROR (default INFO)
    MODBUS_POLLER_LOG_FORMAT  json | text (default json)
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

LOG_LEVEL_ENV = "MODBUS_POLLER_LOG_LEVEL"
LOG_FORMAT_ENV = "MODBUS_POLLER_LOG_FORMAT"
LOGGER_PREFIX = "modbus_poller"

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Attributes every LogRecord has; anything else came in through `extra`
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "service"}


class JsonFormatter(logging.Formatter):
    """One JSON object per record, `extra` fields included"""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "service": getattr(record, "service", "unknown"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            (key, value) for key, value in vars(record).items() if key not in _RECORD_ATTRS
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str, ensure_ascii=False)


class ServiceLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that adds service name to all logs"""

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        extra = dict(kwargs.get("extra") or {})
        extra["service"] = self.extra.get("service", "unknown")
        kwargs["extra"] = extra
        return msg, kwargs


def _level(name: str) -> int:
    return getattr(logging, str(name).upper(), logging.INFO)


def _stdout_handler(level: int, json_format: bool) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def setup_logging(
    service_name: str,
    log_level: str = "INFO",
    json_format: bool = True,
) -> logging.Logger:
    """
    Configure the stdout logger of one service.

    Args:
        service_name: Dotted service name (e.g., "device.poller", "storage.local_db")
        log_level: Logging level name
        json_format: JSON lines when True, human-readable text otherwise

    Returns:
        The `modbus_poller.<service_name>` logger
    """
    level = _level(log_level)

    logger = logging.getLogger(f"{LOGGER_PREFIX}.{service_name}")
    logger.setLevel(level)
    logger.handlers.clear()
    logger.addHandler(_stdout_handler(level, json_format))
    # Each service logger owns its handler
    logger.propagate = False

    return logger


def get_service_logger(service_name: str) -> ServiceLoggerAdapter:
    """Logger adapter for a service, configured from the environment"""
    logger = setup_logging(
        service_name,
        os.environ.get(LOG_LEVEL_ENV, "INFO"),
        os.environ.get(LOG_FORMAT_ENV, "json").lower() == "json",
    )
    return ServiceLoggerAdapter(logger, {"service": service_name})


def set_log_level(log_level: str) -> None:
    """Change the level of every poller logger already created"""
    level = _level(log_level)
    for name, logger in logging.Logger.manager.loggerDict.items():
        if name.startswith(f"{LOGGER_PREFIX}.") and isinstance(logger, logging.Logger):
            logger.setLevel(level)
            for handler in logger.handlers:
                handler.setLevel(level)


def log_device_read(
    logger: logging.Logger | logging.LoggerAdapter,
    device_name: str,
    register: str,
    value: Any,
    success: bool = True,
    error: str | None = None,
) -> None:
    """Log a single register read"""
    fields = {"device": device_name, "register": register}
    if success:
        logger.debug(f"Read {device_name}.{register} = {value}", extra={**fields, "value": value})
    else:
        logger.warning(
            f"Failed to read {device_name}.{register}: {error}", extra={**fields, "error": error}
        )


def log_device_failure(
    logger: logging.Logger | logging.LoggerAdapter,
    device_name: str,
    fail_count: int,
    retries: int,
    error: str | None,
) -> None:
    """Log a failed device poll; once past `retries` the device is only waited on"""
    fields = {"device": device_name, "fail_count": fail_count, "error": error}
    if fail_count > retries:
        logger.warning(f"{device_name} not responding, waiting for reconnect...", extra=fields)
    else:
        logger.warning(
            f"{device_name} not responding ({fail_count}/{retries}): {error}", extra=fields
        )


def log_device_data(
    logger: logging.Logger | logging.LoggerAdapter,
    device_name: str,
    slave_id: int,
    data: dict[str, dict[str, dict[str, Any]]],
) -> None:
    """Log the current dataset of a device, one line per category"""
    for category, params in data.items():
        values = ", ".join(
            f"{key}={entry.get('value')}" + (f" {entry['unit']}" if entry.get("unit") else "")
            for key, entry in params.items()
        )
        logger.info(
            f"{device_name.upper()} (ID: {slave_id}) {category}: {values or 'no data'}",
            extra={"device": device_name, "category": category},
        )
