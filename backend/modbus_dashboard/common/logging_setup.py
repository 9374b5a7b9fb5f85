"""
Structured Logging Setup

All backend loggers live under the "modbus_dashboard" package logger,
which owns the only handler. Output is one JSON object per line unless
MODBUS_DASHBOARD_LOG_FORMAT=text.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

ROOT_LOGGER_NAME = "modbus_dashboard"

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Attributes every LogRecord has; anything else arrived through extra=
_RECORD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime", "service"}


class JsonFormatter(logging.Formatter):
    """One JSON object per record, extra fields flattened in"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "service": getattr(record, "service", record.name),
            "message": record.getMessage(),
        }
        log_data.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS
        )

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ServiceLoggerAdapter(logging.LoggerAdapter):
    """Stamps the service name on every record"""

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        kwargs["extra"] = {**kwargs.get("extra", {}), "service": self.extra["service"]}
        return msg, kwargs


def setup_logging(log_level: str | None = None, json_format: bool | None = None) -> logging.Logger:
    """
    Configure the package logger.

    Args:
        log_level: Level name; defaults to MODBUS_DASHBOARD_LOG_LEVEL or INFO
        json_format: JSON output; defaults to MODBUS_DASHBOARD_LOG_FORMAT != "text"

    Returns:
        The package logger. Calling again replaces the handler.
    """
    if log_level is None:
        log_level = os.environ.get("MODBUS_DASHBOARD_LOG_LEVEL", "INFO")
    if json_format is None:
        json_format = os.environ.get("MODBUS_DASHBOARD_LOG_FORMAT", "json").lower() != "text"

    handler = logging.StreamHandler(sys.stdout)
    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root.handlers = [handler]
    root.propagate = False
    return root


def get_service_logger(service_name: str) -> ServiceLoggerAdapter:
    """
    Logger for one component, e.g. "device.manager" or "api".

    Configures the package logger from the environment on first use.
    """
    if not logging.getLogger(ROOT_LOGGER_NAME).handlers:
        setup_logging()
    logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.{service_name}")
    return ServiceLoggerAdapter(logger, {"service": service_name})


def _device_extra(endpoint: str, register: str, value: Any = None) -> dict[str, Any]:
    extra = {"device": endpoint, "register": register}
    if value is not None:
        extra["value"] = value
    return extra


def log_device_read(
    logger: logging.LoggerAdapter,
    endpoint: str,
    register: str,
    value: Any = None,
    success: bool = True,
) -> None:
    """Successful reads at DEBUG, failures at WARNING"""
    if success:
        logger.debug(f"Read {endpoint} {register} = {value}", extra=_device_extra(endpoint, register, value))
    else:
        logger.warning(f"Failed to read {endpoint} {register}", extra=_device_extra(endpoint, register))


def log_device_write(
    logger: logging.LoggerAdapter,
    endpoint: str,
    register: str,
    value: Any,
    success: bool = True,
) -> None:
    """Writes at INFO, failures at ERROR"""
    extra = _device_extra(endpoint, register, value)
    if success:
        logger.info(f"Write {endpoint} {register} = {value}", extra=extra)
    else:
        logger.error(f"Failed to write {endpoint} {register} = {value}", extra=extra)
