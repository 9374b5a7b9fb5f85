"""
Common Utilities

Shared modules used across the backend:
- config.py - Data model and limits
- settings.py - Environment settings
- exceptions.py - Custom exception classes
- logging_setup.py - Structured logging setup
"""

from .config import (
    ConnectionResult,
    ConnectionState,
    ConnectionStatus,
    DeviceConfig,
    RegisterKind,
    RegisterReadRequest,
    RegisterValue,
    WriteKind,
)
from .exceptions import (
    CommunicationError,
    ConfigError,
    DeviceError,
    ErrorKind,
    ModbusDashboardError,
    ProtocolError,
    UnknownDeviceError,
    ValidationError,
)
from .logging_setup import (
    get_service_logger,
    log_device_read,
    log_device_write,
    setup_logging,
)

__all__ = [
    # Config
    "ConnectionResult",
    "ConnectionState",
    "ConnectionStatus",
    "DeviceConfig",
    "RegisterKind",
    "RegisterReadRequest",
    "RegisterValue",
    "WriteKind",
    # Exceptions
    "CommunicationError",
    "ConfigError",
    "DeviceError",
    "ErrorKind",
    "ModbusDashboardError",
    "ProtocolError",
    "UnknownDeviceError",
    "ValidationError",
    # Logging
    "get_service_logger",
    "log_device_read",
    "log_device_write",
    "setup_logging",
]
