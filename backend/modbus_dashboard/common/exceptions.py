"""
Custom Exception Classes for the Modbus Dashboard

Hierarchical exception structure shared by the connection manager,
the config store and the HTTP layer.
"""

from enum import Enum
from typing import Any

from modbus_dashboard.common.config import DeviceConfig


class ErrorKind(str, Enum):
    """Classified causes of a failed device operation"""
    CONNECTION_REFUSED = "connection-refused"
    CONNECTION_TIMEOUT = "connection-timeout"
    HOST_UNREACHABLE = "host-unreachable"
    HOST_NOT_FOUND = "host-not-found"
    CONNECTION_LOST = "connection-lost"
    ILLEGAL_ADDRESS = "illegal-address"
    ILLEGAL_VALUE = "illegal-value"
    UNKNOWN = "unknown"

    @property
    def is_connection_error(self) -> bool:
        return self in CONNECTION_ERROR_KINDS


CONNECTION_ERROR_KINDS = frozenset({
    ErrorKind.CONNECTION_REFUSED,
    ErrorKind.CONNECTION_TIMEOUT,
    ErrorKind.HOST_UNREACHABLE,
    ErrorKind.HOST_NOT_FOUND,
    ErrorKind.CONNECTION_LOST,
})


# Message templates. All of them name the configured endpoint so an
# operator can diagnose the problem from the UI alone.
ERROR_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.CONNECTION_REFUSED: (
        "Connection refused by {host}:{port} (slave ID {unit_id}). "
        "Check that the device is running and accepts Modbus TCP on port {port}."
    ),
    ErrorKind.CONNECTION_TIMEOUT: (
        "Connection timeout. Device at {host}:{port} (slave ID {unit_id}) "
        "did not respond within {timeout_ms} ms. Check network connectivity."
    ),
    ErrorKind.HOST_UNREACHABLE: (
        "Host {host} is unreachable (port {port}, slave ID {unit_id}). "
        "Check cabling, routing and the configured IP address."
    ),
    ErrorKind.HOST_NOT_FOUND: (
        "Host not found: {host} (port {port}, slave ID {unit_id}). "
        "Check the IP address."
    ),
    ErrorKind.CONNECTION_LOST: (
        "Connection to {host}:{port} (slave ID {unit_id}) was lost during the request. "
        "The device may have closed the socket or been restarted."
    ),
    ErrorKind.ILLEGAL_ADDRESS: (
        "Invalid address {address} for register type {register_type} on "
        "{host}:{port} (slave ID {unit_id}). The device rejected the address range."
    ),
    ErrorKind.ILLEGAL_VALUE: (
        "Invalid {subject} for address {address} on "
        "{host}:{port} (slave ID {unit_id}). The device rejected the request value."
    ),
    ErrorKind.UNKNOWN: (
        "Modbus request to {host}:{port} (slave ID {unit_id}) failed: {detail}"
    ),
}


class ModbusDashboardError(Exception):
    """Base exception for all dashboard backend errors"""

    def __init__(self, message: str, recoverable: bool = True):
        self.message = message
        self.recoverable = recoverable
        super().__init__(message)


class ValidationError(ModbusDashboardError):
    """Invalid request or configuration field, rejected before any I/O"""

    def __init__(self, message: str, errors: list[str] | None = None):
        self.errors = errors or [message]
        super().__init__(message, recoverable=False)


class ConfigError(ModbusDashboardError):
    """Configuration-related errors"""

    def __init__(self, message: str, recoverable: bool = False):
        super().__init__(f"Config Error: {message}", recoverable)


class DeviceError(ModbusDashboardError):
    """Device communication errors"""

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        host: str | None = None,
        port: int | None = None,
        unit_id: int | None = None,
        recoverable: bool = True,
    ):
        self.kind = kind
        self.host = host
        self.port = port
        self.unit_id = unit_id
        super().__init__(message, recoverable)

    @property
    def endpoint(self) -> str:
        """host:port the failed operation was addressed to"""
        return f"{self.host}:{self.port}"


class CommunicationError(DeviceError):
    """Transport-level failure: refused, timed out, unreachable or dropped"""

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.CONNECTION_LOST,
        host: str | None = None,
        port: int | None = None,
        unit_id: int | None = None,
    ):
        self.reconnect_attempts = 0
        super().__init__(message, kind, host, port, unit_id, recoverable=True)

    def tag_reconnect_exhausted(self, attempts: int) -> "CommunicationError":
        """Mark the error as surfaced after the reconnect budget ran out"""
        self.reconnect_attempts = attempts
        self.message = f"{self.message} (gave up after {attempts} reconnection attempts)"
        self.args = (self.message,)
        return self


class ProtocolError(DeviceError):
    """Device answered with a Modbus exception for the request"""

    def __init__(
        self,
        message: str,
        kind: ErrorKind,
        host: str | None = None,
        port: int | None = None,
        unit_id: int | None = None,
        address: int | None = None,
        quantity: int | None = None,
    ):
        self.address = address
        self.quantity = quantity
        super().__init__(message, kind, host, port, unit_id, recoverable=False)


class UnknownDeviceError(DeviceError):
    """Unclassified failure, surfaced with the underlying message"""

    def __init__(
        self,
        message: str,
        host: str | None = None,
        port: int | None = None,
        unit_id: int | None = None,
    ):
        super().__init__(message, ErrorKind.UNKNOWN, host, port, unit_id, recoverable=False)


def device_error(
    kind: ErrorKind,
    config: DeviceConfig,
    detail: str = "",
    register_type: str = "holding",
    address: int | None = None,
    quantity: int | None = None,
    value: Any = None,
) -> DeviceError:
    """
    Build the classified exception for a failed device operation.

    The message is rendered from ERROR_MESSAGES with the configured
    endpoint filled in.
    """
    if value is not None:
        subject = f"value {value}"
    else:
        subject = f"quantity {quantity}"

    message = ERROR_MESSAGES[kind].format(
        host=config.host,
        port=config.port,
        unit_id=config.unit_id,
        timeout_ms=config.timeout_ms,
        register_type=register_type,
        address=address,
        quantity=quantity,
        subject=subject,
        detail=detail or "no further details",
    )
    endpoint = {"host": config.host, "port": config.port, "unit_id": config.unit_id}

    if kind.is_connection_error:
        return CommunicationError(message, kind, **endpoint)
    if kind in (ErrorKind.ILLEGAL_ADDRESS, ErrorKind.ILLEGAL_VALUE):
        return ProtocolError(message, kind, address=address, quantity=quantity, **endpoint)
    return UnknownDeviceError(message, **endpoint)
