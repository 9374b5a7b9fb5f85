"""
Configuration and Request Validator

Validates device connection parameters and register request arguments.
Everything here runs before any network I/O.
"""

import ipaddress
from typing import Any

from modbus_dashboard.common.config import (
    DeviceConfig,
    MAX_ADDRESS,
    MAX_PORT,
    MAX_QUANTITY,
    MAX_REGISTER_VALUE,
    MAX_TIMEOUT_MS,
    MAX_UNIT_ID,
    MIN_ADDRESS,
    MIN_PORT,
    MIN_QUANTITY,
    MIN_TIMEOUT_MS,
    MIN_UNIT_ID,
    RegisterKind,
    RegisterReadRequest,
    WriteKind,
)
from modbus_dashboard.common.exceptions import ValidationError
from modbus_dashboard.common.logging_setup import get_service_logger

logger = get_service_logger("config.validator")

# Addresses that can never identify a single device
RESERVED_HOSTS = frozenset({"0.0.0.0", "255.255.255.255"})


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def host_error(host: Any) -> str | None:
    """Return a message describing why host is unusable, or None"""
    if not isinstance(host, str) or not host.strip():
        return f"Invalid IP address format: {host!r}"
    try:
        ipaddress.IPv4Address(host)
    except ValueError:
        return f"Invalid IP address format: {host}"
    if host in RESERVED_HOSTS:
        return f"IP address {host} cannot be used as a device address"
    return None


def _range_error(name: str, value: Any, low: int, high: int) -> str | None:
    if not _is_int(value):
        return f"{name} must be an integer. Got: {value!r}"
    if value < low or value > high:
        return f"{name} must be in range {low}-{high}. Got: {value}"
    return None


class ConfigValidator:
    """Validates device configuration"""

    def validate(self, config: DeviceConfig) -> tuple[bool, list[str]]:
        """
        Validate configuration.

        Args:
            config: Device configuration to check

        Returns:
            Tuple of (is_valid, list of error messages)
        """
        errors = [
            error
            for error in (
                host_error(config.host),
                _range_error("Port", config.port, MIN_PORT, MAX_PORT),
                _range_error("Slave ID", config.unit_id, MIN_UNIT_ID, MAX_UNIT_ID),
                _range_error("Timeout", config.timeout_ms, MIN_TIMEOUT_MS, MAX_TIMEOUT_MS),
            )
            if error
        ]

        is_valid = len(errors) == 0

        if not is_valid:
            logger.warning(
                f"Config validation failed: {len(errors)} errors",
                extra={"errors": errors},
            )
        else:
            logger.debug("Config validation passed")

        return is_valid, errors

    def check(self, config: DeviceConfig) -> DeviceConfig:
        """Validate and raise ValidationError listing every problem"""
        is_valid, errors = self.validate(config)
        if not is_valid:
            raise ValidationError("; ".join(errors), errors)
        return config


def validate_read_request(kind: Any, start_address: Any, quantity: Any) -> RegisterReadRequest:
    """Check read arguments and build the request"""
    try:
        register_kind = RegisterKind(kind)
    except ValueError:
        raise ValidationError(
            "Invalid type. Use: holding, input, coil, or discrete"
        ) from None

    error = _range_error("Address", start_address, MIN_ADDRESS, MAX_ADDRESS)
    if error:
        raise ValidationError(error)

    error = _range_error("Quantity", quantity, MIN_QUANTITY, MAX_QUANTITY)
    if error:
        raise ValidationError(error)

    return RegisterReadRequest(register_kind, start_address, quantity)


def validate_write_request(kind: Any, address: Any, value: Any) -> WriteKind:
    """Check write arguments; returns the parsed write kind"""
    try:
        write_kind = WriteKind(kind)
    except ValueError:
        raise ValidationError("Invalid write type. Use: register or coil") from None

    error = _range_error("Address", address, MIN_ADDRESS, MAX_ADDRESS)
    if error:
        raise ValidationError(error)

    if write_kind == WriteKind.COIL:
        if not isinstance(value, bool):
            raise ValidationError(f"Coil value must be a boolean. Got: {value!r}")
    else:
        error = _range_error("Register value", value, 0, MAX_REGISTER_VALUE)
        if error:
            raise ValidationError(error)

    return write_kind
