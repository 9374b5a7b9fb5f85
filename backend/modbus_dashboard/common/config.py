"""
Configuration and Data Model

Typed structures shared by the connection manager and the HTTP layer.
The device configuration is persisted by the config store; everything
else here is transient per request or derived at runtime.
"""

from dataclasses import asdict, dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any


# Modbus request limits
MIN_ADDRESS = 0
MAX_ADDRESS = 65535
MIN_QUANTITY = 1
MAX_QUANTITY = 125
MAX_REGISTER_VALUE = 65535

# Connection limits
MIN_PORT = 1
MAX_PORT = 65535
MIN_UNIT_ID = 1
MAX_UNIT_ID = 255
MIN_TIMEOUT_MS = 1000
MAX_TIMEOUT_MS = 30000

# Reconnect policy
MAX_RECONNECT_ATTEMPTS = 3
RECONNECT_DELAY_SECONDS = 2.0


class RegisterKind(str, Enum):
    """Modbus data tables that can be read"""
    HOLDING = "holding"
    INPUT = "input"
    COIL = "coil"
    DISCRETE = "discrete"

    @property
    def is_boolean(self) -> bool:
        return self in (RegisterKind.COIL, RegisterKind.DISCRETE)


class WriteKind(str, Enum):
    """Modbus data tables that can be written"""
    REGISTER = "register"
    COIL = "coil"


class ConnectionState(str, Enum):
    """Connection manager lifecycle states"""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class DeviceConfig:
    """Connection parameters of the monitored device"""
    host: str
    port: int = 502
    unit_id: int = 1
    timeout_ms: int = 3000

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000

    @property
    def endpoint(self) -> str:
        return f"{self.host}:{self.port}"

    def merge(self, changes: dict[str, Any]) -> "DeviceConfig":
        """Return a copy with the given fields replaced"""
        return replace(self, **changes)

    def to_record(self) -> dict[str, Any]:
        """Serialize using the field names of the persisted record and API"""
        return {
            "host": self.host,
            "port": self.port,
            "slaveId": self.unit_id,
            "timeout": self.timeout_ms,
        }


# API/record field name -> DeviceConfig attribute
RECORD_FIELDS: dict[str, str] = {
    "host": "host",
    "port": "port",
    "slaveId": "unit_id",
    "timeout": "timeout_ms",
}


def config_changes_from_record(record: dict[str, Any]) -> dict[str, Any]:
    """Translate record/API field names into DeviceConfig keyword arguments"""
    return {
        RECORD_FIELDS[key]: value
        for key, value in record.items()
        if key in RECORD_FIELDS and value is not None
    }


@dataclass
class ConnectionStatus:
    """Observable connection state; never persisted"""
    connected: bool
    host: str
    port: int
    unit_id: int
    state: ConnectionState = ConnectionState.DISCONNECTED
    last_error: str | None = None
    last_connected_at: datetime | None = None

    @classmethod
    def for_config(cls, config: DeviceConfig) -> "ConnectionStatus":
        return cls(
            connected=False,
            host=config.host,
            port=config.port,
            unit_id=config.unit_id,
        )

    def snapshot(self) -> "ConnectionStatus":
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "connected": self.connected,
            "state": self.state.value,
            "host": self.host,
            "port": self.port,
            "slaveId": self.unit_id,
        }
        if self.last_error is not None:
            data["lastError"] = self.last_error
        if self.last_connected_at is not None:
            data["lastConnected"] = self.last_connected_at.isoformat()
        return data


@dataclass(frozen=True)
class RegisterReadRequest:
    """A single read against one data table"""
    kind: RegisterKind
    start_address: int
    quantity: int

    @property
    def end_address(self) -> int:
        return self.start_address + self.quantity


@dataclass(frozen=True)
class RegisterValue:
    """One raw value returned by a read"""
    address: int
    raw_value: int

    def to_dict(self) -> dict[str, int]:
        return {"address": self.address, "rawValue": self.raw_value}


@dataclass
class ConnectionResult:
    """Outcome of an explicit connection test"""
    success: bool
    message: str
    reachable: bool = False
    read_ok: bool = False
    error_kind: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
