"""
Device Services - Modbus Communication

Responsibilities:
- Validate connection parameters and register requests
- Persist the device config across restarts
- Maintain the single Modbus TCP connection with reconnect logic
"""

from .config_store import ConfigStore, load_effective_config
from .connection_manager import ConnectionManager
from .modbus_client import ModbusTransport
from .validator import ConfigValidator

__all__ = [
    "ConfigStore",
    "ConfigValidator",
    "ConnectionManager",
    "ModbusTransport",
    "load_effective_config",
]
