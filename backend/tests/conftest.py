"""Shared fixtures: an in-memory device, its transport and a connection manager."""

import asyncio
import logging

import pytest

from modbus_dashboard.common.config import DeviceConfig, RegisterKind
from modbus_dashboard.common.exceptions import ErrorKind, device_error
from modbus_dashboard.services.config_store import ConfigStore
from modbus_dashboard.services.connection_manager import ConnectionManager


DEFAULT_CONFIG = DeviceConfig(host="192.168.1.50", port=502, unit_id=1, timeout_ms=3000)


class FakeDevice:
    """
    Scripted stand-in for a Modbus TCP device.

    connect_errors / op_errors are consumed one per call; refuse_all makes
    every connect fail with the given kind.
    """

    def __init__(self):
        self.tables: dict[RegisterKind, dict[int, int | bool]] = {kind: {} for kind in RegisterKind}
        self.connect_errors: list[ErrorKind] = []
        self.op_errors: list[ErrorKind] = []
        self.refuse_all: ErrorKind | None = None
        self.connect_calls = 0
        self.calls: list[tuple] = []
        self.transports: list["FakeTransport"] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def transport_factory(self, config: DeviceConfig) -> "FakeTransport":
        transport = FakeTransport(self, config)
        self.transports.append(transport)
        return transport

    def drop_connections(self) -> None:
        for transport in self.transports:
            transport.open = False


class FakeTransport:
    def __init__(self, device: FakeDevice, config: DeviceConfig):
        self.device = device
        self.config = config
        self.unit_id = None
        self.open = False
        self.closed = False

    @property
    def is_open(self) -> bool:
        return self.open

    async def connect(self) -> None:
        self.device.connect_calls += 1
        await asyncio.sleep(0)
        if self.device.refuse_all is not None:
            raise device_error(self.device.refuse_all, self.config)
        if self.device.connect_errors:
            raise device_error(self.device.connect_errors.pop(0), self.config)
        self.open = True

    def close(self) -> None:
        self.open = False
        self.closed = True

    def set_unit_id(self, unit_id: int) -> None:
        self.unit_id = unit_id

    async def _operation(self, name: str, kind: str, address: int, **context):
        self.device.calls.append((name, kind, address, self.unit_id, context))
        self.device.in_flight += 1
        self.device.max_in_flight = max(self.device.max_in_flight, self.device.in_flight)
        try:
            await asyncio.sleep(0)
            if not self.open:
                raise device_error(ErrorKind.CONNECTION_LOST, self.config)
            if self.device.op_errors:
                error_kind = self.device.op_errors.pop(0)
                if error_kind.is_connection_error:
                    self.open = False
                raise device_error(
                    error_kind, self.config, register_type=kind, address=address, **context
                )
        finally:
            self.device.in_flight -= 1

    async def read(self, kind: RegisterKind, address: int, count: int):
        await self._operation("read", kind.value, address, quantity=count)
        default = False if kind.is_boolean else 0
        table = self.device.tables[kind]
        return [table.get(address + i, default) for i in range(count)]

    async def write_register(self, address: int, value: int) -> None:
        await self._operation("write_register", "holding", address, value=value)
        self.device.tables[RegisterKind.HOLDING][address] = value

    async def write_coil(self, address: int, value: bool) -> None:
        await self._operation("write_coil", "coil", address, value=value)
        self.device.tables[RegisterKind.COIL][address] = value


class RecordingSleep:
    """Async sleep replacement that records requested delays"""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)


@pytest.fixture
def device():
    return FakeDevice()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def store(tmp_path):
    return ConfigStore(tmp_path / "modbus-config.json")


@pytest.fixture
def manager(device, sleep, store):
    return ConnectionManager(
        DEFAULT_CONFIG,
        store=store,
        transport_factory=device.transport_factory,
        sleep=sleep,
    )


@pytest.fixture
def device_logs(caplog):
    """Capture records from the package logger, which does not propagate"""
    package_logger = logging.getLogger("modbus_dashboard")
    package_logger.addHandler(caplog.handler)
    caplog.set_level(logging.DEBUG, logger="modbus_dashboard")
    yield caplog
    package_logger.removeHandler(caplog.handler)
