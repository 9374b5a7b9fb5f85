"""
Async Modbus Transport

Wrapper around pymodbus AsyncModbusTcpClient. This is the only module
that talks to the library: it bounds every request with the configured
timeout, re-asserts the unit id on each call and converts library
outcomes into classified dashboard exceptions.
"""

import asyncio
import errno
import socket

from pymodbus.client import AsyncModbusTcpClient
from pymodbus.exceptions import ConnectionException, ModbusException, ModbusIOException

from modbus_dashboard.common.config import DeviceConfig, RegisterKind
from modbus_dashboard.common.exceptions import ErrorKind, device_error
from modbus_dashboard.common.logging_setup import get_service_logger

logger = get_service_logger("device.modbus")

# Modbus exception codes (Modbus application protocol, section 7)
EXCEPTION_ILLEGAL_DATA_ADDRESS = 0x02
EXCEPTION_ILLEGAL_DATA_VALUE = 0x03

UNREACHABLE_ERRNOS = frozenset({errno.EHOSTUNREACH, errno.ENETUNREACH, errno.EHOSTDOWN})


class ModbusTransport:
    """
    One TCP connection to one device.

    Not safe for concurrent use; the connection manager serializes
    every call.
    """

    def __init__(self, config: DeviceConfig):
        self.config = config
        self.unit_id = config.unit_id
        self._client: AsyncModbusTcpClient | None = None

    @property
    def is_open(self) -> bool:
        return self._client is not None and self._client.connected

    async def connect(self) -> None:
        """
        Open the TCP connection.

        Raises:
            CommunicationError: classified refused/timeout/unreachable/not-found
        """
        timeout = self.config.timeout_seconds
        # Retries belong to the connection manager, not the library
        self._client = AsyncModbusTcpClient(
            host=self.config.host,
            port=self.config.port,
            timeout=timeout,
            retries=0,
        )

        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            connected = await asyncio.wait_for(self._client.connect(), timeout)
        except asyncio.TimeoutError:
            connected = False

        if connected:
            logger.debug(f"Connected to Modbus device at {self.config.endpoint}")
            return

        self.close()
        if loop.time() - started >= timeout:
            kind = ErrorKind.CONNECTION_TIMEOUT
        else:
            kind = await self._diagnose_connect_failure()

        logger.warning(
            f"Failed to connect to Modbus device at {self.config.endpoint}: {kind.value}",
            extra={"error_kind": kind.value},
        )
        raise device_error(kind, self.config)

    async def _diagnose_connect_failure(self) -> ErrorKind:
        """
        Probe the endpoint with a plain socket to learn why connect failed.

        pymodbus only reports success or failure, while operators need to
        know whether the port was refused or the host never answered.
        """
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self.config.host, self.config.port),
                self.config.timeout_seconds,
            )
        except (asyncio.TimeoutError, TimeoutError):
            return ErrorKind.CONNECTION_TIMEOUT
        except socket.gaierror:
            return ErrorKind.HOST_NOT_FOUND
        except ConnectionRefusedError:
            return ErrorKind.CONNECTION_REFUSED
        except OSError as e:
            if e.errno in UNREACHABLE_ERRNOS:
                return ErrorKind.HOST_UNREACHABLE
            if e.errno == errno.ETIMEDOUT:
                return ErrorKind.CONNECTION_TIMEOUT
            return ErrorKind.CONNECTION_REFUSED

        # Port accepts connections now; the library's attempt was dropped
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return ErrorKind.CONNECTION_LOST

    def close(self) -> None:
        """Close the connection; safe to call when already closed"""
        if self._client is not None:
            self._client.close()
            self._client = None

    def set_unit_id(self, unit_id: int) -> None:
        """Assert the unit id used for the next request"""
        self.unit_id = unit_id

    async def read(self, kind: RegisterKind, address: int, count: int) -> list[int] | list[bool]:
        """
        Read `count` elements of one data table starting at `address`.

        Returns:
            Register values for word tables, booleans for bit tables
        """
        client = self._require_client()
        readers = {
            RegisterKind.HOLDING: client.read_holding_registers,
            RegisterKind.INPUT: client.read_input_registers,
            RegisterKind.COIL: client.read_coils,
            RegisterKind.DISCRETE: client.read_discrete_inputs,
        }
        response = await self._call(
            readers[kind](address=address, count=count, device_id=self.unit_id),
            register_type=kind.value,
            address=address,
            quantity=count,
        )

        if kind.is_boolean:
            # Bit replies are padded to a whole byte
            return list(response.bits[:count])
        return list(response.registers)

    async def write_register(self, address: int, value: int) -> None:
        client = self._require_client()
        await self._call(
            client.write_register(address=address, value=value, device_id=self.unit_id),
            register_type="holding",
            address=address,
            value=value,
        )

    async def write_coil(self, address: int, value: bool) -> None:
        client = self._require_client()
        await self._call(
            client.write_coil(address=address, value=value, device_id=self.unit_id),
            register_type="coil",
            address=address,
            value=value,
        )

    def _require_client(self) -> AsyncModbusTcpClient:
        if not self.is_open:
            raise device_error(ErrorKind.CONNECTION_LOST, self.config)
        return self._client

    async def _call(
        self,
        request,
        register_type: str,
        address: int,
        quantity: int | None = None,
        value=None,
    ):
        """Await a library request and classify its outcome"""
        context = {
            "register_type": register_type,
            "address": address,
            "quantity": quantity,
            "value": value,
        }
        try:
            response = await asyncio.wait_for(request, self.config.timeout_seconds)
        except (asyncio.TimeoutError, ModbusIOException):
            raise device_error(ErrorKind.CONNECTION_TIMEOUT, self.config, **context) from None
        except ConnectionException as e:
            raise device_error(ErrorKind.CONNECTION_LOST, self.config, detail=str(e), **context) from e
        except ModbusException as e:
            raise device_error(ErrorKind.UNKNOWN, self.config, detail=str(e), **context) from e

        if response.isError():
            code = getattr(response, "exception_code", None)
            if code == EXCEPTION_ILLEGAL_DATA_ADDRESS:
                kind = ErrorKind.ILLEGAL_ADDRESS
            elif code == EXCEPTION_ILLEGAL_DATA_VALUE:
                kind = ErrorKind.ILLEGAL_VALUE
            else:
                kind = ErrorKind.UNKNOWN
            raise device_error(kind, self.config, detail=f"Modbus error: {response}", **context)

        return response
