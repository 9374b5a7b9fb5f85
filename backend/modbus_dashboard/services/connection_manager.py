"""
Device Connection Manager

Owns the single connection to the monitored device:
- Lazy connection on first use, reused across requests
- Bounded reconnect-and-retry when the transport fails
- FIFO serialization of every operation on the shared handle
- Validated, persisted reconfiguration

The transport handle, DeviceConfig and ConnectionStatus never leave this
class by reference; callers receive copies.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, TypeVar

from modbus_dashboard.common.config import (
    ConnectionResult,
    ConnectionState,
    ConnectionStatus,
    DeviceConfig,
    MAX_RECONNECT_ATTEMPTS,
    RECONNECT_DELAY_SECONDS,
    RECORD_FIELDS,
    RegisterKind,
    RegisterValue,
    WriteKind,
)
from modbus_dashboard.common.exceptions import (
    CommunicationError,
    DeviceError,
    ValidationError,
)
from modbus_dashboard.common.logging_setup import (
    get_service_logger,
    log_device_read,
    log_device_write,
)
from modbus_dashboard.services.config_store import ConfigStore
from modbus_dashboard.services.modbus_client import ModbusTransport
from modbus_dashboard.services.validator import (
    ConfigValidator,
    validate_read_request,
    validate_write_request,
)

logger = get_service_logger("device.manager")

T = TypeVar("T")

TransportFactory = Callable[[DeviceConfig], ModbusTransport]
SleepFunc = Callable[[float], Awaitable[Any]]

CONFIG_FIELDS = frozenset(RECORD_FIELDS.values())


class ConnectionManager:
    """
    Connection lifecycle manager for one Modbus TCP device.

    State machine:
        DISCONNECTED -> CONNECTING -> CONNECTED
        CONNECTING   -> DISCONNECTED (connect failed, last_error set)
        CONNECTED    -> DISCONNECTED (transport failure, reconfiguration,
                                      explicit disconnect)
    """

    def __init__(
        self,
        config: DeviceConfig,
        store: ConfigStore | None = None,
        transport_factory: TransportFactory = ModbusTransport,
        sleep: SleepFunc = asyncio.sleep,
        max_reconnect_attempts: int = MAX_RECONNECT_ATTEMPTS,
        reconnect_delay: float = RECONNECT_DELAY_SECONDS,
        validator: ConfigValidator | None = None,
    ):
        self._validator = validator or ConfigValidator()
        self._config = self._validator.check(config)
        self._store = store
        self._transport_factory = transport_factory
        self._sleep = sleep
        self._max_reconnect_attempts = max_reconnect_attempts
        self._reconnect_delay = reconnect_delay

        self._transport: ModbusTransport | None = None
        self._status = ConnectionStatus.for_config(self._config)
        # asyncio.Lock wakes waiters in arrival order
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def get_config(self) -> DeviceConfig:
        """Current device configuration (immutable copy)"""
        return self._config

    async def update_config(self, changes: dict[str, Any]) -> DeviceConfig:
        """
        Merge, validate and persist new connection parameters.

        Args:
            changes: DeviceConfig fields to replace (host, port, unit_id, timeout_ms)

        Returns:
            The merged configuration now in effect

        Raises:
            ValidationError: merged config is invalid; prior config kept
            OSError: the config store could not be written; prior config kept
        """
        unknown = sorted(set(changes) - CONFIG_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown configuration fields: {', '.join(unknown)}")

        async with self._lock:
            candidate = self._validator.check(self._config.merge(changes))

            if self._store is not None:
                self._store.save(candidate)

            previous = self._config
            self._config = candidate

            if self._transport is not None:
                logger.info("Configuration changed, closing current connection...")
            self._close_transport()
            self._status = ConnectionStatus.for_config(candidate)

        logger.info(
            f"Configuration updated: {candidate.endpoint}, Slave ID: {candidate.unit_id}",
            extra={
                "previous": previous.endpoint,
                "host": candidate.host,
                "port": candidate.port,
                "slave_id": candidate.unit_id,
            },
        )
        return candidate

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_status(self) -> ConnectionStatus:
        """Snapshot of the connection status"""
        status = self._status.snapshot()
        status.connected = self._transport is not None and self._transport.is_open
        if not status.connected and status.state == ConnectionState.CONNECTED:
            status.state = ConnectionState.DISCONNECTED
        return status

    @property
    def state(self) -> ConnectionState:
        return self._status.state

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def test_connection(self) -> ConnectionResult:
        """
        Force a fresh connection and perform one trial read.

        A device that accepts the connection but rejects the trial
        address is still reported as reachable.
        """
        async with self._lock:
            self._close_transport()
            config = self._config

            try:
                transport = await self._connect()
            except CommunicationError as e:
                return ConnectionResult(
                    success=False,
                    message=f"Connection failed: {e.message}",
                    error_kind=e.kind.value,
                )

            try:
                transport.set_unit_id(config.unit_id)
                await transport.read(RegisterKind.HOLDING, 0, 1)
            except CommunicationError as e:
                self._mark_disconnected(e)
                return ConnectionResult(
                    success=False,
                    message=f"Connection failed: {e.message}",
                    reachable=True,
                    error_kind=e.kind.value,
                )
            except DeviceError as e:
                logger.warning(f"Test read failed on {config.endpoint}: {e.message}")
                return ConnectionResult(
                    success=True,
                    message=(
                        "Connected to device but test read failed "
                        f"(address might be invalid): {e.message}"
                    ),
                    reachable=True,
                    error_kind=e.kind.value,
                )

            self._status.last_error = None
            return ConnectionResult(
                success=True,
                message=(
                    f"Successfully connected to {config.endpoint} "
                    f"(Slave ID: {config.unit_id})"
                ),
                reachable=True,
                read_ok=True,
            )

    async def disconnect(self) -> None:
        """Close the connection. Calling it again is a no-op."""
        async with self._lock:
            if self._transport is None:
                return
            self._close_transport()
            logger.info(f"Disconnected from {self._config.endpoint}")

    async def close(self) -> None:
        """Release the device at application shutdown"""
        await self.disconnect()

    async def _connect(self) -> ModbusTransport:
        """Open a new transport. Caller holds the lock."""
        config = self._config
        self._status.state = ConnectionState.CONNECTING
        logger.info(f"Connecting to Modbus TCP device at {config.endpoint}...")

        transport = self._transport_factory(config)
        try:
            await transport.connect()
            transport.set_unit_id(config.unit_id)
        except CommunicationError as e:
            transport.close()
            self._mark_disconnected(e)
            logger.error(
                f"Failed to connect to Modbus device at {config.endpoint}: {e.message}",
                extra={"error_kind": e.kind.value},
            )
            raise

        self._transport = transport
        self._status.state = ConnectionState.CONNECTED
        self._status.connected = True
        self._status.last_connected_at = datetime.now(timezone.utc)
        self._status.last_error = None

        logger.info(
            f"Connected to Modbus TCP device at {config.endpoint} (Slave ID: {config.unit_id})"
        )
        return transport

    async def _ensure_connected(self) -> ModbusTransport:
        """Reuse the open transport or lazily open one. Caller holds the lock."""
        if self._transport is not None:
            if self._transport.is_open:
                return self._transport
            self._close_transport()
        return await self._connect()

    async def _reconnect_with_retry(self, original: CommunicationError) -> ModbusTransport:
        """
        Attempt to reconnect up to the configured bound.

        Raises:
            CommunicationError: the original error, tagged, once attempts run out
        """
        for attempt in range(1, self._max_reconnect_attempts + 1):
            logger.warning(
                f"Reconnection attempt {attempt}/{self._max_reconnect_attempts} "
                f"to {self._config.endpoint}...",
            )
            try:
                return await self._connect()
            except CommunicationError:
                if attempt < self._max_reconnect_attempts:
                    await self._sleep(self._reconnect_delay)

        logger.error(
            f"Giving up on {self._config.endpoint} after "
            f"{self._max_reconnect_attempts} reconnection attempts"
        )
        original.tag_reconnect_exhausted(self._max_reconnect_attempts)
        self._status.last_error = original.message
        raise original

    def _close_transport(self) -> None:
        if self._transport is not None:
            self._transport.close()
            self._transport = None
        self._status.connected = False
        self._status.state = ConnectionState.DISCONNECTED

    def _mark_disconnected(self, error: DeviceError) -> None:
        self._close_transport()
        self._status.last_error = error.message

    # ------------------------------------------------------------------
    # Register operations
    # ------------------------------------------------------------------

    async def _execute(
        self,
        operation: Callable[[ModbusTransport], Awaitable[T]],
        operation_name: str,
    ) -> T:
        """
        Run an operation against a healthy connection.

        Connection-class failures trigger the bounded reconnect loop and
        exactly one more attempt of the operation. Protocol errors are
        raised immediately.
        """
        async with self._lock:
            try:
                transport = await self._ensure_connected()
                return await self._run(transport, operation)
            except CommunicationError as e:
                logger.warning(
                    f"{operation_name} failed due to connection issue, attempting reconnect...",
                    extra={"error_kind": e.kind.value},
                )
                self._mark_disconnected(e)
                transport = await self._reconnect_with_retry(e)
                try:
                    return await self._run(transport, operation)
                except CommunicationError as retry_error:
                    self._mark_disconnected(retry_error)
                    logger.error(f"Retry failed: {retry_error.message}")
                    raise

    async def _run(
        self,
        transport: ModbusTransport,
        operation: Callable[[ModbusTransport], Awaitable[T]],
    ) -> T:
        # Some devices do not remember the unit id between requests
        transport.set_unit_id(self._config.unit_id)
        return await operation(transport)

    async def read(
        self,
        kind: RegisterKind | str,
        start_address: int,
        quantity: int,
    ) -> list[RegisterValue]:
        """
        Read `quantity` consecutive elements of one data table.

        Raises:
            ValidationError: address or quantity out of range (no I/O done)
            CommunicationError: device unreachable after reconnect attempts
            ProtocolError: device rejected the address or quantity
        """
        request = validate_read_request(kind, start_address, quantity)
        register = f"{request.kind.value}[{request.start_address}:{request.end_address}]"

        async def operation(transport: ModbusTransport) -> list[RegisterValue]:
            raw = await transport.read(request.kind, request.start_address, request.quantity)
            if request.kind.is_boolean:
                raw = [1 if bit else 0 for bit in raw]
            values = [
                RegisterValue(address=request.start_address + i, raw_value=int(word))
                for i, word in enumerate(raw)
            ]
            log_device_read(logger, transport.config.endpoint, register, [v.raw_value for v in values])
            return values

        try:
            return await self._execute(operation, f"read_{request.kind.value}")
        except DeviceError as e:
            log_device_read(logger, e.endpoint, register, success=False)
            raise

    async def write(self, kind: WriteKind | str, address: int, value: int | bool) -> None:
        """
        Write a single holding register or coil.

        Raises:
            ValidationError: address or value out of range (no I/O done)
            CommunicationError: device unreachable after reconnect attempts
            ProtocolError: device rejected the address or value
        """
        write_kind = validate_write_request(kind, address, value)
        register = f"{write_kind.value}[{address}]"

        async def operation(transport: ModbusTransport) -> None:
            if write_kind == WriteKind.COIL:
                await transport.write_coil(address, value)
            else:
                await transport.write_register(address, value)
            log_device_write(logger, transport.config.endpoint, register, value)

        try:
            await self._execute(operation, f"write_{write_kind.value}")
        except DeviceError as e:
            log_device_write(logger, e.endpoint, register, value, success=False)
            raise
