"""
Virtual Modbus Device

Modbus TCP server with the four standard data tables, used to run the
dashboard without hardware. The demo values match the examples in the
README: holding registers 0-2 hold 10, 20, 30 and coils 5-6 are on/off.

Usage:
    modbus-dashboard-simulator --port 5020 --unit-id 1
"""

import argparse
import asyncio

from pymodbus.datastore import (
    ModbusDeviceContext,
    ModbusSequentialDataBlock,
    ModbusServerContext,
)
from pymodbus.server import StartAsyncTcpServer

from modbus_dashboard.common.config import MAX_ADDRESS
from modbus_dashboard.common.logging_setup import get_service_logger

logger = get_service_logger("simulator")

# Every table covers protocol addresses 0-65535
TABLE_SIZE = MAX_ADDRESS + 1

# Data blocks are 1-based: protocol address 0 is block address 1
BLOCK_START = 1


class VirtualDevice:
    """
    Register memory of one simulated device.

    Tables are indexed by protocol address. They are copied into pymodbus
    data blocks when the server context is built, so values set before
    serving are exactly what a client reads over the wire.
    """

    def __init__(self, unit_id: int = 1):
        self.unit_id = unit_id
        self.coils = [False] * TABLE_SIZE
        self.discrete_inputs = [False] * TABLE_SIZE
        self.holding_registers = [0] * TABLE_SIZE
        self.input_registers = [0] * TABLE_SIZE

    @staticmethod
    def _store(table: list, address: int, values: list) -> None:
        if address < 0 or address + len(values) > TABLE_SIZE:
            raise ValueError(
                f"Values at {address}-{address + len(values) - 1} exceed 0-{MAX_ADDRESS}"
            )
        table[address:address + len(values)] = values

    def set_holding_registers(self, address: int, values: list[int]) -> None:
        self._store(self.holding_registers, address, values)

    def set_input_registers(self, address: int, values: list[int]) -> None:
        self._store(self.input_registers, address, values)

    def set_coils(self, address: int, values: list[bool]) -> None:
        self._store(self.coils, address, [bool(v) for v in values])

    def set_discrete_inputs(self, address: int, values: list[bool]) -> None:
        self._store(self.discrete_inputs, address, [bool(v) for v in values])

    def seed_demo_values(self) -> None:
        """Load a small, recognisable data set"""
        self.set_holding_registers(0, [10, 20, 30])
        self.set_input_registers(0, [230, 231, 229, 50])
        self.set_coils(5, [True, False])
        self.set_discrete_inputs(0, [True, True, False, True])

    def device_context(self) -> ModbusDeviceContext:
        """Snapshot the tables into a pymodbus device context"""
        return ModbusDeviceContext(
            di=ModbusSequentialDataBlock(BLOCK_START, list(self.discrete_inputs)),
            co=ModbusSequentialDataBlock(BLOCK_START, list(self.coils)),
            hr=ModbusSequentialDataBlock(BLOCK_START, list(self.holding_registers)),
            ir=ModbusSequentialDataBlock(BLOCK_START, list(self.input_registers)),
        )

    def server_context(self) -> ModbusServerContext:
        return ModbusServerContext(devices={self.unit_id: self.device_context()}, single=False)


async def run_simulator(host: str = "0.0.0.0", port: int = 5020, unit_id: int = 1) -> None:
    """Serve one virtual device until cancelled"""
    device = VirtualDevice(unit_id=unit_id)
    device.seed_demo_values()

    logger.info(
        f"Starting Modbus TCP simulator on {host}:{port} (slave ID {unit_id})",
        extra={"host": host, "port": port, "slave_id": unit_id},
    )
    await StartAsyncTcpServer(
        context=device.server_context(),
        address=(host, port),
    )


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Run a virtual Modbus TCP device for dashboard testing"
    )
    parser.add_argument(
        "--host", type=str, default="0.0.0.0",
        help="Address to bind (default: 0.0.0.0)"
    )
    parser.add_argument(
        "--port", type=int, default=5020,
        help="Modbus TCP port (default: 5020)"
    )
    parser.add_argument(
        "--unit-id", type=int, default=1,
        help="Slave ID served by the simulator (default: 1)"
    )

    args = parser.parse_args()

    try:
        asyncio.run(run_simulator(host=args.host, port=args.port, unit_id=args.unit_id))
    except KeyboardInterrupt:
        logger.info("Simulator stopped by user")


if __name__ == "__main__":
    main()
