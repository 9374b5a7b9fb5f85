"""
Modbus Router

Thin HTTP layer over the connection manager:
- Read any of the four data tables
- Write a single holding register or coil
- Get/update the device connection config
- Connection status and explicit connection test

Errors raised by the manager are rendered as {success: false, error}
by the exception handlers registered in main.py.
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field, StrictBool, StrictInt

from modbus_dashboard.common.config import RegisterKind, WriteKind, config_changes_from_record
from modbus_dashboard.common.exceptions import ModbusDashboardError
from modbus_dashboard.common.logging_setup import get_service_logger
from modbus_dashboard.services.connection_manager import ConnectionManager

logger = get_service_logger("api.modbus")

router = APIRouter()


# ============================================
# SCHEMAS
# ============================================

class DeviceConfigUpdate(BaseModel):
    """Update device connection request. Omitted fields keep their value."""
    host: Optional[str] = Field(None, description="Device IPv4 address, e.g. '192.168.100.40'")
    port: Optional[StrictInt] = Field(None, description="Modbus TCP port (1-65535)")
    slaveId: Optional[StrictInt] = Field(None, description="Unit/slave ID (1-255)")
    timeout: Optional[StrictInt] = Field(None, description="Request timeout in ms (1000-30000)")


class WriteRegisterRequest(BaseModel):
    """Write single holding register request."""
    address: StrictInt = Field(..., description="Register address (0-65535)")
    value: StrictInt = Field(..., description="16-bit value (0-65535)")


class WriteCoilRequest(BaseModel):
    """Write single coil request."""
    address: StrictInt = Field(..., description="Coil address (0-65535)")
    value: StrictBool = Field(..., description="Coil state")


# ============================================
# HELPER FUNCTIONS
# ============================================

def get_connection_manager(request: Request) -> ConnectionManager:
    """Connection manager owned by the application."""
    return request.app.state.connection_manager


def config_response(manager: ConnectionManager) -> dict:
    return manager.get_config().to_record()


# ============================================
# ENDPOINTS
# ============================================

@router.get("/read")
async def read_registers(
    type: RegisterKind = Query(RegisterKind.HOLDING, description="holding, input, coil or discrete"),
    address: int = Query(0, description="Start address (0-65535)"),
    quantity: int = Query(1, description="Number of elements (1-125)"),
    manager: ConnectionManager = Depends(get_connection_manager),
):
    """
    Read consecutive registers, coils or discrete inputs.

    Coil and discrete values are returned as 1/0.
    """
    values = await manager.read(type, address, quantity)
    return {
        "success": True,
        "type": type.value,
        "values": [value.to_dict() for value in values],
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/status")
async def get_connection_status(
    manager: ConnectionManager = Depends(get_connection_manager),
):
    """Current connection status."""
    return {"success": True, **manager.get_status().to_dict()}


@router.get("/config")
async def get_config(
    manager: ConnectionManager = Depends(get_connection_manager),
):
    """Current device configuration."""
    return {"success": True, "config": config_response(manager)}


@router.post("/config")
async def update_config(
    body: DeviceConfigUpdate,
    manager: ConnectionManager = Depends(get_connection_manager),
):
    """
    Update device configuration.

    The new values are validated, persisted, and take effect on the
    next request; any open connection is closed.
    """
    changes = config_changes_from_record(body.model_dump(exclude_unset=True))
    try:
        await manager.update_config(changes)
    except OSError as e:
        logger.error(f"Failed to persist configuration: {e}")
        raise ModbusDashboardError(f"Failed to save configuration: {e}") from e

    return {
        "success": True,
        "message": "Configuration updated successfully",
        "config": config_response(manager),
    }


@router.post("/test-connection")
async def test_connection(
    manager: ConnectionManager = Depends(get_connection_manager),
):
    """Open a fresh connection and try reading holding register 0."""
    result = await manager.test_connection()
    return {
        "success": result.success,
        "message": result.message,
        "status": manager.get_status().to_dict(),
    }


@router.post("/write/register")
async def write_register(
    body: WriteRegisterRequest,
    manager: ConnectionManager = Depends(get_connection_manager),
):
    """Write a single holding register."""
    await manager.write(WriteKind.REGISTER, body.address, body.value)
    return {
        "success": True,
        "message": f"Successfully wrote value {body.value} to register {body.address}",
    }


@router.post("/write/coil")
async def write_coil(
    body: WriteCoilRequest,
    manager: ConnectionManager = Depends(get_connection_manager),
):
    """Write a single coil."""
    await manager.write(WriteKind.COIL, body.address, body.value)
    return {
        "success": True,
        "message": f"Successfully wrote value {str(body.value).lower()} to coil {body.address}",
    }
