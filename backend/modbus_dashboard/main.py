"""
Modbus Dashboard - Backend API

FastAPI application that provides:
- Register reads for holding/input registers, coils and discrete inputs
- Single register and coil writes
- Device connection configuration and status

All Modbus traffic goes through one ConnectionManager stored on
app.state; nothing else touches the device connection.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from modbus_dashboard import __version__
from modbus_dashboard.common.exceptions import ModbusDashboardError, ValidationError
from modbus_dashboard.common.logging_setup import get_service_logger
from modbus_dashboard.common.settings import Settings, get_settings
from modbus_dashboard.routers import modbus
from modbus_dashboard.services.config_store import ConfigStore, load_effective_config
from modbus_dashboard.services.connection_manager import ConnectionManager

logger = get_service_logger("api")

API_NAME = "Modbus Dashboard API"


def build_connection_manager(settings: Settings) -> ConnectionManager:
    """Create the manager from persisted config and environment defaults"""
    store = ConfigStore(settings.modbus_config_file)
    config = load_effective_config(store, settings.device_defaults())
    return ConnectionManager(config, store=store)


# ============================================
# ERROR HANDLERS
# ============================================

def error_envelope(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message},
    )


async def handle_validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    return error_envelope(status.HTTP_400_BAD_REQUEST, exc.message)


async def handle_request_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed query/body: same envelope as a failed range check"""
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part not in ("body", "query"))
        problems.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return error_envelope(status.HTTP_400_BAD_REQUEST, "; ".join(problems) or "Invalid request")


async def handle_dashboard_error(request: Request, exc: ModbusDashboardError) -> JSONResponse:
    logger.error(
        f"{request.method} {request.url.path} failed: {exc.message}",
        extra={"error_kind": getattr(getattr(exc, "kind", None), "value", None)},
    )
    return error_envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, exc.message)


# ============================================
# CREATE APPLICATION
# ============================================

def create_app(
    settings: Settings | None = None,
    connection_manager: ConnectionManager | None = None,
) -> FastAPI:
    """
    Build the API application.

    Args:
        settings: Settings to use; defaults to environment settings
        connection_manager: Pre-built manager; built at startup when omitted
    """
    settings = settings or get_settings()
    allowed_origins = settings.cors_origins()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Startup:
        - Load persisted config (falls back to environment defaults)
        - Create the connection manager; the device is contacted lazily

        Shutdown:
        - Close the device connection
        """
        manager = connection_manager or build_connection_manager(settings)
        app.state.connection_manager = manager

        config = manager.get_config()
        logger.info(
            f"Starting {API_NAME} ({settings.environment})",
            extra={
                "device": config.endpoint,
                "slave_id": config.unit_id,
                "allowed_origins": allowed_origins,
            },
        )

        yield

        logger.info("Shutting down API...")
        await manager.close()

    app = FastAPI(
        title=API_NAME,
        description="""
        API for monitoring a single Modbus TCP device.

        ## Features
        - **Read**: holding registers, input registers, coils, discrete inputs
        - **Write**: single holding register or coil
        - **Config**: device IP, port, slave ID and timeout, persisted across restarts
        - **Status**: connection state and last error
        """,
        version=__version__,
        lifespan=lifespan,
    )

    # Allow the dashboard UI to call the API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ValidationError, handle_validation_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(ModbusDashboardError, handle_dashboard_error)

    app.include_router(
        modbus.router,
        prefix="/modbus",
        tags=["Modbus"],
    )

    @app.get("/", tags=["Health"])
    async def root():
        """Basic API information."""
        return {
            "name": API_NAME,
            "version": __version__,
            "status": "running",
            "docs": "/docs",
        }

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """Liveness check including the device connection state."""
        manager: ConnectionManager = request.app.state.connection_manager
        device_status = manager.get_status()
        return {
            "status": "healthy",
            "device": {
                "connected": device_status.connected,
                "state": device_status.state.value,
            },
            "version": __version__,
        }

    return app


app = create_app()
