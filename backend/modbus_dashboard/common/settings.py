"""
Application Settings

Environment-driven defaults for the dashboard backend.
The persisted device config overrides the MODBUS_* values at startup.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from modbus_dashboard.common.config import DeviceConfig


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Create a .env file with:
    - MODBUS_HOST=192.168.100.40
    - MODBUS_PORT=502
    - MODBUS_SLAVE_ID=1
    - MODBUS_TIMEOUT=3000
    - PORT=3001
    - FRONTEND_URL=http://localhost:3000
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Device defaults
    modbus_host: str = "192.168.100.40"
    modbus_port: int = 502
    modbus_slave_id: int = 1
    modbus_timeout: int = 3000
    modbus_config_file: Path = Path("modbus-config.json")

    # HTTP server
    host: str = "0.0.0.0"
    port: int = 3001
    environment: str = "development"
    frontend_url: str = ""
    allowed_origins: str = Field("", description="Comma-separated list of extra CORS origins")

    def device_defaults(self) -> DeviceConfig:
        """Device config built from environment and hard defaults only"""
        return DeviceConfig(
            host=self.modbus_host,
            port=self.modbus_port,
            unit_id=self.modbus_slave_id,
            timeout_ms=self.modbus_timeout,
        )

    def cors_origins(self) -> list[str]:
        """Resolve the origins allowed to call the API"""
        origins = [
            origin.strip()
            for origin in self.allowed_origins.split(",")
            if origin.strip()
        ]
        if self.frontend_url:
            origins.append(self.frontend_url)

        # Default origins for development
        if self.environment == "development" or not origins:
            origins.extend([
                "http://localhost:3000",      # Next.js dev server
                "http://127.0.0.1:3000",
            ])

        return list(dict.fromkeys(origins))


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings."""
    return Settings()
