"""
Configuration Store

Persists the device connection parameters as a single JSON record so
that settings survive a restart. Writes go to a temporary file that is
renamed over the record, so readers never see a partial file.
"""

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from modbus_dashboard.common.config import DeviceConfig, config_changes_from_record
from modbus_dashboard.common.exceptions import ConfigError
from modbus_dashboard.common.logging_setup import get_service_logger
from modbus_dashboard.services.validator import ConfigValidator

logger = get_service_logger("config.store")


class ConfigStore:
    """
    JSON file store for the device configuration.

    Record layout: {host, port, slaveId, timeout, lastUpdated}
    """

    def __init__(self, path: Path | str):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> dict[str, Any] | None:
        """
        Load the persisted record.

        Returns:
            Stored record, or None if missing or unreadable
        """
        if not self._path.exists():
            return None

        try:
            with open(self._path, "r", encoding="utf-8") as f:
                record = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.error(f"Failed to load config from {self._path}: {e}")
            return None

        if not isinstance(record, dict):
            logger.error(f"Ignoring config file {self._path}: expected a JSON object")
            return None

        return record

    def save(self, config: DeviceConfig) -> dict[str, Any]:
        """
        Persist configuration, replacing the previous record.

        Raises:
            OSError: if the record cannot be written
        """
        record = {
            **config.to_record(),
            "lastUpdated": datetime.now(timezone.utc).isoformat(),
        }

        self._path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self._path.with_name(f".{self._path.name}.tmp")

        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(record, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            temp_path.replace(self._path)
        except OSError as e:
            logger.error(f"Failed to save config to {self._path}: {e}", exc_info=True)
            temp_path.unlink(missing_ok=True)
            raise

        logger.info(
            f"Config saved to {self._path}",
            extra={"host": config.host, "port": config.port, "slave_id": config.unit_id},
        )
        return record


def load_effective_config(
    store: ConfigStore,
    defaults: DeviceConfig,
    validator: ConfigValidator | None = None,
) -> DeviceConfig:
    """
    Resolve the config in effect at process start.

    Precedence: persisted record > environment > hard defaults. A stored
    record that fails validation is ignored in favour of the defaults.

    Raises:
        ConfigError: the defaults themselves are invalid
    """
    validator = validator or ConfigValidator()

    record = store.load()
    if record:
        merged = defaults.merge(config_changes_from_record(record))
        is_valid, errors = validator.validate(merged)
        if is_valid:
            logger.info(
                f"Loaded persisted config from {store.path}: {merged.endpoint}, "
                f"Slave ID: {merged.unit_id}"
            )
            return merged
        logger.warning(
            f"Ignoring persisted config in {store.path}: {'; '.join(errors)}",
            extra={"errors": errors},
        )

    is_valid, errors = validator.validate(defaults)
    if not is_valid:
        raise ConfigError("; ".join(errors))

    logger.info(f"Using default config: {defaults.endpoint}, Slave ID: {defaults.unit_id}")
    return defaults
