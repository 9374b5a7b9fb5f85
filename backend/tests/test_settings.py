"""Tests for environment-driven settings."""

from modbus_dashboard.common.config import DeviceConfig
from modbus_dashboard.common.settings import Settings
from modbus_dashboard.services.config_store import ConfigStore, load_effective_config


def test_hard_defaults(monkeypatch):
    for name in ("MODBUS_HOST", "MODBUS_PORT", "MODBUS_SLAVE_ID", "MODBUS_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)

    assert settings.device_defaults() == DeviceConfig(
        host="192.168.100.40", port=502, unit_id=1, timeout_ms=3000
    )


def test_environment_overrides_hard_defaults(monkeypatch):
    monkeypatch.setenv("MODBUS_HOST", "10.1.1.20")
    monkeypatch.setenv("MODBUS_PORT", "5020")
    monkeypatch.setenv("MODBUS_SLAVE_ID", "7")
    monkeypatch.setenv("MODBUS_TIMEOUT", "5000")

    defaults = Settings(_env_file=None).device_defaults()

    assert defaults == DeviceConfig(host="10.1.1.20", port=5020, unit_id=7, timeout_ms=5000)


def test_env_file_is_read(tmp_path, monkeypatch):
    monkeypatch.delenv("MODBUS_PORT", raising=False)
    monkeypatch.delenv("MODBUS_CONFIG_FILE", raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text("MODBUS_PORT=1502\nMODBUS_CONFIG_FILE=/data/modbus.json\n", encoding="utf-8")

    settings = Settings(_env_file=env_file)

    assert settings.device_defaults().port == 1502
    assert str(settings.modbus_config_file) == "/data/modbus.json"


def test_persisted_record_beats_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("MODBUS_HOST", "10.1.1.20")
    monkeypatch.setenv("MODBUS_PORT", "5020")
    store = ConfigStore(tmp_path / "modbus-config.json")
    store.save(DeviceConfig(host="10.2.2.30", port=502, unit_id=1, timeout_ms=3000))

    config = load_effective_config(store, Settings(_env_file=None).device_defaults())

    assert config.host == "10.2.2.30"
    assert config.port == 502


def test_development_adds_local_frontend_origins(monkeypatch):
    monkeypatch.delenv("ALLOWED_ORIGINS", raising=False)

    settings = Settings(
        _env_file=None,
        environment="development",
        frontend_url="http://dashboard.local",
    )

    assert settings.cors_origins() == [
        "http://dashboard.local",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]


def test_production_origins_come_from_environment():
    settings = Settings(
        _env_file=None,
        environment="production",
        allowed_origins="https://a.example, https://b.example",
        frontend_url="https://a.example",
    )

    assert settings.cors_origins() == ["https://a.example", "https://b.example"]
