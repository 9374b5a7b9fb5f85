"""Tests for the /modbus HTTP endpoints."""

import pytest
from fastapi.testclient import TestClient

from modbus_dashboard.common.config import RegisterKind
from modbus_dashboard.common.exceptions import ErrorKind
from modbus_dashboard.common.settings import Settings
from modbus_dashboard.main import create_app


@pytest.fixture
def client(manager, tmp_path):
    settings = Settings(
        _env_file=None,
        modbus_config_file=tmp_path / "unused.json",
        environment="test",
        frontend_url="http://dashboard.local",
    )
    app = create_app(settings=settings, connection_manager=manager)
    with TestClient(app) as test_client:
        yield test_client


def test_read_holding_registers(client, device):
    device.tables[RegisterKind.HOLDING].update({0: 10, 1: 20, 2: 30})

    response = client.get("/modbus/read", params={"type": "holding", "address": 0, "quantity": 3})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["type"] == "holding"
    assert body["values"] == [
        {"address": 0, "rawValue": 10},
        {"address": 1, "rawValue": 20},
        {"address": 2, "rawValue": 30},
    ]
    assert "timestamp" in body


def test_read_coils(client, device):
    device.tables[RegisterKind.COIL].update({5: True, 6: False})

    response = client.get("/modbus/read", params={"type": "coil", "address": 5, "quantity": 2})

    assert response.json()["values"] == [
        {"address": 5, "rawValue": 1},
        {"address": 6, "rawValue": 0},
    ]


def test_read_defaults_to_one_holding_register(client, device):
    response = client.get("/modbus/read")

    assert response.status_code == 200
    assert response.json()["values"] == [{"address": 0, "rawValue": 0}]


@pytest.mark.parametrize(
    "params",
    [
        {"quantity": 126},
        {"quantity": 0},
        {"address": 65536},
        {"address": -1},
        {"type": "analog"},
        {"address": "abc"},
    ],
)
def test_read_validation_errors_return_400(client, device, params):
    response = client.get("/modbus/read", params=params)

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"]
    assert device.connect_calls == 0


def test_read_connection_failure_returns_500(client, device, sleep):
    device.refuse_all = ErrorKind.CONNECTION_REFUSED

    response = client.get("/modbus/read", params={"quantity": 3})

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert "192.168.1.50:502" in body["error"]
    assert "slave ID 1" in body["error"]
    assert sleep.calls == [2.0, 2.0]


def test_read_illegal_address_returns_500_with_details(client, device):
    device.op_errors = [ErrorKind.ILLEGAL_ADDRESS]

    response = client.get("/modbus/read", params={"type": "input", "address": 9000, "quantity": 4})

    assert response.status_code == 500
    assert "Invalid address 9000 for register type input" in response.json()["error"]


def test_status_before_and_after_read(client):
    before = client.get("/modbus/status").json()
    assert before == {
        "success": True,
        "connected": False,
        "state": "disconnected",
        "host": "192.168.1.50",
        "port": 502,
        "slaveId": 1,
    }

    client.get("/modbus/read")
    after = client.get("/modbus/status").json()

    assert after["connected"] is True
    assert after["state"] == "connected"
    assert "lastConnected" in after


def test_get_config(client):
    response = client.get("/modbus/config")

    assert response.json() == {
        "success": True,
        "config": {"host": "192.168.1.50", "port": 502, "slaveId": 1, "timeout": 3000},
    }


def test_update_config(client, store):
    response = client.post("/modbus/config", json={"host": "10.0.0.5", "slaveId": 4})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["config"] == {"host": "10.0.0.5", "port": 502, "slaveId": 4, "timeout": 3000}
    assert store.load()["host"] == "10.0.0.5"
    assert client.get("/modbus/config").json()["config"]["slaveId"] == 4


def test_update_config_ignores_null_fields(client):
    response = client.post("/modbus/config", json={"host": None, "port": 5020})

    assert response.json()["config"]["host"] == "192.168.1.50"
    assert response.json()["config"]["port"] == 5020


@pytest.mark.parametrize(
    "payload",
    [{"host": "999.1.1.1"}, {"port": 0}, {"slaveId": 300}, {"timeout": 100}, {"port": "abc"}],
)
def test_invalid_config_update_returns_400(client, store, payload):
    response = client.post("/modbus/config", json=payload)

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert client.get("/modbus/config").json()["config"]["host"] == "192.168.1.50"
    assert store.load() is None


def test_invalid_host_error_message(client):
    response = client.post("/modbus/config", json={"host": "999.1.1.1"})

    assert response.json()["error"] == "Invalid IP address format: 999.1.1.1"


def test_test_connection_success(client):
    response = client.post("/modbus/test-connection")

    body = response.json()
    assert response.status_code == 200
    assert body["success"] is True
    assert body["message"].startswith("Successfully connected to 192.168.1.50:502")
    assert body["status"]["connected"] is True


def test_test_connection_failure(client, device):
    device.refuse_all = ErrorKind.CONNECTION_TIMEOUT

    response = client.post("/modbus/test-connection")

    body = response.json()
    assert response.status_code == 200
    assert body["success"] is False
    assert body["message"].startswith("Connection failed: Connection timeout.")
    assert body["status"]["connected"] is False
    assert "lastError" in body["status"]


def test_write_register(client, device):
    response = client.post("/modbus/write/register", json={"address": 7, "value": 500})

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "message": "Successfully wrote value 500 to register 7",
    }
    assert device.tables[RegisterKind.HOLDING][7] == 500


def test_write_coil(client, device):
    response = client.post("/modbus/write/coil", json={"address": 2, "value": True})

    assert response.json()["message"] == "Successfully wrote value true to coil 2"
    assert device.tables[RegisterKind.COIL][2] is True


@pytest.mark.parametrize(
    "path, payload",
    [
        ("/modbus/write/register", {"address": 7, "value": 70000}),
        ("/modbus/write/register", {"address": 70000, "value": 1}),
        ("/modbus/write/register", {"value": 1}),
        ("/modbus/write/coil", {"address": 1, "value": 1}),
        ("/modbus/write/coil", {"address": 1, "value": "yes"}),
    ],
)
def test_invalid_writes_return_400(client, device, path, payload):
    response = client.post(path, json=payload)

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert device.connect_calls == 0


def test_health(client):
    response = client.get("/health")

    assert response.json()["status"] == "healthy"
    assert response.json()["device"] == {"connected": False, "state": "disconnected"}


def test_cors_allows_configured_frontend(client):
    response = client.options(
        "/modbus/status",
        headers={
            "Origin": "http://dashboard.local",
            "Access-Control-Request-Method": "GET",
        },
    )

    assert response.headers["access-control-allow-origin"] == "http://dashboard.local"


@pytest.mark.parametrize(
    "payload",
    [{"port": True}, {"slaveId": True}, {"timeout": False}, {"port": True, "slaveId": True}],
)
def test_boolean_config_fields_return_400(client, store, payload):
    response = client.post("/modbus/config", json=payload)

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert client.get("/modbus/config").json()["config"] == {
        "host": "192.168.1.50",
        "port": 502,
        "slaveId": 1,
        "timeout": 3000,
    }
    assert store.load() is None


@pytest.mark.parametrize(
    "path, payload",
    [
        ("/modbus/write/register", {"address": True, "value": 5}),
        ("/modbus/write/register", {"address": 1, "value": False}),
        ("/modbus/write/register", {"address": True, "value": False}),
        ("/modbus/write/coil", {"address": True, "value": True}),
    ],
)
def test_boolean_write_fields_return_400(client, device, path, payload):
    response = client.post(path, json=payload)

    assert response.status_code == 400
    assert device.calls == []
    assert device.tables[RegisterKind.HOLDING] == {}
    assert device.tables[RegisterKind.COIL] == {}
