"""End-to-end test of the application lifespan against a file-backed SQLite database."""

import sqlite3

import pytest
from fastapi.testclient import TestClient

from adminkit.auth.permissions import Actor
from adminkit.core.config import reset_settings_instance
from adminkit.main import create_app
from adminkit.plugins.builtin.reference import reference_service_plugin

PERMISSIONS = frozenset({"plugins.manage", "data.query.execute", "data.records.insert", "audit.read"})


@pytest.fixture
def file_database(tmp_path, monkeypatch):
    path = tmp_path / "adminkit.db"
    with sqlite3.connect(path) as conn:
        conn.execute("CREATE TABLE notes (id INTEGER PRIMARY KEY, body TEXT NOT NULL)")
    monkeypatch.setenv("ADMINKIT_DATABASE_URL", f"sqlite+aiosqlite:///{path}")
    monkeypatch.setenv("ADMINKIT_PLUGIN_SCHEDULER_ENABLED", "false")
    monkeypatch.setenv("ADMINKIT_DATA_EXPLORER_SCHEMAS", '["main"]')
    reset_settings_instance()
    yield path
    reset_settings_instance()


def test_lifespan_wires_services_and_plugins(file_database):
    app = create_app(actor_resolver=lambda request: Actor(user_id="ops", permissions=PERMISSIONS))
    headers = {"X-Forwarded-For": "203.0.113.1"}

    with TestClient(app) as client:
        plugins = client.get("/api/v1/plugins").json()["data"]
        assert {p["state"] for p in plugins} == {"active"}

        run = client.post(
            f"/api/v1/plugins/{reference_service_plugin.id}/tasks/reference::heartbeat/run", headers=headers
        )
        assert run.json()["data"]["status"] == "succeeded"

        stored = client.post(
            "/api/v1/data/query",
            json={"schema": "main", "table": "plugin_storage"},
        )
        assert stored.status_code == 400
        with sqlite3.connect(file_database) as conn:
            keys = conn.execute(
                "SELECT key FROM plugin_storage WHERE plugin_id = ?", (reference_service_plugin.id,)
            ).fetchall()
        assert keys == [("reference:lastHeartbeatAt",)]

        inserted = client.post(
            "/api/v1/data/records",
            json={
                "schema": "main",
                "table": "notes",
                "values": {"body": "hello"},
            },
            headers=headers,
        )
        assert inserted.status_code == 201

        logs = client.get("/api/v1/audit/logs", params={"event_type": "data.insert"}).json()["data"]
        assert logs["total"] == 1
        entry = logs["data"][0]
        assert entry["actor_user_id"] == "ops"
        assert entry["ip_address"] == "203.0.113.1"
        assert entry["resource_type"] == "main.notes"
        assert entry["resource_identifier"] == "1"

    assert app.state.plugin_host.get(reference_service_plugin.id).state.value == "unloaded"
