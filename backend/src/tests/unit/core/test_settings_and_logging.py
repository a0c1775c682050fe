"""Unit tests for settings, log formatting and the response envelope."""

import json
import logging

import pytest

from adminkit import main
from adminkit.core.config import Settings, reset_settings_instance
from adminkit.core.logging import ColoredFormatter, JSONFormatter
from adminkit.core.response import AdminKitResponse
from adminkit.schemas.audit import AuditLogQuery
from adminkit.schemas.data import QueryDescriptor, TableRef


def _settings(**env) -> Settings:
    return Settings(ADMINKIT_DATABASE_URL="sqlite+aiosqlite:///:memory:", **env)


class TestSettings:
    def test_defaults(self):
        settings = _settings()
        assert settings.api_v1_prefix == "/api/v1"
        assert settings.data_max_page_size == 500
        assert settings.plugin_modules == ["adminkit.plugins.builtin.reference:reference_plugin"]

    def test_aliases_and_normalisation(self):
        settings = _settings(ADMINKIT_LOG_LEVEL="debug", ADMINKIT_DATA_MAX_PAGE_SIZE=50)
        assert settings.log_level == "DEBUG"
        assert settings.data_max_page_size == 50

    def test_page_sizes_must_be_positive(self):
        with pytest.raises(ValueError):
            _settings(ADMINKIT_DATA_MAX_PAGE_SIZE=0)


@pytest.fixture
def configured(monkeypatch):
    monkeypatch.setenv("ADMINKIT_DATA_DEFAULT_PAGE_SIZE", "7")
    monkeypatch.setenv("ADMINKIT_API_HOST", "0.0.0.0")
    monkeypatch.setenv("ADMINKIT_API_PORT", "9100")
    reset_settings_instance()
    yield
    reset_settings_instance()


class TestConfiguredDefaults:
    def test_page_size_default_comes_from_settings(self, configured):
        assert QueryDescriptor(schema="public", table="orders").limit == 7
        assert QueryDescriptor(schema="public", table="orders", limit=3).limit == 3
        assert AuditLogQuery().limit == 7

    def test_run_serves_on_configured_address(self, configured, monkeypatch):
        calls = []
        monkeypatch.setattr(main.uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))

        main.run()

        ((app, kwargs),) = calls
        assert app == "adminkit.main:app"
        assert (kwargs["host"], kwargs["port"]) == ("0.0.0.0", 9100)


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("adminkit.data", logging.WARNING, __file__, 10, "Delete failed for %s", ("7",), None)
    record.__dict__.update(extra)
    return record


class TestFormatters:
    def test_json_formatter_lifts_extras(self):
        payload = json.loads(JSONFormatter().format(_record(record_id="7", resource_type="public.orders")))
        assert payload["message"] == "Delete failed for 7"
        assert payload["level"] == "WARNING"
        assert payload["record_id"] == "7"
        assert payload["resource_type"] == "public.orders"

    def test_text_formatter_appends_key_values(self):
        line = ColoredFormatter(use_colors=False).format(_record(record_id="7"))
        assert "WARNING - adminkit.data - Delete failed for 7" in line
        assert line.endswith("| record_id=7")


class TestResponseEnvelope:
    def test_success_serialises_models_by_alias(self):
        response = AdminKitResponse.success([TableRef(schema="public", table="orders")])
        assert json.loads(response.body) == {"data": [{"schema": "public", "table": "orders"}]}

    def test_error(self):
        response = AdminKitResponse.error("nope", code="TABLE_NOT_FOUND", status_code=404, error_id="ERR-1")
        assert response.status_code == 404
        assert json.loads(response.body) == {
            "error": {"message": "nope", "code": "TABLE_NOT_FOUND", "details": {}, "error_id": "ERR-1"}
        }
