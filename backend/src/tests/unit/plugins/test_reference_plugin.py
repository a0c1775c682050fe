"""Tests for the reference welcome banner plugin pair and the plugin loader."""

import pytest

from adminkit.core.exceptions import PluginRegistrationError
from adminkit.plugins.base import PluginRequest
from adminkit.plugins.builtin.reference import (
    DEFAULTS,
    HEARTBEAT_KEY,
    reference_client_plugin,
    reference_plugin,
    reference_service_plugin,
)
from adminkit.plugins.loader import PluginLoader
from adminkit.plugins.mount import MountPoint, render_markup
from adminkit.plugins.runtime import PluginHost, TaskRunStatus

SERVICE_ID = reference_service_plugin.id
CLIENT_ID = reference_client_plugin.id


@pytest.fixture
def host(context_builder) -> PluginHost:
    return PluginHost(context_builder)


def _ping() -> PluginRequest:
    return PluginRequest(method="POST", path="/reference/welcome/ping", body={"hello": "world"})


class TestReferencePlugin:
    @pytest.mark.asyncio
    async def test_render_then_destroy_round_trip(self, host):
        host.register_pair(reference_plugin)
        await host.start_all()
        mount = MountPoint(id="welcome")

        await host.render(CLIENT_ID, mount)

        assert f'data-plugin-id="{CLIENT_ID}"' in mount.inner_html
        assert f"<h2>{DEFAULTS['heading']}</h2>" in mount.inner_html
        assert DEFAULTS["message"] in mount.inner_html

        await host.destroy(CLIENT_ID, mount)
        assert mount.is_empty

    @pytest.mark.asyncio
    async def test_config_overrides_and_escaping(self, host):
        host.register(reference_client_plugin, {"heading": "<script>alert(1)</script>"})
        await host.start_all()
        mount = MountPoint(id="welcome")

        await host.render(CLIENT_ID, mount)

        assert "<script>" not in mount.inner_html
        assert "&lt;script&gt;" in mount.inner_html
        assert DEFAULTS["message"] in mount.inner_html

    @pytest.mark.asyncio
    async def test_heartbeat_records_a_timestamp(self, host, storage_backend):
        host.register_pair(reference_plugin)
        await host.start_all()

        outcome = await host.run_task(SERVICE_ID, "reference::heartbeat")

        assert outcome.status is TaskRunStatus.SUCCEEDED
        stored = await storage_backend.get(SERVICE_ID, "storage", HEARTBEAT_KEY)
        assert stored["json"].endswith("+00:00")

    @pytest.mark.asyncio
    async def test_ping(self, host):
        host.register_pair(reference_plugin)
        await host.start_all()

        result = await host.dispatch("POST", "/reference/welcome/ping", _ping())
        assert result == {"status": "ok", "message": DEFAULTS["message"]}

    @pytest.mark.asyncio
    async def test_disabled_mode_does_nothing(self, host, storage_backend):
        host.register_pair(reference_plugin, {"enabled": False})
        await host.start_all()
        mount = MountPoint(id="welcome", inner_html="<p>stale</p>")

        await host.render(CLIENT_ID, mount)
        await host.run_task(SERVICE_ID, "reference::heartbeat")
        result = await host.dispatch("POST", "/reference/welcome/ping", _ping())

        assert mount.is_empty
        assert await storage_backend.get(SERVICE_ID, "storage", HEARTBEAT_KEY) is None
        assert result == {"status": "disabled"}

    def test_pair_shares_defaults(self):
        assert dict(reference_service_plugin.defaults) == dict(reference_client_plugin.defaults) == DEFAULTS
        assert dict(reference_plugin.defaults) == DEFAULTS

    def test_render_markup_sandbox_escapes(self):
        assert render_markup("<p>{{ v }}</p>", v="<b>") == "<p>&lt;b&gt;</p>"


class TestPluginLoader:
    def test_resolve_pair(self):
        record = PluginLoader([]).resolve("adminkit.plugins.builtin.reference:reference_plugin")
        assert [d.id for d in record.definitions] == [SERVICE_ID, CLIENT_ID]

    def test_resolve_single_definition(self):
        record = PluginLoader([]).resolve("adminkit.plugins.builtin.reference:reference_client_plugin")
        assert record.definitions == (reference_client_plugin,)

    @pytest.mark.parametrize(
        "entry",
        [
            "adminkit.plugins.builtin.reference",
            "adminkit.plugins.builtin.missing_module:plugin",
            "adminkit.plugins.builtin.reference:nothing_here",
            "adminkit.plugins.builtin.reference:DEFAULTS",
        ],
    )
    def test_bad_entries(self, entry):
        with pytest.raises(PluginRegistrationError):
            PluginLoader([]).resolve(entry)

    def test_load_into_applies_overrides_by_id(self, host):
        loader = PluginLoader(["adminkit.plugins.builtin.reference:reference_plugin"])

        registered = loader.load_into(host, {CLIENT_ID: {"heading": "Howdy"}})

        assert registered == [SERVICE_ID, CLIENT_ID]
        assert host.get(CLIENT_ID).config["heading"] == "Howdy"
        assert host.get(SERVICE_ID).config["heading"] == DEFAULTS["heading"]
