"""Unit tests for plugin definitions, config merging and the lifecycle state machine."""

import asyncio
from types import MappingProxyType

import pytest

from adminkit.core.exceptions import LifecycleError, PluginHookError, PluginRegistrationError
from adminkit.plugins.base import (
    ClientPlugin,
    PluginLifecycle,
    PluginMeta,
    PluginPair,
    ScheduledTask,
    ServiceEndpoint,
    ServicePlugin,
)
from adminkit.plugins.lifecycle import PluginInstance, PluginState, merge_config

META = PluginMeta(name="Sample", version="0.1.0")


async def _noop(*args):
    return None


def _context_factory():
    async def factory():
        return "ctx"

    return factory


class TestDefinitions:
    @pytest.mark.parametrize("plugin_id", ["sample", "Sample/Plugin", "/name", "ns/", "ns/na me"])
    def test_invalid_ids_are_rejected(self, plugin_id):
        with pytest.raises(PluginRegistrationError):
            ServicePlugin(id=plugin_id, meta=META)

    def test_invalid_cron_is_rejected(self):
        with pytest.raises(PluginRegistrationError):
            ScheduledTask(name="tick", cron="every five minutes", execute=_noop)

    def test_endpoint_method_is_normalised(self):
        endpoint = ServiceEndpoint(method="post", path="/hook", handler=_noop)
        assert endpoint.route == ("POST", "/hook")

    @pytest.mark.parametrize(("method", "path"), [("TRACE", "/hook"), ("GET", "hook")])
    def test_bad_endpoints_are_rejected(self, method, path):
        with pytest.raises(PluginRegistrationError):
            ServiceEndpoint(method=method, path=path, handler=_noop)

    def test_duplicate_task_names_are_rejected(self):
        task = ScheduledTask(name="tick", cron="* * * * *", execute=_noop)
        with pytest.raises(PluginRegistrationError):
            ServicePlugin(id="acme/svc", meta=META, tasks=(task, task))

    def test_defaults_are_read_only(self):
        plugin = ClientPlugin(id="acme/ui", meta=META, defaults={"a": 1})
        assert isinstance(plugin.defaults, MappingProxyType)
        with pytest.raises(TypeError):
            plugin.defaults["a"] = 2

    def test_pair_needs_distinct_ids(self):
        with pytest.raises(PluginRegistrationError):
            PluginPair(
                service=ServicePlugin(id="acme/x", meta=META),
                client=ClientPlugin(id="acme/x", meta=META),
            )

    def test_pair_iterates_service_then_client(self):
        pair = PluginPair(service=ServicePlugin(id="acme/svc", meta=META), client=ClientPlugin(id="acme/ui", meta=META))
        assert [d.id for d in pair] == ["acme/svc", "acme/ui"]


class TestConfig:
    def test_overrides_replace_top_level_keys(self):
        defaults = {"heading": "Hi", "style": {"colour": "blue", "size": 2}}
        merged = merge_config(defaults, {"style": {"colour": "red"}})
        assert merged == {"heading": "Hi", "style": {"colour": "red"}}
        assert defaults["style"] == {"colour": "blue", "size": 2}

    def test_missing_keys_come_from_defaults(self):
        instance = PluginInstance(ClientPlugin(id="acme/ui", meta=META, defaults={"a": 1, "b": 2}), {"b": 3})
        assert dict(instance.config) == {"a": 1, "b": 3}

    def test_no_overrides(self):
        assert merge_config({"a": 1}, None) == {"a": 1}


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_full_cycle(self):
        calls = []

        def record(name):
            async def hook(ctx):
                calls.append((name, ctx))

            return hook

        lifecycle = PluginLifecycle(
            setup=record("setup"), start=record("start"), stop=record("stop"), teardown=record("teardown")
        )
        instance = PluginInstance(ServicePlugin(id="acme/svc", meta=META, lifecycle=lifecycle))

        assert instance.state is PluginState.UNLOADED
        assert await instance.transition("setup", _context_factory()) is PluginState.READY
        assert await instance.transition("start", _context_factory()) is PluginState.ACTIVE
        assert instance.is_active
        assert await instance.transition("stop", _context_factory()) is PluginState.READY
        assert await instance.transition("start", _context_factory()) is PluginState.ACTIVE
        await instance.transition("stop", _context_factory())
        assert await instance.transition("teardown", _context_factory()) is PluginState.UNLOADED

        assert [name for name, _ in calls] == ["setup", "start", "stop", "start", "stop", "teardown"]
        assert all(ctx == "ctx" for _, ctx in calls)

    @pytest.mark.asyncio
    async def test_missing_hooks_still_transition(self):
        instance = PluginInstance(ClientPlugin(id="acme/ui", meta=META))
        await instance.transition("setup", _context_factory())
        assert await instance.transition("start", _context_factory()) is PluginState.ACTIVE

    @pytest.mark.asyncio
    @pytest.mark.parametrize("action", ["start", "stop", "teardown"])
    async def test_out_of_order_transitions_are_rejected(self, action):
        instance = PluginInstance(ClientPlugin(id="acme/ui", meta=META))
        with pytest.raises(LifecycleError):
            await instance.transition(action, _context_factory())
        assert instance.state is PluginState.UNLOADED

    @pytest.mark.asyncio
    async def test_setup_runs_at_most_once(self):
        setups = []
        instance = PluginInstance(
            ClientPlugin(id="acme/ui", meta=META, lifecycle=PluginLifecycle(setup=lambda ctx: setups.append(ctx)))
        )
        await instance.transition("setup", _context_factory())
        await instance.transition("teardown", _context_factory())

        with pytest.raises(LifecycleError):
            await instance.transition("setup", _context_factory())
        assert len(setups) == 1

    @pytest.mark.asyncio
    async def test_failed_hook_keeps_state_and_can_be_retried(self):
        attempts = []

        def flaky_setup(ctx):
            attempts.append(ctx)
            if len(attempts) == 1:
                raise RuntimeError("database not ready")

        instance = PluginInstance(
            ServicePlugin(id="acme/svc", meta=META, lifecycle=PluginLifecycle(setup=flaky_setup))
        )

        with pytest.raises(PluginHookError) as exc_info:
            await instance.transition("setup", _context_factory())
        assert instance.state is PluginState.UNLOADED
        assert exc_info.value.hook == "setup"
        assert "database not ready" in exc_info.value.message

        assert await instance.transition("setup", _context_factory()) is PluginState.READY
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_teardown_runs_at_most_once(self):
        teardowns = []
        instance = PluginInstance(
            ClientPlugin(id="acme/ui", meta=META, lifecycle=PluginLifecycle(teardown=lambda ctx: teardowns.append(ctx)))
        )
        await instance.transition("setup", _context_factory())
        await instance.transition("teardown", _context_factory())

        with pytest.raises(LifecycleError):
            await instance.transition("teardown", _context_factory())
        assert len(teardowns) == 1
        assert instance.state is PluginState.UNLOADED


class HookTracker:
    """Slow lifecycle hooks that record the order they ran in and any overlap."""

    def __init__(self):
        self.calls: list[str] = []
        self.running = 0
        self.max_running = 0

    def _hook(self, name):
        async def run(ctx):
            self.running += 1
            self.max_running = max(self.max_running, self.running)
            self.calls.append(name)
            await asyncio.sleep(0.01)
            self.running -= 1

        return run

    def lifecycle(self) -> PluginLifecycle:
        return PluginLifecycle(
            setup=self._hook("setup"),
            start=self._hook("start"),
            stop=self._hook("stop"),
            teardown=self._hook("teardown"),
        )


class TestSerializedHooks:
    @pytest.mark.asyncio
    async def test_concurrent_setup_and_start_do_not_overlap(self):
        tracker = HookTracker()
        instance = PluginInstance(ServicePlugin(id="acme/svc", meta=META, lifecycle=tracker.lifecycle()))

        await asyncio.gather(
            instance.transition("setup", _context_factory()),
            instance.transition("start", _context_factory()),
        )

        assert tracker.calls == ["setup", "start"]
        assert tracker.max_running == 1
        assert instance.state is PluginState.ACTIVE

    @pytest.mark.asyncio
    async def test_reload_is_not_interleaved_with_stop(self):
        tracker = HookTracker()
        instance = PluginInstance(ServicePlugin(id="acme/svc", meta=META, lifecycle=tracker.lifecycle()))
        await instance.transition("setup", _context_factory())
        await instance.transition("start", _context_factory())
        tracker.calls.clear()

        await asyncio.gather(
            instance.reload({"mode": "fast"}, _context_factory()),
            instance.transition("stop", _context_factory()),
        )

        assert tracker.calls == ["stop", "start", "stop"]
        assert tracker.max_running == 1
        assert instance.state is PluginState.READY
        assert dict(instance.overrides) == {"mode": "fast"}

    @pytest.mark.asyncio
    async def test_reload_of_an_inactive_instance_only_swaps_overrides(self):
        tracker = HookTracker()
        instance = PluginInstance(ServicePlugin(id="acme/svc", meta=META, lifecycle=tracker.lifecycle()))

        assert await instance.reload({"mode": "slow"}, _context_factory()) is PluginState.UNLOADED
        assert tracker.calls == []
        assert dict(instance.overrides) == {"mode": "slow"}
