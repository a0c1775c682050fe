"""Plugin host.

Owns at most one ``PluginInstance`` per plugin id, drives lifecycle
transitions, runs scheduled tasks for the scheduler, dispatches endpoint
requests for the HTTP layer and renders client plugins into mount points.
Task and endpoint descriptors are enumerated once, at registration.
"""

from __future__ import annotations

import inspect
from collections import deque
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from ..core.exceptions import (
    EndpointNotFoundError,
    PluginHookError,
    PluginNotActiveError,
    PluginNotFoundError,
    PluginRegistrationError,
    TaskNotFoundError,
)
from ..core.logging import get_logger
from .base import (
    ClientPlugin,
    PluginContext,
    PluginDefinition,
    PluginPair,
    PluginRequest,
    ScheduledTask,
    ServiceEndpoint,
    ServicePlugin,
    call_hook,
)
from .host.host_builder import ClientBridge, ContextBuilder
from .lifecycle import PluginInstance, PluginState
from .mount import MountPoint, MountSnapshot

logger = get_logger(__name__)

ErrorChannel = Callable[[PluginHookError], Awaitable[None] | None]


class TaskRunStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class TaskRunOutcome:
    plugin_id: str
    task: str
    status: TaskRunStatus
    started_at: datetime
    finished_at: datetime
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "plugin_id": self.plugin_id,
            "task": self.task,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "error": self.error,
        }


@dataclass(frozen=True)
class TaskDescriptor:
    plugin_id: str
    name: str
    cron: str
    task: ScheduledTask = field(repr=False, compare=False)


@dataclass(frozen=True)
class EndpointDescriptor:
    plugin_id: str
    method: str
    path: str
    endpoint: ServiceEndpoint = field(repr=False, compare=False)


def _normalize_path(path: str) -> str:
    path = "/" + path.lstrip("/")
    return path.rstrip("/") or "/"


class PluginHost:
    """Registry and dispatcher for service and client plugins."""

    def __init__(
        self,
        context_builder: ContextBuilder,
        *,
        error_channel: ErrorChannel | None = None,
        client_event_history: int = 200,
    ):
        self.context_builder = context_builder
        self.error_channel = error_channel
        self._instances: dict[str, PluginInstance] = {}
        self._tasks: dict[tuple[str, str], TaskDescriptor] = {}
        self._routes: dict[tuple[str, str], EndpointDescriptor] = {}
        # Target state captured before the first render, put back by destroy
        self._pre_render: dict[tuple[str, str], MountSnapshot] = {}
        # Events emitted by client plugins through their bridge
        self.client_events: deque[dict[str, Any]] = deque(maxlen=client_event_history)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, definition: PluginDefinition, overrides: Mapping[str, Any] | None = None) -> PluginInstance:
        if not isinstance(definition, (ServicePlugin, ClientPlugin)):
            raise PluginRegistrationError(
                f"Unsupported plugin definition type: {type(definition).__name__}",
                details={"type": type(definition).__name__},
            )
        if definition.id in self._instances:
            raise PluginRegistrationError(
                f"Plugin '{definition.id}' is already registered",
                details={"plugin_id": definition.id},
            )

        if isinstance(definition, ServicePlugin):
            routes = {}
            for endpoint in definition.endpoints:
                route = (endpoint.method, _normalize_path(endpoint.path))
                owner = self._routes.get(route)
                if owner is not None:
                    raise PluginRegistrationError(
                        f"Endpoint {route[0]} {route[1]} is already served by '{owner.plugin_id}'",
                        details={"plugin_id": definition.id, "owner": owner.plugin_id},
                    )
                routes[route] = EndpointDescriptor(definition.id, route[0], route[1], endpoint)
            self._routes.update(routes)
            for task in definition.tasks:
                self._tasks[(definition.id, task.name)] = TaskDescriptor(definition.id, task.name, task.cron, task)

        instance = PluginInstance(definition, overrides)
        self._instances[definition.id] = instance
        logger.info(
            "Plugin registered",
            extra={
                "plugin_id": definition.id,
                "runtime": definition.runtime.value,
                "version": definition.meta.version,
            },
        )
        return instance

    def register_pair(self, pair: PluginPair, overrides: Mapping[str, Any] | None = None) -> list[PluginInstance]:
        return [self.register(definition, overrides) for definition in pair]

    def get(self, plugin_id: str) -> PluginInstance:
        instance = self._instances.get(plugin_id)
        if instance is None:
            raise PluginNotFoundError(plugin_id)
        return instance

    @property
    def instances(self) -> list[PluginInstance]:
        return list(self._instances.values())

    def tasks(self) -> list[TaskDescriptor]:
        return list(self._tasks.values())

    def endpoints(self) -> list[EndpointDescriptor]:
        return list(self._routes.values())

    def describe(self, plugin_id: str) -> dict[str, Any]:
        instance = self.get(plugin_id)
        definition = instance.definition
        info: dict[str, Any] = {
            "id": definition.id,
            "runtime": definition.runtime.value,
            "state": instance.state.value,
            "name": definition.meta.name,
            "version": definition.meta.version,
            "description": definition.meta.description,
            "tags": list(definition.meta.tags),
        }
        if isinstance(definition, ServicePlugin):
            info["tasks"] = [{"name": t.name, "cron": t.cron} for t in definition.tasks]
            info["endpoints"] = [{"method": e.method, "path": e.path} for e in definition.endpoints]
        return info

    # ------------------------------------------------------------------
    # Contexts
    # ------------------------------------------------------------------

    def _emit_client_event(self, plugin_id: str, event: str, payload: Any) -> None:
        self.client_events.append(
            {"plugin_id": plugin_id, "event": event, "payload": payload, "at": datetime.now(UTC).isoformat()}
        )
        logger.debug("Client plugin event", extra={"plugin_id": plugin_id, "event": event})

    def _services_view(self) -> dict[str, Any]:
        return {
            instance.id: self.describe(instance.id)
            for instance in self._instances.values()
            if isinstance(instance.definition, ServicePlugin)
        }

    async def _context(self, instance: PluginInstance, mount: MountPoint | None = None) -> PluginContext:
        definition = instance.definition
        if isinstance(definition, ServicePlugin):
            return await self.context_builder.service_context(definition, instance.config)
        bridge = ClientBridge(plugin_id=definition.id, emit=self._emit_client_event, request=self.dispatch)
        return self.context_builder.client_context(
            definition,
            instance.config,
            services=self._services_view(),
            bridge=bridge,
            mount=mount,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _transition(self, plugin_id: str, action: str) -> PluginState:
        instance = self.get(plugin_id)
        return await instance.transition(action, lambda: self._context(instance))

    async def setup(self, plugin_id: str) -> PluginState:
        return await self._transition(plugin_id, "setup")

    async def start(self, plugin_id: str) -> PluginState:
        return await self._transition(plugin_id, "start")

    async def stop(self, plugin_id: str) -> PluginState:
        return await self._transition(plugin_id, "stop")

    async def teardown(self, plugin_id: str) -> PluginState:
        return await self._transition(plugin_id, "teardown")

    async def reload(self, plugin_id: str, overrides: Mapping[str, Any] | None) -> PluginState:
        """Apply new overrides; an active plugin is stopped and started around the change."""
        instance = self.get(plugin_id)
        return await instance.reload(overrides, lambda: self._context(instance))

    async def start_all(self) -> list[PluginHookError]:
        """Set up and start every registered plugin; failures are logged and returned."""
        failures: list[PluginHookError] = []
        for instance in self.instances:
            try:
                if instance.state is PluginState.UNLOADED:
                    await self.setup(instance.id)
                if instance.state is PluginState.READY:
                    await self.start(instance.id)
            except PluginHookError as e:
                logger.error("Plugin failed to start", extra={"plugin_id": instance.id, "hook": e.hook})
                failures.append(e)
        return failures

    async def shutdown_all(self) -> list[PluginHookError]:
        """Stop and tear down plugins in reverse registration order."""
        failures: list[PluginHookError] = []
        for instance in reversed(self.instances):
            try:
                if instance.state is PluginState.ACTIVE:
                    await self.stop(instance.id)
                if instance.state is PluginState.READY:
                    await self.teardown(instance.id)
            except PluginHookError as e:
                logger.error("Plugin failed to shut down", extra={"plugin_id": instance.id, "hook": e.hook})
                failures.append(e)
        return failures

    # ------------------------------------------------------------------
    # Service capabilities
    # ------------------------------------------------------------------

    async def _report(self, error: PluginHookError) -> None:
        if self.error_channel is None:
            return
        try:
            result = self.error_channel(error)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Plugin error channel failed", extra={"plugin_id": error.plugin_id})

    async def run_task(self, plugin_id: str, task_name: str) -> TaskRunOutcome:
        """Run one tick of a task. Never raises for task failures."""
        instance = self.get(plugin_id)
        descriptor = self._tasks.get((plugin_id, task_name))
        if descriptor is None:
            raise TaskNotFoundError(plugin_id, task_name)

        started_at = datetime.now(UTC)
        if not instance.is_active:
            logger.debug(
                "Skipping task for inactive plugin",
                extra={"plugin_id": plugin_id, "task": task_name, "state": instance.state.value},
            )
            return TaskRunOutcome(plugin_id, task_name, TaskRunStatus.SKIPPED, started_at, datetime.now(UTC))

        try:
            ctx = await self._context(instance)
            await call_hook(descriptor.task.execute, ctx)
        except Exception as e:
            error = PluginHookError(plugin_id, f"task:{task_name}", str(e) or type(e).__name__)
            error.__cause__ = e
            logger.error(
                "Plugin task failed",
                extra={"plugin_id": plugin_id, "task": task_name, "error": error.message},
                exc_info=e,
            )
            await self._report(error)
            return TaskRunOutcome(
                plugin_id, task_name, TaskRunStatus.FAILED, started_at, datetime.now(UTC), error=error.message
            )

        return TaskRunOutcome(plugin_id, task_name, TaskRunStatus.SUCCEEDED, started_at, datetime.now(UTC))

    def find_endpoint(self, method: str, path: str) -> EndpointDescriptor:
        descriptor = self._routes.get((method.upper(), _normalize_path(path)))
        if descriptor is None:
            raise EndpointNotFoundError(method.upper(), path)
        return descriptor

    async def dispatch(self, method: str, path: str, request: PluginRequest) -> Any:
        """Invoke the one handler serving ``method path`` and return its result unchanged."""
        descriptor = self.find_endpoint(method, path)
        instance = self.get(descriptor.plugin_id)
        if not instance.is_active:
            raise PluginNotActiveError(instance.id, instance.state.value)

        ctx = await self._context(instance)
        try:
            return await call_hook(descriptor.endpoint.handler, ctx, request)
        except Exception as e:
            logger.error(
                "Plugin endpoint failed",
                extra={"plugin_id": instance.id, "method": descriptor.method, "path": descriptor.path},
                exc_info=e,
            )
            raise PluginHookError(
                instance.id, f"endpoint:{descriptor.method} {descriptor.path}", str(e) or type(e).__name__
            ) from e

    # ------------------------------------------------------------------
    # Client capabilities (mount manager)
    # ------------------------------------------------------------------

    def _client(self, plugin_id: str) -> tuple[PluginInstance, ClientPlugin]:
        instance = self.get(plugin_id)
        definition = instance.definition
        if not isinstance(definition, ClientPlugin):
            raise PluginRegistrationError(
                f"Plugin '{plugin_id}' is not a client plugin",
                details={"plugin_id": plugin_id, "runtime": definition.runtime.value},
            )
        if not instance.is_active:
            raise PluginNotActiveError(plugin_id, instance.state.value)
        return instance, definition

    async def render(self, plugin_id: str, target: MountPoint) -> MountPoint:
        """Render into ``target``; on failure the target is put back exactly as it was."""
        instance, definition = self._client(plugin_id)
        if definition.render is None:
            return target

        before = target.snapshot()
        try:
            ctx = await self._context(instance, target)
            await call_hook(definition.render, ctx, target)
        except Exception as e:
            target.restore(before)
            logger.error("Plugin render failed", extra={"plugin_id": plugin_id, "mount": target.id}, exc_info=e)
            raise PluginHookError(plugin_id, "render", str(e) or type(e).__name__) from e
        self._pre_render.setdefault((plugin_id, target.id), before)
        return target

    async def destroy(self, plugin_id: str, target: MountPoint) -> MountPoint:
        """Undo a render; the target returns to its pre-render state, or is emptied if it was never rendered."""
        instance, definition = self._client(plugin_id)
        before = self._pre_render.pop((plugin_id, target.id), None)
        try:
            if definition.destroy is not None:
                ctx = await self._context(instance, target)
                await call_hook(definition.destroy, ctx, target)
        except Exception as e:
            _reset_mount(target, before)
            logger.error("Plugin destroy failed", extra={"plugin_id": plugin_id, "mount": target.id}, exc_info=e)
            raise PluginHookError(plugin_id, "destroy", str(e) or type(e).__name__) from e

        if target.inner_html != (before.inner_html if before is not None else ""):
            logger.warning("Plugin destroy left content behind", extra={"plugin_id": plugin_id, "mount": target.id})
        _reset_mount(target, before)
        return target


def _reset_mount(target: MountPoint, snapshot: MountSnapshot | None) -> None:
    if snapshot is None:
        target.clear()
    else:
        target.restore(snapshot)
