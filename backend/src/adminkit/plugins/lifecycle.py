"""Per-instance plugin lifecycle.

    UNLOADED --setup--> READY --start--> ACTIVE --stop--> READY --teardown--> UNLOADED

``setup`` and ``teardown`` run at most once per process for an instance;
``start``/``stop`` may cycle. Hooks of one instance never overlap: every
transition holds the instance lock while its hook runs, and ``reload`` holds it
across its stop and start. A failing hook leaves the instance in the state it
was in.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from enum import Enum
from types import MappingProxyType
from typing import Any

from ..core.exceptions import LifecycleError, PluginHookError
from ..core.logging import get_logger
from .base import PluginContext, PluginDefinition, PluginRuntime, call_hook

logger = get_logger(__name__)


class PluginState(str, Enum):
    UNLOADED = "unloaded"
    READY = "ready"
    ACTIVE = "active"


# action -> (required state, resulting state)
TRANSITIONS: Mapping[str, tuple[PluginState, PluginState]] = MappingProxyType(
    {
        "setup": (PluginState.UNLOADED, PluginState.READY),
        "start": (PluginState.READY, PluginState.ACTIVE),
        "stop": (PluginState.ACTIVE, PluginState.READY),
        "teardown": (PluginState.READY, PluginState.UNLOADED),
    }
)


def merge_config(defaults: Mapping[str, Any], overrides: Mapping[str, Any] | None) -> dict[str, Any]:
    """Shallow merge: top-level override keys replace defaults, nested dicts are not merged."""
    merged = dict(defaults)
    merged.update(overrides or {})
    return merged


class PluginInstance:
    """The single runtime instance the host keeps for one plugin id."""

    def __init__(self, definition: PluginDefinition, overrides: Mapping[str, Any] | None = None):
        self.definition = definition
        self.overrides: Mapping[str, Any] = MappingProxyType(dict(overrides or {}))
        self.state = PluginState.UNLOADED
        self._lock = asyncio.Lock()
        self._completed: set[str] = set()

    @property
    def id(self) -> str:
        return self.definition.id

    @property
    def runtime(self) -> PluginRuntime:
        return self.definition.runtime

    @property
    def config(self) -> Mapping[str, Any]:
        return MappingProxyType(merge_config(self.definition.defaults, self.overrides))

    @property
    def is_active(self) -> bool:
        return self.state is PluginState.ACTIVE

    def set_overrides(self, overrides: Mapping[str, Any] | None) -> None:
        self.overrides = MappingProxyType(dict(overrides or {}))

    async def transition(
        self,
        action: str,
        context_factory: Callable[[], Awaitable[PluginContext]],
    ) -> PluginState:
        """Run ``action``'s hook (if any) and advance the state when it succeeds."""
        async with self._lock:
            return await self._apply(action, context_factory)

    async def reload(
        self,
        overrides: Mapping[str, Any] | None,
        context_factory: Callable[[], Awaitable[PluginContext]],
    ) -> PluginState:
        """Replace the overrides; an active instance is stopped and started again within one lock hold."""
        async with self._lock:
            was_active = self.is_active
            if was_active:
                await self._apply("stop", context_factory)
            self.set_overrides(overrides)
            logger.info("Plugin config reloaded", extra={"plugin_id": self.id, "keys": len(self.overrides)})
            if was_active:
                await self._apply("start", context_factory)
            return self.state

    async def _apply(
        self,
        action: str,
        context_factory: Callable[[], Awaitable[PluginContext]],
    ) -> PluginState:
        # Caller holds self._lock
        required, target = TRANSITIONS[action]
        if self.state is not required:
            raise LifecycleError(self.id, self.state.value, action)
        if action in ("setup", "teardown") and action in self._completed:
            raise LifecycleError(self.id, self.state.value, f"{action} again")

        hook = self.definition.lifecycle.hook(action)
        if hook is not None:
            try:
                await call_hook(hook, await context_factory())
            except Exception as e:
                logger.error(
                    "Plugin lifecycle hook failed",
                    extra={"plugin_id": self.id, "hook": action, "state": self.state.value},
                    exc_info=True,
                )
                raise PluginHookError(self.id, action, str(e) or type(e).__name__) from e

        self.state = target
        if action in ("setup", "teardown"):
            self._completed.add(action)
        logger.info(
            "Plugin transitioned",
            extra={"plugin_id": self.id, "action": action, "state": target.value},
        )
        return target
