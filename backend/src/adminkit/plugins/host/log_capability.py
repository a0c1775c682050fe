"""PluginLog - logger handed to plugins through their context.

Plugins call ``debug/info/warn/error`` with a message and optional
``%``-style arguments. Every record goes to the ``adminkit.plugins.runtime``
logger with the plugin id, runtime and scope attached as structured extras.
"""

from __future__ import annotations

import logging
from typing import Any

from .base import ImmutableCapabilityMixin

# Use a dedicated logger for plugin logs
plugin_logger = logging.getLogger("adminkit.plugins.runtime")


class PluginLog(ImmutableCapabilityMixin):
    """Plugin logging with automatic context injection.

    Example:
        async def execute(ctx):
            ctx.logger.info("Heartbeat ping for %s", ctx.id)
            ctx.logger.child("sync").warn("Skipped %d items", skipped)

    """

    __slots__ = ("_plugin_id", "_runtime", "_scope")

    _plugin_id: str
    _runtime: str
    _scope: str | None

    def __init__(self, *, plugin_id: str, runtime: str, scope: str | None = None) -> None:
        object.__setattr__(self, "_plugin_id", plugin_id)
        object.__setattr__(self, "_runtime", runtime)
        object.__setattr__(self, "_scope", scope)

    def _make_extra(self) -> dict[str, Any]:
        extra: dict[str, Any] = {"plugin_id": self._plugin_id, "runtime": self._runtime}
        if self._scope:
            extra["scope"] = self._scope
        return extra

    def _log(self, level: int, msg: Any, args: tuple[Any, ...]) -> None:
        text = str(msg)
        if args and "%" not in text:
            # Extra positional values without placeholders are appended, as a console logger would
            text = " ".join([text, *(str(a) for a in args)])
            args = ()
        plugin_logger.log(level, text, *args, extra=self._make_extra())

    def debug(self, msg: Any, *args: Any) -> None:
        self._log(logging.DEBUG, msg, args)

    def info(self, msg: Any, *args: Any) -> None:
        self._log(logging.INFO, msg, args)

    def warn(self, msg: Any, *args: Any) -> None:
        self._log(logging.WARNING, msg, args)

    def error(self, msg: Any, *args: Any) -> None:
        self._log(logging.ERROR, msg, args)

    def child(self, scope: str) -> PluginLog:
        """Sub-logger whose records carry ``scope`` (nested scopes are joined with ':')."""
        full_scope = f"{self._scope}:{scope}" if self._scope else scope
        return PluginLog(plugin_id=self._plugin_id, runtime=self._runtime, scope=full_scope)
