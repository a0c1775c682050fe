"""Reference welcome banner plugin pair.

Shows the whole plugin contract on a small example: the service half runs a
heartbeat task and answers a ping endpoint, the client half renders a banner
into its mount point. Both halves share ``DEFAULTS`` and honour
``enabled: False`` by doing nothing.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from ..base import (
    ClientContext,
    ClientPlugin,
    PluginLifecycle,
    PluginLogger,
    PluginMeta,
    PluginPair,
    PluginRequest,
    ScheduledTask,
    ServiceContext,
    ServiceEndpoint,
    ServicePlugin,
)
from ..mount import MountPoint, render_markup

HEARTBEAT_KEY = "reference:lastHeartbeatAt"

DEFAULTS: dict[str, Any] = {
    "heading": "Welcome back!",
    "message": "This is a sample message delivered by the reference plugin.",
    "enabled": True,
}

BANNER_TEMPLATE = (
    '<section data-plugin-id="{{ plugin_id }}" class="adminkit-welcome-banner">'
    "<h2>{{ heading }}</h2>"
    "<p>{{ message }}</p>"
    "</section>"
)

_TAGS = ("reference", "welcome")


def _log_initialisation(logger: PluginLogger, scope: str) -> None:
    child = getattr(logger, "child", None)
    if callable(child):
        child(scope).info("initialised")
        return
    logger.info("[%s] initialised", scope)


async def _service_setup(ctx: ServiceContext) -> None:
    _log_initialisation(ctx.logger, ctx.id)
    if not ctx.config.get("enabled"):
        ctx.logger.warn("Plugin disabled via config")


async def _heartbeat(ctx: ServiceContext) -> None:
    if not ctx.config.get("enabled"):
        return
    ctx.logger.debug("Heartbeat ping for %s", ctx.id)
    await ctx.storage.set(HEARTBEAT_KEY, datetime.now(UTC).isoformat())


async def _ping(ctx: ServiceContext, request: PluginRequest) -> dict[str, Any]:
    if not ctx.config.get("enabled"):
        return {"status": "disabled"}
    ctx.logger.info("Received ping payload", request.json())
    return {"status": "ok", "message": ctx.config.get("message")}


async def _client_setup(ctx: ClientContext) -> None:
    _log_initialisation(ctx.logger, ctx.id)


async def _render(ctx: ClientContext, target: MountPoint) -> None:
    if not ctx.config.get("enabled"):
        target.inner_html = ""
        return
    target.inner_html = render_markup(
        BANNER_TEMPLATE,
        plugin_id=ctx.id,
        heading=ctx.config.get("heading", ""),
        message=ctx.config.get("message", ""),
    )


async def _destroy(ctx: ClientContext, target: MountPoint) -> None:
    target.inner_html = ""


reference_service_plugin = ServicePlugin(
    id="reference/welcome-banner-service",
    meta=PluginMeta(
        name="Reference welcome banner (service)",
        version="1.0.0",
        description="Demonstrates the service contract: registers a cron task and a webhook endpoint.",
        author="adminkit",
        tags=_TAGS,
    ),
    defaults=DEFAULTS,
    lifecycle=PluginLifecycle(setup=_service_setup),
    tasks=(ScheduledTask(name="reference::heartbeat", cron="*/5 * * * *", execute=_heartbeat),),
    endpoints=(ServiceEndpoint(method="POST", path="/reference/welcome/ping", handler=_ping),),
)

reference_client_plugin = ClientPlugin(
    id="reference/welcome-banner-client",
    meta=PluginMeta(
        name="Reference welcome banner (client)",
        version="1.0.0",
        description="Sample client implementation that mounts a welcome banner on the page.",
        author="adminkit",
        tags=_TAGS,
    ),
    defaults=DEFAULTS,
    lifecycle=PluginLifecycle(setup=_client_setup),
    render=_render,
    destroy=_destroy,
)

reference_plugin = PluginPair(
    service=reference_service_plugin,
    client=reference_client_plugin,
    defaults=DEFAULTS,
)
