"""Plugin runtime API endpoints.

Lists registered plugins, lets operators trigger a task tick or reload a
plugin's config, and routes ``/plugins/endpoints/...`` to service plugin
endpoint handlers.
"""

import json
from typing import Any

from fastapi import APIRouter, Body, Depends, Path, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.responses import Response

from ..auth.permissions import Actor, require_permission
from ..core.exceptions import ValidationError
from ..core.logging import get_logger
from ..core.response import AdminKitResponse
from ..plugins.base import ENDPOINT_METHODS, PluginRequest
from ..plugins.runtime import PluginHost
from .dependencies import get_plugin_host

logger = get_logger(__name__)
router = APIRouter(prefix="/plugins", tags=["plugins"])


async def _read_json(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationError("Request body is not valid JSON", details={"reason": str(e)}) from e


@router.api_route(
    "/endpoints/{path:path}",
    methods=sorted(ENDPOINT_METHODS),
    summary="Invoke a service plugin endpoint",
)
async def dispatch_endpoint(
    request: Request,
    path: str,
    actor: Actor = Depends(require_permission("plugins.invoke", "plugins.manage")),
    host: PluginHost = Depends(get_plugin_host),
):
    """The handler's return value is sent back as-is (a Response, or JSON for anything else)."""
    plugin_request = PluginRequest(
        method=request.method,
        path="/" + path,
        headers=dict(request.headers),
        query=dict(request.query_params),
        body=await _read_json(request),
    )
    result = await host.dispatch(request.method, plugin_request.path, plugin_request)
    if isinstance(result, Response):
        return result
    return JSONResponse(content=jsonable_encoder(result))


@router.get("", summary="List registered plugins")
async def list_plugins(
    actor: Actor = Depends(require_permission("plugins.read", "plugins.manage")),
    host: PluginHost = Depends(get_plugin_host),
):
    return AdminKitResponse.success([host.describe(instance.id) for instance in host.instances])


@router.post("/{namespace}/{name}/tasks/{task}/run", summary="Run one tick of a plugin task")
async def run_task(
    namespace: str = Path(...),
    name: str = Path(...),
    task: str = Path(...),
    actor: Actor = Depends(require_permission("plugins.manage")),
    host: PluginHost = Depends(get_plugin_host),
):
    plugin_id = f"{namespace}/{name}"
    logger.info("Manual task run", extra={"plugin_id": plugin_id, "task": task, "user_id": actor.user_id})
    outcome = await host.run_task(plugin_id, task)
    return AdminKitResponse.success(outcome.to_dict())


@router.post("/{namespace}/{name}/reload", summary="Reload a plugin with new config overrides")
async def reload_plugin(
    namespace: str = Path(...),
    name: str = Path(...),
    overrides: dict[str, Any] | None = Body(None),
    actor: Actor = Depends(require_permission("plugins.manage")),
    host: PluginHost = Depends(get_plugin_host),
):
    plugin_id = f"{namespace}/{name}"
    await host.reload(plugin_id, overrides or {})
    return AdminKitResponse.success(host.describe(plugin_id))
