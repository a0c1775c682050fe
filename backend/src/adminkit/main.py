"""
Main FastAPI application for the adminkit backend.

This module creates and configures the FastAPI application with all
routes, exception handlers and the lifespan that wires the data explorer,
audit log and plugin runtime together.
"""

import uuid
from collections.abc import Callable
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api.audit import router as audit_router
from .api.data import router as data_router
from .api.plugins import router as plugins_router
from .audit.sink import SqlAuditLog
from .auth.permissions import ActorResolver
from .core.config import get_settings_instance
from .core.database import close_db, get_async_engine, get_async_session_local, init_db
from .core.encryption import get_secrets_encryption_service
from .core.exceptions import AdminKitException, PluginHookError
from .core.logging import get_logger, setup_logging
from .core.response import AdminKitResponse
from .data.catalog import TableCatalog
from .data.engine import QueryEngine
from .data.mutations import DataMutationService
from .data.store import RecordStore
from .plugins.host import ContextBuilder, SqlStorageBackend
from .plugins.loader import PluginLoader
from .plugins.runtime import PluginHost
from .plugins.scheduler import PluginTaskScheduler
from .schemas.audit import AuditContext, AuditEvent, AuditEventType

logger = get_logger(__name__)


def generate_error_id() -> str:
    """Generate a unique error ID for tracking."""
    return f"ERR-{uuid.uuid4().hex[:8].upper()}"


def get_request_context(request: Request) -> dict[str, Any]:
    """Extract relevant context from request for error logging."""
    return {
        "method": request.method,
        "path": request.url.path,
        "client": request.client.host if request.client else None,
    }


def audit_plugin_failures(audit_log: SqlAuditLog) -> Callable[[PluginHookError], Any]:
    """Error channel that records failed plugin task ticks in the audit log."""

    async def _record(error: PluginHookError) -> None:
        await audit_log.record(
            AuditEvent(
                event_type=AuditEventType.PLUGIN_TASK_FAILED.value,
                resource_type="plugin",
                resource_id=error.plugin_id,
                metadata={"hook": error.hook, "message": error.message},
            ),
            AuditContext(),
        )

    return _record


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    setup_logging()
    settings = get_settings_instance()

    logger.info("Starting adminkit...")
    logger.info(f"Version: {settings.version}")
    logger.info(f"Environment: {settings.environment}")

    await init_db()
    session_local = get_async_session_local()

    store = RecordStore(get_async_engine())
    query_engine = QueryEngine(store)
    audit_log = SqlAuditLog(session_local, query_engine)
    catalog = TableCatalog(store)
    app.state.record_store = store
    app.state.query_engine = query_engine
    app.state.catalog = catalog
    app.state.audit_log = audit_log
    app.state.mutations = DataMutationService(store, audit_log)

    encryption = get_secrets_encryption_service() if settings.secrets_encryption_key else None
    context_builder = ContextBuilder(
        storage_backend=SqlStorageBackend(session_local),
        encryption=encryption,
        bindings={"query": query_engine, "catalog": catalog},
    )
    host = PluginHost(context_builder, error_channel=audit_plugin_failures(audit_log))
    app.state.plugin_host = host

    registered = PluginLoader(settings.plugin_modules).load_into(host)
    failures = await host.start_all()
    logger.info(
        "Plugins started",
        extra={"registered": len(registered), "failed": len(failures)},
    )

    scheduler = PluginTaskScheduler(host)
    app.state.plugin_scheduler = scheduler
    if settings.plugin_scheduler_enabled:
        scheduler.start()
    else:
        logger.info("Plugins scheduler disabled by configuration")

    yield

    logger.info("Shutting down adminkit...")
    await scheduler.stop()
    await host.shutdown_all()
    await close_db()
    logger.info("adminkit shutdown complete")


def create_app(actor_resolver: ActorResolver | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    ``actor_resolver`` maps a request to the authenticated ``Actor`` (or None).
    Without one every protected route answers 401.
    """
    settings = get_settings_instance()
    app = FastAPI(
        title=settings.app_name,
        description="adminkit data explorer and plugin runtime API",
        version=settings.version,
        debug=settings.debug,
        docs_url="/docs" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.actor_resolver = actor_resolver

    setup_exception_handlers(app)
    setup_routes(app)

    logger.info("adminkit FastAPI application created successfully")
    return app


def setup_exception_handlers(app: FastAPI) -> None:
    """Register handlers that turn errors into the ``{"error": ...}`` envelope.

    Server errors (5xx) get an error id and are logged at ERROR; client
    errors are logged at WARNING.
    """

    @app.exception_handler(AdminKitException)
    async def adminkit_exception_handler(request: Request, exc: AdminKitException):
        error_id = generate_error_id() if exc.status_code >= 500 else None

        if exc.status_code >= 500:
            logger.error(
                "adminkit server error",
                extra={
                    "error_id": error_id,
                    "error_code": exc.error_code,
                    "error_message": exc.message,
                    **get_request_context(request),
                },
            )
        else:
            logger.warning(
                "adminkit client error",
                extra={"error_code": exc.error_code, "error_message": exc.message, **get_request_context(request)},
            )

        return AdminKitResponse.error(
            message=exc.message,
            code=exc.error_code,
            details=exc.details,
            status_code=exc.status_code,
            error_id=error_id,
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        logger.warning("Request validation failed", extra=get_request_context(request))
        return AdminKitResponse.error(
            message="Invalid request",
            code="VALIDATION_ERROR",
            details={"errors": exc.errors()},
            status_code=400,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        error_id = generate_error_id() if exc.status_code >= 500 else None
        if exc.status_code >= 500:
            logger.error("HTTP server error", extra={"error_id": error_id, **get_request_context(request)})
        return AdminKitResponse.error(
            message=str(exc.detail),
            code=f"HTTP_{exc.status_code}",
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None) or None,
            error_id=error_id,
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        error_id = generate_error_id()
        logger.error(
            "Unhandled exception",
            extra={"error_id": error_id, "exception_type": type(exc).__name__, **get_request_context(request)},
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "code": "INTERNAL_SERVER_ERROR",
                    "message": "Internal server error",
                    "error_id": error_id,
                    "details": {},
                }
            },
        )


def setup_routes(app: FastAPI) -> None:
    """Configure application routes."""
    settings = get_settings_instance()

    app.include_router(data_router, prefix=settings.api_v1_prefix)
    app.include_router(audit_router, prefix=settings.api_v1_prefix)
    app.include_router(plugins_router, prefix=settings.api_v1_prefix)

    @app.get("/health", include_in_schema=False)
    async def health() -> JSONResponse:
        return AdminKitResponse.success({"status": "ok", "version": settings.version})


# Without an actor resolver every protected route answers 401
app = create_app()


def run(app_path: str = "adminkit.main:app") -> None:
    """Serve ``app_path`` with uvicorn on the configured host and port."""
    settings = get_settings_instance()
    logger.info("Starting server", extra={"host": settings.api_host, "port": settings.api_port, "app": app_path})
    uvicorn.run(
        app_path,
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
