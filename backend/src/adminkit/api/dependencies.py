"""
FastAPI dependencies for the adminkit API.

Services are created once in the application lifespan and kept on
``app.state``; these helpers hand them to route functions.
"""

from fastapi import Request

from ..audit.sink import SqlAuditLog
from ..data.catalog import TableCatalog
from ..data.engine import QueryEngine
from ..data.mutations import DataMutationService
from ..plugins.runtime import PluginHost


def get_query_engine(request: Request) -> QueryEngine:
    return request.app.state.query_engine


def get_catalog(request: Request) -> TableCatalog:
    return request.app.state.catalog


def get_mutations(request: Request) -> DataMutationService:
    return request.app.state.mutations


def get_audit_log(request: Request) -> SqlAuditLog:
    return request.app.state.audit_log


def get_plugin_host(request: Request) -> PluginHost:
    return request.app.state.plugin_host
