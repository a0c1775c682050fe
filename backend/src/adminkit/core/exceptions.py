"""Custom exceptions for the adminkit backend.

This module defines all custom exceptions used throughout the application.
"""

from typing import Any


class AdminKitException(Exception):
    """Base exception class for the adminkit backend."""

    def __init__(
        self,
        message: str,
        error_code: str,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(AdminKitException):
    """Raised when a request or descriptor is malformed. Never retried."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            status_code=400,
            details=details,
        )


# Record store exceptions
class StoreError(AdminKitException):
    """Raised when the underlying record store reports a failure.

    The original driver exception is kept as ``__cause__``; the engine does not
    retry and does not substitute fallback values.
    """

    def __init__(
        self,
        message: str,
        error_code: str = "STORE_ERROR",
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status_code,
            details=details,
        )


class TableNotFoundError(StoreError):
    """Raised when the requested schema/table cannot be reflected."""

    def __init__(self, schema: str, table: str):
        super().__init__(
            message=f"Table '{schema}.{table}' not found",
            error_code="TABLE_NOT_FOUND",
            status_code=404,
            details={"schema": schema, "table": table},
        )


class UnknownColumnError(StoreError):
    """Raised when a filter, sort or write references a column the table does not have."""

    def __init__(self, table: str, column: str):
        super().__init__(
            message=f"Column '{column}' does not exist on '{table}'",
            error_code="UNKNOWN_COLUMN",
            status_code=400,
            details={"table": table, "column": column},
        )


class RecordNotFoundError(StoreError):
    """Raised when a row addressed by primary key does not exist."""

    def __init__(self, table: str, record_id: Any):
        super().__init__(
            message=f"Record '{record_id}' not found in '{table}'",
            error_code="RECORD_NOT_FOUND",
            status_code=404,
            details={"table": table, "record_id": str(record_id)},
        )


class BatchDeleteError(StoreError):
    """Raised once for a batch delete in which at least one id was not deleted."""

    def __init__(self, table: str, failed_ids: list[Any]):
        super().__init__(
            message=f"Batch delete on '{table}' failed",
            error_code="BATCH_DELETE_FAILED",
            status_code=500,
            details={"table": table, "failed_ids": [str(i) for i in failed_ids]},
        )


# Authorization
class AuthenticationError(AdminKitException):
    """Raised when no actor could be resolved for the request."""

    def __init__(self, message: str = "Authentication required", details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            error_code="AUTHENTICATION_REQUIRED",
            status_code=401,
            details=details,
        )


class PermissionDeniedError(AdminKitException):
    """Raised by the authorization collaborator; propagated without interpretation."""

    def __init__(self, permissions: list[str], details: dict[str, Any] | None = None):
        super().__init__(
            message=f"Missing permission: one of {', '.join(permissions)}",
            error_code="PERMISSION_DENIED",
            status_code=403,
            details=details or {"required_any_of": permissions},
        )


# Plugin runtime exceptions
class PluginHookError(AdminKitException):
    """Raised when a plugin lifecycle, task, endpoint or render hook fails."""

    def __init__(self, plugin_id: str, hook: str, reason: str, details: dict[str, Any] | None = None):
        self.plugin_id = plugin_id
        self.hook = hook
        super().__init__(
            message=f"Plugin '{plugin_id}' hook '{hook}' failed: {reason}",
            error_code="PLUGIN_HOOK_ERROR",
            status_code=500,
            details=details or {"plugin_id": plugin_id, "hook": hook, "reason": reason},
        )


class PluginNotFoundError(AdminKitException):
    """Raised when a plugin id is not registered with the host."""

    def __init__(self, plugin_id: str):
        super().__init__(
            message=f"Plugin '{plugin_id}' is not registered",
            error_code="PLUGIN_NOT_FOUND",
            status_code=404,
            details={"plugin_id": plugin_id},
        )


class PluginRegistrationError(AdminKitException):
    """Raised when a plugin definition is malformed or its id is already taken."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            error_code="PLUGIN_REGISTRATION_ERROR",
            status_code=400,
            details=details,
        )


class LifecycleError(AdminKitException):
    """Raised on an illegal lifecycle transition."""

    def __init__(self, plugin_id: str, state: str, action: str):
        super().__init__(
            message=f"Cannot {action} plugin '{plugin_id}' in state {state}",
            error_code="PLUGIN_LIFECYCLE_ERROR",
            status_code=409,
            details={"plugin_id": plugin_id, "state": state, "action": action},
        )


class PluginNotActiveError(AdminKitException):
    """Raised when an endpoint is dispatched to a plugin that is not ACTIVE."""

    def __init__(self, plugin_id: str, state: str):
        super().__init__(
            message=f"Plugin '{plugin_id}' is not active",
            error_code="PLUGIN_NOT_ACTIVE",
            status_code=503,
            details={"plugin_id": plugin_id, "state": state},
        )


class EndpointNotFoundError(AdminKitException):
    """Raised when no service plugin endpoint matches a request."""

    def __init__(self, method: str, path: str):
        super().__init__(
            message=f"No plugin endpoint for {method} {path}",
            error_code="PLUGIN_ENDPOINT_NOT_FOUND",
            status_code=404,
            details={"method": method, "path": path},
        )


class TaskNotFoundError(AdminKitException):
    """Raised when a service plugin does not declare the requested task."""

    def __init__(self, plugin_id: str, task: str):
        super().__init__(
            message=f"Plugin '{plugin_id}' has no task '{task}'",
            error_code="PLUGIN_TASK_NOT_FOUND",
            status_code=404,
            details={"plugin_id": plugin_id, "task": task},
        )


class StorageQuotaExceeded(AdminKitException):
    """Raised when a plugin storage value exceeds the configured size limit."""

    def __init__(self, size: int, max_size: int):
        super().__init__(
            message=f"Storage value too large ({size} > {max_size} bytes)",
            error_code="PLUGIN_STORAGE_TOO_LARGE",
            status_code=413,
            details={"size": size, "max_size": max_size},
        )


class SecretsEncryptionError(AdminKitException):
    """Raised when plugin secrets cannot be encrypted or decrypted."""

    def __init__(self, reason: str):
        super().__init__(
            message=f"Secrets encryption error: {reason}",
            error_code="SECRETS_ENCRYPTION_ERROR",
            status_code=500,
            details={"reason": reason},
        )
