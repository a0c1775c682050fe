"""Response helpers for the adminkit API.

Every success payload is wrapped in a single ``{"data": ...}`` envelope and
every error in ``{"error": {"code", "message", "details"}}``.
"""

from typing import Any

from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from .logging import get_logger

logger = get_logger(__name__)


def to_serializable(obj: Any) -> Any:
    """Recursively convert Pydantic models, lists, and dicts to serializable types."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump(by_alias=True)
    if isinstance(obj, (list, tuple)):
        return [to_serializable(item) for item in obj]
    if isinstance(obj, dict):
        return {k: to_serializable(v) for k, v in obj.items()}
    return obj


class AdminKitResponse:
    """Consistent single-envelope responses for API endpoints."""

    @staticmethod
    def success(
        data: Any, status_code: int = status.HTTP_200_OK, headers: dict[str, str] | None = None
    ) -> JSONResponse:
        content = jsonable_encoder({"data": to_serializable(data)})
        return JSONResponse(content=content, status_code=status_code, headers=headers)

    @staticmethod
    def created(data: Any, headers: dict[str, str] | None = None) -> JSONResponse:
        return AdminKitResponse.success(data, status.HTTP_201_CREATED, headers)

    @staticmethod
    def error(
        message: str,
        code: str = "API_ERROR",
        details: Any | None = None,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        headers: dict[str, str] | None = None,
        error_id: str | None = None,
    ) -> JSONResponse:
        """Create an error response with consistent envelope structure."""
        error_content: dict[str, Any] = {"error": {"message": message, "code": code}}
        error_content["error"]["details"] = to_serializable(details) if details is not None else {}
        if error_id:
            error_content["error"]["error_id"] = error_id

        logger.debug(
            "Creating error response",
            extra={"status_code": status_code, "error_code": code},
        )
        return JSONResponse(content=jsonable_encoder(error_content), status_code=status_code, headers=headers)
