from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import Request

from app.schemas.common import ApiResponse, ErrorDetail, ResponseMeta


def _request_id(request: Optional[Request]) -> str:
    if request is not None and hasattr(request.state, "correlation_id"):
        return request.state.correlation_id
    return str(uuid4())


def create_api_response(
    payload: Optional[Dict[str, Any]] = None,
    message: str = "Operation successful",
    request: Optional[Request] = None,
    api_version: str = "v1",
) -> Dict[str, Any]:
    """Build the success envelope as a JSON-ready dict.

    Payload keys (``drafts``, ``approved``, ``next_step``...) are placed at
    the top level next to ``success``.
    """
    meta = ResponseMeta(
        timestamp=datetime.now(timezone.utc),
        request_id=_request_id(request),
        api_version=api_version,
    )
    response = ApiResponse(success=True, message=message, meta=meta, **(payload or {}))
    return response.model_dump(mode="json")


def create_error_detail(
    title: str,
    status: int,
    detail: str,
    request: Optional[Request] = None,
    instance: Optional[str] = None,
) -> ErrorDetail:
    """Create a standardized error detail (RFC 7807)."""
    return ErrorDetail(
        title=title,
        status=status,
        detail=detail,
        instance=instance or (request.url.path if request else None),
        request_id=_request_id(request),
        timestamp=datetime.now(timezone.utc),
    )
