"""Response envelope shared by every endpoint."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ResponseMeta(BaseModel):
    timestamp: datetime = Field(..., description="Response creation time (UTC)")
    request_id: str = Field(..., description="Correlation ID of the request")
    api_version: str = Field(default="v1", description="API version")


class ErrorDetail(BaseModel):
    """Problem details (RFC 7807) for a failed request."""

    title: str = Field(..., description="Short, stable error title")
    status: int = Field(..., description="HTTP status code")
    detail: str = Field(..., description="Human-readable explanation")
    instance: Optional[str] = Field(None, description="Request path")
    request_id: Optional[str] = Field(None, description="Correlation ID of the request")
    timestamp: datetime = Field(..., description="Error time (UTC)")


class ApiResponse(BaseModel):
    """Successful response; the payload keys sit next to ``success``."""

    model_config = ConfigDict(extra="allow")

    success: bool = Field(default=True, description="Whether the operation succeeded")
    message: str = Field(..., description="Human-readable status message")
    meta: ResponseMeta


class ErrorResponse(BaseModel):
    success: bool = Field(default=False)
    error: ErrorDetail
