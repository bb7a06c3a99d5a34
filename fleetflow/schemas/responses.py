"""Error envelope shared by every failed API response."""

from typing import Any

from pydantic import BaseModel, Field


class ErrorBody(BaseModel):
    """Machine-readable code, human message, and per-error context."""

    code: str
    message: str
    details: list[dict[str, Any]] = []
    request_id: str = Field(alias="requestId")

    model_config = {"populate_by_name": True}


class ErrorResponse(BaseModel):
    """Top-level error envelope."""

    error: ErrorBody
