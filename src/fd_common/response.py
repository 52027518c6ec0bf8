"""Unified API response wrapper.

All API endpoints return this format:
{
    "success": true,
    "data": { ... },     // null on error
    "error": null,       // {"code": "...", "message": "..."} on error
    "timestamp": "...",
    "request_id": "..."
}
"""

import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    code: str
    message: str


class ApiResponse(BaseModel):
    success: bool = True
    data: Any = None
    error: ErrorDetail | None = None
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    request_id: str = Field(default_factory=lambda: f"req_{uuid.uuid4().hex[:12]}")


def success_response(data: Any = None) -> ApiResponse:
    return ApiResponse(success=True, data=data)


def error_response(code: str, message: str) -> ApiResponse:
    return ApiResponse(success=False, data=None, error=ErrorDetail(code=code, message=message))
