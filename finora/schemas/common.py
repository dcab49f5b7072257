"""Common schemas and error responses."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from finora.core.data_helpers import utc_now


class ErrorResponse(BaseModel):
    """Standard error response schema (RFC 7807 inspired)."""

    ok: bool = Field(default=False, description="Always false for errors")
    error: str = Field(..., description="Error code", examples=["NOT_FOUND"])
    message: str = Field(..., description="Human-readable error message")
    status: int = Field(..., description="HTTP status code")
    details: Optional[Dict[str, Any]] = Field(
        default=None, description="Additional error details"
    )

    model_config = {"json_schema_extra": {"example": {"ok": False, "error": "SYMBOL_NOT_FOUND", "message": "Invalid symbol or no data available", "status": 404}}}


class HealthResponse(BaseModel):
    """Health check response."""

    ok: bool = True
    status: str = Field(..., description="Overall health status", examples=["healthy", "degraded"])
    version: str = Field(..., description="Application version")
    timestamp: datetime = Field(default_factory=utc_now)
    checks: Dict[str, bool] = Field(default_factory=dict, description="Individual service health checks")


class MessageResponse(BaseModel):
    """Simple message response."""

    ok: bool = True
    message: str = Field(..., description="Response message")
