"""
Data Models Module

Pydantic models for the JSON documents the proxy service produces itself.
Proxied traffic is never parsed into models; it is relayed as raw bytes.
"""

from typing import Dict, Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Error document returned when the proxy cannot produce a backend response."""
    error: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable summary")
    detail: Optional[str] = Field(None, description="Underlying failure, if any")


class HealthResponse(BaseModel):
    """Health check payload."""
    status: str = Field(default="ok", description="Service status")
    service: str = Field(default="pathproxy", description="Service name")
    version: str = Field(..., description="Service version")
    default_target: str = Field(..., description="Default backend base URL")
    routes: Dict[str, str] = Field(default_factory=dict, description="Exact path to backend base URL")
