"""
ArchiRoutes Backend: Shared Response Schemas
=============================================

What:  Error and health response models used across all endpoints.
"""

from typing import Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Example:
        {
            "error": "invalid_input",
            "message": "At least 2 points required to build a route",
            "details": {"field": "points", "points": 1},
            "request_id": "3f2a9c1e"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """
    Health check response showing service and dependency status.

    The routing provider never makes the service unhealthy: routes are
    always produced, at worst as straight lines. It can make it degraded.
    """
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    routing_provider: str = Field(description="Active routing backend name")
    routing: str = Field(description="Routing backend status: available, local, circuit_open")
    uptime_seconds: float = Field(description="Seconds since service started")
