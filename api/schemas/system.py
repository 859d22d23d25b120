"""System-related schema models."""

from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Response model for health check."""
    status: str
    version: str
    configured: bool
    report_service_ready: bool = False
