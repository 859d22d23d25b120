"""System router for Campaign Reports API."""

import logging

from fastapi import APIRouter, Depends

from api.dependencies import get_config, is_report_service_ready
from api.schemas.system import HealthResponse
from config import ConfigManager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["System"])

VERSION = "0.1.0"


@router.get("/health", response_model=HealthResponse)
async def health_check(config: ConfigManager = Depends(get_config)):
    """Check API health including configuration and report service state."""
    ready = is_report_service_ready()
    return HealthResponse(
        status="healthy" if ready else "degraded",
        version=VERSION,
        configured=config.is_configured(),
        report_service_ready=ready,
    )
