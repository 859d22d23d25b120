"""Shared dependencies for API routers."""

from typing import Optional
from fastapi import HTTPException
from config import ConfigManager
from services import LineItemReportService

# Global instances - set by main.py lifespan
_report_service: Optional[LineItemReportService] = None
_config_manager: Optional[ConfigManager] = None


def set_report_service(service: Optional[LineItemReportService]) -> None:
    """Set the global report service (called from main.py lifespan)."""
    global _report_service
    _report_service = service


def set_config_manager(config_manager: Optional[ConfigManager]) -> None:
    """Set the global config manager instance (called from main.py lifespan)."""
    global _config_manager
    _config_manager = config_manager


def get_report_service() -> LineItemReportService:
    """Dependency for getting the line-item report service."""
    if _report_service is None:
        raise HTTPException(status_code=503, detail="Report service not initialized")
    return _report_service


def get_config() -> ConfigManager:
    """Dependency for getting the config manager."""
    if _config_manager is None:
        raise HTTPException(status_code=503, detail="Config not initialized")
    return _config_manager


def is_report_service_ready() -> bool:
    return _report_service is not None
