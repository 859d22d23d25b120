"""FastAPI application for Campaign Reports.

This module provides the main application setup and router configuration.
All route handlers are organized in the api/routers/ directory.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.dependencies import set_config_manager, set_report_service
from api.routers import reports_router, system_router
from collectors import PollingController, ReportJobClient
from config import ConfigError, ConfigManager
from services import LineItemReportService, ReportInvalidationHook
from storage import (
    CampaignChangeNotifier,
    CampaignRepository,
    CustomerRepository,
    ReportCache,
    initialize_schema,
)

logger = logging.getLogger(__name__)


def build_report_service(
    config_manager: ConfigManager,
    notifier: CampaignChangeNotifier,
) -> LineItemReportService:
    """Wire the report pipeline from configuration.

    Registers the cache invalidation hook on ``notifier``.

    Raises:
        ConfigError: If the reporting gateway is not configured.
    """
    reporting = config_manager.get_reporting_config()
    config = config_manager.get_config()
    client = ReportJobClient(
        endpoint=reporting.endpoint,
        api_key=reporting.api_key.get_secret_value() if reporting.api_key else None,
        timeout=reporting.request_timeout,
        max_retries=reporting.max_retries,
        base_delay=reporting.base_delay,
    )
    poller = PollingController(
        client,
        poll_interval=config.polling.poll_interval,
        max_poll_interval=config.polling.max_poll_interval,
        backoff_factor=config.polling.backoff_factor,
        max_wait=config.polling.max_wait,
        attempt_timeout=config.polling.attempt_timeout,
    )
    cache = ReportCache.from_url(
        config.cache.redis_url,
        ttl_seconds=config.cache.ttl_seconds,
        key_prefix=config.cache.key_prefix,
    )
    ReportInvalidationHook(cache).register(notifier)

    return LineItemReportService(
        campaigns=CampaignRepository(config.database.path, notifier),
        customers=CustomerRepository(config.database.path),
        client=client,
        poller=poller,
        cache=cache,
        line_item_limit=config.line_item_limit,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    config_manager = ConfigManager()
    config = config_manager.get_config()
    logging.getLogger().setLevel(config.log_level.upper())

    await initialize_schema(config.database.path)

    service: Optional[LineItemReportService] = None
    try:
        service = build_report_service(config_manager, CampaignChangeNotifier())
    except ConfigError as e:
        logger.warning(f"Line-item reports disabled: {e}")

    set_config_manager(config_manager)
    set_report_service(service)

    logger.info("Campaign Reports API started")

    yield

    logger.info("Campaign Reports API shutting down")
    set_report_service(None)
    if service is not None:
        await service.close()
        await service.cache.close()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    application = FastAPI(
        title="Campaign Reports",
        description="Campaign line-item performance reports from Google Ad Manager",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(system_router)
    application.include_router(reports_router)

    return application


app = create_app()
