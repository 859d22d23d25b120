"""Line-item report router for Campaign Reports API.

This module provides the campaign report endpoint:
- GAM line-item performance report, with the campaign's excluded line
  items removed
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_report_service
from api.schemas.reports import LineItemReportResponse, ReportErrorDetail
from collectors.errors import PollingTimeoutError, ReportError
from services import CampaignNotFoundError, LineItemReportService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/campaigns", tags=["Reports"])


@router.get(
    "/{campaign_id}/gam-line-item-report",
    response_model=LineItemReportResponse,
    responses={
        404: {"description": "Campaign not found"},
        502: {"model": ReportErrorDetail, "description": "Reporting API failure"},
        504: {"model": ReportErrorDetail, "description": "Report job did not finish in time"},
    },
)
async def get_gam_line_item_report(
    campaign_id: str,
    service: LineItemReportService = Depends(get_report_service),
):
    """
    Get the campaign's GAM line-item performance report.

    Served from cache when available; otherwise a report job is run against
    Google Ad Manager, which can take a while for large campaigns.
    """
    try:
        result = await service.get_report(campaign_id)
    except CampaignNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PollingTimeoutError as e:
        logger.error(f"Line-item report for campaign {campaign_id} timed out: {e}")
        raise HTTPException(
            status_code=504,
            detail=ReportErrorDetail(error=e.kind, message=str(e)).model_dump(),
        )
    except ReportError as e:
        logger.error(f"Line-item report for campaign {campaign_id} failed: {e}")
        raise HTTPException(
            status_code=502,
            detail=ReportErrorDetail(error=e.kind, message=str(e)).model_dump(),
        )

    return LineItemReportResponse(
        campaign_id=campaign_id,
        row_count=len(result),
        rows=[row.as_nested() for row in result],
    )
