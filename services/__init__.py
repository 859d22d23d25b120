"""Services package for business logic."""

from services.line_item_report import CampaignNotFoundError, LineItemReportService
from services.report_invalidation import ReportInvalidationHook

__all__ = [
    "CampaignNotFoundError",
    "LineItemReportService",
    "ReportInvalidationHook",
]
