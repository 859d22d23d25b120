"""API schema models."""

from .reports import LineItemReportResponse, ReportErrorDetail
from .system import HealthResponse

__all__ = [
    "HealthResponse",
    "LineItemReportResponse",
    "ReportErrorDetail",
]
