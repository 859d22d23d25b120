"""Report-related schema models."""

from typing import Any
from pydantic import BaseModel, Field


class LineItemReportResponse(BaseModel):
    """GAM line-item report of a campaign, excluded line items removed."""
    campaign_id: str
    row_count: int = 0
    rows: list[dict[str, Any]] = Field(default_factory=list)


class ReportErrorDetail(BaseModel):
    """Error body returned when the report pipeline fails."""
    error: str
    message: str
