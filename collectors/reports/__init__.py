"""Line-item report job collectors."""

from collectors.errors import (
    InvalidStateError,
    PollingTimeoutError,
    ProtocolError,
    RemoteRequestError,
    ReportError,
    ReportJobFailedError,
    TransformError,
)
from collectors.reports.client import ReportJobClient, line_item_criteria
from collectors.reports.parsers import filter_rows, iter_rows, parse_report
from collectors.reports.polling import PollingController
from collectors.reports.schemas import (
    LINE_ITEM_ID_COLUMN,
    ReportJob,
    ReportJobStatus,
    ReportQuery,
    ReportResult,
    ReportRow,
)

__all__ = [
    "ReportJobClient",
    "PollingController",
    "line_item_criteria",
    "iter_rows",
    "parse_report",
    "filter_rows",
    # Schemas
    "LINE_ITEM_ID_COLUMN",
    "ReportJob",
    "ReportJobStatus",
    "ReportQuery",
    "ReportResult",
    "ReportRow",
    # Errors
    "ReportError",
    "RemoteRequestError",
    "ProtocolError",
    "ReportJobFailedError",
    "PollingTimeoutError",
    "InvalidStateError",
    "TransformError",
]
