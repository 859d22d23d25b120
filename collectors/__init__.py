"""Campaign Reports - Collectors Module.

This module provides data collection from the ad-server reporting
gateway: asynchronous line-item report jobs, their polling, and streaming
decoding of the exported CSV.

Example:
    >>> from collectors import PollingController, ReportJobClient, ReportQuery, parse_report
    >>>
    >>> client = ReportJobClient(
    ...     endpoint='https://reporting-gateway.example.com/graphql',
    ...     api_key='...',
    ... )
    >>> job = await client.submit(ReportQuery.build(['5012345', '5012346']))
    >>> job = await PollingController(client).wait(job)
    >>> url = await client.get_download_url(job)
    >>> async with client.download(url) as chunks:
    ...     result = await parse_report(chunks)
"""

from collectors.base import BaseReportingClient
from collectors.errors import (
    InvalidStateError,
    PollingTimeoutError,
    ProtocolError,
    RemoteRequestError,
    ReportError,
    ReportJobFailedError,
    TransformError,
)
from collectors.reports import (
    PollingController,
    ReportJob,
    ReportJobClient,
    ReportJobStatus,
    ReportQuery,
    ReportResult,
    ReportRow,
    filter_rows,
    parse_report,
)

__all__ = [
    # Clients
    "BaseReportingClient",
    "ReportJobClient",
    "PollingController",
    # Transform
    "parse_report",
    "filter_rows",
    # Schemas
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
