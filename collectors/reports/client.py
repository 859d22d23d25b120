"""Reporting API client for line-item performance report jobs.

This module provides the ReportJobClient class which submits report jobs
to Google Ad Manager through the reporting gateway, checks their status,
retrieves download URLs and streams the exported CSV.
"""

import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncIterator, Iterable, Optional

import httpx

from collectors.base import BaseReportingClient
from collectors.errors import InvalidStateError, ProtocolError, RemoteRequestError
from collectors.reports.schemas import ReportJob, ReportJobStatus, ReportQuery

logger = logging.getLogger(__name__)

RUN_REPORT_JOB = """
query RunLineItemReportJob(
  $startDate: GAMDate!, $endDate: GAMDate!, $query: String!,
  $dimensions: [Dimension!]!, $dimensionAttributes: [DimensionAttribute!]!, $columns: [Column!]!
) {
  runReportJob(input: {
    reportJob: {
      reportQuery: {
        dimensions: $dimensions
        dimensionAttributes: $dimensionAttributes
        columns: $columns
        dateRangeType: CUSTOM_DATE
        startDate: $startDate
        endDate: $endDate
        statement: { query: $query }
      }
    }
  }) {
    id
  }
}
"""

REPORT_JOB_STATUS = """
query CheckLineItemReportStatus($reportJobId: BigInt!) {
  getReportJobStatus(input: { reportJobId: $reportJobId })
}
"""

REPORT_DOWNLOAD_URL = """
query CheckLineItemReportDownload($reportJobId: BigInt!) {
  getReportDownloadUrlWithOptions(input: {
    reportJobId: $reportJobId
    reportDownloadOptions: { exportFormat: CSV_DUMP, useGzipCompression: false }
  })
}
"""

CAMPAIGN_LINE_ITEMS = """
query CampaignLineItems($query: String!, $limit: Int!) {
  lineItems(input: { query: $query, limit: $limit }) {
    nodes { id }
  }
}
"""

DEFAULT_LINE_ITEM_LIMIT = 500


def _parse_job_id(value) -> int:
    # BigInt values arrive as strings or numbers depending on the gateway
    if isinstance(value, bool):
        raise ProtocolError(f"Invalid report job id: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as ex:
        raise ProtocolError(f"Invalid report job id: {value!r}") from ex


def line_item_criteria(
    advertiser_ids: Iterable[str],
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> str:
    """Build the statement selecting an advertiser's line items in a window.

    Line items overlap the window when they end on or after ``start`` and
    begin on or before ``end``; open bounds are not constrained.
    """
    conditions = [f"advertiserId IN ({','.join(str(a) for a in advertiser_ids)})"]
    if start:
        conditions.append(f"endDateTime >= '{start.isoformat()}T00:00:00'")
    if end:
        conditions.append(f"startDateTime <= '{end.isoformat()}T23:59:59'")
    return "WHERE " + " AND ".join(conditions)


class ReportJobClient(BaseReportingClient):
    """Client for asynchronous line-item report jobs.

    The client is a thin protocol layer: it performs exactly one gateway
    call per method and never waits for a job. Waiting is the job of
    ``collectors.reports.polling.PollingController``.

    Example:
        >>> client = ReportJobClient(endpoint="https://gateway.example.com/graphql")
        >>> job = await client.submit(ReportQuery.build(["5012345"]))
        >>> status = await client.check_status(job.job_id)
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._download_http: Optional[httpx.AsyncClient] = None

    def _get_download_http(self) -> httpx.AsyncClient:
        """HTTP client for signed download URLs (sent without gateway credentials)."""
        if self._download_http is None:
            self._download_http = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                follow_redirects=True,
            )
        return self._download_http

    async def aclose(self) -> None:
        await super().aclose()
        if self._download_http is not None:
            await self._download_http.aclose()
            self._download_http = None

    async def submit(self, query: ReportQuery) -> ReportJob:
        """Submit a report job.

        Args:
            query: The report specification.

        Returns:
            ReportJob in SUBMITTED status.

        Raises:
            RemoteRequestError: If the gateway request fails.
            ProtocolError: If the response does not carry a job id.
        """
        variables = {
            **query.to_variables(),
            "dimensions": list(query.dimensions),
            "dimensionAttributes": list(query.dimension_attributes),
            "columns": list(query.columns),
        }
        data = await self._execute(RUN_REPORT_JOB, variables)

        job_data = data.get("runReportJob")
        if not isinstance(job_data, dict) or "id" not in job_data:
            raise ProtocolError("runReportJob response has no job id")

        job = ReportJob(job_id=_parse_job_id(job_data["id"]))
        logger.info(
            f"Submitted report job {job.job_id} for {len(query.target_ids)} "
            f"targets ({query.start_date} to {query.end_date})"
        )
        return job

    async def check_status(self, job_id: int) -> ReportJob:
        """Fetch the current status of a report job.

        Args:
            job_id: The report job identifier.

        Returns:
            A fresh ReportJob carrying the parsed status (UNKNOWN for
            unrecognized values) and the raw status string.

        Raises:
            RemoteRequestError: If the gateway request fails.
        """
        data = await self._execute(REPORT_JOB_STATUS, {"reportJobId": str(job_id)})
        raw_status = data.get("getReportJobStatus")
        return ReportJob(
            job_id=job_id,
            status=ReportJobStatus.parse(raw_status),
            raw_status=str(raw_status),
        )

    async def get_download_url(self, job: ReportJob) -> str:
        """Retrieve the CSV download URL of a completed job.

        The job's status is checked locally; callers pass the job returned by
        the polling controller, no status re-fetch happens here.

        Raises:
            InvalidStateError: If the job is not COMPLETED.
            RemoteRequestError: If the gateway request fails.
            ProtocolError: If the response does not carry a URL.
        """
        if job.status is not ReportJobStatus.COMPLETED:
            raise InvalidStateError(
                f"Report job {job.job_id} is {job.status.value}, not COMPLETED"
            )

        data = await self._execute(REPORT_DOWNLOAD_URL, {"reportJobId": str(job.job_id)})
        url = data.get("getReportDownloadUrlWithOptions")
        if not isinstance(url, str) or not url:
            raise ProtocolError(f"No download URL returned for report job {job.job_id}")
        return url

    @asynccontextmanager
    async def download(self, url: str) -> AsyncIterator[AsyncIterator[bytes]]:
        """Stream a report export.

        Yields an async iterator over the body's byte chunks. The connection
        is released when the context exits, including on cancellation. No
        retry happens at this layer.

        Example:
            >>> async with client.download(url) as chunks:
            ...     result = await parse_report(chunks)

        Raises:
            RemoteRequestError: On transport failure or a non-2xx response.
        """
        http = self._get_download_http()
        try:
            async with http.stream("GET", url) as response:
                if not response.is_success:
                    raise RemoteRequestError(
                        f"Report download returned HTTP {response.status_code}",
                        status_code=response.status_code,
                    )
                yield self._iter_body(response)
        except httpx.HTTPError as ex:
            raise RemoteRequestError(f"Report download failed: {ex}") from ex

    @staticmethod
    async def _iter_body(response: httpx.Response) -> AsyncIterator[bytes]:
        try:
            async for chunk in response.aiter_bytes():
                yield chunk
        except httpx.HTTPError as ex:
            raise RemoteRequestError(f"Report download interrupted: {ex}") from ex

    async def find_line_item_ids(
        self,
        advertiser_ids: Iterable[str],
        start: Optional[date] = None,
        end: Optional[date] = None,
        limit: int = DEFAULT_LINE_ITEM_LIMIT,
    ) -> list[str]:
        """Resolve the line items of the given advertisers within a window.

        Args:
            advertiser_ids: GAM advertiser (company) identifiers.
            start: Window start, or None for unbounded.
            end: Window end, or None for unbounded.
            limit: Maximum number of line items to return.

        Returns:
            Line item identifiers as strings.
        """
        advertiser_ids = list(advertiser_ids)
        if not advertiser_ids:
            return []

        data = await self._execute(
            CAMPAIGN_LINE_ITEMS,
            {"query": line_item_criteria(advertiser_ids, start, end), "limit": limit},
        )
        connection = data.get("lineItems")
        if not isinstance(connection, dict) or not isinstance(connection.get("nodes"), list):
            raise ProtocolError("lineItems response has no nodes")

        return [str(node["id"]) for node in connection["nodes"] if isinstance(node, dict) and "id" in node]
