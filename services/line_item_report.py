"""Line-item report service.

Serves a campaign's GAM line-item performance report:

1. consult the report cache (unfiltered result) and filter on read,
2. on a miss resolve the customer's advertisers and their line items,
3. submit a report job, poll it to completion, stream and parse the CSV,
4. cache the unfiltered result and return the filtered view.

Concurrent misses for the same campaign share one pipeline run.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from typing import Callable

from collectors.errors import ProtocolError
from collectors.reports.client import DEFAULT_LINE_ITEM_LIMIT, ReportJobClient
from collectors.reports.parsers import parse_report
from collectors.reports.polling import PollingController
from collectors.reports.schemas import ReportQuery, ReportResult
from storage.campaign_repository import CampaignRepository
from storage.customer_repository import CustomerRepository
from storage.models import Campaign
from storage.report_cache import ReportCache

logger = logging.getLogger(__name__)


class CampaignNotFoundError(LookupError):
    """Raised when a report is requested for a missing or deleted campaign."""


@dataclass
class _InFlight:
    """A pipeline run shared by every request waiting on it."""
    task: asyncio.Task
    waiters: int = 0


class LineItemReportService:
    """
    Service for campaign line-item reports.

    The cache holds the unfiltered report; the campaign's current exclusion
    list is applied to every response, cached or fresh.
    """

    def __init__(
        self,
        campaigns: CampaignRepository,
        customers: CustomerRepository,
        client: ReportJobClient,
        poller: PollingController,
        cache: ReportCache,
        line_item_limit: int = DEFAULT_LINE_ITEM_LIMIT,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.campaigns = campaigns
        self.customers = customers
        self.client = client
        self.poller = poller
        self.cache = cache
        self.line_item_limit = line_item_limit
        self._now = now
        self._inflight: dict[str, _InFlight] = {}

    async def get_report(self, campaign_id: str) -> ReportResult:
        """
        Get the filtered line-item report for a campaign.

        Args:
            campaign_id: Campaign ID

        Returns:
            ReportResult without the campaign's excluded line items

        Raises:
            CampaignNotFoundError: If the campaign does not exist
            ReportError: If the report job cannot be run to completion
        """
        campaign = await self.campaigns.get(campaign_id)
        if campaign is None:
            raise CampaignNotFoundError(f"No campaign record found for ID {campaign_id}.")

        cached = await self.cache.get(campaign.id)
        if cached is not None:
            logger.debug(f"Report cache hit for campaign {campaign.id}")
            return cached.exclude(campaign.excluded_line_item_ids)

        result = await self._run_coalesced(campaign)
        return result.exclude(campaign.excluded_line_item_ids)

    async def _run_coalesced(self, campaign: Campaign) -> ReportResult:
        inflight = self._inflight.get(campaign.id)
        if inflight is None:
            inflight = _InFlight(task=asyncio.create_task(self._run_pipeline(campaign)))
            self._inflight[campaign.id] = inflight
            inflight.task.add_done_callback(partial(self._forget, campaign.id, inflight))
        else:
            logger.info(f"Joining in-flight report run for campaign {campaign.id}")

        inflight.waiters += 1
        try:
            return await asyncio.shield(inflight.task)
        finally:
            inflight.waiters -= 1
            if inflight.waiters == 0 and not inflight.task.done():
                # Every requester went away: stop polling and release the download.
                # Later requests start a fresh run instead of joining this one.
                logger.info(f"Cancelling report run for campaign {campaign.id}")
                if self._inflight.get(campaign.id) is inflight:
                    del self._inflight[campaign.id]
                inflight.task.cancel()

    def _forget(self, campaign_id: str, inflight: _InFlight, task: asyncio.Task) -> None:
        if self._inflight.get(campaign_id) is inflight:
            del self._inflight[campaign_id]
        if not task.cancelled():
            # Mark the exception retrieved when no waiter was left to see it
            task.exception()

    async def _run_pipeline(self, campaign: Campaign) -> ReportResult:
        advertiser_ids = await self.customers.get_gam_advertiser_ids(campaign.customer_id)
        if not advertiser_ids:
            logger.info(f"Campaign {campaign.id} has no GAM advertisers; caching empty report")
            return await self._store(campaign.id, ReportResult())

        line_item_ids = await self.client.find_line_item_ids(
            advertiser_ids,
            start=campaign.start_date,
            end=campaign.end_date,
            limit=self.line_item_limit,
        )
        if not line_item_ids:
            logger.info(f"Campaign {campaign.id} has no GAM line items; caching empty report")
            return await self._store(campaign.id, ReportResult())

        try:
            query = ReportQuery.build(
                line_item_ids,
                start=campaign.start_date,
                end=campaign.end_date,
                now=self._now(),
            )
        except ValueError as e:
            raise ProtocolError(f"Unusable line items for campaign {campaign.id}: {e}") from e

        job = await self.client.submit(query)
        job = await self.poller.wait(job)
        url = await self.client.get_download_url(job)

        async with self.client.download(url) as chunks:
            result = await parse_report(chunks)

        logger.info(f"Campaign {campaign.id}: report job {job.job_id} returned {len(result)} rows")
        return await self._store(campaign.id, result)

    async def _store(self, campaign_id: str, result: ReportResult) -> ReportResult:
        await self.cache.put(campaign_id, result)
        return result

    async def close(self) -> None:
        for inflight in list(self._inflight.values()):
            inflight.task.cancel()
        await self.client.aclose()
