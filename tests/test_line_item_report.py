"""Tests for LineItemReportService.

This module tests the full read path: cache lookup, line item resolution,
report job submission and polling, CSV decoding, caching and exclusion
filtering. The reporting gateway is replaced by an in-memory fake; the
SQLite repositories and the cache run for real (Redis is faked).

Run with: pytest tests/test_line_item_report.py -v
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import date, datetime
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from collectors.errors import (
    PollingTimeoutError,
    ProtocolError,
    RemoteRequestError,
    ReportJobFailedError,
    TransformError,
)
from collectors.reports.polling import PollingController
from collectors.reports.schemas import ReportJob, ReportJobStatus
from services.line_item_report import CampaignNotFoundError, LineItemReportService
from services.report_invalidation import ReportInvalidationHook
from storage.models import Campaign, Customer
from tests.conftest import iter_chunks, make_csv

DOWNLOAD_URL = "https://storage.test/reports/J1.csv"


def job_status(value: str) -> ReportJob:
    return ReportJob(job_id=1, status=ReportJobStatus.parse(value), raw_status=value)


class FakeReportClient:
    """In-memory reporting gateway with the ReportJobClient interface."""

    def __init__(self, line_item_ids=("L1", "L9", "L2"), payload=None, statuses=None):
        self.payload = payload if payload is not None else make_csv(line_item_ids)
        self.find_line_item_ids = AsyncMock(return_value=list(line_item_ids))
        self.submit = AsyncMock(return_value=ReportJob(job_id=1))
        self.check_status = AsyncMock(
            side_effect=statuses or (lambda job_id: job_status("COMPLETED"))
        )
        self.get_download_url = AsyncMock(return_value=DOWNLOAD_URL)
        self.aclose = AsyncMock()
        self.downloads = 0

    @asynccontextmanager
    async def download(self, url):
        self.downloads += 1
        yield iter_chunks(self.payload)


class FakeTime:
    def __init__(self) -> None:
        self.now = 0.0

    def clock(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def client() -> FakeReportClient:
    return FakeReportClient()


@pytest.fixture
def make_service(campaign_repo, customer_repo, report_cache):
    def factory(client: FakeReportClient, **poller_kwargs) -> LineItemReportService:
        fake_time = FakeTime()
        poller = PollingController(
            client, clock=fake_time.clock, sleep=fake_time.sleep, **poller_kwargs
        )
        return LineItemReportService(
            campaigns=campaign_repo,
            customers=customer_repo,
            client=client,
            poller=poller,
            cache=report_cache,
            now=lambda: datetime(2024, 3, 1, 9, 0),
        )

    return factory


@pytest_asyncio.fixture
async def campaign(campaign_repo, customer_repo) -> Campaign:
    await customer_repo.save(Customer(id="cust-1", name="Acme", gam_advertiser_ids=["A1"]))
    return await campaign_repo.save(Campaign(
        id="C1",
        customer_id="cust-1",
        name="Winter sale",
        start_date=date(2024, 1, 1),
        end_date=date(2024, 1, 31),
        excluded_line_item_ids=["L9"],
    ))


def cache_writes(fake_redis) -> list[str]:
    return [key for command, key in fake_redis.commands if command == "SETEX"]


@pytest.mark.asyncio
class TestGetReport:
    async def test_runs_report_job_and_filters_exclusions(self, make_service, campaign, report_cache):
        client = FakeReportClient(statuses=[job_status("IN_PROGRESS"), job_status("COMPLETED")])
        service = make_service(client)

        result = await service.get_report("C1")

        assert result.line_item_ids == ["L1", "L2"]
        client.find_line_item_ids.assert_awaited_once_with(
            ["A1"], start=date(2024, 1, 1), end=date(2024, 1, 31), limit=500
        )
        query = client.submit.await_args.args[0]
        assert query.statement == "WHERE LINE_ITEM_ID IN (L1,L9,L2)"
        assert (query.start_date, query.end_date) == (date(2024, 1, 1), date(2024, 1, 31))
        assert client.check_status.await_count == 2
        client.get_download_url.assert_awaited_once()
        assert client.get_download_url.await_args.args[0].status is ReportJobStatus.COMPLETED

        cached = await report_cache.get("C1")
        assert cached.line_item_ids == ["L1", "L9", "L2"]

    async def test_exclusion_change_is_applied_to_cached_report(
        self, make_service, campaign, campaign_repo, client
    ):
        service = make_service(client)
        await service.get_report("C1")

        await campaign_repo.set_excluded_line_item_ids("C1", [])
        result = await service.get_report("C1")

        assert result.line_item_ids == ["L1", "L9", "L2"]
        assert client.submit.await_count == 1

    async def test_cache_hit_skips_the_reporting_api(self, make_service, campaign, client):
        service = make_service(client)
        first = await service.get_report("C1")
        second = await service.get_report("C1")

        assert first == second
        assert client.find_line_item_ids.await_count == 1
        assert client.submit.await_count == 1
        assert client.downloads == 1

    async def test_save_with_hook_forces_recompute(
        self, make_service, campaign, campaign_repo, notifier, report_cache, client
    ):
        ReportInvalidationHook(report_cache).register(notifier)
        service = make_service(client)
        await service.get_report("C1")

        await campaign_repo.set_excluded_line_item_ids("C1", ["L1"])
        result = await service.get_report("C1")

        assert result.line_item_ids == ["L9", "L2"]
        assert client.submit.await_count == 2

    async def test_start_date_defaults_to_lookback(self, make_service, campaign_repo, campaign, client):
        campaign.start_date = None
        campaign.end_date = None
        await campaign_repo.save(campaign)
        service = make_service(client)

        await service.get_report("C1")

        query = client.submit.await_args.args[0]
        assert query.start_date == date(2019, 3, 1)
        assert query.end_date == date(2024, 3, 1)

    async def test_customer_without_advertisers(
        self, make_service, campaign, customer_repo, report_cache, client
    ):
        await customer_repo.save(Customer(id="cust-1", name="Acme", gam_advertiser_ids=[]))
        service = make_service(client)

        result = await service.get_report("C1")

        assert len(result) == 0
        client.find_line_item_ids.assert_not_awaited()
        client.submit.assert_not_awaited()
        cached = await report_cache.get("C1")
        assert cached is not None and len(cached) == 0

    async def test_no_line_items(self, make_service, campaign, report_cache):
        client = FakeReportClient(line_item_ids=())
        service = make_service(client)

        result = await service.get_report("C1")

        assert len(result) == 0
        client.submit.assert_not_awaited()
        assert len(await report_cache.get("C1")) == 0

    async def test_missing_campaign(self, make_service, client):
        service = make_service(client)
        with pytest.raises(CampaignNotFoundError):
            await service.get_report("nope")
        client.submit.assert_not_awaited()

    async def test_deleted_campaign(self, make_service, campaign, campaign_repo, client):
        await campaign_repo.delete("C1")
        service = make_service(client)
        with pytest.raises(CampaignNotFoundError):
            await service.get_report("C1")

    async def test_cache_outage_recomputes(self, make_service, campaign, fake_redis, client):
        fake_redis.fail = True
        service = make_service(client)

        result = await service.get_report("C1")
        await service.get_report("C1")

        assert result.line_item_ids == ["L1", "L2"]
        assert client.submit.await_count == 2


@pytest.mark.asyncio
class TestPipelineErrors:
    async def test_failed_job_is_not_cached(self, make_service, campaign, fake_redis):
        client = FakeReportClient(statuses=[job_status("FAILED")])
        service = make_service(client)

        with pytest.raises(ReportJobFailedError):
            await service.get_report("C1")

        client.get_download_url.assert_not_awaited()
        assert cache_writes(fake_redis) == []

    async def test_polling_timeout(self, make_service, campaign, fake_redis):
        client = FakeReportClient(statuses=lambda job_id: job_status("IN_PROGRESS"))
        service = make_service(client, max_wait=30.0)

        with pytest.raises(PollingTimeoutError):
            await service.get_report("C1")

        assert cache_writes(fake_redis) == []

    async def test_malformed_export_is_not_cached(self, make_service, campaign, fake_redis):
        client = FakeReportClient(payload=b'Dimension.LINE_ITEM_ID,Column.AD_SERVER_CLICKS\nL1,"3\n')
        service = make_service(client)

        with pytest.raises(TransformError):
            await service.get_report("C1")

        assert cache_writes(fake_redis) == []

    async def test_unusable_line_item_ids(self, make_service, campaign, fake_redis):
        client = FakeReportClient(line_item_ids=("L1", "L2) OR (1=1"))
        service = make_service(client)

        with pytest.raises(ProtocolError):
            await service.get_report("C1")

        client.submit.assert_not_awaited()
        assert cache_writes(fake_redis) == []

    async def test_submit_failure(self, make_service, campaign, fake_redis, client):
        client.submit.side_effect = RemoteRequestError("gateway down", status_code=503)
        service = make_service(client)

        with pytest.raises(RemoteRequestError):
            await service.get_report("C1")

        assert cache_writes(fake_redis) == []

    async def test_failure_does_not_block_the_next_request(self, make_service, campaign, client):
        client.submit.side_effect = [RemoteRequestError("gateway down"), ReportJob(job_id=1)]
        service = make_service(client)

        with pytest.raises(RemoteRequestError):
            await service.get_report("C1")
        result = await service.get_report("C1")

        assert result.line_item_ids == ["L1", "L2"]


async def _wait_for(predicate, attempts: int = 200) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("condition not reached")


@pytest.mark.asyncio
class TestConcurrentRequests:
    async def test_concurrent_misses_share_one_job(self, make_service, campaign, client):
        gate = asyncio.Event()

        async def submit(query):
            await gate.wait()
            return ReportJob(job_id=1)

        client.submit.side_effect = submit
        service = make_service(client)

        first = asyncio.create_task(service.get_report("C1"))
        second = asyncio.create_task(service.get_report("C1"))
        await _wait_for(lambda: "C1" in service._inflight and service._inflight["C1"].waiters == 2)
        gate.set()

        results = await asyncio.gather(first, second)

        assert results[0] == results[1]
        assert results[0].line_item_ids == ["L1", "L2"]
        assert client.submit.await_count == 1
        assert service._inflight == {}

    async def test_cancelled_request_stops_the_job(self, make_service, campaign, fake_redis, client):
        submitted = asyncio.Event()

        async def submit(query):
            submitted.set()
            await asyncio.Event().wait()

        client.submit.side_effect = submit
        service = make_service(client)

        request = asyncio.create_task(service.get_report("C1"))
        await submitted.wait()
        inflight = service._inflight["C1"]
        request.cancel()

        with pytest.raises(asyncio.CancelledError):
            await request
        await _wait_for(lambda: inflight.task.done())

        assert inflight.task.cancelled()
        assert service._inflight == {}
        assert cache_writes(fake_redis) == []

    async def test_remaining_waiter_keeps_the_job_alive(self, make_service, campaign, client):
        gate = asyncio.Event()

        async def submit(query):
            await gate.wait()
            return ReportJob(job_id=1)

        client.submit.side_effect = submit
        service = make_service(client)

        first = asyncio.create_task(service.get_report("C1"))
        second = asyncio.create_task(service.get_report("C1"))
        await _wait_for(lambda: "C1" in service._inflight and service._inflight["C1"].waiters == 2)

        first.cancel()
        with pytest.raises(asyncio.CancelledError):
            await first
        gate.set()

        result = await second
        assert result.line_item_ids == ["L1", "L2"]
        assert client.submit.await_count == 1

    async def test_request_after_cancellation_starts_a_new_run(self, make_service, campaign, client):
        calls = 0
        winding_down = asyncio.Event()

        async def submit(query):
            nonlocal calls
            calls += 1
            if calls == 1:
                try:
                    await asyncio.Event().wait()
                except asyncio.CancelledError:
                    winding_down.set()
                    await asyncio.sleep(0.1)
                    raise
            return ReportJob(job_id=1)

        client.submit.side_effect = submit
        service = make_service(client)

        first = asyncio.create_task(service.get_report("C1"))
        await _wait_for(lambda: calls == 1)
        cancelled_run = service._inflight["C1"]
        first.cancel()
        with pytest.raises(asyncio.CancelledError):
            await first
        await winding_down.wait()
        assert not cancelled_run.task.done()

        result = await service.get_report("C1")

        assert result.line_item_ids == ["L1", "L2"]
        assert client.submit.await_count == 2
        await _wait_for(lambda: cancelled_run.task.done())
        assert cancelled_run.task.cancelled()

    async def test_cancellation_during_download_closes_the_stream(
        self, make_service, campaign, fake_redis, client
    ):
        streaming = asyncio.Event()
        closed = []

        @asynccontextmanager
        async def download(url):
            async def body():
                yield make_csv(["L1"])
                streaming.set()
                await asyncio.Event().wait()

            try:
                yield body()
            finally:
                closed.append(url)

        client.download = download
        service = make_service(client)

        request = asyncio.create_task(service.get_report("C1"))
        await streaming.wait()
        run = service._inflight["C1"]
        request.cancel()

        with pytest.raises(asyncio.CancelledError):
            await request
        await _wait_for(lambda: run.task.done())

        assert run.task.cancelled()
        assert closed == [DOWNLOAD_URL]
        assert cache_writes(fake_redis) == []

    async def test_close_cancels_running_jobs(self, make_service, campaign, client):
        submitted = asyncio.Event()

        async def submit(query):
            submitted.set()
            await asyncio.Event().wait()

        client.submit.side_effect = submit
        service = make_service(client)

        request = asyncio.create_task(service.get_report("C1"))
        await submitted.wait()
        await service.close()

        with pytest.raises(asyncio.CancelledError):
            await request
        client.aclose.assert_awaited_once()
