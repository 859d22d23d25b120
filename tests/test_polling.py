"""Tests for PollingController.

Time is simulated: the controller receives a fake clock and a sleep that
advances it, so no test actually waits for poll intervals.

Run with: pytest tests/test_polling.py -v
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from collectors.errors import (
    PollingTimeoutError,
    ProtocolError,
    RemoteRequestError,
    ReportJobFailedError,
)
from collectors.reports.polling import PollingController
from collectors.reports.schemas import ReportJob, ReportJobStatus

SUBMITTED = ReportJob(job_id=1)


def status(value: str) -> ReportJob:
    return ReportJob(job_id=1, status=ReportJobStatus.parse(value), raw_status=value)


class FakeTime:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def clock(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def make_poller(responses, fake_time: FakeTime, **kwargs) -> tuple[PollingController, MagicMock]:
    client = MagicMock()
    client.check_status = AsyncMock(side_effect=responses)
    poller = PollingController(client, clock=fake_time.clock, sleep=fake_time.sleep, **kwargs)
    return poller, client


@pytest.fixture
def fake_time() -> FakeTime:
    return FakeTime()


@pytest.mark.asyncio
class TestPollingController:
    async def test_completes_after_in_progress(self, fake_time):
        poller, client = make_poller(
            [status("IN_PROGRESS"), status("IN_PROGRESS"), status("COMPLETED")], fake_time
        )

        job = await poller.wait(SUBMITTED)

        assert job.status is ReportJobStatus.COMPLETED
        assert client.check_status.await_count == 3
        client.check_status.assert_awaited_with(1)

    async def test_first_poll_is_immediate(self, fake_time):
        poller, client = make_poller([status("COMPLETED")], fake_time)
        await poller.wait(SUBMITTED)
        assert fake_time.sleeps == []

    async def test_backoff_grows_to_the_cap(self, fake_time):
        poller, _ = make_poller(
            [status("IN_PROGRESS")] * 4 + [status("COMPLETED")],
            fake_time,
            poll_interval=2.0,
            backoff_factor=1.5,
            max_poll_interval=5.0,
        )
        await poller.wait(SUBMITTED)
        assert fake_time.sleeps == [2.0, 3.0, 4.5, 5.0]

    async def test_poll_interval_has_a_floor(self, fake_time):
        poller, _ = make_poller([status("IN_PROGRESS"), status("COMPLETED")], fake_time, poll_interval=0)
        await poller.wait(SUBMITTED)
        assert fake_time.sleeps == [PollingController.MIN_POLL_INTERVAL]

    async def test_times_out_after_max_wait(self, fake_time):
        poller, client = make_poller(
            lambda job_id: status("IN_PROGRESS"),
            fake_time,
            poll_interval=2.0,
            backoff_factor=2.0,
            max_poll_interval=4.0,
            max_wait=10.0,
        )

        with pytest.raises(PollingTimeoutError) as exc_info:
            await poller.wait(SUBMITTED)

        assert exc_info.value.job_id == 1
        assert exc_info.value.waited == pytest.approx(10.0)
        assert fake_time.sleeps == [2.0, 4.0, 4.0]
        assert client.check_status.await_count == 4

    async def test_last_sleep_is_trimmed_to_the_deadline(self, fake_time):
        poller, _ = make_poller(
            lambda job_id: status("SUBMITTED"),
            fake_time,
            poll_interval=4.0,
            backoff_factor=1.0,
            max_wait=10.0,
        )
        with pytest.raises(PollingTimeoutError):
            await poller.wait(SUBMITTED)
        assert fake_time.sleeps == [4.0, 4.0, 2.0]

    async def test_failed_job(self, fake_time):
        poller, client = make_poller([status("IN_PROGRESS"), status("FAILED")], fake_time)

        with pytest.raises(ReportJobFailedError) as exc_info:
            await poller.wait(SUBMITTED)

        assert exc_info.value.job_id == 1
        assert client.check_status.await_count == 2

    async def test_unknown_status_fails_without_further_polls(self, fake_time):
        poller, client = make_poller([status("PAUSED"), status("COMPLETED")], fake_time)

        with pytest.raises(ProtocolError, match="Unknown report status encountered: 'PAUSED'"):
            await poller.wait(SUBMITTED)

        assert client.check_status.await_count == 1
        assert fake_time.sleeps == []

    async def test_single_transient_failure_is_retried(self, fake_time):
        poller, client = make_poller(
            [RemoteRequestError("reset"), status("IN_PROGRESS"), RemoteRequestError("reset"), status("COMPLETED")],
            fake_time,
        )

        job = await poller.wait(SUBMITTED)

        assert job.status is ReportJobStatus.COMPLETED
        assert client.check_status.await_count == 4

    async def test_two_consecutive_failures(self, fake_time):
        poller, client = make_poller(
            [RemoteRequestError("reset"), RemoteRequestError("reset again"), status("COMPLETED")],
            fake_time,
        )

        with pytest.raises(RemoteRequestError, match="reset again"):
            await poller.wait(SUBMITTED)

        assert client.check_status.await_count == 2

    async def test_slow_status_check_counts_as_a_failure(self, fake_time):
        calls = 0

        async def check_status(job_id):
            nonlocal calls
            calls += 1
            if calls == 1:
                await asyncio.sleep(10)
            return status("COMPLETED")

        client = MagicMock()
        client.check_status = check_status
        poller = PollingController(
            client, attempt_timeout=0.01, clock=fake_time.clock, sleep=fake_time.sleep
        )

        job = await poller.wait(SUBMITTED)

        assert job.status is ReportJobStatus.COMPLETED
        assert calls == 2

    async def test_cancellation_stops_polling(self):
        blocked = asyncio.Event()
        client = MagicMock()
        client.check_status = AsyncMock(return_value=status("IN_PROGRESS"))

        async def sleep(seconds):
            blocked.set()
            await asyncio.Event().wait()

        poller = PollingController(client, sleep=sleep)
        task = asyncio.create_task(poller.wait(SUBMITTED))
        await blocked.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert client.check_status.await_count == 1
