"""Polling controller for asynchronous report jobs.

Drives a submitted job to a terminal status by repeatedly checking its
status through ``ReportJobClient``. Polling is bounded: there is a minimum
delay between polls (growing with exponential backoff) and a maximum total
wait.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from collectors.errors import (
    PollingTimeoutError,
    ProtocolError,
    RemoteRequestError,
    ReportJobFailedError,
)
from collectors.reports.client import ReportJobClient
from collectors.reports.schemas import ReportJob, ReportJobStatus

logger = logging.getLogger(__name__)


class PollingController:
    """Waits for report jobs to complete.

    State machine: SUBMITTED and IN_PROGRESS loop; COMPLETED returns;
    FAILED raises ReportJobFailedError; UNKNOWN raises ProtocolError
    immediately. A poll that times out or fails at the transport level is
    retried once; a second consecutive failure raises RemoteRequestError.

    Attributes:
        poll_interval: Delay before the second poll, in seconds.
        max_poll_interval: Upper bound for the delay between polls.
        backoff_factor: Growth factor applied to the delay after each poll.
        max_wait: Maximum total wait before PollingTimeoutError.
        attempt_timeout: Timeout of a single status check.

    Example:
        >>> poller = PollingController(client, max_wait=300)
        >>> job = await poller.wait(await client.submit(query))
        >>> job.status
        <ReportJobStatus.COMPLETED: 'COMPLETED'>
    """

    MIN_POLL_INTERVAL = 0.5
    POLL_INTERVAL = 2.0
    MAX_POLL_INTERVAL = 15.0
    BACKOFF_FACTOR = 1.5
    MAX_WAIT = 600.0
    ATTEMPT_TIMEOUT = 30.0

    def __init__(
        self,
        client: ReportJobClient,
        poll_interval: float = POLL_INTERVAL,
        max_poll_interval: float = MAX_POLL_INTERVAL,
        backoff_factor: float = BACKOFF_FACTOR,
        max_wait: float = MAX_WAIT,
        attempt_timeout: float = ATTEMPT_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        self.client = client
        self.poll_interval = max(poll_interval, self.MIN_POLL_INTERVAL)
        self.max_poll_interval = max(max_poll_interval, self.poll_interval)
        self.backoff_factor = max(backoff_factor, 1.0)
        self.max_wait = max_wait
        self.attempt_timeout = attempt_timeout
        self._clock = clock
        self._sleep = sleep or asyncio.sleep

    async def _poll_once(self, job_id: int) -> ReportJob:
        return await asyncio.wait_for(
            self.client.check_status(job_id),
            timeout=self.attempt_timeout,
        )

    async def wait(self, job: ReportJob) -> ReportJob:
        """Poll until the job reaches a terminal status.

        Args:
            job: The job returned by ``ReportJobClient.submit``.

        Returns:
            The job in COMPLETED status.

        Raises:
            ReportJobFailedError: If the API reports the job as FAILED.
            ProtocolError: On an unrecognized status (no further polls).
            PollingTimeoutError: If max_wait elapses first.
            RemoteRequestError: After two consecutive failed polls.
        """
        started = self._clock()
        deadline = started + self.max_wait
        delay = self.poll_interval
        failures = 0
        polls = 0

        while True:
            polls += 1
            try:
                current = await self._poll_once(job.job_id)
            except (RemoteRequestError, asyncio.TimeoutError) as ex:
                failures += 1
                reason = str(ex) or "status check timed out"
                if failures > 1:
                    logger.error(f"Report job {job.job_id}: poll {polls} failed again: {reason}")
                    raise RemoteRequestError(
                        f"Status check for report job {job.job_id} failed: {reason}"
                    ) from ex
                logger.warning(f"Report job {job.job_id}: poll {polls} failed, retrying: {reason}")
            else:
                failures = 0
                if current.status is ReportJobStatus.COMPLETED:
                    logger.info(f"Report job {job.job_id} completed after {polls} polls")
                    return current
                if current.status is ReportJobStatus.FAILED:
                    logger.error(f"Report job {job.job_id} failed")
                    raise ReportJobFailedError(job.job_id)
                if current.status is ReportJobStatus.UNKNOWN:
                    raise ProtocolError(
                        f"Unknown report status encountered: '{current.raw_status}'"
                    )

            remaining = deadline - self._clock()
            if remaining <= 0:
                waited = self._clock() - started
                logger.error(f"Report job {job.job_id} still running after {waited:.1f}s")
                raise PollingTimeoutError(job.job_id, waited)

            await self._sleep(min(delay, remaining))
            delay = min(delay * self.backoff_factor, self.max_poll_interval)
