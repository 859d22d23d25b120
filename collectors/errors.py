"""Exception hierarchy for the line-item report pipeline.

Every failure the pipeline can surface to a caller derives from
``ReportError`` so the API layer can map the whole family at once.
Cache-store failures never escape ``storage.report_cache.ReportCache``.
"""

from typing import Optional


class ReportError(Exception):
    """Base class for report pipeline failures."""

    kind = "report_error"


class RemoteRequestError(ReportError):
    """Transport or HTTP-level failure talking to the reporting gateway.

    Attributes:
        status_code: HTTP status code, if a response was received.
    """

    kind = "remote_request_error"

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProtocolError(ReportError):
    """The gateway answered outside the recognized contract.

    Raised for unknown job statuses and for response payloads missing the
    fields the pipeline relies on. Never retried.
    """

    kind = "protocol_error"


class ReportJobFailedError(ReportError):
    """The reporting API explicitly reported the job as FAILED."""

    kind = "report_job_failed"

    def __init__(self, job_id: int) -> None:
        super().__init__(f"Report job {job_id} failed")
        self.job_id = job_id


class PollingTimeoutError(ReportError):
    """The job did not reach a terminal status within the allowed wait."""

    kind = "polling_timeout"

    def __init__(self, job_id: int, waited: float) -> None:
        super().__init__(
            f"Report job {job_id} did not finish within {waited:.1f}s"
        )
        self.job_id = job_id
        self.waited = waited


class InvalidStateError(ReportError):
    """An operation was requested on a job in the wrong status."""

    kind = "invalid_state"


class TransformError(ReportError):
    """The downloaded report payload could not be decoded."""

    kind = "transform_error"
