"""Type definitions for the line-item report pipeline.

This module contains the value objects passed between the reporting
client, the polling controller, the CSV transform and the report cache.
All of them are immutable once built.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable, Optional, Union

# Header of the column carrying the line item identifier in CSV_DUMP exports.
LINE_ITEM_ID_COLUMN = "Dimension.LINE_ITEM_ID"

REPORT_DIMENSIONS = (
    "ADVERTISER_ID",
    "ADVERTISER_NAME",
    "ORDER_ID",
    "ORDER_NAME",
    "LINE_ITEM_ID",
    "LINE_ITEM_NAME",
    "LINE_ITEM_TYPE",
    "CREATIVE_TYPE",
    "CREATIVE_SIZE",
)
REPORT_DIMENSION_ATTRIBUTES = (
    "LINE_ITEM_START_DATE_TIME",
    "LINE_ITEM_END_DATE_TIME",
)
REPORT_COLUMNS = (
    "AD_SERVER_IMPRESSIONS",
    "AD_SERVER_CLICKS",
    "AD_SERVER_CTR",
)

TARGET_DIMENSIONS = ("LINE_ITEM_ID", "ADVERTISER_ID")

# Campaigns without a start date report over this many years.
DEFAULT_LOOKBACK_YEARS = 5

_TARGET_ID_PATTERN = re.compile(r"[\w-]+")

DateLike = Union[date, datetime]


def _as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def _years_before(value: date, years: int) -> date:
    try:
        return value.replace(year=value.year - years)
    except ValueError:
        # Feb 29 on a non-leap target year
        return value.replace(year=value.year - years, day=28)


class ReportJobStatus(str, Enum):
    """Status values reported for an asynchronous report job.

    UNKNOWN is never sent by the API; it stands for any status string the
    client does not recognize.
    """

    SUBMITTED = "SUBMITTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: Any) -> "ReportJobStatus":
        """Map a raw status string onto a known status, or UNKNOWN."""
        if isinstance(value, str) and value != cls.UNKNOWN.value:
            try:
                return cls(value)
            except ValueError:
                pass
        return cls.UNKNOWN

    @property
    def is_terminal(self) -> bool:
        return self in (ReportJobStatus.COMPLETED, ReportJobStatus.FAILED)


@dataclass(frozen=True)
class ReportJob:
    """A report computation submitted to the reporting API.

    Attributes:
        job_id: Opaque job identifier (arbitrary precision integer).
        status: Last known status.
        raw_status: Status string exactly as the API returned it.
    """

    job_id: int
    status: ReportJobStatus = ReportJobStatus.SUBMITTED
    raw_status: Optional[str] = None


@dataclass(frozen=True)
class ReportQuery:
    """Line-item performance report specification.

    Use ``ReportQuery.build`` rather than the constructor so the date window
    defaults and clamping are applied.

    Attributes:
        start_date: First day of the report window.
        end_date: Last day of the report window (never after today).
        target_ids: Identifiers the report is restricted to.
        target_dimension: Dimension the identifiers belong to.
    """

    start_date: date
    end_date: date
    target_ids: tuple[str, ...]
    target_dimension: str = "LINE_ITEM_ID"
    dimensions: tuple[str, ...] = REPORT_DIMENSIONS
    dimension_attributes: tuple[str, ...] = REPORT_DIMENSION_ATTRIBUTES
    columns: tuple[str, ...] = REPORT_COLUMNS

    @classmethod
    def build(
        cls,
        target_ids: Iterable[str],
        start: Optional[DateLike] = None,
        end: Optional[DateLike] = None,
        now: Optional[datetime] = None,
        target_dimension: str = "LINE_ITEM_ID",
    ) -> "ReportQuery":
        """Build a query for the given targets and campaign window.

        Args:
            target_ids: Line item or advertiser identifiers.
            start: Campaign start; defaults to five years before ``now``.
            end: Campaign end; missing or future values are clamped to ``now``.
            now: Reference time (defaults to the current time).
            target_dimension: LINE_ITEM_ID or ADVERTISER_ID.

        Raises:
            ValueError: If no targets are given, a target identifier contains
                characters that cannot appear in a filter statement, or the
                dimension is not supported.
        """
        if target_dimension not in TARGET_DIMENSIONS:
            raise ValueError(f"Unsupported target dimension: {target_dimension}")

        ids = tuple(str(target_id) for target_id in target_ids)
        if not ids:
            raise ValueError("At least one target id is required")
        for target_id in ids:
            if not _TARGET_ID_PATTERN.fullmatch(target_id):
                raise ValueError(f"Invalid target id: {target_id!r}")

        today = _as_date(now or datetime.now())
        start_date = _as_date(start) if start else _years_before(today, DEFAULT_LOOKBACK_YEARS)
        end_date = _as_date(end) if end else today
        # The reporting API rejects end dates after the current date
        if end_date > today:
            end_date = today

        return cls(
            start_date=start_date,
            end_date=end_date,
            target_ids=ids,
            target_dimension=target_dimension,
        )

    @property
    def statement(self) -> str:
        """Filter statement restricting the report to the target ids."""
        return f"WHERE {self.target_dimension} IN ({','.join(self.target_ids)})"

    def to_variables(self) -> dict[str, str]:
        return {
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
            "query": self.statement,
        }


@dataclass(frozen=True)
class ReportRow:
    """One decoded report record.

    Attributes:
        values: Cell values keyed by the CSV header, in header order.
        line_item_id: Value of the Dimension.LINE_ITEM_ID column.
    """

    values: dict[str, str]
    line_item_id: str = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "line_item_id", self.values.get(LINE_ITEM_ID_COLUMN, ""))

    def as_nested(self) -> dict[str, Any]:
        """Expand dotted headers into nested objects.

        ``{"Dimension.LINE_ITEM_ID": "1"}`` becomes
        ``{"Dimension": {"LINE_ITEM_ID": "1"}}``.
        """
        nested: dict[str, Any] = {}
        for header, value in self.values.items():
            target = nested
            parts = header.split(".")
            for part in parts[:-1]:
                child = target.get(part)
                if not isinstance(child, dict):
                    child = {}
                    target[part] = child
                target = child
            target[parts[-1]] = value
        return nested


@dataclass(frozen=True)
class ReportResult:
    """Ordered sequence of report rows."""

    rows: tuple[ReportRow, ...] = ()

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self):
        return iter(self.rows)

    @property
    def line_item_ids(self) -> list[str]:
        return [row.line_item_id for row in self.rows]

    def exclude(self, excluded_ids: Iterable[str]) -> "ReportResult":
        """Return the rows whose line item is not in ``excluded_ids``."""
        excluded = {str(line_item_id) for line_item_id in excluded_ids}
        if not excluded:
            return self
        return ReportResult(
            rows=tuple(row for row in self.rows if row.line_item_id not in excluded)
        )

    def to_json(self) -> str:
        return json.dumps([row.values for row in self.rows])

    @classmethod
    def from_json(cls, payload: Union[str, bytes]) -> "ReportResult":
        """Rebuild a result serialized with ``to_json``.

        Raises:
            ValueError: If the payload is not a JSON list of string mappings.
        """
        data = json.loads(payload)
        if not isinstance(data, list):
            raise ValueError("Serialized report must be a list")

        rows = []
        for item in data:
            if not isinstance(item, dict) or not all(
                isinstance(key, str) and isinstance(value, str)
                for key, value in item.items()
            ):
                raise ValueError("Serialized report row must map strings to strings")
            rows.append(ReportRow(values=item))
        return cls(rows=tuple(rows))
