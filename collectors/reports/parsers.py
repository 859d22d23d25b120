"""Streaming CSV decoding and exclusion filtering for report exports.

This module turns the CSV_DUMP export of a report job into ReportRow
objects without holding the whole payload in memory, and filters rows by
line item. The filtering functions are pure with no side effects.
"""

import codecs
import csv
import logging
from typing import AsyncIterator, Iterable, Optional

from collectors.errors import TransformError
from collectors.reports.schemas import LINE_ITEM_ID_COLUMN, ReportResult, ReportRow

logger = logging.getLogger(__name__)


class _RecordSplitter:
    """Groups physical lines into CSV records.

    A record continues onto the next line while it holds an odd number of
    quote characters (a quoted field containing a newline).
    """

    def __init__(self) -> None:
        self._parts: list[str] = []
        self._quotes = 0

    @property
    def has_pending(self) -> bool:
        return bool(self._parts)

    def feed(self, line: str) -> Optional[list[str]]:
        self._parts.append(line)
        self._quotes += line.count('"')
        if self._quotes % 2:
            return None

        record = "\n".join(self._parts)
        # CRLF: drop the terminator's CR, keep CRs inside quoted fields
        if record.endswith("\r"):
            record = record[:-1]
        self._parts = []
        self._quotes = 0

        if not record.strip():
            return None
        try:
            return next(csv.reader([record]))
        except csv.Error as ex:
            raise TransformError(f"Malformed CSV record: {ex}") from ex


class _RowBuilder:
    def __init__(self) -> None:
        self.header: Optional[list[str]] = None
        self.row_count = 0

    def build(self, fields: list[str]) -> Optional[ReportRow]:
        if self.header is None:
            header = [name.strip() for name in fields]
            if LINE_ITEM_ID_COLUMN not in header:
                raise TransformError(f"Report header has no {LINE_ITEM_ID_COLUMN} column")
            self.header = header
            return None

        self.row_count += 1
        if len(fields) != len(self.header):
            raise TransformError(
                f"Report row {self.row_count} has {len(fields)} fields, "
                f"expected {len(self.header)}"
            )
        return ReportRow(values=dict(zip(self.header, fields)))


async def iter_rows(chunks: AsyncIterator[bytes]) -> AsyncIterator[ReportRow]:
    """Decode a CSV export incrementally.

    Rows become available as soon as their bytes have arrived.

    Args:
        chunks: Async iterator over the raw body bytes.

    Yields:
        ReportRow for every data record, in export order.

    Raises:
        TransformError: On undecodable bytes, a missing or unusable header,
            a record with the wrong number of fields, or an unterminated
            quoted field.
    """
    decoder = codecs.getincrementaldecoder("utf-8-sig")()
    splitter = _RecordSplitter()
    builder = _RowBuilder()
    pending = ""

    async for chunk in chunks:
        try:
            pending += decoder.decode(chunk)
        except UnicodeDecodeError as ex:
            raise TransformError(f"Report body is not valid UTF-8: {ex}") from ex

        *lines, pending = pending.split("\n")
        for line in lines:
            fields = splitter.feed(line)
            if fields is not None:
                row = builder.build(fields)
                if row is not None:
                    yield row

    try:
        pending += decoder.decode(b"", final=True)
    except UnicodeDecodeError as ex:
        raise TransformError(f"Report body is not valid UTF-8: {ex}") from ex

    if pending:
        fields = splitter.feed(pending)
        if fields is not None:
            row = builder.build(fields)
            if row is not None:
                yield row

    if splitter.has_pending:
        raise TransformError("Report body ends inside a quoted field")
    if builder.header is None:
        raise TransformError("Report body has no header row")


async def parse_report(chunks: AsyncIterator[bytes]) -> ReportResult:
    """Decode a complete CSV export into a ReportResult.

    Nothing is returned if decoding fails part-way; rows decoded before the
    error are discarded with the exception.
    """
    rows = [row async for row in iter_rows(chunks)]
    logger.info(f"Parsed {len(rows)} report rows")
    return ReportResult(rows=tuple(rows))


def filter_rows(rows: Iterable[ReportRow], excluded_ids: Iterable[str]) -> list[ReportRow]:
    """Drop rows whose line item is excluded, preserving order."""
    return list(ReportResult(rows=tuple(rows)).exclude(excluded_ids))
