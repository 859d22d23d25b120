"""Shared fixtures for the Campaign Reports test suite."""

import tempfile
from pathlib import Path
from typing import AsyncIterator, Iterable, Optional

import pytest
import pytest_asyncio
from redis.exceptions import ConnectionError as RedisConnectionError

from storage import (
    CampaignChangeNotifier,
    CampaignRepository,
    CustomerRepository,
    ReportCache,
    initialize_schema,
)

LINE_ITEM_CSV_HEADER = (
    "Dimension.ADVERTISER_ID,Dimension.ADVERTISER_NAME,Dimension.LINE_ITEM_ID,"
    "Dimension.LINE_ITEM_NAME,Column.AD_SERVER_IMPRESSIONS,Column.AD_SERVER_CLICKS"
)


def make_csv(line_item_ids: Iterable[str], advertiser_id: str = "A1") -> bytes:
    """Build a CSV_DUMP export with one row per line item."""
    lines = [LINE_ITEM_CSV_HEADER]
    for index, line_item_id in enumerate(line_item_ids, start=1):
        lines.append(
            f"{advertiser_id},Acme Corp,{line_item_id},Line item {line_item_id},{index * 100},{index}"
        )
    return ("\n".join(lines) + "\n").encode("utf-8")


async def iter_chunks(payload: bytes, size: int = 7) -> AsyncIterator[bytes]:
    """Yield a payload in small chunks."""
    for start in range(0, len(payload), size):
        yield payload[start:start + size]


class FakeRedis:
    """In-memory stand-in for redis.asyncio.Redis (GET/SETEX/DEL only).

    Expiry is evaluated against ``now``, which tests advance by hand.
    Setting ``fail`` makes every command raise a Redis connection error.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self.fail = False
        self.data: dict[str, tuple[bytes, float]] = {}
        self.commands: list[tuple[str, str]] = []

    def _check(self, command: str, key: str) -> None:
        self.commands.append((command, key))
        if self.fail:
            raise RedisConnectionError("Connection refused")

    async def get(self, key: str) -> Optional[bytes]:
        self._check("GET", key)
        entry = self.data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self.now >= expires_at:
            del self.data[key]
            return None
        return value

    async def setex(self, key: str, ttl: int, value) -> bool:
        self._check("SETEX", key)
        if isinstance(value, str):
            value = value.encode("utf-8")
        self.data[key] = (value, self.now + ttl)
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            self._check("DEL", key)
            if self.data.pop(key, None) is not None:
                removed += 1
        return removed

    async def aclose(self) -> None:
        pass


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def report_cache(fake_redis) -> ReportCache:
    return ReportCache(fake_redis, ttl_seconds=3600)


@pytest_asyncio.fixture
async def db_path():
    """Create a temporary SQLite database with the schema applied."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "test.db"
        await initialize_schema(path)
        yield path


@pytest.fixture
def notifier() -> CampaignChangeNotifier:
    return CampaignChangeNotifier()


@pytest.fixture
def campaign_repo(db_path, notifier) -> CampaignRepository:
    return CampaignRepository(db_path, notifier)


@pytest.fixture
def customer_repo(db_path) -> CustomerRepository:
    return CustomerRepository(db_path)
