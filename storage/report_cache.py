"""Redis-backed cache for campaign line-item reports.

Stores the unfiltered report of each campaign under a single key with a
fixed TTL. Exclusion filtering happens on read, so changing a campaign's
exclusion list never requires a cache write.

The cache never raises: a store outage degrades to "always recompute" on
read and to "don't cache" on write, and is logged.
"""

import logging
from typing import Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from collectors.reports.schemas import ReportResult

logger = logging.getLogger(__name__)


class ReportCache:
    """Cache-aside store keyed by campaign id.

    Attributes:
        ttl_seconds: Expiry applied to every entry.
        key_prefix: Prefix of the per-campaign keys.

    Example:
        >>> cache = ReportCache.from_url("redis://localhost:6379/0")
        >>> await cache.put("c1", result)
        >>> (await cache.get("c1")) == result
        True
    """

    DEFAULT_TTL_SECONDS = 60 * 60
    KEY_PREFIX = "campaign:gam-line-item-report"

    def __init__(
        self,
        redis: Redis,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        key_prefix: str = KEY_PREFIX,
    ) -> None:
        self.redis = redis
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "ReportCache":
        return cls(Redis.from_url(url), **kwargs)

    async def close(self) -> None:
        await self.redis.aclose()

    def key_for(self, campaign_id: str) -> str:
        return f"{self.key_prefix}:{campaign_id}"

    async def get(self, campaign_id: str) -> Optional[ReportResult]:
        """Return the cached unfiltered report, or None on a miss.

        Store errors and undecodable entries count as misses; a corrupt entry
        is deleted.
        """
        key = self.key_for(campaign_id)
        try:
            payload = await self.redis.get(key)
        except RedisError as e:
            logger.warning(f"Report cache read failed for campaign {campaign_id}: {e}")
            return None

        if payload is None:
            return None

        try:
            return ReportResult.from_json(payload)
        except ValueError as e:
            logger.warning(f"Discarding corrupt cached report for campaign {campaign_id}: {e}")
            await self._delete(key, campaign_id)
            return None

    async def put(
        self,
        campaign_id: str,
        result: ReportResult,
        ttl_seconds: Optional[int] = None,
    ) -> bool:
        """Store a report, replacing any existing entry.

        Returns:
            True if the entry was written.
        """
        ttl = ttl_seconds if ttl_seconds is not None else self.ttl_seconds
        try:
            await self.redis.setex(self.key_for(campaign_id), ttl, result.to_json())
        except RedisError as e:
            logger.warning(f"Report cache write failed for campaign {campaign_id}: {e}")
            return False
        return True

    async def invalidate(self, campaign_id: str) -> bool:
        """Delete the campaign's entry if present.

        Returns:
            True if the delete reached the store (whether or not a key existed).
        """
        return await self._delete(self.key_for(campaign_id), campaign_id)

    async def _delete(self, key: str, campaign_id: str) -> bool:
        try:
            await self.redis.delete(key)
        except RedisError as e:
            logger.warning(f"Report cache delete failed for campaign {campaign_id}: {e}")
            return False
        return True
