"""Report cache invalidation on campaign writes.

Subscribes to the campaign repository's change notifications and drops the
campaign's cached line-item report. Notifications are published after the
write committed, so a reader cannot repopulate the cache from the
pre-write state after the delete.
"""

import logging

from storage.events import CampaignChangeNotifier
from storage.report_cache import ReportCache

logger = logging.getLogger(__name__)


class ReportInvalidationHook:
    """Invalidates cached reports whenever a campaign is persisted.

    Failures are logged and swallowed: the triggering write stays
    committed and the stale entry still expires through the cache TTL.
    """

    def __init__(self, cache: ReportCache) -> None:
        self.cache = cache

    def register(self, notifier: CampaignChangeNotifier) -> "ReportInvalidationHook":
        notifier.subscribe(self.on_campaign_saved)
        return self

    def unregister(self, notifier: CampaignChangeNotifier) -> None:
        notifier.unsubscribe(self.on_campaign_saved)

    async def on_campaign_saved(self, campaign_id: str) -> None:
        try:
            invalidated = await self.cache.invalidate(campaign_id)
        except Exception as e:
            logger.warning(f"Failed to invalidate report cache for campaign {campaign_id}: {e}")
            return

        if invalidated:
            logger.debug(f"Invalidated report cache for campaign {campaign_id}")
        else:
            logger.warning(
                f"Report cache for campaign {campaign_id} not invalidated; "
                f"entry expires after {self.cache.ttl_seconds}s"
            )
