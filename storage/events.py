"""Campaign change notifications.

The campaign repository publishes a notification after every committed
write; other components (the report cache invalidation hook) subscribe
without the repository knowing about them.
"""

import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

CampaignListener = Callable[[str], Awaitable[None]]


class CampaignChangeNotifier:
    """Publishes "campaign changed" events to subscribed listeners.

    Listeners run sequentially in subscription order. A failing listener is
    logged and does not prevent the remaining listeners from running, nor
    does it fail the write that triggered the notification.
    """

    def __init__(self) -> None:
        self._listeners: list[CampaignListener] = []

    def subscribe(self, listener: CampaignListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: CampaignListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def campaign_saved(self, campaign_id: str) -> None:
        """Notify listeners that a campaign write has been committed."""
        for listener in list(self._listeners):
            try:
                await listener(campaign_id)
            except Exception as e:
                logger.warning(f"Campaign change listener failed for {campaign_id}: {e}")
