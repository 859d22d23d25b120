"""
Campaign Repository.

Persists the campaign fields the line-item report reads and publishes a
change notification after every committed write.
"""

import json
import logging
import sqlite3
from datetime import date, datetime
from pathlib import Path
from typing import Iterable, Optional

from storage.events import CampaignChangeNotifier
from storage.models import Campaign
from storage.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


def _parse_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class CampaignRepository(BaseRepository[Campaign]):
    """
    Repository for campaign records.

    Every successful write is followed by ``notifier.campaign_saved``,
    which runs only once the transaction has committed.
    """

    def __init__(
        self,
        db_path: str | Path,
        notifier: Optional[CampaignChangeNotifier] = None,
    ) -> None:
        """
        Initialize repository.

        Args:
            db_path: Path to SQLite database file
            notifier: Receives a notification after each committed write
        """
        super().__init__(db_path)
        self.notifier = notifier or CampaignChangeNotifier()

    async def get(self, campaign_id: str, include_deleted: bool = False) -> Optional[Campaign]:
        """
        Get a campaign by ID.

        Args:
            campaign_id: Campaign ID
            include_deleted: Return soft-deleted campaigns too

        Returns:
            Campaign object or None
        """
        sql = "SELECT * FROM campaigns WHERE id = ?"
        if not include_deleted:
            sql += " AND deleted = 0"
        row = await self._execute(sql, (str(campaign_id),), fetch="one")
        return self._row_to_campaign(row) if row else None

    async def save(self, campaign: Campaign) -> Campaign:
        """
        Insert or update a campaign.

        Args:
            campaign: Campaign to persist

        Returns:
            The campaign as stored
        """
        def _upsert(conn: sqlite3.Connection) -> None:
            conn.execute("""
                INSERT INTO campaigns
                (id, customer_id, name, start_date, end_date,
                 excluded_line_item_ids, deleted, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)
                ON CONFLICT(id) DO UPDATE SET
                    customer_id = excluded.customer_id,
                    name = excluded.name,
                    start_date = excluded.start_date,
                    end_date = excluded.end_date,
                    excluded_line_item_ids = excluded.excluded_line_item_ids,
                    deleted = excluded.deleted,
                    updated_at = CURRENT_TIMESTAMP
            """, (
                campaign.id,
                campaign.customer_id,
                campaign.name,
                campaign.start_date.isoformat() if campaign.start_date else None,
                campaign.end_date.isoformat() if campaign.end_date else None,
                json.dumps([str(i) for i in campaign.excluded_line_item_ids]),
                int(campaign.deleted),
            ))

        await self._run_in_transaction(_upsert)
        await self.notifier.campaign_saved(campaign.id)

        saved = await self.get(campaign.id, include_deleted=True)
        return saved or campaign

    async def set_excluded_line_item_ids(
        self,
        campaign_id: str,
        excluded_ids: Iterable[str],
    ) -> Campaign:
        """
        Replace the line items excluded from the campaign's report.

        Raises:
            LookupError: If the campaign does not exist or is deleted
        """
        campaign = await self.get(campaign_id)
        if campaign is None:
            raise LookupError(f"No campaign record found for ID {campaign_id}.")

        campaign.excluded_line_item_ids = [str(i) for i in excluded_ids]
        return await self.save(campaign)

    async def delete(self, campaign_id: str) -> bool:
        """
        Soft-delete a campaign.

        Returns:
            True if a campaign was marked deleted
        """
        def _delete(conn: sqlite3.Connection) -> int:
            cursor = conn.execute("""
                UPDATE campaigns SET deleted = 1, updated_at = CURRENT_TIMESTAMP
                WHERE id = ? AND deleted = 0
            """, (str(campaign_id),))
            return cursor.rowcount

        deleted = await self._run_in_transaction(_delete)
        if deleted:
            await self.notifier.campaign_saved(str(campaign_id))
        return deleted > 0

    def _row_to_campaign(self, row: sqlite3.Row) -> Campaign:
        """Convert database row to Campaign."""
        try:
            excluded = json.loads(row["excluded_line_item_ids"] or "[]")
        except json.JSONDecodeError:
            logger.warning(f"Invalid excluded_line_item_ids on campaign {row['id']}")
            excluded = []

        return Campaign(
            id=row["id"],
            customer_id=row["customer_id"],
            name=row["name"],
            start_date=_parse_date(row["start_date"]),
            end_date=_parse_date(row["end_date"]),
            excluded_line_item_ids=[str(i) for i in excluded] if isinstance(excluded, list) else [],
            deleted=bool(row["deleted"]),
            created_at=_parse_timestamp(row["created_at"]),
            updated_at=_parse_timestamp(row["updated_at"]),
        )
