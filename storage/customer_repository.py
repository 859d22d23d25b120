"""
Customer Repository.

Resolves customers to the GAM advertiser ids eligible for reporting.
"""

import json
import logging
import sqlite3
from typing import Optional

from storage.models import Customer
from storage.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class CustomerRepository(BaseRepository[Customer]):
    """Repository for customer records."""

    async def get(self, customer_id: str) -> Optional[Customer]:
        row = await self._execute(
            "SELECT * FROM customers WHERE id = ?", (str(customer_id),), fetch="one"
        )
        return self._row_to_customer(row) if row else None

    async def save(self, customer: Customer) -> None:
        """Insert or update a customer."""
        await self._execute("""
            INSERT INTO customers (id, name, gam_advertiser_ids, created_at, updated_at)
            VALUES (?, ?, ?, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                gam_advertiser_ids = excluded.gam_advertiser_ids,
                updated_at = CURRENT_TIMESTAMP
        """, (
            customer.id,
            customer.name,
            json.dumps([str(i) for i in customer.gam_advertiser_ids]),
        ))

    async def get_gam_advertiser_ids(self, customer_id: str) -> list[str]:
        """
        Get the GAM advertiser ids eligible for the customer's reports.

        Returns:
            Advertiser ids; empty if the customer is unknown or has none
        """
        customer = await self.get(customer_id)
        if customer is None:
            logger.warning(f"Customer {customer_id} not found")
            return []
        return customer.gam_advertiser_ids

    def _row_to_customer(self, row: sqlite3.Row) -> Customer:
        try:
            advertiser_ids = json.loads(row["gam_advertiser_ids"] or "[]")
        except json.JSONDecodeError:
            logger.warning(f"Invalid gam_advertiser_ids on customer {row['id']}")
            advertiser_ids = []

        return Customer(
            id=row["id"],
            name=row["name"],
            gam_advertiser_ids=[str(i) for i in advertiser_ids] if isinstance(advertiser_ids, list) else [],
        )
