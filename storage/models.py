"""Data models for Campaign Reports storage.

This module contains the dataclass definitions used across storage
repositories. Only the fields the line-item report pipeline reads are
modelled.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional


@dataclass
class Campaign:
    """Campaign record.

    Attributes:
        id: Unique campaign identifier.
        customer_id: Owning customer identifier.
        name: Campaign name.
        start_date: First day of the campaign, or None if open-ended.
        end_date: Last day of the campaign, or None if open-ended.
        excluded_line_item_ids: GAM line items hidden from the campaign's
            line-item report.
        deleted: Soft-delete flag.
        created_at: Record creation timestamp.
        updated_at: Last update timestamp.
    """

    id: str
    customer_id: str
    name: str = ""
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    excluded_line_item_ids: list[str] = field(default_factory=list)
    deleted: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Customer:
    """Customer record.

    Attributes:
        id: Unique customer identifier.
        name: Customer name.
        gam_advertiser_ids: GAM advertiser (company) ids linked to the customer.
    """

    id: str
    name: str = ""
    gam_advertiser_ids: list[str] = field(default_factory=list)
