"""Campaign Reports - Storage Module.

This module provides the storage backends used by the line-item report
pipeline: SQLite repositories for campaigns and customers, and the Redis
report cache.

The storage layer is organized as follows:
- models.py: Dataclass definitions
- schema.py: Database schema
- repositories/: Shared repository base class
- campaign_repository.py / customer_repository.py: Entity repositories
- events.py: Campaign change notifications
- report_cache.py: Redis cache for report results

Example:
    >>> from storage import CampaignChangeNotifier, CampaignRepository, ReportCache
    >>>
    >>> notifier = CampaignChangeNotifier()
    >>> campaigns = CampaignRepository("~/.campaign-reports/reports.db", notifier)
    >>> cache = ReportCache.from_url("redis://localhost:6379/0")
    >>> await campaigns.set_excluded_line_item_ids("c1", ["5012345"])
"""

from .campaign_repository import CampaignRepository
from .customer_repository import CustomerRepository
from .events import CampaignChangeNotifier
from .models import Campaign, Customer
from .report_cache import ReportCache
from .repositories import BaseRepository
from .schema import SCHEMA, initialize_schema

__all__ = [
    # Repositories
    "BaseRepository",
    "CampaignRepository",
    "CustomerRepository",
    # Models
    "Campaign",
    "Customer",
    # Events
    "CampaignChangeNotifier",
    # Cache
    "ReportCache",
    # Schema
    "SCHEMA",
    "initialize_schema",
]
