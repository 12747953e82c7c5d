"""
SyndiFeed Storage Layer
=======================

Repository pattern implementations for the syndication store:
- Source group repository
- Syndicated item repository (store primitives used by reconciliation)
- Schedule repository for persisted triggers
"""

from .group_repository import SourceGroupRepository
from .item_repository import SyndicatedItemRepository
from .schedule_repository import ScheduleRepository

__all__ = [
    "SourceGroupRepository",
    "SyndicatedItemRepository",
    "ScheduleRepository",
]
