"""
Visibility Filter
=================

Works out which source groups belong to feeds configured with
``display=False``. Listing code passes the result to the item repository
explicitly; no query is filtered behind the caller's back.
"""

from typing import List, Optional

from ..config.feeds import FeedRegistry
from ..database.models import SyndicatedItem
from ..storage.group_repository import SourceGroupRepository
from ..storage.item_repository import SyndicatedItemRepository
from ..utils.hashing import group_key_for


class VisibilityFilter:
    """Computes group exclusions for hidden feeds."""

    def __init__(self, registry: FeedRegistry, group_repository: SourceGroupRepository):
        self.registry = registry
        self.groups = group_repository

    def excluded_group_keys(self) -> List[str]:
        """Group keys of hidden feeds that have a stored group."""
        candidate_keys = [group_key_for(feed.feed_url) for feed in self.registry.hidden()]
        return self.groups.get_existing_keys(candidate_keys)

    def visible_items(
        self, item_repository: SyndicatedItemRepository, limit: Optional[int] = None
    ) -> List[SyndicatedItem]:
        """Published items from displayed feeds, newest first."""
        return item_repository.list_items(
            excluded_groups=self.excluded_group_keys(), limit=limit
        )
