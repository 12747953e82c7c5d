"""
Source Group Reconciler
=======================

Keeps exactly one local source group per feed URL. The group key is derived
from the feed URL alone, so renaming a feed updates its group instead of
creating a new one.
"""

from typing import Callable, List, Optional

from ..database.models import FeedConfig, GroupEvent, SourceGroup
from ..ingestion.content_cleaner import ContentCleaner
from ..storage.group_repository import SourceGroupRepository
from ..utils.hashing import group_key_for
from ..utils.logging import get_logger_for_component
from ..utils.validators import URLValidator
from ..utils.exceptions import DatabaseError, GroupPersistError


GroupListener = Callable[[GroupEvent], None]


class SourceGroupReconciler:
    """Creates or refreshes the source group for a feed."""

    def __init__(
        self,
        group_repository: SourceGroupRepository,
        cleaner: Optional[ContentCleaner] = None,
    ):
        self.groups = group_repository
        self.cleaner = cleaner or ContentCleaner()
        self.logger = get_logger_for_component("groups")
        self._listeners: List[GroupListener] = []

    def subscribe(self, listener: GroupListener) -> None:
        """Register a callback for group created/updated events."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: GroupListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def ensure_group(self, feed_config: FeedConfig) -> SourceGroup:
        """Ensure the feed's source group exists with current name and link.

        Args:
            feed_config: Configured feed

        Returns:
            The stored source group

        Raises:
            GroupPersistError: If the group cannot be read, created or updated
        """
        group_key = group_key_for(feed_config.feed_url)
        display_name = self.cleaner.strip_all_tags(feed_config.title)
        source_link = URLValidator.sanitize_url(feed_config.site_link)

        try:
            existing = self.groups.get_by_key(group_key)

            if existing is None:
                group = self.groups.create(
                    SourceGroup(
                        group_key=group_key,
                        display_name=display_name,
                        source_link=source_link,
                    )
                )
                self._emit(GroupEvent(kind="created", group=group))
                return group

            changed_fields = []
            if existing.display_name != display_name:
                changed_fields.append("display_name")
            if existing.source_link != source_link:
                changed_fields.append("source_link")

            if not changed_fields:
                return existing

            if not self.groups.update(group_key, display_name, source_link):
                raise GroupPersistError(
                    f"Source group disappeared during update: {group_key}",
                    group_key=group_key,
                )

        except DatabaseError as e:
            if isinstance(e, GroupPersistError):
                raise
            raise GroupPersistError(
                f"Failed to persist source group for {feed_config.feed_url}: {e}",
                group_key=group_key,
                context={"feed_url": feed_config.feed_url},
            ) from e

        group = existing.model_copy(
            update={"display_name": display_name, "source_link": source_link}
        )
        self.logger.info(
            f"Updated source group {display_name}",
            extra={"group_key": group_key, "changed_fields": changed_fields},
        )
        self._emit(GroupEvent(kind="updated", group=group, changed_fields=changed_fields))
        return group

    def _emit(self, event: GroupEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                # Listener failures never propagate into the poll
                self.logger.exception(
                    f"Group {event.kind} listener failed",
                    extra={"group_key": event.group.group_key},
                )
