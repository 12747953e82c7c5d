"""
Reconciliation Decisions
========================

Pure decision logic for item reconciliation. Nothing here touches the store:
given an upstream item, the existing record (if any) and the feed's ingest
flag, it says what should happen. The reconciler applies the decision.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional

from ..database.models import ItemState, SyndicatedItem, UpstreamItem
from ..ingestion.content_cleaner import ContentCleaner
from ..utils.validators import URLValidator


class ItemAction(str, Enum):
    """What reconciliation does with one upstream item."""

    CREATE = "create"
    SKIP_NEW = "skip_new"  # not stored yet, ingest off
    PROTECTED = "protected"  # locally suppressed, never touched
    SKIP_EXPIRED = "skip_expired"  # expired, ingest off
    REPUBLISH = "republish"
    UNCHANGED = "unchanged"
    UPDATE = "update"
    EXPIRE_CHANGED = "expire_changed"  # edited upstream while ingest is off

    @property
    def writes(self) -> bool:
        return self in (
            ItemAction.CREATE,
            ItemAction.REPUBLISH,
            ItemAction.UPDATE,
            ItemAction.EXPIRE_CHANGED,
        )


COMPARED_FIELDS = ("title", "body", "summary", "source_permalink")


@dataclass(frozen=True)
class ItemContent:
    """The cleaned, comparable content of one upstream item."""

    title: str
    body: str
    summary: str
    source_permalink: str

    def as_fields(self) -> Dict[str, str]:
        return {name: getattr(self, name) for name in COMPARED_FIELDS}

    def changed_fields(self, item: SyndicatedItem) -> Dict[str, str]:
        """Fields whose cleaned upstream value differs from the stored one."""
        return {
            name: value
            for name, value in self.as_fields().items()
            if getattr(item, name) != value
        }


@dataclass
class Decision:
    action: ItemAction
    changes: Dict[str, str] = field(default_factory=dict)


def build_content(
    item: UpstreamItem,
    ingest_full_content: bool = False,
    cleaner: Optional[ContentCleaner] = None,
) -> ItemContent:
    """Clean an upstream item into the values that would be stored.

    Args:
        item: Parsed upstream item
        ingest_full_content: Use the full content as the body instead of the description
        cleaner: Content cleaner to use

    Returns:
        ItemContent ready for storage or comparison
    """
    cleaner = cleaner or ContentCleaner()
    raw_body = item.content if ingest_full_content else item.description

    return ItemContent(
        title=cleaner.strip_all_tags(item.title),
        body=cleaner.sanitize_html(raw_body),
        summary=cleaner.sanitize_html(item.description),
        source_permalink=URLValidator.sanitize_url(item.permalink),
    )


def decide(
    existing: Optional[SyndicatedItem], content: ItemContent, ingest: bool
) -> Decision:
    """Decide what to do with one item present in the feed.

    Args:
        existing: Stored record for the item, or None
        content: Cleaned upstream content
        ingest: The feed's ingest flag

    Returns:
        Decision with the action and, for updates, the changed fields
    """
    if existing is None:
        return Decision(ItemAction.CREATE if ingest else ItemAction.SKIP_NEW)

    if existing.is_locally_suppressed:
        return Decision(ItemAction.PROTECTED)

    if existing.state == ItemState.EXPIRED:
        if not ingest:
            return Decision(ItemAction.SKIP_EXPIRED)
        return Decision(ItemAction.REPUBLISH, content.as_fields())

    changes = content.changed_fields(existing)
    if not changes:
        return Decision(ItemAction.UNCHANGED)
    if ingest:
        return Decision(ItemAction.UPDATE, changes)
    return Decision(ItemAction.EXPIRE_CHANGED)


def plan_expirations(
    published: Iterable[SyndicatedItem], present_keys: Iterable[str]
) -> List[SyndicatedItem]:
    """Published records whose item is no longer in the feed."""
    present = set(present_keys)
    return [
        item
        for item in published
        if item.state == ItemState.PUBLISHED and item.item_key not in present
    ]
