"""
Item Reconciler
===============

Brings the stored items of one source group in line with the current
contents of its feed.

A pass has two strictly ordered steps:

1. Expire every published record whose item is absent from the feed. This
   runs for an empty feed and with ingest off.
2. Walk the feed's items in document order and apply the decision from
   ``decisions.decide`` to each one.

Every write is a single-record conditional update on the state that was read,
so a record suppressed locally between read and write is left alone. A store
failure on one item is recorded in the report and the pass moves on; failing
to load the group's published records aborts the pass before step 2.

Updates and republishes also refresh ``source_site_link`` when the feed's
site link has changed since the record was written.
"""

from typing import Iterable, Optional, Set

from ..database.models import (
    FeedConfig,
    ItemState,
    ReconciliationReport,
    SourceGroup,
    SyndicatedItem,
    UpstreamItem,
    utc_now,
)
from ..ingestion.content_cleaner import ContentCleaner
from ..storage.item_repository import SyndicatedItemRepository
from ..utils.hashing import item_key_for
from ..utils.logging import get_syndication_logger
from ..utils.validators import URLValidator
from ..utils.exceptions import DatabaseError, ItemPersistError, ValidationError
from .decisions import (
    Decision,
    ItemAction,
    ItemContent,
    build_content,
    decide,
    plan_expirations,
)


class ItemReconciler:
    """Create / update / expire / republish engine for syndicated items."""

    def __init__(
        self,
        item_repository: SyndicatedItemRepository,
        ingest_full_content: bool = False,
        cleaner: Optional[ContentCleaner] = None,
    ):
        """Initialize item reconciler.

        Args:
            item_repository: Store for syndicated items
            ingest_full_content: Installation-wide choice of body source
            cleaner: Content cleaner shared across passes
        """
        self.items = item_repository
        self.ingest_full_content = ingest_full_content
        self.cleaner = cleaner or ContentCleaner()

    def reconcile(
        self,
        items: Iterable[UpstreamItem],
        feed_config: FeedConfig,
        group: SourceGroup,
    ) -> ReconciliationReport:
        """Reconcile one feed's items against its source group.

        Args:
            items: Upstream items in document order
            feed_config: The feed being polled
            group: The feed's source group

        Returns:
            Report of what was written; per-item failures are in report.errors

        Raises:
            DatabaseError: If the group's published records cannot be loaded
        """
        logger = get_syndication_logger(feed_url=feed_config.feed_url, group_key=group.group_key)
        report = ReconciliationReport(feed_url=feed_config.feed_url, group_key=group.group_key)

        keyed_items = []
        for item in items:
            try:
                keyed_items.append((item_key_for(item.guid), item))
            except ValidationError:
                logger.warning("Skipping upstream item with empty guid")
                report.skipped += 1

        present_keys = {item_key for item_key, _ in keyed_items}

        self._expire_absent(group, present_keys, report, logger)

        seen: Set[str] = set()
        for item_key, item in keyed_items:
            if item_key in seen:
                logger.debug(f"Ignoring repeated guid in payload: {item.guid}")
                continue
            seen.add(item_key)

            try:
                self._reconcile_item(item_key, item, feed_config, group, report)
            except ItemPersistError as e:
                logger.warning(f"Item write failed: {e}", extra={"item_key": item_key})
                report.errors.append((item_key, str(e)))

        logger.info(
            f"Reconciled {feed_config.feed_url}: {report.created} created, "
            f"{report.updated} updated, {report.expired} expired, "
            f"{report.republished} republished, {report.unchanged} unchanged, "
            f"{report.skipped} skipped, {report.protected} protected, "
            f"{len(report.errors)} errors",
            extra={"report": report.to_dict()},
        )
        return report

    def _expire_absent(self, group: SourceGroup, present_keys: Set[str], report, logger) -> None:
        try:
            published = self.items.find(group.group_key, state=ItemState.PUBLISHED)
        except DatabaseError as e:
            # Step 2 must not run without step 1
            logger.error(f"Could not load published items, pass aborted: {e}")
            raise

        for record in plan_expirations(published, present_keys):
            try:
                if self.items.set_state(
                    record.id, ItemState.EXPIRED, expected_state=ItemState.PUBLISHED
                ):
                    report.expired += 1
                    logger.info(
                        f"Expired item absent from feed: {record.title}",
                        extra={"item_key": record.item_key},
                    )
            except DatabaseError as e:
                logger.warning(f"Failed to expire item: {e}", extra={"item_key": record.item_key})
                report.errors.append((record.item_key, str(e)))

    def _reconcile_item(
        self,
        item_key: str,
        item: UpstreamItem,
        feed_config: FeedConfig,
        group: SourceGroup,
        report: ReconciliationReport,
    ) -> None:
        content = build_content(item, self.ingest_full_content, self.cleaner)

        try:
            existing = self.items.find_by_item_key(group.group_key, item_key)
            decision = self._refresh_site_link(
                decide(existing, content, feed_config.ingest), existing, feed_config
            )
            written = self._apply(decision, existing, item_key, item, content, feed_config, group)

        except DatabaseError as e:
            raise ItemPersistError(
                f"Failed to reconcile item {item.guid}: {e}",
                item_key=item_key,
                context={"guid": item.guid},
            ) from e

        self._count(report, decision, written)

    @staticmethod
    def _refresh_site_link(
        decision: Decision, existing: Optional[SyndicatedItem], feed_config: FeedConfig
    ) -> Decision:
        """Carry a changed feed site link into updates and republishes.

        With ingest on, an otherwise unchanged item whose stored site link is
        stale becomes an update of that one field.
        """
        if existing is None:
            return decision

        site_link = URLValidator.sanitize_url(feed_config.site_link)
        if existing.source_site_link == site_link:
            return decision

        if decision.action in (ItemAction.UPDATE, ItemAction.REPUBLISH):
            return Decision(decision.action, {**decision.changes, "source_site_link": site_link})
        if decision.action == ItemAction.UNCHANGED and feed_config.ingest:
            return Decision(ItemAction.UPDATE, {"source_site_link": site_link})
        return decision

    def _apply(
        self,
        decision: Decision,
        existing: Optional[SyndicatedItem],
        item_key: str,
        item: UpstreamItem,
        content: ItemContent,
        feed_config: FeedConfig,
        group: SourceGroup,
    ) -> bool:
        """Carry out a decision. Returns False if a conditional write lost a race."""
        action = decision.action

        if action == ItemAction.CREATE:
            self.items.create(
                SyndicatedItem(
                    item_key=item_key,
                    group_key=group.group_key,
                    state=ItemState.PUBLISHED,
                    published_at=item.date or utc_now(),
                    source_guid=item.guid,
                    source_site_link=URLValidator.sanitize_url(feed_config.site_link),
                    **content.as_fields(),
                )
            )
            return True

        if action == ItemAction.REPUBLISH:
            return self.items.set_state(
                existing.id,
                ItemState.PUBLISHED,
                expected_state=ItemState.EXPIRED,
                fields=decision.changes,
            )

        if action == ItemAction.UPDATE:
            return self.items.set_state(
                existing.id,
                ItemState.PUBLISHED,
                expected_state=ItemState.PUBLISHED,
                fields=decision.changes,
            )

        if action == ItemAction.EXPIRE_CHANGED:
            return self.items.set_state(
                existing.id, ItemState.EXPIRED, expected_state=ItemState.PUBLISHED
            )

        return False

    @staticmethod
    def _count(report: ReconciliationReport, decision: Decision, written: bool) -> None:
        action = decision.action

        if action.writes and not written:
            # The record changed state under us; it is now someone else's
            report.protected += 1
        elif action == ItemAction.CREATE:
            report.created += 1
        elif action == ItemAction.REPUBLISH:
            report.republished += 1
        elif action == ItemAction.UPDATE:
            report.updated += 1
        elif action == ItemAction.EXPIRE_CHANGED:
            report.expired += 1
        elif action == ItemAction.UNCHANGED:
            report.unchanged += 1
        elif action == ItemAction.PROTECTED:
            report.protected += 1
        else:
            report.skipped += 1
