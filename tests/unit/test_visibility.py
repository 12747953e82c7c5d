"""
Tests for Visibility Filter
===========================

Hidden feeds keep their items but are left out of listings.
"""

import pytest

from syndifeed.config.feeds import FeedRegistry
from syndifeed.database.models import FeedConfig
from syndifeed.syndication.groups import SourceGroupReconciler
from syndifeed.syndication.reconciler import ItemReconciler
from syndifeed.syndication.visibility import VisibilityFilter


SHOWN = FeedConfig(title="Shown", feed_url="https://shown.example.com/feed/", site_link="https://shown.example.com/")
HIDDEN = FeedConfig(
    title="Hidden",
    feed_url="https://hidden.example.com/feed/",
    site_link="https://hidden.example.com/",
    display=False,
)


class TestVisibilityFilter:
    """Test suite for VisibilityFilter."""

    @pytest.fixture
    def registry(self):
        return FeedRegistry([SHOWN, HIDDEN])

    @pytest.fixture
    def visibility(self, registry, group_repo):
        return VisibilityFilter(registry, group_repo)

    @pytest.fixture
    def populate(self, group_repo, item_repo, make_item):
        """Store one item for each given feed."""

        def _populate(*feeds):
            groups = SourceGroupReconciler(group_repo)
            reconciler = ItemReconciler(item_repo)
            for feed in feeds:
                group = groups.ensure_group(feed)
                reconciler.reconcile([make_item(f"{feed.title}-1")], feed, group)

        return _populate

    def test_no_groups_means_no_exclusions(self, visibility):
        assert visibility.excluded_group_keys() == []

    def test_hidden_feed_without_group_is_not_excluded(self, visibility, populate):
        populate(SHOWN)
        assert visibility.excluded_group_keys() == []

    def test_hidden_feed_group_excluded(self, visibility, populate, group_repo):
        populate(SHOWN, HIDDEN)

        excluded = visibility.excluded_group_keys()

        hidden_group = [g for g in group_repo.list_all() if g.display_name == "Hidden"][0]
        assert excluded == [hidden_group.group_key]

    def test_visible_items(self, visibility, populate, item_repo):
        populate(SHOWN, HIDDEN)

        visible = visibility.visible_items(item_repo)

        assert [item.source_guid for item in visible] == ["Shown-1"]
        assert len(item_repo.list_items()) == 2

    def test_all_feeds_displayed(self, group_repo, item_repo, populate):
        populate(SHOWN, HIDDEN)
        visibility = VisibilityFilter(FeedRegistry([SHOWN, HIDDEN.model_copy(update={"display": True})]), group_repo)

        assert len(visibility.visible_items(item_repo)) == 2
