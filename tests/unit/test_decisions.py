"""
Tests for Reconciliation Decisions
==================================

The pure decision table, without a store.
"""

import pytest

from syndifeed.database.models import ItemState, SyndicatedItem, UpstreamItem
from syndifeed.syndication.decisions import (
    ItemAction,
    ItemContent,
    build_content,
    decide,
    plan_expirations,
)
from syndifeed.utils.hashing import group_key_for, item_key_for


GROUP_KEY = group_key_for("https://example.com/feed/")


def _content(**overrides) -> ItemContent:
    data = dict(
        title="Hello",
        body="<p>Short</p>",
        summary="<p>Short</p>",
        source_permalink="https://example.com/hello/",
    )
    data.update(overrides)
    return ItemContent(**data)


def _record(state: ItemState = ItemState.PUBLISHED, guid: str = "guid-1", **overrides) -> SyndicatedItem:
    content = _content()
    data = dict(
        id=1,
        item_key=item_key_for(guid),
        group_key=GROUP_KEY,
        state=state,
        source_guid=guid,
        **content.as_fields(),
    )
    data.update(overrides)
    return SyndicatedItem(**data)


class TestBuildContent:
    """Test cleaning an upstream item into storable values."""

    @pytest.fixture
    def upstream(self):
        return UpstreamItem(
            guid="guid-1",
            title="  <b>Hello</b>   world ",
            description="<p>Short<script>x()</script></p>",
            content="<p>Long <em>body</em></p>",
            permalink="https://example.com/hello/",
        )

    def test_description_is_body_by_default(self, upstream):
        content = build_content(upstream)

        assert content.title == "Hello world"
        assert content.body == "<p>Short</p>"
        assert content.summary == "<p>Short</p>"
        assert content.source_permalink == "https://example.com/hello/"

    def test_full_content_as_body(self, upstream):
        content = build_content(upstream, ingest_full_content=True)

        assert content.body == "<p>Long <em>body</em></p>"
        assert content.summary == "<p>Short</p>"

    def test_unsafe_permalink_dropped(self, upstream):
        upstream.permalink = "javascript:alert(1)"
        assert build_content(upstream).source_permalink == ""


class TestDecide:
    """Test the per-item decision table."""

    def test_new_item(self):
        assert decide(None, _content(), ingest=True).action == ItemAction.CREATE
        assert decide(None, _content(), ingest=False).action == ItemAction.SKIP_NEW

    @pytest.mark.parametrize(
        "state", [ItemState.DRAFT, ItemState.PENDING, ItemState.PRIVATE, ItemState.TRASH]
    )
    @pytest.mark.parametrize("ingest", [True, False])
    def test_locally_suppressed_is_protected(self, state, ingest):
        changed = _content(title="Edited upstream")
        assert decide(_record(state), changed, ingest).action == ItemAction.PROTECTED

    def test_expired_item_republished_with_all_fields(self):
        content = _content(title="Back again")
        decision = decide(_record(ItemState.EXPIRED), content, ingest=True)

        assert decision.action == ItemAction.REPUBLISH
        assert decision.changes == content.as_fields()

    def test_expired_item_left_alone_without_ingest(self):
        assert decide(_record(ItemState.EXPIRED), _content(), ingest=False).action == ItemAction.SKIP_EXPIRED

    @pytest.mark.parametrize("ingest", [True, False])
    def test_unchanged(self, ingest):
        assert decide(_record(), _content(), ingest).action == ItemAction.UNCHANGED

    def test_changed_with_ingest_updates_only_changed_fields(self):
        decision = decide(_record(), _content(title="New title"), ingest=True)

        assert decision.action == ItemAction.UPDATE
        assert decision.changes == {"title": "New title"}

    def test_changed_without_ingest_expires(self):
        decision = decide(_record(), _content(body="<p>Edited</p>"), ingest=False)
        assert decision.action == ItemAction.EXPIRE_CHANGED

    def test_permalink_change_counts(self):
        decision = decide(_record(), _content(source_permalink="https://example.com/moved/"), ingest=True)
        assert decision.changes == {"source_permalink": "https://example.com/moved/"}

    def test_writing_actions(self):
        assert {action for action in ItemAction if action.writes} == {
            ItemAction.CREATE,
            ItemAction.REPUBLISH,
            ItemAction.UPDATE,
            ItemAction.EXPIRE_CHANGED,
        }


class TestPlanExpirations:
    """Test selection of absent published records."""

    def test_absent_published_records(self):
        present = _record(guid="present", id=1)
        absent = _record(guid="absent", id=2)

        expiring = plan_expirations([present, absent], [item_key_for("present")])

        assert [item.source_guid for item in expiring] == ["absent"]

    def test_empty_feed_expires_everything_published(self):
        records = [_record(guid="a", id=1), _record(guid="b", id=2)]
        assert len(plan_expirations(records, [])) == 2

    def test_only_published_records_expire(self):
        records = [
            _record(ItemState.EXPIRED, guid="expired", id=1),
            _record(ItemState.DRAFT, guid="draft", id=2),
        ]
        assert plan_expirations(records, []) == []
