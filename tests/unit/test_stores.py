"""Unit tests for the in-memory stores."""

from datetime import datetime, timedelta, timezone

import pytest

from wp_image_pipeline.core.exceptions import ConcurrentUpdateError, SinkError
from wp_image_pipeline.core.models import (
    ContentRecord,
    MetadataAuditRecord,
    WebsiteRecord,
)
from wp_image_pipeline.core.stores import (
    InMemoryAuditLog,
    InMemoryContentStore,
    InMemoryWebsiteStore,
)


class TestWebsiteStore:
    """Tests for InMemoryWebsiteStore."""

    @pytest.fixture
    def store(self):
        return InMemoryWebsiteStore(
            [
                WebsiteRecord(id="w1", user_id="u1", url="https://a.example"),
                WebsiteRecord(id="w2", user_id="u2", url="https://b.example"),
            ]
        )

    def test_websites_are_scoped_to_their_owner(self, store):
        assert store.get_for_user("u1", "w1").url == "https://a.example"
        assert store.get_for_user("u1", "w2") is None
        assert store.get_for_user("u1", "missing") is None

    def test_list_for_user(self, store):
        store.add(WebsiteRecord(id="w3", user_id="u1"))
        assert [w.id for w in store.list_for_user("u1")] == ["w1", "w3"]


class TestContentStore:
    """Tests for InMemoryContentStore."""

    @pytest.fixture
    def store(self):
        return InMemoryContentStore(
            [
                ContentRecord(id="c1", website_id="w1", body="<p>one</p>"),
                ContentRecord(id="c2", website_id="w2", body="<p>two</p>"),
            ]
        )

    def test_get_returns_a_copy(self, store):
        record = store.get("c1")
        record.body = "mutated"
        assert store.get("c1").body == "<p>one</p>"

    def test_list_by_website(self, store):
        assert [c.id for c in store.list()] == ["c1", "c2"]
        assert [c.id for c in store.list("w2")] == ["c2"]

    def test_update_body_bumps_version(self, store):
        updated = store.update_body("c1", "<p>new</p>", expected_version=1)

        assert updated.version == 2
        assert store.get("c1").body == "<p>new</p>"

    def test_stale_version_is_rejected(self, store):
        store.update_body("c1", "<p>first</p>", expected_version=1)

        with pytest.raises(ConcurrentUpdateError) as exc_info:
            store.update_body("c1", "<p>second</p>", expected_version=1)

        assert exc_info.value.actual_version == 2
        assert store.get("c1").body == "<p>first</p>"

    def test_missing_record(self, store):
        with pytest.raises(SinkError, match="Content not found: nope"):
            store.update_body("nope", "", expected_version=1)


class TestAuditLog:
    """Tests for InMemoryAuditLog."""

    def test_upserts_by_image_id(self):
        log = InMemoryAuditLog()
        log.record(MetadataAuditRecord(image_id="a", action="add", processed=False))
        log.record(MetadataAuditRecord(image_id="a", action="strip", processed=True))

        entry = log.get("a")
        assert entry.action == "strip"
        assert entry.processed
        assert len(log.list()) == 1

    def test_list_newest_first_and_filtered(self):
        log = InMemoryAuditLog()
        now = datetime.now(timezone.utc)
        log.record(
            MetadataAuditRecord(
                image_id="old", website_id="w1", action="add", processed_at=now - timedelta(hours=1)
            )
        )
        log.record(MetadataAuditRecord(image_id="new", website_id="w1", action="add", processed_at=now))
        log.record(MetadataAuditRecord(image_id="other", website_id="w2", action="add"))

        assert [e.image_id for e in log.list("w1")] == ["new", "old"]
        assert log.get("missing") is None
