"""Tests for the PageManager lifecycle service."""

from __future__ import annotations

import pytest

from pagestore.errors import LifecycleError, MalformedRequestError, NotFoundError
from pagestore.pages import PageManager
from pagestore.types import PageStatus


class TestCreate:
    def test_create_defaults(self, manager):
        page = manager.create(title="Home", path="/home", tags=["main"])
        assert page.version == 1
        assert page.id == f"{page.pid}#0001"
        assert page.status == PageStatus.DRAFT.value
        assert manager.get(page.pid) == page

    def test_create_generates_unique_path(self, manager):
        a = manager.create()
        b = manager.create()
        assert a.path != b.path
        assert a.title == "Untitled"

    def test_create_from_numbers_after_latest(self, manager):
        page = manager.create(title="Home", path="/home")
        v2 = manager.create_from(page.id)
        v3 = manager.create_from(page.id)
        assert (v2.version, v3.version) == (2, 3)
        assert v3.title == "Home"
        assert manager.get(page.pid).id == v3.id

    def test_create_from_resets_status(self, manager):
        page = manager.create(path="/a")
        manager.publish(page.id)
        v2 = manager.create_from(page.id)
        assert v2.status == PageStatus.DRAFT.value
        assert v2.locked is False
        assert v2.published_on is None


class TestUpdate:
    def test_update_fields(self, manager):
        page = manager.create(path="/a")
        updated = manager.update(page.id, title="New", settings={"seo": {"title": "x"}})
        assert updated.title == "New"
        assert manager.get(page.id).settings == {"seo": {"title": "x"}}

    def test_unknown_fields_rejected(self, manager):
        page = manager.create(path="/a")
        with pytest.raises(MalformedRequestError) as exc_info:
            manager.update(page.id, status="published")
        assert exc_info.value.code == "MALFORMED_UPDATE_REQUEST"

    def test_locked_page_rejected(self, manager):
        page = manager.create(path="/a")
        manager.publish(page.id)
        with pytest.raises(LifecycleError) as exc_info:
            manager.update(page.id, title="x")
        assert exc_info.value.code == "PAGE_LOCKED"

    def test_changes_requested_returns_to_draft(self, manager):
        page = manager.create(path="/a")
        manager.request_review(page.id)
        manager.request_changes(page.id)
        updated = manager.update(page.id, title="Fixed")
        assert updated.status == PageStatus.DRAFT.value

    def test_missing_page(self, manager):
        with pytest.raises(NotFoundError):
            manager.update("nope#0001", title="x")


class TestPublishing:
    def test_publish_and_resolve_by_path(self, manager):
        page = manager.create(path="/home")
        published = manager.publish(page.id)
        assert published.status == PageStatus.PUBLISHED.value
        assert published.locked is True
        assert published.published_on is not None
        assert manager.get_by_path("/home") == manager.get_published(page.pid)

    def test_publish_new_revision_unpublishes_old(self, manager):
        page = manager.create(path="/home")
        manager.publish(page.id)
        v2 = manager.create_from(page.id)
        manager.publish(v2.id)
        assert manager.get(page.id).status == PageStatus.UNPUBLISHED.value
        assert manager.get_published(page.pid).id == v2.id

    def test_publish_twice_rejected(self, manager):
        page = manager.create(path="/home")
        manager.publish(page.id)
        with pytest.raises(LifecycleError) as exc_info:
            manager.publish(page.id)
        assert exc_info.value.code == "INVALID_STATUS_TRANSITION"

    def test_unpublish(self, manager):
        page = manager.create(path="/home")
        manager.publish(page.id)
        unpublished = manager.unpublish(page.id)
        assert unpublished.status == PageStatus.UNPUBLISHED.value
        with pytest.raises(NotFoundError):
            manager.get_by_path("/home")

    def test_unpublish_requires_published_revision(self, manager):
        page = manager.create(path="/home")
        with pytest.raises(LifecycleError) as exc_info:
            manager.unpublish(page.id)
        assert exc_info.value.code == "NOT_PUBLISHED"

    def test_republish_after_unpublish(self, manager):
        page = manager.create(path="/home")
        manager.publish(page.id)
        manager.unpublish(page.id)
        assert manager.publish(page.id).status == PageStatus.PUBLISHED.value


class TestReview:
    def test_review_flow(self, manager):
        page = manager.create(path="/a")
        reviewed = manager.request_review(page.id)
        assert reviewed.status == PageStatus.REVIEW_REQUESTED.value
        assert reviewed.locked is True
        changes = manager.request_changes(page.id)
        assert changes.status == PageStatus.CHANGES_REQUESTED.value
        assert changes.locked is False

    def test_changes_require_review(self, manager):
        page = manager.create(path="/a")
        with pytest.raises(LifecycleError):
            manager.request_changes(page.id)

    def test_review_of_published_rejected(self, manager):
        page = manager.create(path="/a")
        manager.publish(page.id)
        with pytest.raises(LifecycleError):
            manager.request_review(page.id)


class TestDelete:
    def test_delete_revision_promotes_previous(self, manager):
        page = manager.create(path="/a")
        v2 = manager.create_from(page.id)
        deleted, latest = manager.delete(v2.id)
        assert deleted.id == v2.id
        assert latest.id == page.id
        assert manager.get(page.pid).id == page.id

    def test_delete_sole_revision_removes_page(self, manager):
        page = manager.create(path="/a")
        deleted, latest = manager.delete(page.id)
        assert latest is None
        with pytest.raises(NotFoundError):
            manager.get(page.pid)

    def test_delete_bare_pid_removes_everything(self, manager):
        page = manager.create(path="/a")
        manager.create_from(page.id)
        manager.publish(page.id)
        manager.delete(page.pid)
        with pytest.raises(NotFoundError):
            manager.list_revisions(page.pid)
        with pytest.raises(NotFoundError):
            manager.get_by_path("/a")

    def test_delete_missing(self, manager):
        with pytest.raises(NotFoundError):
            manager.delete("nope")


class TestReads:
    def test_list_and_tags(self, manager):
        a = manager.create(title="Alpha", path="/a", tags=["news"])
        manager.create(title="Beta", path="/b", tags=["tech", "news"])
        manager.publish(a.id)

        assert manager.list().meta.total_count == 2
        assert [p.id for p in manager.list(published=True).items] == [a.id]
        assert [p.title for p in manager.list(sort=["title_DESC"]).items] == ["Beta", "Alpha"]
        assert [p.title for p in manager.list(where={"status": "draft"}).items] == ["Beta"]
        assert sorted(manager.list_tags()) == ["news", "tech"]

    def test_list_single_tag_string(self, manager):
        manager.create(title="Alpha", tags=["news"])
        manager.create(title="Beta", tags=["tech"])
        assert [p.title for p in manager.list(tags="news").items] == ["Alpha"]

    def test_list_revisions(self, manager):
        page = manager.create(path="/a")
        manager.create_from(page.id)
        assert [r.version for r in manager.list_revisions(page.pid)] == [1, 2]

    def test_tenants_are_isolated(self, ops, manager):
        manager.create(path="/a")
        other = PageManager(ops, tenant="acme", locale="en-US")
        assert other.list().items == []
