"""Page lifecycle service on top of :class:`PageStorageOperations`."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Iterable

from pagestore.errors import LifecycleError, MalformedRequestError, NotFoundError
from pagestore.keys import create_page_id, parse_page_id
from pagestore.operations import PageStorageOperations
from pagestore.query import (
    GetWhere,
    ListParams,
    ListResponse,
    ListWhere,
    PathWhere,
    RevisionsWhere,
    TagsWhere,
)
from pagestore.types import MAX_VERSION, Page, PageStatus, now_iso

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset(
    {"title", "path", "tags", "snippet", "category", "content", "settings"}
)

PUBLISHABLE = frozenset(
    {
        PageStatus.DRAFT.value,
        PageStatus.REVIEW_REQUESTED.value,
        PageStatus.CHANGES_REQUESTED.value,
        PageStatus.UNPUBLISHED.value,
    }
)
REVIEWABLE = frozenset({PageStatus.DRAFT.value, PageStatus.CHANGES_REQUESTED.value})


class PageManager:
    """Lifecycle operations for the pages of one tenant/locale.

    Reads the current latest and published records, checks the status
    transition and hands the resulting page to the storage operations.

    Example::

        manager = PageManager(ops, tenant="root", locale="en-US")
        page = manager.create(title="Home", path="/home")
        manager.publish(page.id)
    """

    def __init__(self, ops: PageStorageOperations, *, tenant: str, locale: str) -> None:
        self.ops = ops
        self.tenant = tenant
        self.locale = locale

    # --- Lookups ---

    def _where(self, page_id: str, **kwargs: Any) -> GetWhere:
        return GetWhere(self.tenant, self.locale, id=page_id, **kwargs)

    def _require(self, page_id: str) -> Page:
        page = self.ops.get(self._where(page_id))
        if page is None:
            raise NotFoundError(f"Page '{page_id}' not found.", data={"id": page_id})
        return page

    def _latest(self, pid: str) -> Page | None:
        return self.ops.get(GetWhere(self.tenant, self.locale, pid=pid))

    def _published(self, pid: str) -> Page | None:
        return self.ops.get(GetWhere(self.tenant, self.locale, pid=pid, published=True))

    def get(self, page_id: str) -> Page:
        """Load a revision by ``pid#NNNN``, or the latest revision by bare pid."""
        return self._require(page_id)

    def get_published(self, pid: str) -> Page:
        page = self._published(parse_page_id(pid)[0])
        if page is None:
            raise NotFoundError(f"Page '{pid}' is not published.", data={"pid": pid})
        return page

    def get_by_path(self, path: str) -> Page:
        page = self.ops.get_by_path(PathWhere(self.tenant, self.locale, path))
        if page is None:
            raise NotFoundError(f"No published page at path '{path}'.", data={"path": path})
        return page

    def list(
        self,
        *,
        published: bool = False,
        search: str | None = None,
        tags: Iterable[str] = (),
        tags_rule: str = "all",
        where: dict[str, Any] | None = None,
        sort: Iterable[str] = (),
        limit: int | None = None,
        after: str | None = None,
    ) -> ListResponse:
        list_where = ListWhere(
            self.tenant,
            self.locale,
            latest=not published,
            published=published,
            search=search,
            tags=(tags,) if isinstance(tags, str) else tuple(tags),
            tags_rule=tags_rule,
            fields=where or {},
        )
        return self.ops.list(ListParams(list_where, tuple(sort), limit, after))

    def list_revisions(self, pid: str) -> list[Page]:
        revisions = self.ops.list_revisions(RevisionsWhere(self.tenant, self.locale, pid))
        if not revisions:
            raise NotFoundError(f"Page '{pid}' not found.", data={"pid": pid})
        return revisions

    def list_tags(self, search: str | None = None) -> list[str]:
        return self.ops.list_tags(TagsWhere(self.tenant, self.locale, search))

    # --- Transitions ---

    def create(
        self,
        *,
        title: str = "Untitled",
        path: str | None = None,
        category: str | None = None,
        tags: Iterable[str] | None = None,
        created_by: dict[str, Any] | None = None,
    ) -> Page:
        pid = uuid.uuid4().hex
        page = Page(
            id=create_page_id(pid, 1),
            pid=pid,
            version=1,
            tenant=self.tenant,
            locale=self.locale,
            title=title,
            path=path or f"/untitled-{pid[:8]}",
            category=category,
            tags=list(tags or []),
            created_by=created_by,
        )
        logger.debug("Creating page %s", page.id)
        return self.ops.create(page)

    def create_from(self, page_id: str) -> Page:
        """Start a new draft revision from ``page_id``, numbered after the latest one."""
        original = self._require(page_id)
        latest_page = self._latest(original.pid)
        if latest_page is None:
            raise NotFoundError(
                f"Page '{original.pid}' has no latest revision.", data={"pid": original.pid}
            )
        version = latest_page.version + 1
        if version > MAX_VERSION:
            raise LifecycleError(
                f"Page '{original.pid}' reached the maximum of {MAX_VERSION} revisions.",
                data={"pid": original.pid},
            )
        now = now_iso()
        page = original.with_changes(
            id=create_page_id(original.pid, version),
            version=version,
            status=PageStatus.DRAFT.value,
            locked=False,
            published_on=None,
            created_on=now,
            saved_on=now,
        )
        return self.ops.create_from(page, original=original, latest_page=latest_page)

    def update(self, page_id: str, **changes: Any) -> Page:
        unknown = sorted(set(changes) - UPDATABLE_FIELDS)
        if unknown:
            raise MalformedRequestError(
                f"Cannot update fields: {', '.join(unknown)}.",
                "MALFORMED_UPDATE_REQUEST",
                {"fields": unknown},
            )
        original = self._require(page_id)
        if original.locked:
            raise LifecycleError(
                f"Cannot update page '{original.id}' because it is locked.",
                "PAGE_LOCKED",
                {"id": original.id, "status": original.status},
            )
        if original.status == PageStatus.CHANGES_REQUESTED.value:
            changes["status"] = PageStatus.DRAFT.value
        page = original.with_changes(**changes, saved_on=now_iso())
        return self.ops.update(page, original=original)

    def publish(self, page_id: str) -> Page:
        original = self._require(page_id)
        self._check_transition(original, PUBLISHABLE, PageStatus.PUBLISHED)
        now = now_iso()
        page = original.with_changes(
            status=PageStatus.PUBLISHED.value, locked=True, published_on=now, saved_on=now
        )
        return self.ops.publish(
            page,
            latest_page=self._latest(page.pid),
            published_page=self._published(page.pid),
        )

    def unpublish(self, page_id: str) -> Page:
        original = self._require(page_id)
        published_page = self._published(original.pid)
        if published_page is None or published_page.id != original.id:
            raise LifecycleError(
                f"Page '{original.id}' is not the published revision.",
                "NOT_PUBLISHED",
                {"id": original.id},
            )
        page = original.with_changes(status=PageStatus.UNPUBLISHED.value, saved_on=now_iso())
        return self.ops.unpublish(page, latest_page=self._latest(page.pid))

    def request_review(self, page_id: str) -> Page:
        original = self._require(page_id)
        self._check_transition(original, REVIEWABLE, PageStatus.REVIEW_REQUESTED)
        page = original.with_changes(
            status=PageStatus.REVIEW_REQUESTED.value, locked=True, saved_on=now_iso()
        )
        return self.ops.request_review(
            page, latest_page=self._latest(page.pid), original=original
        )

    def request_changes(self, page_id: str) -> Page:
        original = self._require(page_id)
        self._check_transition(
            original, {PageStatus.REVIEW_REQUESTED.value}, PageStatus.CHANGES_REQUESTED
        )
        page = original.with_changes(
            status=PageStatus.CHANGES_REQUESTED.value, locked=False, saved_on=now_iso()
        )
        return self.ops.request_changes(
            page, latest_page=self._latest(page.pid), original=original
        )

    def delete(self, page_id: str) -> tuple[Page, Page | None]:
        """Delete one revision, or the whole page for a bare pid or a sole revision.

        Returns the deleted page and the latest revision left behind (``None``
        when the whole page went away).
        """
        pid, version = parse_page_id(page_id)
        page = self._require(page_id)
        if version is None or len(self.list_revisions(pid)) == 1:
            logger.debug("Deleting every record of page %s", pid)
            return self.ops.delete_all(page), None
        latest_page = self._latest(pid)
        return self.ops.delete(
            page, latest_page=latest_page, published_page=self._published(pid)
        )

    @staticmethod
    def _check_transition(page: Page, allowed: Iterable[str], target: PageStatus) -> None:
        if page.status not in allowed:
            raise LifecycleError(
                f"Cannot move page '{page.id}' from '{page.status}' to '{target.value}'.",
                data={"id": page.id, "status": page.status, "target": target.value},
            )
