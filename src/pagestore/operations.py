"""Storage operations for pages on the single-table layout.

To query pages efficiently every page is kept as several records:

- revision: one per version, the full history
- latest: a copy of the newest revision, the editable head
- published: a copy of the live revision, which also carries the path
  index attributes so it doubles as the path record

None of the operations below use multi-item transactions. Each one builds
the complete list of puts/deletes that brings the projections to their
desired state and submits it with :func:`batch_write_all`. Puts are full
upserts keyed by immutable identifiers, so re-running an operation after a
partial failure converges on the same records.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from pagestore.batch import DeleteItem, Mutation, PutItem, batch_write_all
from pagestore.config import PageStoreConfig
from pagestore.errors import (
    DataIntegrityError,
    MalformedRequestError,
    StorageBackendError,
    StorageOperationError,
)
from pagestore.filters import FieldRegistry, filter_items, parse_sort, sort_items
from pagestore.keys import (
    LATEST_TYPE,
    PUBLISHED_TYPE,
    REVISION_TYPE,
    Keys,
    keys_for,
    latest_keys,
    latest_partition_key,
    path_keys,
    published_keys,
    published_partition_key,
    revision_keys,
    revision_partition_key,
)
from pagestore.query import (
    GetWhere,
    ListParams,
    ListResponse,
    PathWhere,
    RevisionsWhere,
    TagsWhere,
    paginate,
)
from pagestore.storage import TableProtocol
from pagestore.types import Page, PageStatus

logger = logging.getLogger(__name__)

STORAGE_ATTRIBUTES = ("PK", "SK", "GSI1_PK", "GSI1_SK", "TYPE", "titleLC")


def to_item(page: Page, keys: Keys, record_type: str, **extra: Any) -> dict[str, Any]:
    """Build the stored record for ``page`` under ``keys``."""
    return {
        **page.to_record(),
        "titleLC": page.title.lower(),
        **extra,
        "PK": keys.PK,
        "SK": keys.SK,
        "TYPE": record_type,
    }


def cleanup_item(item: dict[str, Any]) -> Page:
    """Strip storage-only attributes and return the page."""
    return Page.model_validate({k: v for k, v in item.items() if k not in STORAGE_ATTRIBUTES})


def _context(**values: Any) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for name, value in values.items():
        if isinstance(value, Keys):
            out[name] = value.as_dict()
        elif isinstance(value, Page):
            out[name] = value.to_record()
        else:
            out[name] = value
    return out


def _is_latest(latest_page: Page | None, page: Page) -> bool:
    return latest_page is not None and latest_page.id == page.id


class PageStorageOperations:
    """Create, update, publish, delete and read pages in one table.

    ``fields`` is the registry of filterable/sortable attributes used by
    :meth:`list`; it defaults to the built-in page fields.
    """

    def __init__(
        self,
        table: TableProtocol,
        *,
        config: PageStoreConfig | None = None,
        fields: FieldRegistry | None = None,
    ) -> None:
        self._table = table
        self._config = config or PageStoreConfig()
        self._fields = fields or FieldRegistry.default()

    @property
    def table(self) -> TableProtocol:
        return self._table

    @property
    def fields(self) -> FieldRegistry:
        return self._fields

    # --- Internals ---

    def _submit(
        self,
        items: list[Mutation],
        *,
        code: str,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> None:
        logger.debug("%s: submitting %d mutations", code, len(items))
        try:
            batch_write_all(self._table, items)
        except StorageBackendError as e:
            raise StorageOperationError(e.message or message, code, data) from e

    def _latest_put(self, page: Page) -> PutItem:
        return PutItem(to_item(page, latest_keys(page.tenant, page.locale, page.pid), LATEST_TYPE))

    def _revision_put(self, page: Page) -> PutItem:
        keys = revision_keys(page.tenant, page.locale, page.pid, page.version)
        return PutItem(to_item(page, keys, REVISION_TYPE))

    def _published_put(self, page: Page) -> PutItem:
        keys = published_keys(page.tenant, page.locale, page.pid)
        path = path_keys(page.tenant, page.locale, page.path)
        return PutItem(to_item(page, keys, PUBLISHED_TYPE, GSI1_PK=path.PK, GSI1_SK=path.SK))

    def _revision_state_change(
        self,
        page: Page,
        latest_page: Page | None,
        *,
        code: str,
        message: str,
        original: Page | None = None,
    ) -> Page:
        items: list[Mutation] = [self._revision_put(page)]
        if _is_latest(latest_page, page):
            items.append(self._latest_put(page))
        self._submit(
            items,
            code=code,
            message=message,
            data=_context(original=original, page=page, latest_page=latest_page),
        )
        return page

    # --- Writes ---

    def create(self, page: Page) -> Page:
        """Store the first revision of a page and make it the latest."""
        keys = keys_for(page)
        items: list[Mutation] = [self._latest_put(page), self._revision_put(page)]
        self._submit(
            items,
            code="CREATE_PAGE_ERROR",
            message="Could not create new page.",
            data=_context(revision_keys=keys.revision, latest_keys=keys.latest, page=page),
        )
        return page

    def create_from(
        self,
        page: Page,
        *,
        original: Page | None = None,
        latest_page: Page | None = None,
    ) -> Page:
        """Store a new revision copied from an existing one; it becomes the latest."""
        keys = keys_for(page)
        items: list[Mutation] = [self._latest_put(page), self._revision_put(page)]
        self._submit(
            items,
            code="CREATE_PAGE_FROM_ERROR",
            message="Could not create new page from existing page.",
            data=_context(
                revision_keys=keys.revision,
                latest_keys=keys.latest,
                latest_page=latest_page,
                original=original,
                page=page,
            ),
        )
        return page

    def update(self, page: Page, *, original: Page | None = None) -> Page:
        """Overwrite a revision, and the latest record when it points at this revision.

        The stored latest record is read first so an older revision never
        replaces a newer head.
        """
        keys = keys_for(page)
        try:
            latest_item = self._table.get_item(keys.latest)
        except StorageBackendError as e:
            raise StorageOperationError(
                e.message or "Could not update existing page.",
                "UPDATE_PAGE_ERROR",
                _context(original=original, page=page, latest_keys=keys.latest),
            ) from e
        latest_page = cleanup_item(latest_item) if latest_item else None

        items: list[Mutation] = [self._revision_put(page)]
        if _is_latest(latest_page, page):
            items.append(self._latest_put(page))
        self._submit(
            items,
            code="UPDATE_PAGE_ERROR",
            message="Could not update existing page.",
            data=_context(
                original=original,
                page=page,
                latest_page=latest_page,
                latest_keys=keys.latest,
                revision_keys=keys.revision,
            ),
        )
        return page

    def publish(
        self,
        page: Page,
        *,
        latest_page: Page | None,
        published_page: Page | None,
    ) -> Page:
        """Make ``page`` the live revision.

        Writes the revision as published, refreshes the latest record when
        it is this revision, demotes a previously published revision to
        unpublished, and replaces the published record (which carries the
        path index attributes).
        """
        if page.status != PageStatus.PUBLISHED:
            page = page.with_changes(status=PageStatus.PUBLISHED)

        items: list[Mutation] = [self._revision_put(page)]
        if _is_latest(latest_page, page):
            items.append(self._latest_put(page))

        if published_page is not None and published_page.id != page.id:
            demoted = published_page.with_changes(status=PageStatus.UNPUBLISHED)
            items.append(self._revision_put(demoted))
            if _is_latest(latest_page, published_page):
                items.append(self._latest_put(demoted))

        items.append(self._published_put(page))
        self._submit(
            items,
            code="UPDATE_RECORDS_ERROR",
            message="Could not update all the page records when publishing.",
            data=_context(page=page, latest_page=latest_page, published_page=published_page),
        )
        return page

    def unpublish(self, page: Page, *, latest_page: Page | None) -> Page:
        """Write the revision with its new status and remove the published/path record."""
        keys = keys_for(page)
        items: list[Mutation] = [self._revision_put(page), DeleteItem(keys.published)]
        if _is_latest(latest_page, page):
            items.append(self._latest_put(page))
        self._submit(
            items,
            code="UPDATE_RECORDS_ERROR",
            message="Could not update all the page records when unpublishing.",
            data=_context(page=page, latest_page=latest_page, published_keys=keys.published),
        )
        return page

    def request_review(
        self,
        page: Page,
        *,
        latest_page: Page | None,
        original: Page | None = None,
    ) -> Page:
        return self._revision_state_change(
            page,
            latest_page,
            code="REQUEST_REVIEW_ERROR",
            message="Could not request review on page record.",
            original=original,
        )

    def request_changes(
        self,
        page: Page,
        *,
        latest_page: Page | None,
        original: Page | None = None,
    ) -> Page:
        return self._revision_state_change(
            page,
            latest_page,
            code="REQUEST_CHANGES_ERROR",
            message="Could not request changes on page record.",
            original=original,
        )

    def delete(
        self,
        page: Page,
        *,
        latest_page: Page | None,
        published_page: Page | None,
    ) -> tuple[Page, Page | None]:
        """Delete one revision.

        When the deleted revision is the latest one, the revision right
        before it (by version) becomes the new latest; if there is none the
        latest record is removed. Returns ``(page, new_latest_page)``.
        """
        keys = keys_for(page)
        items: list[Mutation] = [DeleteItem(keys.revision)]
        if published_page is not None and published_page.id == page.id:
            items.append(DeleteItem(keys.published))

        previous_latest: Page | None = None
        if _is_latest(latest_page, page):
            try:
                previous = self._table.query(
                    keys.revision.PK,
                    lt=keys.revision.SK,
                    reverse=True,
                    limit=1,
                )
            except StorageBackendError as e:
                raise StorageOperationError(
                    e.message or "Could not load the previous revision of the page.",
                    "LOAD_PAGE_REVISIONS_ERROR",
                    _context(page=page, revision_keys=keys.revision),
                ) from e
            if previous:
                previous_latest = cleanup_item(previous[0])
                items.append(self._latest_put(previous_latest))
            else:
                items.append(DeleteItem(keys.latest))

        self._submit(
            items,
            code="BATCH_WRITE_RECORDS_ERROR",
            message="Could not batch write all the page records.",
            data=_context(page=page, latest_page=latest_page, published_page=published_page),
        )
        return page, previous_latest

    def delete_all(self, page: Page) -> Page:
        """Delete every record of the page: latest, published/path and all revisions."""
        keys = keys_for(page)
        partition_key = revision_partition_key(page.tenant, page.locale, page.pid)
        try:
            revisions = self._table.query(partition_key)
        except StorageBackendError as e:
            raise StorageOperationError(
                e.message or "Could not query for all revisions of the page.",
                "LIST_REVISIONS_ERROR",
                {"partition_key": partition_key},
            ) from e

        published = [r for r in revisions if r.get("status") == PageStatus.PUBLISHED.value]
        if len(published) > 1:
            versions = sorted(int(r["version"]) for r in published)
            logger.warning(
                "Page %s has %d revisions marked published: %s", page.pid, len(published), versions
            )
            raise DataIntegrityError(
                f"Page '{page.pid}' has more than one published revision.",
                "MULTIPLE_PUBLISHED_REVISIONS",
                {"pid": page.pid, "versions": versions},
            )

        items: list[Mutation] = [DeleteItem(keys.latest)]
        if published:
            items.append(DeleteItem(keys.published))
        items.extend(DeleteItem(Keys(r["PK"], r["SK"])) for r in revisions)

        self._submit(
            items,
            code="DELETE_RECORDS_ERROR",
            message="Could not delete all the page records.",
            data={"pid": page.pid, "revisions": len(revisions)},
        )
        return page

    # --- Reads ---

    def get(self, where: GetWhere) -> Page | None:
        """Load one page; ``None`` when it does not exist."""
        if where.path:
            return self.get_by_path(PathWhere(where.tenant, where.locale, where.path))

        pid = where.page_pid
        version = where.page_version
        if where.published:
            keys = published_keys(where.tenant, where.locale, pid)
        elif version:
            keys = revision_keys(where.tenant, where.locale, pid, version)
        else:
            keys = latest_keys(where.tenant, where.locale, pid)

        try:
            item = self._table.get_item(keys)
        except StorageBackendError as e:
            raise StorageOperationError(
                e.message or "Could not load page by given params.",
                "GET_PAGE_ERROR",
                {"where": where.as_dict(), "keys": keys.as_dict()},
            ) from e
        if not item:
            return None
        return cleanup_item(item)

    def get_by_path(self, where: PathWhere) -> Page | None:
        """Resolve a published page through the path index."""
        keys = path_keys(where.tenant, where.locale, where.path)
        try:
            items = self._table.query(
                keys.PK,
                index=self._config.index_name,
                eq=keys.SK,
                limit=1,
            )
        except StorageBackendError as e:
            raise StorageOperationError(
                e.message or "Could not get page by given path.",
                "GET_PAGE_BY_PATH_ERROR",
                {"where": {"tenant": where.tenant, "locale": where.locale, "path": where.path}},
            ) from e
        if not items:
            return None
        return cleanup_item(items[0])

    def list(self, params: ListParams) -> ListResponse:
        """Filter, sort and paginate the latest or the published pages."""
        where = params.where
        expr = where.to_expression(self._fields)
        sort_specs = parse_sort(params.sort, self._fields)
        limit = params.limit or self._config.default_list_limit

        if where.published:
            partition_key = published_partition_key(where.tenant, where.locale)
        else:
            partition_key = latest_partition_key(where.tenant, where.locale)

        try:
            records = self._table.query(partition_key)
        except StorageBackendError as e:
            raise StorageOperationError(
                e.message or "Could not load pages by given query params.",
                "LIST_PAGES_ERROR",
                {"partition_key": partition_key},
            ) from e

        filtered = filter_items(records, expr)
        ordered = sort_items(filtered, sort_specs)
        window, meta = paginate(ordered, offset=params.offset, limit=limit)
        return ListResponse(items=[cleanup_item(dict(r)) for r in window], meta=meta)

    def list_revisions(self, where: RevisionsWhere) -> list[Page]:
        """All revisions of a page, oldest first."""
        partition_key = revision_partition_key(where.tenant, where.locale, where.page_pid)
        try:
            items = self._table.query(partition_key)
        except StorageBackendError as e:
            raise StorageOperationError(
                e.message or "Could not load all the revisions from requested page.",
                "LOAD_PAGE_REVISIONS_ERROR",
                {"where": {"tenant": where.tenant, "locale": where.locale, "pid": where.pid}},
            ) from e
        return [cleanup_item(i) for i in items]

    def list_tags(self, where: TagsWhere) -> list[str]:
        """Distinct tags across the latest pages, in first-seen order."""
        pattern = None
        if where.search:
            try:
                pattern = re.compile(where.search, re.IGNORECASE)
            except re.error as e:
                raise MalformedRequestError(
                    f"Invalid tag search pattern: {e}",
                    "MALFORMED_WHERE_ERROR",
                    {"search": where.search},
                ) from e

        partition_key = latest_partition_key(where.tenant, where.locale)
        try:
            pages = self._table.query(partition_key)
        except StorageBackendError as e:
            raise StorageOperationError(
                e.message or "Could not load pages by given query params.",
                "LIST_PAGES_TAGS_ERROR",
                {"partition_key": partition_key},
            ) from e

        tags: dict[str, None] = {}
        for page in pages:
            for tag in page.get("tags") or []:
                if pattern is None or pattern.search(tag):
                    tags.setdefault(tag, None)
        return list(tags)
