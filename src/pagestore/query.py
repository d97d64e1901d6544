"""Validated read-request parameters and offset pagination."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping, Sequence

from pagestore.cursor import decode_cursor, encode_cursor
from pagestore.errors import MalformedRequestError
from pagestore.filters import (
    FieldRegistry,
    FilterExpression,
    LogicalExpression,
    SearchExpression,
    TagsExpression,
    where_to_expression,
)
from pagestore.keys import parse_page_id

if TYPE_CHECKING:
    from pagestore.types import Page

SEARCH_FIELDS = ("title", "snippet")
TAG_RULES = ("any", "all")


@dataclass(frozen=True)
class GetWhere:
    """Selects one page: by path, by published flag, by version, or the latest."""

    tenant: str
    locale: str
    id: str | None = None
    pid: str | None = None
    path: str | None = None
    published: bool = False
    version: int | None = None

    def __post_init__(self) -> None:
        if not self.path and not self.id and not self.pid:
            raise MalformedRequestError(
                "There are no ID or pageId.",
                "MALFORMED_GET_REQUEST",
                {"where": self.as_dict()},
            )
        try:
            parse_page_id(self.id or self.pid or "")
        except ValueError as e:
            raise MalformedRequestError(
                str(e), "MALFORMED_GET_REQUEST", {"where": self.as_dict()}
            ) from e

    @property
    def page_pid(self) -> str:
        pid, _ = parse_page_id(self.id or self.pid or "")
        return pid

    @property
    def page_version(self) -> int | None:
        """Explicit version, else the one embedded in a composite id."""
        if self.version:
            return self.version
        if self.id:
            return parse_page_id(self.id)[1]
        return None

    def as_dict(self) -> dict[str, Any]:
        return {
            "tenant": self.tenant,
            "locale": self.locale,
            "id": self.id,
            "pid": self.pid,
            "path": self.path,
            "published": self.published,
            "version": self.version,
        }


@dataclass(frozen=True)
class PathWhere:
    tenant: str
    locale: str
    path: str


@dataclass(frozen=True)
class RevisionsWhere:
    tenant: str
    locale: str
    pid: str

    @property
    def page_pid(self) -> str:
        return parse_page_id(self.pid)[0]


@dataclass(frozen=True)
class TagsWhere:
    tenant: str
    locale: str
    search: str | None = None


@dataclass(frozen=True)
class ListWhere:
    """Where-clause for :meth:`PageStorageOperations.list`.

    ``latest`` and ``published`` select the partition and are mutually
    exclusive; neither means latest. ``fields`` holds registry predicates
    such as ``{"status": "draft", "category_in": ["news"]}``.
    """

    tenant: str
    locale: str
    latest: bool = False
    published: bool = False
    search: str | None = None
    tags: tuple[str, ...] = ()
    tags_rule: str = "all"
    fields: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.published and self.latest:
            raise MalformedRequestError(
                "Both published and latest cannot be defined at the same time.",
                "MALFORMED_WHERE_ERROR",
                {"where": self.as_dict()},
            )
        if self.tags_rule not in TAG_RULES:
            raise MalformedRequestError(
                f"Unknown tags rule '{self.tags_rule}'.",
                "MALFORMED_WHERE_ERROR",
                {"where": self.as_dict()},
            )
        tags = (self.tags,) if isinstance(self.tags, str) else tuple(self.tags)
        object.__setattr__(self, "tags", tags)
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))

    def to_expression(self, registry: FieldRegistry) -> FilterExpression | None:
        exprs: list[FilterExpression] = []
        field_expr = where_to_expression(self.fields, registry)
        if field_expr is not None:
            exprs.append(field_expr)
        if self.tags:
            exprs.append(TagsExpression(self.tags, self.tags_rule))
        if self.search:
            exprs.append(SearchExpression(SEARCH_FIELDS, self.search))
        if not exprs:
            return None
        if len(exprs) == 1:
            return exprs[0]
        return LogicalExpression(op="AND", children=exprs)

    def as_dict(self) -> dict[str, Any]:
        return {
            "tenant": self.tenant,
            "locale": self.locale,
            "latest": self.latest,
            "published": self.published,
            "search": self.search,
            "tags": list(self.tags),
            "tags_rule": self.tags_rule,
            "fields": dict(self.fields),
        }


@dataclass(frozen=True)
class ListParams:
    where: ListWhere
    sort: tuple[str, ...] = ()
    limit: int | None = None
    after: str | None = None

    def __post_init__(self) -> None:
        if self.limit is not None and self.limit <= 0:
            raise MalformedRequestError(
                "Limit must be greater than zero.", "MALFORMED_LIST_REQUEST", {"limit": self.limit}
            )
        object.__setattr__(self, "sort", tuple(self.sort))
        # Fail fast on a bad cursor.
        decode_cursor(self.after)

    @property
    def offset(self) -> int:
        return decode_cursor(self.after) or 0


@dataclass(frozen=True)
class ListMeta:
    has_more_items: bool
    total_count: int
    cursor: str | None

    def as_dict(self) -> dict[str, Any]:
        return {
            "has_more_items": self.has_more_items,
            "total_count": self.total_count,
            "cursor": self.cursor,
        }


@dataclass
class ListResponse:
    items: list[Page]
    meta: ListMeta


def paginate(items: Sequence[Any], *, offset: int, limit: int) -> tuple[list[Any], ListMeta]:
    """Slice ``items`` at ``offset`` and describe the next page.

    The cursor encodes ``offset + limit`` and is present whenever the
    returned window is not empty.
    """
    total = len(items)
    window = list(items[offset : offset + limit])
    cursor = encode_cursor(offset + limit) if window else None
    return window, ListMeta(
        has_more_items=total > offset + limit,
        total_count=total,
        cursor=cursor,
    )
