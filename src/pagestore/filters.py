"""Filter and sort expressions evaluated over stored page records."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Sequence

from pagestore.errors import MalformedRequestError

_SEGMENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _validate_path(path: str) -> None:
    """Validate a dotted path (one or more identifier segments)."""
    if not path:
        raise ValueError("Path must not be empty")
    for segment in path.split("."):
        if not _SEGMENT_RE.match(segment):
            raise ValueError(
                f"Invalid path segment '{segment}': must match [A-Za-z_][A-Za-z0-9_]*"
            )


def resolve_nested_path(data: Mapping[str, Any], dotted_path: str) -> Any:
    """Resolve a dotted path against a nested dict, returning None on missing keys."""
    current: Any = data
    for segment in dotted_path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(segment)
        if current is None:
            return None
    return current


class FilterExpression:
    """Base class for filter expressions."""

    def __and__(self, other: FilterExpression) -> LogicalExpression:
        return LogicalExpression(op="AND", children=[self, other])

    def __or__(self, other: FilterExpression) -> LogicalExpression:
        return LogicalExpression(op="OR", children=[self, other])

    def __invert__(self) -> LogicalExpression:
        return LogicalExpression(op="NOT", children=[self])


@dataclass
class ComparisonExpression(FilterExpression):
    """A comparison between the value at ``field_path`` and ``value``."""

    field_path: str
    # "==", "!=", ">", ">=", "<", "<=", "IN", "NOT_IN", "CONTAINS", "NOT_CONTAINS",
    # "STARTS_WITH", "IS_NULL", "IS_NOT_NULL"
    op: str
    value: Any = None
    transform: Callable[[Any], Any] | None = field(default=None, compare=False, repr=False)


@dataclass
class LogicalExpression(FilterExpression):
    """A logical combination of filter expressions."""

    op: str  # "AND", "OR", "NOT"
    children: list[FilterExpression] = field(default_factory=list)


@dataclass
class TagsExpression(FilterExpression):
    """Matches records whose tag list holds any (or all) of ``tags``."""

    tags: tuple[str, ...]
    rule: str = "all"  # "any" or "all"
    field_path: str = "tags"


@dataclass
class SearchExpression(FilterExpression):
    """Case-insensitive substring match over several fields."""

    fields: tuple[str, ...]
    value: str


@dataclass(frozen=True)
class PageField:
    """A filterable/sortable attribute of stored page records.

    ``transform`` is applied to stored and requested values before comparing
    or sorting (for example to normalise case or parse dates).
    """

    name: str
    path: str
    sortable: bool = True
    transform: Callable[[Any], Any] | None = None

    def __post_init__(self) -> None:
        _validate_path(self.path)

    def value(self, record: Mapping[str, Any]) -> Any:
        raw = resolve_nested_path(record, self.path)
        if raw is None or self.transform is None:
            return raw
        return self.transform(raw)


def _lower(value: Any) -> Any:
    return value.lower() if isinstance(value, str) else value


DEFAULT_FIELDS: tuple[PageField, ...] = (
    PageField("id", "id"),
    PageField("pid", "pid"),
    PageField("version", "version"),
    PageField("status", "status"),
    PageField("title", "title", transform=_lower),
    PageField("path", "path"),
    PageField("tags", "tags", sortable=False),
    PageField("snippet", "snippet"),
    PageField("category", "category"),
    PageField("editor", "editor"),
    PageField("locked", "locked"),
    PageField("created_on", "created_on"),
    PageField("saved_on", "saved_on"),
    PageField("published_on", "published_on"),
    PageField("created_by", "created_by.id"),
)


class FieldRegistry:
    """Explicit mapping from field name to :class:`PageField`.

    Extra fields are registered up front and injected into the storage
    operations; nothing is looked up at call time.
    """

    def __init__(self, fields: Iterable[PageField] = ()) -> None:
        self._fields: dict[str, PageField] = {}
        for f in fields:
            self.register(f)

    @classmethod
    def default(cls, extra: Iterable[PageField] = ()) -> FieldRegistry:
        registry = cls(DEFAULT_FIELDS)
        for f in extra:
            registry.register(f)
        return registry

    def register(self, page_field: PageField) -> None:
        if page_field.name in self._fields:
            raise ValueError(f"Field '{page_field.name}' is already registered")
        self._fields[page_field.name] = page_field

    def get(self, name: str) -> PageField | None:
        return self._fields.get(name)

    def names(self) -> list[str]:
        return list(self._fields)

    def __contains__(self, name: object) -> bool:
        return name in self._fields


# Longest suffixes first so "_not_in" wins over "_in".
_WHERE_SUFFIXES: tuple[tuple[str, str], ...] = (
    ("_not_contains", "NOT_CONTAINS"),
    ("_starts_with", "STARTS_WITH"),
    ("_contains", "CONTAINS"),
    ("_not_in", "NOT_IN"),
    ("_not", "!="),
    ("_gte", ">="),
    ("_lte", "<="),
    ("_gt", ">"),
    ("_lt", "<"),
    ("_in", "IN"),
)


def _malformed_where(message: str, where: Mapping[str, Any]) -> MalformedRequestError:
    return MalformedRequestError(message, "MALFORMED_WHERE_ERROR", {"where": dict(where)})


def _split_where_key(key: str, registry: FieldRegistry) -> tuple[PageField, str]:
    page_field = registry.get(key)
    if page_field is not None:
        return page_field, "=="
    for suffix, op in _WHERE_SUFFIXES:
        if key.endswith(suffix):
            page_field = registry.get(key[: -len(suffix)])
            if page_field is not None:
                return page_field, op
    raise KeyError(key)


def where_to_expression(
    where: Mapping[str, Any], registry: FieldRegistry
) -> FilterExpression | None:
    """Turn ``{"status": "draft", "created_on_gte": ...}`` predicates into an AND expression.

    Unknown fields and list operators given a non-list value raise
    ``MALFORMED_WHERE_ERROR``.
    """
    exprs: list[FilterExpression] = []
    for key, value in where.items():
        try:
            page_field, op = _split_where_key(key, registry)
        except KeyError:
            raise _malformed_where(f"Unknown where field '{key}'.", where) from None
        if op in ("IN", "NOT_IN") and not isinstance(value, (list, tuple, set, frozenset)):
            raise _malformed_where(f"Where field '{key}' expects a list of values.", where)
        if value is None and op == "==":
            op = "IS_NULL"
        elif value is None and op == "!=":
            op = "IS_NOT_NULL"
        exprs.append(
            ComparisonExpression(page_field.path, op, value, transform=page_field.transform)
        )
    if not exprs:
        return None
    if len(exprs) == 1:
        return exprs[0]
    return LogicalExpression(op="AND", children=exprs)


def _contains(value: Any, needle: Any) -> bool:
    if isinstance(value, (list, tuple, set)):
        return needle in value
    return str(needle).lower() in str(value).lower()


def _compare_value(value: Any, op: str, rhs: Any) -> bool:
    """Compare a single value against an operator and right-hand side."""
    if op == "==":
        return value == rhs
    elif op == "!=":
        return value != rhs
    elif op == ">":
        return value is not None and value > rhs
    elif op == ">=":
        return value is not None and value >= rhs
    elif op == "<":
        return value is not None and value < rhs
    elif op == "<=":
        return value is not None and value <= rhs
    elif op == "IN":
        # list-valued fields match on any overlap
        if isinstance(value, (list, tuple)):
            return any(v in rhs for v in value)
        return value in rhs
    elif op == "NOT_IN":
        if isinstance(value, (list, tuple)):
            return not any(v in rhs for v in value)
        return value not in rhs
    elif op == "IS_NULL":
        return value is None
    elif op == "IS_NOT_NULL":
        return value is not None
    elif op == "CONTAINS":
        return value is not None and _contains(value, rhs)
    elif op == "NOT_CONTAINS":
        return value is None or not _contains(value, rhs)
    elif op == "STARTS_WITH":
        return value is not None and str(value).lower().startswith(str(rhs).lower())
    return False


def _apply_transform(expr: ComparisonExpression, value: Any) -> tuple[Any, Any]:
    rhs = expr.value
    if expr.transform is None:
        return value, rhs
    if value is not None:
        value = expr.transform(value)
    if isinstance(rhs, (list, tuple, set, frozenset)):
        rhs = [expr.transform(v) if v is not None else None for v in rhs]
    elif rhs is not None:
        rhs = expr.transform(rhs)
    return value, rhs


def matches_filter(record: Mapping[str, Any], expr: FilterExpression | None) -> bool:
    """Evaluate ``expr`` against one stored record."""
    if expr is None:
        return True

    if isinstance(expr, ComparisonExpression):
        value, rhs = _apply_transform(expr, resolve_nested_path(record, expr.field_path))
        try:
            return _compare_value(value, expr.op, rhs)
        except TypeError:
            return False

    if isinstance(expr, TagsExpression):
        tags = resolve_nested_path(record, expr.field_path) or []
        if not expr.tags:
            return True
        if expr.rule == "any":
            return any(t in tags for t in expr.tags)
        return all(t in tags for t in expr.tags)

    if isinstance(expr, SearchExpression):
        needle = expr.value.lower()
        for path in expr.fields:
            value = resolve_nested_path(record, path)
            if isinstance(value, str) and needle in value.lower():
                return True
        return False

    if isinstance(expr, LogicalExpression):
        if expr.op == "AND":
            return all(matches_filter(record, c) for c in expr.children)
        if expr.op == "OR":
            return any(matches_filter(record, c) for c in expr.children)
        if expr.op == "NOT":
            return not matches_filter(record, expr.children[0])
    raise ValueError(f"Unknown filter expression type: {type(expr)}")


def filter_items(
    items: Iterable[Mapping[str, Any]], expr: FilterExpression | None
) -> list[Mapping[str, Any]]:
    return [item for item in items if matches_filter(item, expr)]


@dataclass(frozen=True)
class SortSpec:
    field: PageField
    descending: bool = False


def parse_sort(sort: Sequence[str], registry: FieldRegistry) -> list[SortSpec]:
    """Parse ``["created_on_DESC", "title_ASC"]`` into sort specs."""
    specs: list[SortSpec] = []
    for entry in sort:
        name, _, direction = entry.rpartition("_")
        page_field = registry.get(name)
        if direction not in ("ASC", "DESC") or page_field is None:
            raise MalformedRequestError(
                f"Invalid sort '{entry}'.", "MALFORMED_SORT_ERROR", {"sort": list(sort)}
            )
        if not page_field.sortable:
            raise MalformedRequestError(
                f"Field '{name}' cannot be sorted.", "MALFORMED_SORT_ERROR", {"sort": list(sort)}
            )
        specs.append(SortSpec(page_field, descending=direction == "DESC"))
    return specs


def sort_items(
    items: Sequence[Mapping[str, Any]], specs: Sequence[SortSpec]
) -> list[Mapping[str, Any]]:
    """Stable multi-key sort; missing values always sort last."""
    result = list(items)
    for spec in reversed(specs):

        def _key(item: Mapping[str, Any], spec: SortSpec = spec) -> tuple[bool, Any]:
            value = spec.field.value(item)
            if spec.descending:
                return value is not None, value if value is not None else 0
            return value is None, value if value is not None else 0

        result.sort(key=_key, reverse=spec.descending)
    return result
