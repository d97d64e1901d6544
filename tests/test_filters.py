"""Tests for where-expressions, field registry and sorting."""

from __future__ import annotations

import pytest

from pagestore.errors import MalformedRequestError
from pagestore.filters import (
    ComparisonExpression,
    FieldRegistry,
    LogicalExpression,
    PageField,
    SearchExpression,
    TagsExpression,
    filter_items,
    matches_filter,
    parse_sort,
    resolve_nested_path,
    sort_items,
    where_to_expression,
)

RECORDS = [
    {"id": "a#0001", "title": "Banana", "status": "draft", "tags": ["fruit"], "version": 1,
     "created_by": {"id": "u1"}},
    {"id": "b#0001", "title": "apple", "status": "published", "tags": ["fruit", "red"],
     "version": 3, "created_by": {"id": "u2"}},
    {"id": "c#0001", "title": "Cherry pie", "status": "draft", "tags": [], "version": 2,
     "snippet": "Sweet dessert"},
]


@pytest.fixture
def registry():
    return FieldRegistry.default()


class TestExpressions:
    def test_logical_operators(self):
        a = ComparisonExpression("status", "==", "draft")
        b = ComparisonExpression("version", ">", 1)
        assert (a & b).op == "AND"
        assert (a | b).op == "OR"
        assert (~a).op == "NOT"

    def test_resolve_nested_path(self):
        assert resolve_nested_path({"a": {"b": 1}}, "a.b") == 1
        assert resolve_nested_path({"a": 1}, "a.b") is None

    def test_tags_any_and_all(self):
        any_expr = TagsExpression(("red", "green"), "any")
        all_expr = TagsExpression(("fruit", "red"), "all")
        assert [r["id"] for r in filter_items(RECORDS, any_expr)] == ["b#0001"]
        assert [r["id"] for r in filter_items(RECORDS, all_expr)] == ["b#0001"]

    def test_search_is_case_insensitive_over_fields(self):
        expr = SearchExpression(("title", "snippet"), "DESSERT")
        assert [r["id"] for r in filter_items(RECORDS, expr)] == ["c#0001"]

    def test_none_expression_matches_everything(self):
        assert matches_filter(RECORDS[0], None)

    def test_type_mismatch_does_not_match(self):
        expr = ComparisonExpression("title", ">", 3)
        assert filter_items(RECORDS, expr) == []


class TestWhereToExpression:
    def test_equality(self, registry):
        expr = where_to_expression({"status": "draft"}, registry)
        assert [r["id"] for r in filter_items(RECORDS, expr)] == ["a#0001", "c#0001"]

    def test_suffix_operators(self, registry):
        expr = where_to_expression({"version_gte": 2, "status_not": "published"}, registry)
        assert isinstance(expr, LogicalExpression)
        assert [r["id"] for r in filter_items(RECORDS, expr)] == ["c#0001"]

    def test_in_and_not_in(self, registry):
        expr = where_to_expression({"version_in": [1, 2]}, registry)
        assert [r["id"] for r in filter_items(RECORDS, expr)] == ["a#0001", "c#0001"]
        expr = where_to_expression({"version_not_in": [1, 2]}, registry)
        assert [r["id"] for r in filter_items(RECORDS, expr)] == ["b#0001"]

    def test_title_transform_lowercases(self, registry):
        expr = where_to_expression({"title": "BANANA"}, registry)
        assert [r["id"] for r in filter_items(RECORDS, expr)] == ["a#0001"]

    def test_contains_and_starts_with(self, registry):
        expr = where_to_expression({"title_contains": "PIE"}, registry)
        assert [r["id"] for r in filter_items(RECORDS, expr)] == ["c#0001"]
        expr = where_to_expression({"title_starts_with": "ap"}, registry)
        assert [r["id"] for r in filter_items(RECORDS, expr)] == ["b#0001"]

    def test_nested_field(self, registry):
        expr = where_to_expression({"created_by": "u2"}, registry)
        assert [r["id"] for r in filter_items(RECORDS, expr)] == ["b#0001"]

    def test_none_means_is_null(self, registry):
        expr = where_to_expression({"snippet": None}, registry)
        assert [r["id"] for r in filter_items(RECORDS, expr)] == ["a#0001", "b#0001"]

    def test_unknown_field(self, registry):
        with pytest.raises(MalformedRequestError) as exc_info:
            where_to_expression({"colour": "red"}, registry)
        assert exc_info.value.code == "MALFORMED_WHERE_ERROR"

    def test_in_requires_list(self, registry):
        with pytest.raises(MalformedRequestError):
            where_to_expression({"status_in": "draft"}, registry)

    def test_empty_where(self, registry):
        assert where_to_expression({}, registry) is None


class TestFieldRegistry:
    def test_register_extra_field(self):
        registry = FieldRegistry.default([PageField("author", "created_by.id")])
        assert "author" in registry
        expr = where_to_expression({"author": "u1"}, registry)
        assert [r["id"] for r in filter_items(RECORDS, expr)] == ["a#0001"]

    def test_duplicate_registration(self):
        with pytest.raises(ValueError):
            FieldRegistry.default([PageField("title", "title")])

    def test_invalid_path(self):
        with pytest.raises(ValueError):
            PageField("bad", "a..b")


class TestSort:
    def test_parse_sort(self, registry):
        specs = parse_sort(["version_DESC"], registry)
        assert specs[0].field.name == "version"
        assert specs[0].descending

    @pytest.mark.parametrize("entry", ["version", "version_UP", "colour_ASC", "tags_ASC"])
    def test_parse_sort_rejects(self, registry, entry):
        with pytest.raises(MalformedRequestError) as exc_info:
            parse_sort([entry], registry)
        assert exc_info.value.code == "MALFORMED_SORT_ERROR"

    def test_sort_case_insensitive_title(self, registry):
        ordered = sort_items(RECORDS, parse_sort(["title_ASC"], registry))
        assert [r["title"] for r in ordered] == ["apple", "Banana", "Cherry pie"]

    def test_sort_descending(self, registry):
        ordered = sort_items(RECORDS, parse_sort(["version_DESC"], registry))
        assert [r["version"] for r in ordered] == [3, 2, 1]

    def test_missing_values_sort_last(self, registry):
        for direction in ("ASC", "DESC"):
            ordered = sort_items(RECORDS, parse_sort([f"snippet_{direction}"], registry))
            assert ordered[0]["id"] == "c#0001"
            assert "snippet" not in ordered[-1]

    def test_multi_key_sort_is_stable(self, registry):
        ordered = sort_items(RECORDS, parse_sort(["status_ASC", "version_DESC"], registry))
        assert [r["id"] for r in ordered] == ["c#0001", "a#0001", "b#0001"]
