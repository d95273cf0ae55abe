import pytest

from crudgate.api.exceptions import InvalidFilterException
from crudgate.interface.base import Aggregation
from crudgate.interface.filter import Filter, FilterOperator, SortDirection
from crudgate.query.options import (
    ListOptions,
    format_filter_value,
    parse_aggregation,
    parse_comma_separated,
    parse_deep_filters,
    parse_expand,
    parse_options,
)


class TestParseOptions:

    def test_full_request(self):
        params = {
            "filter[status]": ["active"],
            "filter[price:gte]": ["10"],
            "sort": ["-price,name"],
            "page": ["2"],
            "limit": ["5"],
            "fields": ["id, name"],
            "expand": ["author,tags"],
            "search": ["lamp"],
            "deep[author][country]": ["AT"],
            "aggregate": ["count(id)"],
            "group_by": ["status"],
        }
        options = parse_options(params, ["status", "price", "name", "id"])

        assert [(f.field, f.operator) for f in options.filters] == [
            ("status", FilterOperator.eq), ("price", FilterOperator.gte),
        ]
        assert [(s.field, s.direction) for s in options.sort] == [
            ("price", SortDirection.desc), ("name", SortDirection.asc),
        ]
        assert (options.pagination.page, options.pagination.limit, options.pagination.offset) == (2, 5, 5)
        assert options.fields == ["id", "name"]
        assert options.expand == ["author", "tags"]
        assert options.search == "lamp"
        assert options.deep == {"author": [Filter(field="country", value="AT")]}
        assert options.aggregate == [Aggregation(function="count", field="id")]
        assert options.group_by == ["status"]

    def test_errors_propagate(self):
        with pytest.raises(InvalidFilterException):
            parse_options({"filter[secret]": ["x"]}, ["id"])

    def test_empty(self):
        options = parse_options({})
        assert options == ListOptions()


class TestDeepFilters:

    def test_operator_form(self):
        deep = parse_deep_filters({"deep[author][age][gt]": ["30"]})
        assert deep == {"author": [Filter(field="age", operator=FilterOperator.gt, value="30")]}

    @pytest.mark.parametrize("key", [
        "deep[author]", "deep[author][age", "deep[author][age][gt]x", "deep[author][age][regex]",
    ])
    def test_malformed_keys_are_skipped(self, key):
        assert parse_deep_filters({key: ["1"]}) == {}


class TestAggregation:

    def test_function_form(self):
        assert parse_aggregation("count(id), sum(total)") == [
            Aggregation(function="count", field="id"),
            Aggregation(function="sum", field="total"),
        ]

    def test_json_form(self):
        assert parse_aggregation('[{"function": "avg", "field": "price", "alias": "p"}]') == [
            Aggregation(function="avg", field="price", alias="p"),
        ]

    def test_garbage(self):
        assert parse_aggregation("count id,") == []
        assert parse_aggregation(None) == []


class TestRoundTrip:

    def test_to_query_params(self):
        options = (
            ListOptions()
            .with_filter("status", FilterOperator.eq, "active")
            .with_filter("id", FilterOperator.in_, [1, 2])
            .with_sort("created_at", SortDirection.desc)
            .with_pagination(3, 50)
            .with_fields("id", "status")
            .with_expand("author")
            .with_search("x")
        )
        params = options.to_query_params()
        assert params == {
            "filter[status]": ["active"],
            "filter[id:in]": ["1,2"],
            "sort": ["-created_at"],
            "page": ["3"],
            "limit": ["50"],
            "fields": ["id,status"],
            "expand": ["author"],
            "search": ["x"],
        }

        reparsed = parse_options(params)
        assert reparsed.filters[1].value == "1,2"
        assert reparsed.pagination == options.pagination
        assert reparsed.sort == options.sort

    def test_helpers(self):
        assert parse_comma_separated(" a, ,b ") == ["a", "b"]
        assert parse_expand({"expand": "author"}) == ["author"]
        assert format_filter_value(True) == "true"
        assert format_filter_value(3) == "3"
