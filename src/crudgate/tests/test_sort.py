import pytest

from crudgate.api.exceptions import InvalidSortException
from crudgate.interface.filter import Sort, SortDirection
from crudgate.query.sort import SortParser, default_sort, sorts_to_sql


class TestSortParser:

    def test_directions(self):
        sorts = SortParser().parse("-created_at,name,+price")
        assert sorts == [
            Sort(field="created_at", direction=SortDirection.desc),
            Sort(field="name", direction=SortDirection.asc),
            Sort(field="price", direction=SortDirection.asc),
        ]

    def test_empty_segments_and_whitespace(self):
        sorts = SortParser().parse(" name , ,-id ")
        assert [s.field for s in sorts] == ["name", "id"]

    @pytest.mark.parametrize("value", [None, ""])
    def test_nothing_to_sort(self, value):
        assert SortParser().parse(value) == []

    def test_invalid_identifier(self):
        with pytest.raises(InvalidSortException):
            SortParser().parse("-a.b")

    def test_disallowed_field(self):
        with pytest.raises(InvalidSortException) as exc_info:
            SortParser(["id"]).parse("name")
        assert "name" in exc_info.value.detail


class TestSortsToSql:

    def test_preserves_order(self):
        sorts = SortParser().parse("-created_at,name")
        assert sorts_to_sql(sorts) == "created_at DESC, name ASC"

    def test_unsafe_fields_are_skipped(self):
        sorts = [Sort(field="a;b"), Sort(field="id", direction=SortDirection.desc)]
        assert sorts_to_sql(sorts) == "id DESC"

    def test_default_sort(self):
        assert default_sort("id") == [Sort(field="id", direction=SortDirection.desc)]
        assert default_sort("") == []
