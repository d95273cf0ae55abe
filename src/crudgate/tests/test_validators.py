import pytest

from crudgate.api.exceptions import BadRequestException, InvalidFilterException, InvalidSortException
from crudgate.interface.filter import Filter, FilterOperator, Sort
from crudgate.query.options import ListOptions
from crudgate.query.validators import (
    FieldValidator,
    FilterValidator,
    OptionsValidator,
    SortValidator,
)


class TestFieldValidator:

    def test_allow_list_is_case_insensitive(self):
        validator = FieldValidator(["Status"])
        assert validator.validate_field("status") is None
        assert validator.validate_field("STATUS") is None

    def test_reserved_words(self):
        assert "reserved" in FieldValidator().validate_field("order")

    def test_invalid_characters(self):
        assert "invalid characters" in FieldValidator().validate_field("a.b")

    def test_not_allowed(self):
        assert FieldValidator(["id"]).validate_field("name") == "field 'name' is not allowed"

    def test_empty(self):
        assert FieldValidator().validate_field("") == "field name cannot be empty"


class TestFilterValidator:

    def test_in_requires_values(self):
        validator = FilterValidator(["id"])
        with pytest.raises(InvalidFilterException) as exc_info:
            validator.validate_filter(Filter(field="id", operator=FilterOperator.in_, value=""))
        assert "at least one value" in exc_info.value.detail

    def test_in_accepts_comma_list(self):
        FilterValidator(["id"]).validate_filter(Filter(field="id", operator=FilterOperator.in_, value="1,2"))

    @pytest.mark.parametrize("value", ["", "true", "false", True, None])
    def test_null_accepts_booleans(self, value):
        FilterValidator().validate_filter(Filter(field="deleted_at", operator=FilterOperator.null, value=value))

    def test_null_rejects_other_values(self):
        with pytest.raises(InvalidFilterException):
            FilterValidator().validate_filter(Filter(field="deleted_at", operator=FilterOperator.null, value="maybe"))


class TestSortAndOptionsValidator:

    def test_sort_on_reserved_word(self):
        with pytest.raises(InvalidSortException):
            SortValidator().validate_sorts([Sort(field="select")])

    def test_field_selection(self):
        options = ListOptions(fields=["id", "password"])
        with pytest.raises(BadRequestException) as exc_info:
            OptionsValidator(["id", "name"]).validate(options)
        assert "invalid field selection" in exc_info.value.detail

    def test_valid_options_pass(self):
        options = ListOptions().with_filter("name", FilterOperator.eq, "x").with_sort("id")
        OptionsValidator(["id", "name"]).validate(options)

    def test_expand_allow_list(self):
        validator = OptionsValidator()
        validator.validate_expand(["author.posts"], ["author"])
        with pytest.raises(BadRequestException):
            validator.validate_expand(["comments"], ["author"])
