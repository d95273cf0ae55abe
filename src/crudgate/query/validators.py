"""
Stricter validation of parsed list options.

The parsers only check what they need to build SQL. The validators here run
on top of that at the service boundary and also reject SQL keywords as field
names and operands that cannot mean anything (an ``in`` without values).
"""

from typing import Any, Iterable, List, Optional

from crudgate.api.exceptions import BadRequestException, InvalidFilterException, InvalidSortException
from crudgate.interface.filter import Filter, FilterOperator, Sort
from crudgate.query.sanitize import is_safe_identifier

RESERVED_WORDS = frozenset({
    "select", "from", "where", "insert", "update", "delete", "drop", "create",
    "alter", "table", "index", "into", "values", "set", "and", "or",
    "not", "null", "is", "like", "in", "between", "join", "on",
    "left", "right", "inner", "outer", "group", "by", "order", "asc",
    "desc", "limit", "offset", "having", "union", "all", "distinct", "as",
    "case", "when", "then", "else", "end", "true", "false", "exists",
    "execute", "grant", "revoke", "truncate",
})

MAX_LIMIT = 1000


class FieldValidator:

    def __init__(self, allowed_fields: Optional[Iterable[str]] = None):
        self.allowed_fields = {f.lower() for f in allowed_fields or []}

    def validate_field(self, field: str) -> Optional[str]:
        """Reason the field is unusable, ``None`` when it is fine"""
        field = (field or "").lower()

        if field == "":
            return "field name cannot be empty"
        if not is_safe_identifier(field):
            return f"field '{field}' contains invalid characters"
        if field in RESERVED_WORDS:
            return f"field '{field}' is a reserved SQL word"
        if self.allowed_fields and field not in self.allowed_fields:
            return f"field '{field}' is not allowed"
        return None

    def validate_fields(self, fields: Iterable[str]) -> Optional[str]:
        for field in fields:
            reason = self.validate_field(field)
            if reason:
                return reason
        return None


def _validate_value(operator: FilterOperator, value: Any) -> Optional[str]:
    if operator == FilterOperator.in_:
        if isinstance(value, (list, tuple)):
            if len(value) == 0:
                return "'in' operator requires at least one value"
        elif isinstance(value, str):
            if value.strip() == "":
                return "'in' operator requires at least one value"
        else:
            return "'in' operator requires array value"

    if operator in (FilterOperator.null, FilterOperator.notnull):
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, str) and value in ("", "true", "false"):
            return None
        return f"'{operator.value}' operator requires boolean value"

    return None


class FilterValidator:

    def __init__(self, allowed_fields: Optional[Iterable[str]] = None):
        self.field_validator = FieldValidator(allowed_fields)

    def validate_filter(self, f: Filter):
        reason = self.field_validator.validate_field(f.field)
        if reason:
            raise InvalidFilterException(detail=reason)

        try:
            operator = FilterOperator(f.operator)
        except ValueError:
            raise InvalidFilterException(detail=f"invalid operator '{f.operator}'")

        reason = _validate_value(operator, f.value)
        if reason:
            raise InvalidFilterException(detail=f"invalid value for filter '{f.field}': {reason}")

    def validate_filters(self, filters: List[Filter]):
        for f in filters:
            self.validate_filter(f)


class SortValidator:

    def __init__(self, allowed_fields: Optional[Iterable[str]] = None):
        self.field_validator = FieldValidator(allowed_fields)

    def validate_sort(self, s: Sort):
        reason = self.field_validator.validate_field(s.field)
        if reason:
            raise InvalidSortException(detail=reason)

    def validate_sorts(self, sorts: List[Sort]):
        for s in sorts:
            self.validate_sort(s)


class OptionsValidator:
    """Validates a complete :class:`~crudgate.query.options.ListOptions`"""

    def __init__(self, allowed_fields: Optional[Iterable[str]] = None):
        allowed = list(allowed_fields or [])
        self.field_validator = FieldValidator(allowed)
        self.filter_validator = FilterValidator(allowed)
        self.sort_validator = SortValidator(allowed)

    def validate(self, options):
        self.filter_validator.validate_filters(options.filters)
        self.sort_validator.validate_sorts(options.sort)

        reason = self.field_validator.validate_fields(options.fields)
        if reason:
            raise BadRequestException(detail=f"invalid field selection: {reason}")

        reason = self.field_validator.validate_fields(options.group_by)
        if reason:
            raise BadRequestException(detail=f"invalid group by field: {reason}")

        if options.pagination.limit < 0 or options.pagination.limit > MAX_LIMIT:
            raise BadRequestException(detail=f"limit must be between 0 and {MAX_LIMIT}")
        if options.pagination.page < 1:
            raise BadRequestException(detail="page must be at least 1")

    def validate_expand(self, expand: Iterable[str], allowed_relations: Optional[Iterable[str]] = None):
        allowed = {r.lower() for r in allowed_relations or []}
        if not allowed:
            return
        for e in expand:
            relation = e.split(".")[0]
            if relation.lower() not in allowed:
                raise BadRequestException(detail=f"relation '{relation}' is not allowed for expansion")
